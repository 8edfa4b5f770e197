# runwarden/core/types/status.py
"""
Status enums shared by models, the lifecycle state machine and the coordinator.
This module should not import from other runwarden modules.
"""

from enum import Enum


class ScheduleStatus(str, Enum):
    """Schedule lifecycle status"""

    SCHEDULED = 'scheduled'  # Waiting for its run time (or a run-now trigger).

    RUNNING = 'running'  # The execution engine reported the run started.

    COMPLETED = 'completed'  # The run finished successfully.

    FAILED = 'failed'  # The run finished with failures.

    CANCELED = 'canceled'  # An operator canceled it before it started.

    @property
    def is_terminal(self) -> bool:
        """Whether this status represents a final state (no further transitions)."""
        return self in SCHEDULE_TERMINAL_STATES


SCHEDULE_TERMINAL_STATES: frozenset[ScheduleStatus] = frozenset({
    ScheduleStatus.COMPLETED,
    ScheduleStatus.FAILED,
    ScheduleStatus.CANCELED,
})


class RunStatus(str, Enum):
    """Status of one concrete execution reported by the execution engine"""

    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELED = 'canceled'
    TIMEOUT = 'timeout'

    @property
    def is_terminal(self) -> bool:
        return self in RUN_TERMINAL_STATES


RUN_TERMINAL_STATES: frozenset[RunStatus] = frozenset({
    RunStatus.COMPLETED,
    RunStatus.FAILED,
    RunStatus.CANCELED,
    RunStatus.TIMEOUT,
})
