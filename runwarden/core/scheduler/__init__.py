# runwarden/core/scheduler/__init__.py
"""
Scheduling core.

Main components:
- SchedulerCoordinator: refresh loop, validated creation, bulk actions
- ScheduleStore: state container owned by the coordinator
- next_occurrence: recurrence calculation
- validate_schedule_form: pre-submission checks

Example usage:
    from runwarden.core.scheduler import SchedulerCoordinator

    coordinator = SchedulerCoordinator(repository, config)
    coordinator.start()
    ...
    await coordinator.stop()
"""

from runwarden.core.scheduler.calculator import (
    describe_recurrence,
    describe_schedule_recurrence,
    format_time_until,
    next_occurrence,
    upcoming_occurrences,
)
from runwarden.core.scheduler.coordinator import (
    BulkAction,
    BulkActionReport,
    ScheduleCounts,
    SchedulerCoordinator,
    derive_counts,
)
from runwarden.core.scheduler.lifecycle import ScheduleAction
from runwarden.core.scheduler.store import ScheduleStore
from runwarden.core.scheduler.suggestions import TimeSuggestion, suggest_times
from runwarden.core.scheduler.validator import validate_schedule_form

__all__ = [
    'SchedulerCoordinator',
    'BulkAction',
    'BulkActionReport',
    'ScheduleCounts',
    'derive_counts',
    'ScheduleAction',
    'ScheduleStore',
    'TimeSuggestion',
    'suggest_times',
    'next_occurrence',
    'upcoming_occurrences',
    'describe_recurrence',
    'describe_schedule_recurrence',
    'format_time_until',
    'validate_schedule_form',
]
