# runwarden/core/scheduler/lifecycle.py
"""
Schedule and run lifecycle.

    scheduled --run-now/start--> running --> completed | failed
    scheduled --cancel--> canceled

completed, failed and canceled are final. Delete is not a transition: it is
allowed from every status and removes the schedule outright.
"""

from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Optional
from runwarden.core.errors import ErrorCode, InvalidStateError
from runwarden.core.models.schedule import Schedule, ScheduleRun
from runwarden.core.scheduler.calculator import next_occurrence
from runwarden.core.types.status import RunStatus, ScheduleStatus


class ScheduleAction(str, Enum):
    """Operator- or engine-initiated actions on a schedule."""

    RUN_NOW = 'run_now'
    CANCEL = 'cancel'
    UPDATE = 'update'
    DELETE = 'delete'


SCHEDULE_TRANSITIONS: dict[ScheduleStatus, frozenset[ScheduleStatus]] = {
    ScheduleStatus.SCHEDULED: frozenset({ScheduleStatus.RUNNING, ScheduleStatus.CANCELED}),
    ScheduleStatus.RUNNING: frozenset({ScheduleStatus.COMPLETED, ScheduleStatus.FAILED}),
    ScheduleStatus.COMPLETED: frozenset(),
    ScheduleStatus.FAILED: frozenset(),
    ScheduleStatus.CANCELED: frozenset(),
}

RUN_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.RUNNING: frozenset({
        RunStatus.COMPLETED,
        RunStatus.FAILED,
        RunStatus.CANCELED,
        RunStatus.TIMEOUT,
    }),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
    RunStatus.CANCELED: frozenset(),
    RunStatus.TIMEOUT: frozenset(),
}

# Statuses from which each action is accepted
ACTION_SOURCES: dict[ScheduleAction, frozenset[ScheduleStatus]] = {
    ScheduleAction.RUN_NOW: frozenset({ScheduleStatus.SCHEDULED}),
    ScheduleAction.CANCEL: frozenset({ScheduleStatus.SCHEDULED}),
    ScheduleAction.UPDATE: frozenset({ScheduleStatus.SCHEDULED}),
    ScheduleAction.DELETE: frozenset(ScheduleStatus),
}

_ACTION_VERBS: dict[ScheduleAction, str] = {
    ScheduleAction.RUN_NOW: 'run',
    ScheduleAction.CANCEL: 'cancel',
    ScheduleAction.UPDATE: 'update',
    ScheduleAction.DELETE: 'delete',
}

# How a finished run moves its schedule
_RUN_OUTCOMES: dict[RunStatus, ScheduleStatus] = {
    RunStatus.RUNNING: ScheduleStatus.RUNNING,
    RunStatus.COMPLETED: ScheduleStatus.COMPLETED,
    RunStatus.FAILED: ScheduleStatus.FAILED,
    RunStatus.TIMEOUT: ScheduleStatus.FAILED,
    # A run stopped mid-flight did not succeed; the schedule cannot go back
    # to scheduled and canceled is reserved for not-yet-started schedules.
    RunStatus.CANCELED: ScheduleStatus.FAILED,
}


def can_transition(source: ScheduleStatus, target: ScheduleStatus) -> bool:
    return target in SCHEDULE_TRANSITIONS[source]


def can_perform(status: ScheduleStatus, action: ScheduleAction) -> bool:
    return status in ACTION_SOURCES[action]


def allowed_actions(status: ScheduleStatus) -> frozenset[ScheduleAction]:
    """Actions the UI may offer for a schedule in `status`."""
    return frozenset(a for a, sources in ACTION_SOURCES.items() if status in sources)


def ensure_action(schedule: Schedule, action: ScheduleAction) -> None:
    """Raise InvalidStateError when `action` is not accepted in the schedule's status."""
    if can_perform(schedule.status, action):
        return
    verb = _ACTION_VERBS[action]
    raise InvalidStateError(
        message=(
            f"Cannot {verb} schedule {schedule.id}: status is '{schedule.status.value}'"
        ),
        code=ErrorCode.INVALID_STATE,
        notes=[
            f'{verb} is only allowed while: '
            + ', '.join(sorted(s.value for s in ACTION_SOURCES[action]))
        ],
        status_code=409,
        remote_code='INVALID_STATE',
        schedule_id=schedule.id,
    )


def ensure_transition(schedule: Schedule, target: ScheduleStatus) -> None:
    if can_transition(schedule.status, target):
        return
    raise InvalidStateError(
        message=(
            f"Schedule {schedule.id} cannot move from '{schedule.status.value}' "
            f"to '{target.value}'"
        ),
        code=ErrorCode.INVALID_STATE,
        status_code=409,
        remote_code='INVALID_STATE',
        schedule_id=schedule.id,
    )


def transition(schedule: Schedule, target: ScheduleStatus, at: datetime) -> Schedule:
    """Return a copy of `schedule` moved to `target`; the original is untouched."""
    ensure_transition(schedule, target)
    return schedule.model_copy(update={'status': target, 'updated_at': at})


def cancel(schedule: Schedule, at: datetime) -> Schedule:
    ensure_action(schedule, ScheduleAction.CANCEL)
    return transition(schedule, ScheduleStatus.CANCELED, at)


def start(schedule: Schedule, at: datetime) -> Schedule:
    """Engine reported a run started (scheduled or run-now)."""
    ensure_action(schedule, ScheduleAction.RUN_NOW)
    return transition(schedule, ScheduleStatus.RUNNING, at)


def schedule_status_for_run(run_status: RunStatus) -> ScheduleStatus:
    return _RUN_OUTCOMES[run_status]


def ensure_run_transition(run: ScheduleRun, target: RunStatus) -> None:
    if target in RUN_TRANSITIONS[run.status]:
        return
    raise InvalidStateError(
        message=f"Run {run.id} cannot move from '{run.status.value}' to '{target.value}'",
        code=ErrorCode.INVALID_STATE,
        remote_code='INVALID_STATE',
        schedule_id=run.schedule_id,
    )


def apply_run_report(schedule: Schedule, run: ScheduleRun, at: datetime) -> Schedule:
    """
    Fold an execution-engine report into the schedule.

    A terminal run moves a running schedule to completed/failed and becomes
    its last_run; a still-running report is a no-op for a running schedule.
    """
    if run.schedule_id != schedule.id:
        raise ValueError(f'run {run.id} belongs to schedule {run.schedule_id}, not {schedule.id}')

    target = schedule_status_for_run(run.status)
    if target == schedule.status:
        return schedule
    updated = transition(schedule, target, at)
    if run.status.is_terminal:
        updated = updated.model_copy(update={'last_run': run})
    return updated


def next_occurrence_after_run(schedule: Schedule, finished_at: datetime) -> Optional[datetime]:
    """
    Instant of the schedule's next occurrence once a run has finished.

    None for one-off schedules and once the recurrence end date is passed.
    Run-now executions do not shift the recurrence: a run that finished
    before the planned run time leaves that planned occurrence in place.
    Otherwise the next occurrence is the first one after the finish time.
    """
    if not schedule.is_recurring:
        return None
    if finished_at < schedule.run_at_utc:
        after, inclusive = schedule.run_at_utc, True
    else:
        after, inclusive = finished_at, False
    return next_occurrence(
        schedule.recurrence,
        schedule.anchor_utc,
        after,
        schedule.timezone,
        end_date=schedule.recurrence_end_date,
        inclusive=inclusive,
    )
