"""Tests for the schedule/run lifecycle state machine."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from runwarden.core.errors import DomainError, InvalidStateError
from runwarden.core.models.schedule import (
    DailyRecurrence,
    Schedule,
    ScheduleRun,
)
from runwarden.core.scheduler import lifecycle
from runwarden.core.scheduler.lifecycle import ScheduleAction
from runwarden.core.types.status import (
    RUN_TERMINAL_STATES,
    SCHEDULE_TERMINAL_STATES,
    RunStatus,
    ScheduleStatus,
)

pytestmark = pytest.mark.unit


def _utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


AT = _utc(2025, 6, 1, 12)


def _schedule(status: ScheduleStatus = ScheduleStatus.SCHEDULED, **overrides: object) -> Schedule:
    values: dict[str, object] = {
        'id': 's1',
        'suite_id': 'suite-1',
        'run_at_utc': _utc(2025, 6, 2, 9),
        'status': status,
    }
    values.update(overrides)
    return Schedule(**values)  # type: ignore[arg-type]


def _run(status: RunStatus, schedule_id: str = 's1') -> ScheduleRun:
    return ScheduleRun(id='r1', schedule_id=schedule_id, started_at=AT, status=status)


class TestTransitionTable:
    def test_terminal_states_have_no_exits(self) -> None:
        for status in SCHEDULE_TERMINAL_STATES:
            assert lifecycle.SCHEDULE_TRANSITIONS[status] == frozenset()
        for run_status in RUN_TERMINAL_STATES:
            assert lifecycle.RUN_TRANSITIONS[run_status] == frozenset()

    def test_forward_transitions(self) -> None:
        assert lifecycle.can_transition(ScheduleStatus.SCHEDULED, ScheduleStatus.RUNNING)
        assert lifecycle.can_transition(ScheduleStatus.SCHEDULED, ScheduleStatus.CANCELED)
        assert lifecycle.can_transition(ScheduleStatus.RUNNING, ScheduleStatus.COMPLETED)
        assert lifecycle.can_transition(ScheduleStatus.RUNNING, ScheduleStatus.FAILED)

    def test_no_resurrection(self) -> None:
        for status in SCHEDULE_TERMINAL_STATES:
            assert not lifecycle.can_transition(status, ScheduleStatus.SCHEDULED)

    def test_running_cannot_be_canceled(self) -> None:
        assert not lifecycle.can_transition(ScheduleStatus.RUNNING, ScheduleStatus.CANCELED)

    def test_status_is_terminal(self) -> None:
        assert ScheduleStatus.CANCELED.is_terminal
        assert not ScheduleStatus.RUNNING.is_terminal
        assert RunStatus.TIMEOUT.is_terminal


class TestActions:
    def test_allowed_actions_while_scheduled(self) -> None:
        assert lifecycle.allowed_actions(ScheduleStatus.SCHEDULED) == frozenset(ScheduleAction)

    @pytest.mark.parametrize(
        'status',
        [
            ScheduleStatus.RUNNING,
            ScheduleStatus.COMPLETED,
            ScheduleStatus.FAILED,
            ScheduleStatus.CANCELED,
        ],
    )
    def test_only_delete_after_scheduled(self, status: ScheduleStatus) -> None:
        assert lifecycle.allowed_actions(status) == frozenset({ScheduleAction.DELETE})

    def test_ensure_action_message(self) -> None:
        with pytest.raises(InvalidStateError) as exc_info:
            lifecycle.ensure_action(_schedule(ScheduleStatus.RUNNING), ScheduleAction.UPDATE)
        error = exc_info.value
        assert error.message == "Cannot update schedule s1: status is 'running'"
        assert error.status_code == 409
        assert error.remote_code == 'INVALID_STATE'
        assert error.schedule_id == 's1'


class TestCancel:
    def test_cancel_scheduled(self) -> None:
        original = _schedule()
        canceled = lifecycle.cancel(original, AT)
        assert canceled.status == ScheduleStatus.CANCELED
        assert canceled.updated_at == AT
        assert original.status == ScheduleStatus.SCHEDULED

    def test_cancel_completed_rejected_as_domain_error(self) -> None:
        with pytest.raises(DomainError) as exc_info:
            lifecycle.cancel(_schedule(ScheduleStatus.COMPLETED), AT)
        assert isinstance(exc_info.value, InvalidStateError)
        assert 'Cannot cancel schedule s1' in exc_info.value.message

    @pytest.mark.parametrize(
        'status',
        [ScheduleStatus.RUNNING, ScheduleStatus.FAILED, ScheduleStatus.CANCELED],
    )
    def test_cancel_rejected_outside_scheduled(self, status: ScheduleStatus) -> None:
        with pytest.raises(InvalidStateError):
            lifecycle.cancel(_schedule(status), AT)


class TestStartAndReport:
    def test_start(self) -> None:
        assert lifecycle.start(_schedule(), AT).status == ScheduleStatus.RUNNING

    def test_start_twice_rejected(self) -> None:
        with pytest.raises(InvalidStateError, match='Cannot run'):
            lifecycle.start(_schedule(ScheduleStatus.RUNNING), AT)

    @pytest.mark.parametrize(
        ('run_status', 'expected'),
        [
            (RunStatus.COMPLETED, ScheduleStatus.COMPLETED),
            (RunStatus.FAILED, ScheduleStatus.FAILED),
            (RunStatus.TIMEOUT, ScheduleStatus.FAILED),
            (RunStatus.CANCELED, ScheduleStatus.FAILED),
        ],
    )
    def test_terminal_run_moves_schedule(
        self, run_status: RunStatus, expected: ScheduleStatus
    ) -> None:
        run = _run(run_status)
        updated = lifecycle.apply_run_report(_schedule(ScheduleStatus.RUNNING), run, AT)
        assert updated.status == expected
        assert updated.last_run == run

    def test_running_report_is_noop_for_running_schedule(self) -> None:
        schedule = _schedule(ScheduleStatus.RUNNING)
        assert lifecycle.apply_run_report(schedule, _run(RunStatus.RUNNING), AT) is schedule

    def test_report_for_other_schedule_rejected(self) -> None:
        with pytest.raises(ValueError, match='belongs to schedule'):
            lifecycle.apply_run_report(
                _schedule(ScheduleStatus.RUNNING), _run(RunStatus.COMPLETED, 'other'), AT
            )

    def test_report_on_canceled_schedule_rejected(self) -> None:
        with pytest.raises(InvalidStateError):
            lifecycle.apply_run_report(
                _schedule(ScheduleStatus.CANCELED), _run(RunStatus.COMPLETED), AT
            )

    def test_run_transitions(self) -> None:
        lifecycle.ensure_run_transition(_run(RunStatus.RUNNING), RunStatus.TIMEOUT)
        with pytest.raises(InvalidStateError):
            lifecycle.ensure_run_transition(_run(RunStatus.COMPLETED), RunStatus.FAILED)


class TestNextOccurrenceAfterRun:
    def test_one_off_has_none(self) -> None:
        schedule = _schedule(ScheduleStatus.COMPLETED)
        assert lifecycle.next_occurrence_after_run(schedule, _utc(2025, 6, 2, 9, 30)) is None

    def test_daily_after_scheduled_run(self) -> None:
        schedule = _schedule(ScheduleStatus.COMPLETED, recurrence=DailyRecurrence())
        result = lifecycle.next_occurrence_after_run(schedule, _utc(2025, 6, 2, 9, 30))
        assert result == _utc(2025, 6, 3, 9)

    def test_run_now_keeps_planned_occurrence(self) -> None:
        """An early manual run does not consume or shift the planned one."""
        schedule = _schedule(ScheduleStatus.COMPLETED, recurrence=DailyRecurrence())
        result = lifecycle.next_occurrence_after_run(schedule, _utc(2025, 5, 30, 15))
        assert result == _utc(2025, 6, 2, 9)

    def test_respects_end_date(self) -> None:
        schedule = _schedule(
            ScheduleStatus.COMPLETED,
            recurrence=DailyRecurrence(),
            recurrence_end_date=_utc(2025, 6, 2, 23),
        )
        assert lifecycle.next_occurrence_after_run(schedule, _utc(2025, 6, 2, 9, 30)) is None
