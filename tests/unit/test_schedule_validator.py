"""Tests for pre-submission schedule validation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from result import Err, Ok

from runwarden.core.errors import ErrorCode, ScheduleValidationError
from runwarden.core.models.requests import ScheduleFormState, UpdateScheduleRequest
from runwarden.core.models.schedule import (
    CustomRecurrence,
    NoRecurrence,
    Schedule,
    Weekday,
    WeeklyRecurrence,
)
from runwarden.core.scheduler.validator import (
    check_lead_time,
    parse_local_datetime,
    validate_schedule_form,
    validate_update,
)

pytestmark = pytest.mark.unit

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _form(**overrides: Any) -> ScheduleFormState:
    values: dict[str, Any] = {
        'suite_id': 'suite-1',
        'suite_name': 'Smoke',
        'date': '2025-06-02',
        'time': '09:00',
        'timezone': 'UTC',
    }
    values.update(overrides)
    return ScheduleFormState(**values)


def _error(result: Any) -> ScheduleValidationError:
    assert isinstance(result, Err), f'expected Err, got {result!r}'
    return result.err_value


class TestRuleOrder:
    def test_missing_date_reported_first(self) -> None:
        """Date/time outranks every other problem on the form."""
        error = _error(validate_schedule_form(_form(date='', suite_id=''), NOW))
        assert error.code == ErrorCode.SCHEDULE_MISSING_DATETIME
        assert error.field_name == 'date'

    def test_missing_time(self) -> None:
        error = _error(validate_schedule_form(_form(time='  '), NOW))
        assert error.code == ErrorCode.SCHEDULE_MISSING_DATETIME
        assert error.field_name == 'time'

    def test_missing_suite(self) -> None:
        error = _error(validate_schedule_form(_form(suite_id=''), NOW))
        assert error.code == ErrorCode.SCHEDULE_MISSING_SUITE
        assert error.message == 'Please select a test suite to schedule'

    def test_suite_checked_before_lead_time(self) -> None:
        error = _error(
            validate_schedule_form(_form(suite_id='', date='2020-01-01'), NOW)
        )
        assert error.code == ErrorCode.SCHEDULE_MISSING_SUITE

    def test_lead_time_checked_before_recurrence(self) -> None:
        form = _form(
            date='2025-06-01',
            time='12:00',
            recurring=True,
            recurrence_type='weekly',
            recurrence_days=[],
        )
        error = _error(validate_schedule_form(form, NOW))
        assert error.code == ErrorCode.SCHEDULE_LEAD_TIME


class TestLeadTime:
    def test_thirty_seconds_rejected(self) -> None:
        error = _error(validate_schedule_form(_form(date='2025-06-01', time='12:00:30'), NOW))
        assert error.code == ErrorCode.SCHEDULE_LEAD_TIME
        assert error.message == 'Schedule time must be at least 1 minute in the future'

    def test_sixty_one_seconds_accepted(self) -> None:
        result = validate_schedule_form(_form(date='2025-06-01', time='12:01:01'), NOW)
        assert isinstance(result, Ok)
        assert result.ok_value.run_at_utc == NOW + timedelta(seconds=61)

    def test_exact_boundary_rejected(self) -> None:
        error = _error(validate_schedule_form(_form(date='2025-06-01', time='12:01'), NOW))
        assert error.code == ErrorCode.SCHEDULE_LEAD_TIME

    def test_past_rejected(self) -> None:
        error = _error(validate_schedule_form(_form(date='2025-05-31', time='12:00'), NOW))
        assert error.code == ErrorCode.SCHEDULE_LEAD_TIME

    def test_lead_evaluated_in_form_timezone(self) -> None:
        """13:00 in Jerusalem (UTC+3 in June) is 10:00 UTC, already past."""
        form = _form(date='2025-06-01', time='13:00', timezone='Asia/Jerusalem')
        error = _error(validate_schedule_form(form, NOW))
        assert error.code == ErrorCode.SCHEDULE_LEAD_TIME

    def test_custom_lead(self) -> None:
        form = _form(date='2025-06-01', time='12:03')
        assert isinstance(validate_schedule_form(form, NOW), Ok)
        error = _error(validate_schedule_form(form, NOW, lead=timedelta(minutes=5)))
        assert error.message == 'Schedule time must be at least 5 minutes in the future'

    def test_check_lead_time_directly(self) -> None:
        assert isinstance(check_lead_time(NOW + timedelta(minutes=2), NOW), Ok)
        assert isinstance(check_lead_time(NOW + timedelta(minutes=1), NOW), Err)


class TestFormatAndTimezone:
    def test_unknown_timezone(self) -> None:
        error = _error(validate_schedule_form(_form(timezone='Mars/Base'), NOW))
        assert error.code == ErrorCode.SCHEDULE_INVALID_TIMEZONE

    def test_malformed_date(self) -> None:
        error = _error(validate_schedule_form(_form(date='02/06/2025'), NOW))
        assert error.code == ErrorCode.SCHEDULE_MALFORMED_DATETIME

    def test_parse_local_datetime(self) -> None:
        assert parse_local_datetime('2025-06-02', '09:30') == datetime(2025, 6, 2, 9, 30)


class TestRecurrence:
    def test_not_recurring_ignores_recurrence_fields(self) -> None:
        form = _form(recurring=False, recurrence_type='weekly', recurrence_days=[])
        result = validate_schedule_form(form, NOW)
        assert isinstance(result, Ok)
        assert result.ok_value.recurrence == NoRecurrence()

    def test_weekly_without_days_rejected(self) -> None:
        form = _form(recurring=True, recurrence_type='weekly', recurrence_days=[])
        error = _error(validate_schedule_form(form, NOW))
        assert error.code == ErrorCode.SCHEDULE_WEEKLY_NO_DAYS
        assert error.message == 'Please select at least one day for weekly recurring schedules'

    def test_weekly_with_one_day_accepted(self) -> None:
        form = _form(recurring=True, recurrence_type='weekly', recurrence_days=['Monday'])
        result = validate_schedule_form(form, NOW)
        assert isinstance(result, Ok)
        assert result.ok_value.recurrence == WeeklyRecurrence(days=[Weekday.MONDAY])

    def test_weekly_duplicate_days_collapsed(self) -> None:
        form = _form(
            recurring=True, recurrence_type='weekly', recurrence_days=['mon', 'Monday', 'fri']
        )
        result = validate_schedule_form(form, NOW)
        assert isinstance(result, Ok)
        assert result.ok_value.recurrence == WeeklyRecurrence(
            days=[Weekday.MONDAY, Weekday.FRIDAY]
        )

    def test_weekly_unknown_day(self) -> None:
        form = _form(recurring=True, recurrence_type='weekly', recurrence_days=['Funday'])
        error = _error(validate_schedule_form(form, NOW))
        assert error.code == ErrorCode.SCHEDULE_INVALID_WEEKDAY

    @pytest.mark.parametrize('interval', [0, -3, 366, None])
    def test_custom_interval_out_of_range(self, interval: int | None) -> None:
        form = _form(recurring=True, recurrence_type='custom', recurrence_interval=interval)
        error = _error(validate_schedule_form(form, NOW))
        assert error.code == ErrorCode.SCHEDULE_INVALID_INTERVAL
        assert error.message == 'Please enter a valid interval for custom recurring schedules'

    def test_custom_interval_bounds_accepted(self) -> None:
        for interval in (1, 365):
            form = _form(recurring=True, recurrence_type='custom', recurrence_interval=interval)
            result = validate_schedule_form(form, NOW)
            assert isinstance(result, Ok)
            assert result.ok_value.recurrence == CustomRecurrence(interval_days=interval)

    def test_custom_interval_configurable_bound(self) -> None:
        form = _form(recurring=True, recurrence_type='custom', recurrence_interval=40)
        error = _error(validate_schedule_form(form, NOW, max_interval=30))
        assert error.code == ErrorCode.SCHEDULE_INVALID_INTERVAL

    def test_unknown_type(self) -> None:
        form = _form(recurring=True, recurrence_type='hourly')
        error = _error(validate_schedule_form(form, NOW))
        assert error.field_name == 'recurrence_type'
        assert error.code == ErrorCode.SCHEDULE_UNKNOWN_RECURRENCE

    def test_end_date_is_inclusive_local_day(self) -> None:
        form = _form(
            recurring=True,
            recurrence_type='daily',
            recurrence_end_date='2025-06-10',
            timezone='Europe/London',
        )
        result = validate_schedule_form(form, NOW)
        assert isinstance(result, Ok)
        # 23:59:59 BST
        assert result.ok_value.recurrence_end_date == datetime(
            2025, 6, 10, 22, 59, 59, tzinfo=timezone.utc
        )

    def test_end_date_before_first_run(self) -> None:
        form = _form(recurring=True, recurrence_type='daily', recurrence_end_date='2025-06-01')
        error = _error(validate_schedule_form(form, NOW))
        assert error.code == ErrorCode.SCHEDULE_END_BEFORE_START

    def test_end_date_ignored_for_one_off(self) -> None:
        form = _form(recurring=False, recurrence_end_date='2025-01-01')
        result = validate_schedule_form(form, NOW)
        assert isinstance(result, Ok)
        assert result.ok_value.recurrence_end_date is None


class TestOptions:
    def test_priority_out_of_range(self) -> None:
        error = _error(validate_schedule_form(_form(priority=11), NOW))
        assert error.code == ErrorCode.SCHEDULE_INVALID_OPTIONS
        assert error.field_name == 'priority'

    def test_retries_out_of_range(self) -> None:
        form = _form(execution_options={'retries': 4})
        error = _error(validate_schedule_form(form, NOW))
        assert error.code == ErrorCode.SCHEDULE_INVALID_OPTIONS
        assert any('retries' in note for note in error.notes)

    def test_unknown_option_rejected(self) -> None:
        form = _form(execution_options={'turbo': True})
        error = _error(validate_schedule_form(form, NOW))
        assert error.code == ErrorCode.SCHEDULE_INVALID_OPTIONS


class TestBuiltRequest:
    def test_request_fields(self) -> None:
        form = _form(
            date='2025-06-02',
            time='09:00',
            timezone='America/New_York',
            notes='  nightly  ',
            tags=['smoke', ' ', 'ci'],
            priority=8,
            run_now=True,
        )
        result = validate_schedule_form(form, NOW)
        assert isinstance(result, Ok)
        request = result.ok_value
        assert request.run_at == datetime(2025, 6, 2, 9, 0)
        assert request.run_at_utc == datetime(2025, 6, 2, 13, 0, tzinfo=timezone.utc)
        assert request.notes == 'nightly'
        assert request.tags == ['smoke', 'ci']
        assert request.priority == 8
        assert request.run_now is True
        assert request.execution_options.retries == 1

    def test_payload_uses_local_run_at(self) -> None:
        result = validate_schedule_form(
            _form(recurring=True, recurrence_type='weekly', recurrence_days=['wed', 'mon']),
            NOW,
        )
        assert isinstance(result, Ok)
        payload = result.ok_value.to_payload()
        assert payload['run_at'] == '2025-06-02T09:00:00.000'
        assert payload['recurrence_type'] == 'weekly'
        assert payload['recurrence_days'] == ['wednesday', 'monday']
        assert payload['execution_options']['browser'] == 'chromium'


class TestValidateUpdate:
    def _schedule(self) -> Schedule:
        return Schedule(
            id='s1',
            suite_id='suite-1',
            run_at_utc=datetime(2025, 6, 3, 9, 0, tzinfo=timezone.utc),
        )

    def test_moving_into_the_past_rejected(self) -> None:
        update = UpdateScheduleRequest(run_at=datetime(2025, 6, 1, 11, 0))
        error = _error(validate_update(self._schedule(), update, NOW))
        assert error.code == ErrorCode.SCHEDULE_LEAD_TIME

    def test_notes_only_accepted(self) -> None:
        update = UpdateScheduleRequest(notes='moved')
        assert validate_update(self._schedule(), update, NOW) == Ok(update)

    def test_unknown_timezone(self) -> None:
        update = UpdateScheduleRequest(timezone='Nowhere/City')
        error = _error(validate_update(self._schedule(), update, NOW))
        assert error.code == ErrorCode.SCHEDULE_INVALID_TIMEZONE

    def test_timezone_change_into_the_past_rejected(self) -> None:
        # 08:30 New York is 12:30Z; 08:30 London is 07:30Z
        schedule = Schedule(
            id='s1',
            suite_id='suite-1',
            timezone='America/New_York',
            run_at_utc=NOW + timedelta(minutes=30),
        )
        update = UpdateScheduleRequest(timezone='Europe/London')
        error = _error(validate_update(schedule, update, NOW))
        assert error.code == ErrorCode.SCHEDULE_LEAD_TIME

    def test_timezone_change_staying_ahead_accepted(self) -> None:
        schedule = Schedule(
            id='s1',
            suite_id='suite-1',
            timezone='America/New_York',
            run_at_utc=NOW + timedelta(minutes=30),
        )
        update = UpdateScheduleRequest(timezone='America/Los_Angeles')
        assert validate_update(schedule, update, NOW) == Ok(update)

    def test_same_timezone_skips_lead_check(self) -> None:
        schedule = Schedule(
            id='s1',
            suite_id='suite-1',
            timezone='UTC',
            run_at_utc=NOW - timedelta(minutes=5),
        )
        update = UpdateScheduleRequest(timezone='UTC', notes='late')
        assert validate_update(schedule, update, NOW) == Ok(update)
