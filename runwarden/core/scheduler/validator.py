# runwarden/core/scheduler/validator.py
"""
Pre-submission checks for new and edited schedules.

Rules run in a fixed order and the first failure wins, so the operator
always sees the single most fundamental problem with the form:

1. date and time present
2. suite selected
3. timezone known and date/time well formed
4. run time strictly later than now + lead time
5. weekly recurrence has at least one day
6. custom recurrence interval is an integer within bounds
7. recurrence end date, priority and execution options sane

Nothing here performs I/O.
"""

from __future__ import annotations
from datetime import date, datetime, time as datetime_time, timedelta
from typing import Any, Optional, TypeVar
from pydantic import ValidationError as PydanticValidationError
from result import Err, Ok, Result
from typing_extensions import TypeAliasType
from runwarden.core.errors import ErrorCode, ScheduleValidationError
from runwarden.core.models.requests import (
    CreateScheduleRequest,
    ScheduleFormState,
    UpdateScheduleRequest,
)
from runwarden.core.models.schedule import (
    MAX_CUSTOM_INTERVAL_DAYS,
    ExecutionOptions,
    RecurrencePattern,
    Schedule,
    Weekday,
    build_recurrence,
)
from runwarden.core.scheduler.calculator import load_zone, local_to_utc

DEFAULT_LEAD_TIME = timedelta(minutes=1)

RECURRENCE_TYPES = ('none', 'daily', 'weekly', 'monthly', 'custom')

T = TypeVar('T')
ValidationResult = TypeAliasType('ValidationResult', Result[T, ScheduleValidationError], type_params=(T,))


def _fail(
    message: str,
    code: ErrorCode,
    field_name: Optional[str] = None,
    notes: Optional[list[str]] = None,
    help_text: Optional[str] = None,
) -> Err[ScheduleValidationError]:
    return Err(
        ScheduleValidationError(
            message=message,
            code=code,
            notes=notes or [],
            help_text=help_text,
            field_name=field_name,
        )
    )


def parse_local_datetime(date_str: str, time_str: str) -> datetime:
    """Combine 'YYYY-MM-DD' and 'HH:MM[:SS]' into a naive local datetime."""
    return datetime.combine(
        date.fromisoformat(date_str.strip()),
        datetime_time.fromisoformat(time_str.strip()),
    )


def _lead_time_message(lead: timedelta) -> str:
    seconds = int(lead.total_seconds())
    if seconds % 60 == 0:
        minutes = seconds // 60
        unit = 'minute' if minutes == 1 else 'minutes'
        return f'Schedule time must be at least {minutes} {unit} in the future'
    return f'Schedule time must be at least {seconds} seconds in the future'


def check_lead_time(
    run_at_utc: datetime, now: datetime, lead: timedelta = DEFAULT_LEAD_TIME
) -> ValidationResult[datetime]:
    """run_at_utc must be strictly later than now + lead."""
    earliest = now + lead
    if run_at_utc <= earliest:
        return _fail(
            _lead_time_message(lead),
            ErrorCode.SCHEDULE_LEAD_TIME,
            field_name='time',
            notes=[
                f'requested run time (UTC): {run_at_utc.isoformat()}',
                f'earliest allowed (UTC): later than {earliest.isoformat()}',
            ],
        )
    return Ok(run_at_utc)


def _check_recurrence(
    form: ScheduleFormState, max_interval: int
) -> ValidationResult[RecurrencePattern]:
    if not form.recurring:
        return Ok(build_recurrence('none'))

    recurrence_type = (form.recurrence_type or 'none').strip().lower()
    if recurrence_type not in RECURRENCE_TYPES:
        return _fail(
            f"Unknown recurrence type '{form.recurrence_type}'",
            ErrorCode.SCHEDULE_UNKNOWN_RECURRENCE,
            field_name='recurrence_type',
            help_text=f'use one of: {", ".join(RECURRENCE_TYPES)}',
        )

    if recurrence_type == 'weekly':
        if not form.recurrence_days:
            return _fail(
                'Please select at least one day for weekly recurring schedules',
                ErrorCode.SCHEDULE_WEEKLY_NO_DAYS,
                field_name='recurrence_days',
            )
        try:
            days = list(dict.fromkeys(Weekday.parse(d) for d in form.recurrence_days))
        except ValueError as e:
            return _fail(
                'Weekly recurrence contains an unknown day',
                ErrorCode.SCHEDULE_INVALID_WEEKDAY,
                field_name='recurrence_days',
                notes=[str(e)],
            )
        return Ok(build_recurrence('weekly', days=days))

    if recurrence_type == 'custom':
        interval = form.recurrence_interval
        if (
            interval is None
            or isinstance(interval, bool)
            or not isinstance(interval, int)
            or interval < 1
            or interval > max_interval
        ):
            return _fail(
                'Please enter a valid interval for custom recurring schedules',
                ErrorCode.SCHEDULE_INVALID_INTERVAL,
                field_name='recurrence_interval',
                notes=[f'interval: {interval!r}'],
                help_text=f'the interval is a whole number of days between 1 and {max_interval}',
            )
        return Ok(build_recurrence('custom', interval=interval))

    return Ok(build_recurrence(recurrence_type))


def _check_options(options: dict[str, Any]) -> ValidationResult[ExecutionOptions]:
    try:
        return Ok(ExecutionOptions.model_validate(options))
    except PydanticValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or 'execution_options'}: {err['msg']}"
            for err in e.errors()
        ]
        return _fail(
            'Execution options are invalid',
            ErrorCode.SCHEDULE_INVALID_OPTIONS,
            field_name='execution_options',
            notes=problems,
            help_text='retries must be between 0 and 3',
        )


def validate_schedule_form(
    form: ScheduleFormState,
    now: datetime,
    lead: timedelta = DEFAULT_LEAD_TIME,
    max_interval: int = MAX_CUSTOM_INTERVAL_DAYS,
) -> ValidationResult[CreateScheduleRequest]:
    """
    Validate raw form input and build the creation request.

    Args:
        form: Operator input
        now: Current instant (UTC-aware)
        lead: Minimum lead time; a run time equal to now + lead is rejected
        max_interval: Upper bound for custom recurrence intervals (days)

    Returns:
        Ok(CreateScheduleRequest) or Err(ScheduleValidationError) for the
        first violated rule
    """
    if not form.date.strip() or not form.time.strip():
        return _fail(
            'Please choose both a date and a time',
            ErrorCode.SCHEDULE_MISSING_DATETIME,
            field_name='date' if not form.date.strip() else 'time',
        )

    if not form.suite_id.strip():
        return _fail(
            'Please select a test suite to schedule',
            ErrorCode.SCHEDULE_MISSING_SUITE,
            field_name='suite_id',
        )

    try:
        load_zone(form.timezone)
    except ValueError as e:
        return _fail(
            f"Unknown timezone '{form.timezone}'",
            ErrorCode.SCHEDULE_INVALID_TIMEZONE,
            field_name='timezone',
            notes=[str(e)],
        )

    try:
        run_at_local = parse_local_datetime(form.date, form.time)
    except ValueError as e:
        return _fail(
            'Date or time is not in a recognized format',
            ErrorCode.SCHEDULE_MALFORMED_DATETIME,
            field_name='date',
            notes=[str(e)],
            help_text='use YYYY-MM-DD for the date and HH:MM for the time',
        )

    run_at_utc = local_to_utc(run_at_local, form.timezone)
    lead_check = check_lead_time(run_at_utc, now, lead)
    if isinstance(lead_check, Err):
        return lead_check

    recurrence_check = _check_recurrence(form, max_interval)
    if isinstance(recurrence_check, Err):
        return recurrence_check
    recurrence = recurrence_check.ok_value

    end_date_utc: Optional[datetime] = None
    if recurrence.type != 'none' and form.recurrence_end_date.strip():
        try:
            end_local = date.fromisoformat(form.recurrence_end_date.strip())
        except ValueError as e:
            return _fail(
                'Recurrence end date is not in a recognized format',
                ErrorCode.SCHEDULE_MALFORMED_DATETIME,
                field_name='recurrence_end_date',
                notes=[str(e)],
            )
        # Inclusive: every occurrence on the end date itself still runs
        end_date_utc = local_to_utc(
            datetime.combine(end_local, datetime_time(23, 59, 59)), form.timezone
        )
        if end_date_utc < run_at_utc:
            return _fail(
                'Recurrence end date is before the first run',
                ErrorCode.SCHEDULE_END_BEFORE_START,
                field_name='recurrence_end_date',
            )

    if not 1 <= form.priority <= 10:
        return _fail(
            'Priority must be between 1 and 10',
            ErrorCode.SCHEDULE_INVALID_OPTIONS,
            field_name='priority',
        )

    options_check = _check_options(form.execution_options)
    if isinstance(options_check, Err):
        return options_check

    return Ok(
        CreateScheduleRequest(
            suite_id=form.suite_id.strip(),
            suite_name=form.suite_name.strip(),
            run_at=run_at_local,
            run_at_utc=run_at_utc,
            timezone=form.timezone,
            notes=form.notes.strip() or None,
            tags=[t.strip() for t in form.tags if t.strip()],
            priority=form.priority,
            execution_options=options_check.ok_value,
            recurrence=recurrence,
            recurrence_end_date=end_date_utc,
            run_now=form.run_now,
        )
    )


def validate_update(
    schedule: Schedule,
    update: UpdateScheduleRequest,
    now: datetime,
    lead: timedelta = DEFAULT_LEAD_TIME,
) -> ValidationResult[UpdateScheduleRequest]:
    """Lead-time and timezone checks for an edit of a still-scheduled schedule."""
    tz_str = update.timezone or schedule.timezone
    try:
        load_zone(tz_str)
    except ValueError as e:
        return _fail(
            f"Unknown timezone '{tz_str}'",
            ErrorCode.SCHEDULE_INVALID_TIMEZONE,
            field_name='timezone',
            notes=[str(e)],
        )

    # A timezone-only edit keeps the wall-clock time and moves the instant.
    if update.run_at is not None:
        new_run_at_utc = local_to_utc(update.run_at, tz_str)
    elif tz_str != schedule.timezone:
        new_run_at_utc = local_to_utc(schedule.run_at_local.replace(tzinfo=None), tz_str)
    else:
        return Ok(update)

    lead_check = check_lead_time(new_run_at_utc, now, lead)
    if isinstance(lead_check, Err):
        return lead_check
    return Ok(update)
