# runwarden/core/models/schedule.py
from __future__ import annotations
import math
from datetime import datetime, timezone as dt_timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from zoneinfo import ZoneInfo
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from typing_extensions import Self
from runwarden.core.errors import (
    ErrorCode,
    ScheduleValidationError,
    ValidationReport,
    raise_collected,
)
from runwarden.core.types.status import RunStatus, ScheduleStatus

MAX_CUSTOM_INTERVAL_DAYS = 365


class Weekday(str, Enum):
    """Enum for days of the week."""

    MONDAY = 'monday'
    TUESDAY = 'tuesday'
    WEDNESDAY = 'wednesday'
    THURSDAY = 'thursday'
    FRIDAY = 'friday'
    SATURDAY = 'saturday'
    SUNDAY = 'sunday'

    @classmethod
    def parse(cls, value: Any) -> Weekday:
        """Accept 'Monday', 'MONDAY', 'mon' as well as the canonical value."""
        if isinstance(value, Weekday):
            return value
        text = str(value).strip().lower()
        for day in cls:
            if text == day.value or text == day.value[:3]:
                return day
        raise ValueError(f"unknown weekday '{value}'")

    @property
    def label(self) -> str:
        return self.value.capitalize()


# =============================================================================
# Recurrence patterns
# =============================================================================


class NoRecurrence(BaseModel):
    """One-off schedule: no further occurrences after the first run."""

    model_config = ConfigDict(frozen=True)

    type: Literal['none'] = 'none'


class DailyRecurrence(BaseModel):
    """Repeats every day at the schedule's local time-of-day."""

    model_config = ConfigDict(frozen=True)

    type: Literal['daily'] = 'daily'


class WeeklyRecurrence(BaseModel):
    """
    Repeats on the given weekdays at the schedule's local time-of-day.

    Examples:
        - Monday, Wednesday and Friday:
          WeeklyRecurrence(days=[Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY])
    """

    model_config = ConfigDict(frozen=True)

    type: Literal['weekly'] = 'weekly'
    days: list[Weekday] = Field(min_length=1, description='Days of week to run')

    @field_validator('days', mode='before')
    @classmethod
    def normalize_days(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set, frozenset)):
            return [Weekday.parse(v) for v in value]
        return value

    @model_validator(mode='after')
    def validate_unique_days(self) -> Self:
        """Ensure no duplicate days."""
        report = ValidationReport('recurrence')
        if len(self.days) != len(set(self.days)):
            report.add(
                ScheduleValidationError(
                    message='weekly recurrence has duplicate days',
                    code=ErrorCode.SCHEDULE_INVALID_WEEKDAY,
                    notes=[f'days: {[d.value for d in self.days]}'],
                    help_text='each day should appear only once in the list',
                    field_name='recurrence_days',
                )
            )
        raise_collected(report)
        return self


class MonthlyRecurrence(BaseModel):
    """
    Repeats on the day-of-month of the schedule's local run time.

    When that day does not exist in a month (e.g. the 31st in April) the
    occurrence falls on the last day of that month instead.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal['monthly'] = 'monthly'


class CustomRecurrence(BaseModel):
    """Repeats every N days from the anchor run time."""

    model_config = ConfigDict(frozen=True)

    type: Literal['custom'] = 'custom'
    interval_days: int = Field(
        ge=1,
        le=MAX_CUSTOM_INTERVAL_DAYS,
        description=f'Days between runs (1-{MAX_CUSTOM_INTERVAL_DAYS})',
    )


RecurrencePattern = Annotated[
    Union[
        NoRecurrence,
        DailyRecurrence,
        WeeklyRecurrence,
        MonthlyRecurrence,
        CustomRecurrence,
    ],
    Field(discriminator='type'),
]

RecurrenceType = Literal['none', 'daily', 'weekly', 'monthly', 'custom']


def build_recurrence(
    recurrence_type: Optional[str],
    interval: Optional[int] = None,
    days: Optional[list[Any]] = None,
) -> RecurrencePattern:
    """Assemble a recurrence pattern from the flat wire/form fields."""
    match recurrence_type or 'none':
        case 'none':
            return NoRecurrence()
        case 'daily':
            return DailyRecurrence()
        case 'weekly':
            return WeeklyRecurrence(days=list(days or []))
        case 'monthly':
            return MonthlyRecurrence()
        case 'custom':
            return CustomRecurrence(interval_days=interval if interval is not None else 1)
        case other:
            raise ScheduleValidationError(
                message=f"unknown recurrence type '{other}'",
                code=ErrorCode.SCHEDULE_UNKNOWN_RECURRENCE,
                help_text='use one of: none, daily, weekly, monthly, custom',
                field_name='recurrence_type',
            )


def flatten_recurrence(pattern: RecurrencePattern) -> dict[str, Any]:
    """Inverse of build_recurrence: the flat fields the REST surface uses."""
    payload: dict[str, Any] = {'recurrence_type': pattern.type}
    match pattern:
        case WeeklyRecurrence():
            payload['recurrence_days'] = [d.value for d in pattern.days]
        case CustomRecurrence():
            payload['recurrence_interval'] = pattern.interval_days
        case _:
            pass
    return payload


# =============================================================================
# Execution options
# =============================================================================


class ExecutionMode(str, Enum):
    HEADLESS = 'headless'
    HEADED = 'headed'


class ExecutionStrategy(str, Enum):
    PARALLEL = 'parallel'
    SEQUENTIAL = 'sequential'


class Browser(str, Enum):
    CHROMIUM = 'chromium'
    FIREFOX = 'firefox'
    WEBKIT = 'webkit'
    ALL = 'all'


class ExecutionOptions(BaseModel):
    """
    Options passed through to the execution engine.

    Only the recognized keys are accepted; runwarden itself interprets none
    of them beyond range checks.
    """

    model_config = ConfigDict(frozen=True, extra='forbid')

    mode: ExecutionMode = ExecutionMode.HEADLESS
    execution: ExecutionStrategy = ExecutionStrategy.PARALLEL
    retries: int = Field(default=1, ge=0, le=3, description='Retry count (0-3)')
    timeout_ms: Optional[int] = Field(
        default=None, ge=1, le=3_600_000, description='Per-run timeout (ms)'
    )
    browser: Browser = Browser.CHROMIUM
    environment: str = Field(default='staging', min_length=1)


# =============================================================================
# Schedule runs and schedules
# =============================================================================


def _ensure_utc(value: Any) -> Any:
    """Naive datetimes coming off the wire are UTC; aware ones are normalized."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=dt_timezone.utc)
        return value.astimezone(dt_timezone.utc)
    return value


def _local_weekday(run_at: Any, tz_str: Any) -> list[Weekday]:
    """Weekday of `run_at` in `tz_str`, or [] when either is unusable."""
    if not isinstance(run_at, (str, datetime)) or not isinstance(tz_str, str):
        return []
    try:
        local = _ensure_utc(run_at).astimezone(ZoneInfo(tz_str))
    except (ValueError, KeyError):
        return []
    return [list(Weekday)[local.weekday()]]


class ScheduleRun(BaseModel):
    """One concrete execution produced by a schedule. Owned by the execution engine."""

    id: str
    schedule_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_ms: Optional[int] = Field(default=None, ge=0)
    status: RunStatus
    exit_code: Optional[int] = None
    error_message: Optional[str] = None
    tests_total: int = Field(default=0, ge=0)
    tests_passed: int = Field(default=0, ge=0)
    tests_failed: int = Field(default=0, ge=0)
    tests_skipped: int = Field(default=0, ge=0)
    artifacts_path: Optional[str] = None

    @field_validator('started_at', 'finished_at', mode='before')
    @classmethod
    def normalize_utc(cls, value: Any) -> Any:
        return _ensure_utc(value)

    @property
    def pass_rate(self) -> Optional[float]:
        if self.tests_total == 0:
            return None
        return self.tests_passed / self.tests_total


class Schedule(BaseModel):
    """
    A persisted request to run a suite at a given time, optionally recurring.

    Fields:
        - id: Opaque identifier assigned by the backing store
        - suite_id / suite_name: Externally-owned suite reference (never mutated here)
        - run_at_utc: Absolute run instant (UTC-aware)
        - timezone: IANA zone the operator entered the time in
        - priority: Opaque 1-10 metadata, display ordering only
        - recurrence: Recurrence pattern (flat wire fields are accepted too)
        - recurrence_end_date: No occurrences are produced after this instant
        - recurrence_anchor_utc: First occurrence of the series (defaults to run_at_utc)
        - last_run: Most recent run summary, if any
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    suite_id: str
    suite_name: str = ''
    timezone: str = 'UTC'
    run_at_utc: datetime
    notes: Optional[str] = None
    tags: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices('tags', 'tags_parsed'),
    )
    priority: int = Field(default=5, ge=1, le=10)
    status: ScheduleStatus = ScheduleStatus.SCHEDULED
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    execution_options: ExecutionOptions = Field(
        default_factory=ExecutionOptions,
        validation_alias=AliasChoices('execution_options', 'execution_options_parsed'),
    )
    recurrence: RecurrencePattern = Field(default_factory=NoRecurrence)
    recurrence_end_date: Optional[datetime] = None
    recurrence_anchor_utc: Optional[datetime] = None
    last_run: Optional[ScheduleRun] = None

    @model_validator(mode='before')
    @classmethod
    def assemble_recurrence(cls, data: Any) -> Any:
        """Accept the REST shape (recurrence_type / _interval / _days[_parsed])."""
        if not isinstance(data, dict) or 'recurrence' in data:
            return data
        if 'recurrence_type' not in data:
            return data
        data = dict(data)
        parsed_days = data.pop('recurrence_days_parsed', None)
        raw_days = data.pop('recurrence_days', None)
        days = parsed_days or raw_days
        interval = data.pop('recurrence_interval', None)
        recurrence: dict[str, Any] = {'type': data.pop('recurrence_type') or 'none'}
        if recurrence['type'] == 'weekly':
            # Rows stored without days repeat on the weekday of the run
            recurrence['days'] = days or _local_weekday(
                data.get('run_at_utc'), data.get('timezone', 'UTC')
            )
        elif recurrence['type'] == 'custom':
            recurrence['interval_days'] = interval if interval is not None else 1
        # Left as a dict so pydantic's discriminator reports unknown types
        data['recurrence'] = recurrence
        return data

    @field_validator(
        'run_at_utc',
        'created_at',
        'updated_at',
        'recurrence_end_date',
        'recurrence_anchor_utc',
        mode='before',
    )
    @classmethod
    def normalize_utc(cls, value: Any) -> Any:
        return _ensure_utc(value)

    @field_validator('tags', 'execution_options', mode='before')
    @classmethod
    def null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is not None:
            return value
        return [] if info.field_name == 'tags' else {}

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except Exception as e:
            raise ValueError(f"invalid timezone '{value}': {e}") from e
        return value

    @property
    def run_at_local(self) -> datetime:
        """run_at_utc projected into the schedule's timezone (display only)."""
        return self.run_at_utc.astimezone(ZoneInfo(self.timezone))

    @property
    def anchor_utc(self) -> datetime:
        """Origin of the recurrence series (first occurrence); run_at_utc for the first one."""
        return self.recurrence_anchor_utc or self.run_at_utc

    @property
    def is_recurring(self) -> bool:
        return self.recurrence.type != 'none'

    def minutes_until_run(self, now: datetime) -> int:
        """Whole minutes until run_at_utc, floored; negative once the time has passed."""
        return math.floor((self.run_at_utc - now).total_seconds() / 60)

    def is_overdue(self, now: datetime) -> bool:
        """A scheduled schedule whose run time passed without execution starting."""
        return self.status == ScheduleStatus.SCHEDULED and self.run_at_utc < now

    def is_due_within(self, now: datetime, seconds: float) -> bool:
        if self.status != ScheduleStatus.SCHEDULED:
            return False
        delta = (self.run_at_utc - now).total_seconds()
        return 0 <= delta <= seconds
