# runwarden/core/models/requests.py
"""Request/response payloads exchanged with the schedule service, plus the raw form state."""

from __future__ import annotations
from datetime import datetime
from typing import Any, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from runwarden.core.models.schedule import (
    ExecutionOptions,
    NoRecurrence,
    RecurrencePattern,
    Schedule,
    ScheduleRun,
    flatten_recurrence,
)
from runwarden.core.types.status import ScheduleStatus

# Local wall-clock ISO format the service expects for run_at
LOCAL_RUN_AT_FORMAT = '%Y-%m-%dT%H:%M:%S.000'


def format_local_run_at(value: datetime) -> str:
    return value.replace(tzinfo=None).strftime(LOCAL_RUN_AT_FORMAT)


class TimezoneInfo(BaseModel):
    """Display details for a zone at a given instant."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    abbreviation: str
    offset: str
    is_dst: bool = Field(validation_alias=AliasChoices('is_dst', 'isDST'))


class CreateScheduleRequest(BaseModel):
    """
    Validated creation request.

    run_at is the operator's local wall-clock time (naive); the service
    converts it with `timezone`. run_at_utc is the locally computed UTC
    equivalent, kept for lead-time checks and the in-memory repository.
    """

    model_config = ConfigDict(frozen=True)

    suite_id: str = Field(min_length=1)
    suite_name: str = ''
    run_at: datetime
    run_at_utc: datetime
    timezone: str = 'UTC'
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    priority: int = Field(default=5, ge=1, le=10)
    execution_options: ExecutionOptions = Field(default_factory=ExecutionOptions)
    recurrence: RecurrencePattern = Field(default_factory=NoRecurrence)
    recurrence_end_date: Optional[datetime] = None
    run_now: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Body for POST /schedules."""
        payload: dict[str, Any] = {
            'suite_id': self.suite_id,
            'suite_name': self.suite_name,
            'run_at': format_local_run_at(self.run_at),
            'timezone': self.timezone,
            'priority': self.priority,
            'execution_options': self.execution_options.model_dump(
                mode='json', exclude_none=True
            ),
            'run_now': self.run_now,
        }
        if self.notes:
            payload['notes'] = self.notes
        if self.tags:
            payload['tags'] = list(self.tags)
        if self.recurrence.type != 'none':
            payload.update(flatten_recurrence(self.recurrence))
        if self.recurrence_end_date is not None:
            payload['recurrence_end_date'] = self.recurrence_end_date.isoformat()
        return payload


class UpdateScheduleRequest(BaseModel):
    """Partial update; only valid while the schedule is still scheduled."""

    model_config = ConfigDict(frozen=True)

    run_at: Optional[datetime] = None
    timezone: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None
    priority: Optional[int] = Field(default=None, ge=1, le=10)
    execution_options: Optional[ExecutionOptions] = None

    def to_payload(self) -> dict[str, Any]:
        """Body for PATCH /schedules/{id}; unset fields are omitted."""
        payload = self.model_dump(mode='json', exclude_none=True)
        if self.run_at is not None:
            payload['run_at'] = format_local_run_at(self.run_at)
        return payload

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class ScheduleFilters(BaseModel):
    """Filters for GET /schedules."""

    model_config = ConfigDict(frozen=True)

    status: list[ScheduleStatus] = Field(default_factory=list)
    suite_id: Optional[str] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)

    def to_params(self) -> list[tuple[str, str]]:
        """Query parameters; status repeats once per value."""
        params: list[tuple[str, str]] = [('status', s.value) for s in self.status]
        if self.suite_id:
            params.append(('suite_id', self.suite_id))
        if self.from_date is not None:
            params.append(('from_date', self.from_date.isoformat()))
        if self.to_date is not None:
            params.append(('to_date', self.to_date.isoformat()))
        params.append(('limit', str(self.limit)))
        if self.offset:
            params.append(('offset', str(self.offset)))
        return params

    def matches(self, schedule: Schedule) -> bool:
        """Whether a schedule passes the status/suite/date filters (pagination excluded)."""
        if self.status and schedule.status not in self.status:
            return False
        if self.suite_id and schedule.suite_id != self.suite_id:
            return False
        if self.from_date is not None and schedule.run_at_utc < self.from_date:
            return False
        if self.to_date is not None and schedule.run_at_utc > self.to_date:
            return False
        return True


class ScheduleListPage(BaseModel):
    schedules: list[Schedule] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 50
    has_more: bool = False


class ScheduleDetail(BaseModel):
    schedule: Schedule
    recent_runs: list[ScheduleRun] = Field(default_factory=list)
    timezone_info: Optional[TimezoneInfo] = None


class ScheduleStats(BaseModel):
    """Backend summary counters (GET /schedules/stats/summary)."""

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    next_24h: int = 0
    overdue: int = 0

    def count(self, status: ScheduleStatus) -> int:
        return self.by_status.get(status.value, 0)


class RunNowResult(BaseModel):
    run: ScheduleRun
    message: str = ''


class ScheduleFormState(BaseModel):
    """
    Raw operator input, exactly as entered. Nothing here is trusted until the
    validator turns it into a CreateScheduleRequest.

    Fields:
        - date: 'YYYY-MM-DD'
        - time: 'HH:MM'
        - recurring: master switch; recurrence_* fields are ignored when False
        - execution_options: unvalidated option mapping
    """

    suite_id: str = ''
    suite_name: str = ''
    date: str = ''
    time: str = ''
    timezone: str = 'UTC'
    notes: str = ''
    tags: list[str] = Field(default_factory=list)
    priority: int = 5
    run_now: bool = False
    recurring: bool = False
    recurrence_type: str = 'none'
    recurrence_interval: Optional[int] = 1
    recurrence_days: list[str] = Field(default_factory=list)
    recurrence_end_date: str = ''
    execution_options: dict[str, Any] = Field(
        default_factory=lambda: ExecutionOptions().model_dump(mode='json', exclude_none=True)
    )

    def reset_after_submit(self) -> ScheduleFormState:
        """Clear the per-submission fields; keep suite, timezone and options."""
        return self.model_copy(
            update={
                'date': '',
                'time': '',
                'notes': '',
                'run_now': False,
                'recurring': False,
                'recurrence_type': 'none',
                'recurrence_interval': 1,
                'recurrence_days': [],
                'recurrence_end_date': '',
            }
        )
