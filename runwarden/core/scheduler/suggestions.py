# runwarden/core/scheduler/suggestions.py
"""Candidate run times offered next to the time field of the schedule form."""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from runwarden.core.models.requests import ScheduleFormState
from runwarden.core.scheduler.calculator import load_zone, resolve_local_datetime
from runwarden.core.scheduler.validator import DEFAULT_LEAD_TIME

MAINTENANCE_HOURS = (1, 2, 3, 4, 5)
HOURLY_SLOTS = 3
MAX_SUGGESTIONS = 4


@dataclass(frozen=True)
class TimeSuggestion:
    run_at_utc: datetime
    run_at_local: datetime
    maintenance: bool = False

    @property
    def date(self) -> str:
        return self.run_at_local.strftime('%Y-%m-%d')

    @property
    def time(self) -> str:
        return self.run_at_local.strftime('%H:%M')

    @property
    def label(self) -> str:
        return self.time

    def apply_to(self, form: ScheduleFormState) -> ScheduleFormState:
        return form.model_copy(update={'date': self.date, 'time': self.time})


def _next_local_hour(hour: int, threshold: datetime, tz_str: str) -> datetime:
    tz = load_zone(tz_str)
    day = threshold.astimezone(tz).date()
    while True:
        candidate = resolve_local_datetime(day, time(hour), tz)
        if candidate.astimezone(timezone.utc) > threshold:
            return candidate
        day += timedelta(days=1)


def suggest_times(
    now: datetime,
    tz_str: str = 'UTC',
    lead: timedelta = DEFAULT_LEAD_TIME,
    limit: int = MAX_SUGGESTIONS,
) -> list[TimeSuggestion]:
    """
    The next few top-of-hour slots followed by the low-traffic maintenance
    hours (01:00-05:00 local), deduplicated, at most `limit` entries.

    Every suggestion is later than now + lead, so picking one always passes
    the lead-time check.
    """
    tz = load_zone(tz_str)
    threshold = now.astimezone(timezone.utc) + lead
    seen: set[datetime] = set()
    suggestions: list[TimeSuggestion] = []

    def _add(at_utc: datetime, maintenance: bool) -> None:
        if at_utc in seen or len(suggestions) >= limit:
            return
        seen.add(at_utc)
        suggestions.append(
            TimeSuggestion(
                run_at_utc=at_utc,
                run_at_local=at_utc.astimezone(tz),
                maintenance=maintenance,
            )
        )

    top_of_hour = (
        now.astimezone(tz)
        .replace(minute=0, second=0, microsecond=0)
        .astimezone(timezone.utc)
    )
    step = 1
    added = 0
    while added < HOURLY_SLOTS:
        candidate = top_of_hour + timedelta(hours=step)
        step += 1
        if candidate <= threshold:
            continue
        _add(candidate, maintenance=False)
        added += 1

    for hour in MAINTENANCE_HOURS:
        _add(_next_local_hour(hour, threshold, tz_str).astimezone(timezone.utc), True)

    return suggestions
