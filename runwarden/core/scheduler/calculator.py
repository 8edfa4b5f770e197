# runwarden/core/scheduler/calculator.py
from __future__ import annotations
import calendar
from datetime import date, datetime, time as datetime_time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo
from runwarden.core.models.requests import TimezoneInfo
from runwarden.core.models.schedule import (
    CustomRecurrence,
    DailyRecurrence,
    MonthlyRecurrence,
    NoRecurrence,
    RecurrencePattern,
    Schedule,
    Weekday,
    WeeklyRecurrence,
)

WEEKDAY_MAP = {
    Weekday.MONDAY: 0,
    Weekday.TUESDAY: 1,
    Weekday.WEDNESDAY: 2,
    Weekday.THURSDAY: 3,
    Weekday.FRIDAY: 4,
    Weekday.SATURDAY: 5,
    Weekday.SUNDAY: 6,
}

_RESOLUTION = timedelta(seconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _utc(value: datetime) -> datetime:
    # Same-zone comparisons ignore fold; UTC comparisons don't.
    return value.astimezone(timezone.utc)


def load_zone(tz_str: str) -> ZoneInfo:
    """Resolve an IANA zone name, raising ValueError for unknown names."""
    try:
        return ZoneInfo(tz_str)
    except Exception as e:
        raise ValueError(f"Invalid timezone '{tz_str}': {e}") from e


def next_occurrence(
    pattern: RecurrencePattern,
    anchor: datetime,
    after: datetime,
    tz_str: str = 'UTC',
    end_date: Optional[datetime] = None,
    inclusive: bool = True,
) -> Optional[datetime]:
    """
    Calculate the next occurrence of a recurring schedule.

    Args:
        pattern: Recurrence pattern (none, daily, weekly, monthly, custom)
        anchor: The schedule's first run instant (UTC-aware); supplies the
            local time-of-day, day-of-month and custom-interval origin
        after: Earliest acceptable instant (UTC-aware)
        tz_str: Timezone in which weekdays and calendar days are evaluated
        end_date: No occurrence later than this is returned
        inclusive: Whether an occurrence exactly at `after` qualifies

    Returns:
        Next occurrence as UTC-aware datetime, or None when the pattern
        produces no further occurrences

    Raises:
        ValueError: If timezone is invalid or datetimes are naive
    """
    if anchor.tzinfo is None or after.tzinfo is None:
        raise ValueError('anchor and after must be timezone-aware')

    tz = load_zone(tz_str)

    lower = after if inclusive else after + _RESOLUTION
    if lower < anchor:
        lower = anchor

    local_anchor = anchor.astimezone(tz)
    local_lower = lower.astimezone(tz)

    match pattern:
        case NoRecurrence():
            return None
        case DailyRecurrence():
            result = _next_daily(local_anchor, local_lower, tz)
        case WeeklyRecurrence():
            result = _next_weekly(pattern, local_anchor, local_lower, tz)
        case MonthlyRecurrence():
            result = _next_monthly(local_anchor, local_lower, tz)
        case CustomRecurrence():
            result = _next_custom(pattern, local_anchor, local_lower, tz)

    result = result.astimezone(timezone.utc)
    if end_date is not None and result > end_date:
        return None
    return result


def _next_daily(local_anchor: datetime, local_lower: datetime, tz: ZoneInfo) -> datetime:
    """Same local time-of-day, advancing one day at a time."""
    for day_offset in range(0, 3):
        candidate = resolve_local_datetime(
            local_lower.date() + timedelta(days=day_offset), local_anchor.time(), tz
        )
        if _utc(candidate) >= _utc(local_lower):
            return candidate

    raise RuntimeError('Could not calculate next daily occurrence within 2 days')


def _next_weekly(
    pattern: WeeklyRecurrence,
    local_anchor: datetime,
    local_lower: datetime,
    tz: ZoneInfo,
) -> datetime:
    """Soonest configured weekday (local) at the anchor's time-of-day."""
    target_weekdays = {WEEKDAY_MAP[d] for d in pattern.days}
    for day_offset in range(0, 9):
        candidate_date = local_lower.date() + timedelta(days=day_offset)
        if candidate_date.weekday() not in target_weekdays:
            continue
        candidate = resolve_local_datetime(candidate_date, local_anchor.time(), tz)
        if _utc(candidate) >= _utc(local_lower):
            return candidate

    raise RuntimeError('Could not calculate next weekly occurrence within 8 days')


def _next_monthly(
    local_anchor: datetime, local_lower: datetime, tz: ZoneInfo
) -> datetime:
    """Anchor's day-of-month, clamped to the last day of shorter months."""
    for month_offset in range(0, 3):
        year, month = _add_months(local_lower.year, local_lower.month, month_offset)
        candidate = resolve_local_datetime(
            clamp_day_of_month(year, month, local_anchor.day), local_anchor.time(), tz
        )
        if _utc(candidate) >= _utc(local_lower):
            return candidate

    raise RuntimeError('Could not calculate next monthly occurrence within 2 months')


def _next_custom(
    pattern: CustomRecurrence,
    local_anchor: datetime,
    local_lower: datetime,
    tz: ZoneInfo,
) -> datetime:
    """anchor + n * interval calendar days (local), smallest n reaching the lower bound."""
    interval = pattern.interval_days
    days_elapsed = (local_lower.date() - local_anchor.date()).days
    n = max(0, days_elapsed // interval)
    for step in range(n, n + 3):
        candidate = resolve_local_datetime(
            local_anchor.date() + timedelta(days=step * interval), local_anchor.time(), tz
        )
        if _utc(candidate) >= _utc(local_lower):
            return candidate

    raise RuntimeError('Could not calculate next custom occurrence')


def clamp_day_of_month(year: int, month: int, day: int) -> date:
    """date(year, month, day), or the month's last day when `day` does not exist."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def _add_months(year: int, month: int, month_offset: int) -> tuple[int, int]:
    base = (year * 12) + (month - 1) + month_offset
    return (base // 12, (base % 12) + 1)


def resolve_local_datetime(
    date_value: date,
    time_value: datetime_time,
    tz: ZoneInfo,
) -> datetime:
    """
    Resolve local wall-clock date/time into a real zoned datetime.

    For ambiguous local times (fall-back), returns the earliest instant.
    For nonexistent local times (spring-forward gap), returns the instant
    the wall clock shows once the gap is over (shifted forward by the gap).
    """
    naive = datetime.combine(date_value, time_value.replace(tzinfo=None, fold=0))
    valid: list[datetime] = []
    for fold in (0, 1):
        candidate = naive.replace(tzinfo=tz, fold=fold)
        roundtrip = candidate.astimezone(timezone.utc).astimezone(tz)
        if roundtrip.replace(tzinfo=None) == naive:
            valid.append(candidate)

    if valid:
        return min(valid, key=lambda dt: dt.astimezone(timezone.utc))

    # In a gap, fold=0 uses the pre-transition offset, which lands after the gap
    return naive.replace(tzinfo=tz, fold=0).astimezone(timezone.utc).astimezone(tz)


def local_to_utc(local: datetime, tz_str: str) -> datetime:
    """Convert an operator-entered naive local datetime in `tz_str` to UTC."""
    if local.tzinfo is not None:
        return local.astimezone(timezone.utc)
    tz = load_zone(tz_str)
    return resolve_local_datetime(local.date(), local.time(), tz).astimezone(timezone.utc)


def upcoming_occurrences(
    schedule: Schedule, after: datetime, count: int = 5
) -> list[datetime]:
    """The next `count` run instants of a schedule at or after `after`."""
    if count <= 0:
        return []
    if not schedule.is_recurring:
        return [schedule.run_at_utc] if schedule.run_at_utc >= after else []

    results: list[datetime] = []
    cursor = after
    inclusive = True
    while len(results) < count:
        nxt = next_occurrence(
            schedule.recurrence,
            schedule.anchor_utc,
            cursor,
            schedule.timezone,
            end_date=schedule.recurrence_end_date,
            inclusive=inclusive,
        )
        if nxt is None:
            break
        results.append(nxt)
        cursor = nxt
        inclusive = False
    return results


def describe_recurrence(
    pattern: RecurrencePattern, anchor: datetime, tz_str: str = 'UTC'
) -> Optional[str]:
    """Human-readable recurrence description, or None for one-off schedules."""
    local_anchor = anchor.astimezone(load_zone(tz_str))
    at = local_anchor.strftime('%H:%M')

    match pattern:
        case NoRecurrence():
            return None
        case DailyRecurrence():
            return f'Runs daily at {at}'
        case WeeklyRecurrence():
            ordered = sorted(pattern.days, key=lambda d: WEEKDAY_MAP[d])
            days = ', '.join(d.label for d in ordered)
            return f'Runs weekly on {days} at {at}'
        case MonthlyRecurrence():
            return f'Runs monthly on day {local_anchor.day} at {at}'
        case CustomRecurrence():
            unit = 'day' if pattern.interval_days == 1 else 'days'
            return f'Runs every {pattern.interval_days} {unit} at {at}'


def describe_schedule_recurrence(schedule: Schedule) -> Optional[str]:
    text = describe_recurrence(schedule.recurrence, schedule.anchor_utc, schedule.timezone)
    if text is not None and schedule.recurrence_end_date is not None:
        end_local = schedule.recurrence_end_date.astimezone(load_zone(schedule.timezone))
        text += f' until {end_local.strftime("%Y-%m-%d")}'
    return text


def format_time_until(minutes: int) -> str:
    """Compact countdown: Overdue, 45m, 3h 20m, 2d 5h."""
    if minutes < 0:
        return 'Overdue'
    if minutes < 60:
        return f'{minutes}m'
    hours = minutes // 60
    if hours < 24:
        return f'{hours}h {minutes % 60}m'
    days = hours // 24
    return f'{days}d {hours % 24}h'


def timezone_info(tz_str: str, at: datetime) -> TimezoneInfo:
    """Abbreviation, UTC offset and DST flag of `tz_str` at instant `at`."""
    local = at.astimezone(load_zone(tz_str))
    offset = local.utcoffset() or timedelta(0)
    total_minutes = int(offset.total_seconds() // 60)
    sign = '+' if total_minutes >= 0 else '-'
    hours, minutes = divmod(abs(total_minutes), 60)
    return TimezoneInfo(
        name=tz_str,
        abbreviation=local.tzname() or tz_str,
        offset=f'{sign}{hours:02d}:{minutes:02d}',
        is_dst=bool(local.dst()),
    )
