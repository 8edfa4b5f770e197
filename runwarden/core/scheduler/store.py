# runwarden/core/scheduler/store.py
from __future__ import annotations
from collections.abc import Iterable
from datetime import datetime
from typing import Optional
from runwarden.core.errors import RunwardenError
from runwarden.core.logging import get_logger
from runwarden.core.models.requests import ScheduleFormState, ScheduleStats
from runwarden.core.models.schedule import Schedule
from runwarden.core.types.status import ScheduleStatus

logger = get_logger('store')


class ScheduleStore:
    """
    Local view of the schedules the coordinator works with.

    State is read through properties and changed only through the typed
    mutation methods below. Fetch results replace the view wholesale
    (last fetch wins); no merging with optimistic local edits is attempted.
    """

    def __init__(self, form: Optional[ScheduleFormState] = None):
        self._schedules: list[Schedule] = []
        self._stats: Optional[ScheduleStats] = None
        self._selected: set[str] = set()
        self._loading = False
        self._last_error: Optional[RunwardenError] = None
        self._refresh_error: Optional[RunwardenError] = None
        self._last_refreshed_at: Optional[datetime] = None
        self._form = form or ScheduleFormState()

    # -- read accessors -------------------------------------------------

    @property
    def schedules(self) -> list[Schedule]:
        return list(self._schedules)

    @property
    def stats(self) -> Optional[ScheduleStats]:
        return self._stats

    @property
    def selected_ids(self) -> frozenset[str]:
        return frozenset(self._selected)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def last_error(self) -> Optional[RunwardenError]:
        """Failure of the most recent operator action, if it failed."""
        return self._last_error

    @property
    def refresh_error(self) -> Optional[RunwardenError]:
        """Failure of the most recent refresh; cleared by the next good one."""
        return self._refresh_error

    @property
    def last_refreshed_at(self) -> Optional[datetime]:
        return self._last_refreshed_at

    @property
    def form(self) -> ScheduleFormState:
        return self._form

    def get(self, schedule_id: str) -> Optional[Schedule]:
        for schedule in self._schedules:
            if schedule.id == schedule_id:
                return schedule
        return None

    def selected_schedules(self) -> list[Schedule]:
        return [s for s in self._schedules if s.id in self._selected]

    # -- mutations ------------------------------------------------------

    def set_loading(self, loading: bool) -> None:
        self._loading = loading

    def replace_schedules(self, schedules: Iterable[Schedule], at: datetime) -> None:
        """Overwrite the view with a fresh fetch and drop stale selections."""
        self._schedules = list(schedules)
        self._last_refreshed_at = at
        self._refresh_error = None
        present = {s.id for s in self._schedules}
        stale = self._selected - present
        if stale:
            logger.debug(f'Dropping {len(stale)} stale selection(s)')
            self._selected &= present

    def set_stats(self, stats: ScheduleStats) -> None:
        self._stats = stats

    def upsert(self, schedule: Schedule) -> None:
        """Apply a single-schedule result ahead of the next refresh."""
        for i, existing in enumerate(self._schedules):
            if existing.id == schedule.id:
                self._schedules[i] = schedule
                return
        self._schedules.append(schedule)

    def remove(self, schedule_id: str) -> None:
        self._schedules = [s for s in self._schedules if s.id != schedule_id]
        self._selected.discard(schedule_id)

    def record_error(self, error: RunwardenError) -> None:
        self._last_error = error

    def clear_error(self) -> None:
        self._last_error = None

    def record_refresh_error(self, error: RunwardenError) -> None:
        self._refresh_error = error

    def set_form(self, form: ScheduleFormState) -> None:
        self._form = form

    def reset_form(self) -> None:
        self._form = self._form.reset_after_submit()

    # -- selection ------------------------------------------------------

    def toggle(self, schedule_id: str) -> bool:
        """Flip selection of one schedule; returns whether it is now selected."""
        if schedule_id in self._selected:
            self._selected.discard(schedule_id)
            return False
        if self.get(schedule_id) is None:
            return False
        self._selected.add(schedule_id)
        return True

    def select(self, schedule_ids: Iterable[str]) -> None:
        present = {s.id for s in self._schedules}
        self._selected = {i for i in schedule_ids if i in present}

    def select_all(self) -> None:
        self._selected = {s.id for s in self._schedules}

    def select_none(self) -> None:
        self._selected = set()

    def select_scheduled(self) -> None:
        self._selected = {
            s.id for s in self._schedules if s.status == ScheduleStatus.SCHEDULED
        }
