# runwarden/core/scheduler/coordinator.py
from __future__ import annotations
import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from types import TracebackType
from typing import Optional, TypeVar
from result import Err, Ok, Result, is_err
from typing_extensions import Self, TypeAliasType
from runwarden.core.errors import ErrorCode, RunwardenError, TransportError
from runwarden.core.logging import get_logger
from runwarden.core.models.app import ClientConfig
from runwarden.core.models.requests import (
    RunNowResult,
    ScheduleFilters,
    ScheduleFormState,
    UpdateScheduleRequest,
)
from runwarden.core.models.schedule import Schedule
from runwarden.core.repository.base import ScheduleRepository
from runwarden.core.scheduler.calculator import upcoming_occurrences, utc_now
from runwarden.core.scheduler.store import ScheduleStore
from runwarden.core.scheduler.suggestions import TimeSuggestion, suggest_times
from runwarden.core.scheduler.validator import validate_schedule_form, validate_update
from runwarden.core.types.status import ScheduleStatus

logger = get_logger('coordinator')

DUE_SOON_WINDOW = timedelta(hours=24)

T = TypeVar('T')
ActionResult = TypeAliasType('ActionResult', Result[T, RunwardenError], type_params=(T,))


class BulkAction(str, Enum):
    CANCEL = 'cancel'
    DELETE = 'delete'


_BULK_VERBS = {BulkAction.CANCEL: 'Canceled', BulkAction.DELETE: 'Deleted'}


@dataclass
class BulkActionReport:
    """Per-schedule outcome of a bulk action. Successes are never rolled back."""

    action: BulkAction
    results: dict[str, ActionResult[str]] = field(default_factory=dict)

    @property
    def succeeded(self) -> list[str]:
        return [i for i, r in self.results.items() if not is_err(r)]

    @property
    def failed(self) -> dict[str, RunwardenError]:
        return {i: r.err_value for i, r in self.results.items() if is_err(r)}

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def is_clean(self) -> bool:
        return self.failure_count == 0

    def summary(self) -> str:
        text = f'{_BULK_VERBS[self.action]} {self.success_count} schedule(s)'
        if self.failure_count:
            text += f', {self.failure_count} failed'
        return text


@dataclass(frozen=True)
class ScheduleCounts:
    """Counters derived from the local view (not the backend summary)."""

    total: int
    by_status: dict[ScheduleStatus, int]
    due_soon: int
    overdue: int


def derive_counts(
    schedules: Iterable[Schedule],
    now: datetime,
    due_soon_window: timedelta = DUE_SOON_WINDOW,
) -> ScheduleCounts:
    by_status = {status: 0 for status in ScheduleStatus}
    total = due_soon = overdue = 0
    for schedule in schedules:
        total += 1
        by_status[schedule.status] += 1
        if schedule.is_overdue(now):
            overdue += 1
        elif schedule.is_due_within(now, due_soon_window.total_seconds()):
            due_soon += 1
    return ScheduleCounts(total=total, by_status=by_status, due_soon=due_soon, overdue=overdue)


class SchedulerCoordinator:
    """
    Drives the schedule view: validated creation, periodic refresh,
    single and bulk actions, selection and derived counters.

    All state lives in `store`. Every user-facing failure is recorded there
    (store.last_error for actions, store.refresh_error for refreshes) in
    addition to being logged.

    Example usage:
        async with SchedulerCoordinator(HttpScheduleRepository(config), config) as coordinator:
            await coordinator.refresh()
            coordinator.store.select_scheduled()
            report = await coordinator.bulk_action(BulkAction.CANCEL)
    """

    def __init__(
        self,
        repository: ScheduleRepository,
        config: Optional[ClientConfig] = None,
        store: Optional[ScheduleStore] = None,
        clock: Callable[[], datetime] = utc_now,
        on_refresh: Optional[Callable[[ScheduleStore], None]] = None,
    ):
        self.repository = repository
        self.config = config or ClientConfig()
        self.store = store or ScheduleStore(
            ScheduleFormState(timezone=self.config.default_timezone)
        )
        self._clock = clock
        self._on_refresh = on_refresh
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def lead_time(self) -> timedelta:
        return timedelta(seconds=self.config.min_lead_time_seconds)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> bool:
        """
        Re-fetch the list and the stats summary.

        Best-effort: on failure the last good view stays in place, the
        error is recorded and False is returned. On success the fetched
        data overwrites the view unconditionally.
        """
        self.store.set_loading(True)
        try:
            page, stats = await asyncio.gather(
                self.repository.list(ScheduleFilters(limit=self.config.page_limit)),
                self.repository.stats(),
            )
        except RunwardenError as e:
            logger.warning(f'Refresh failed, keeping last view: {e.message}')
            self.store.record_refresh_error(e)
            return False
        finally:
            self.store.set_loading(False)

        self.store.replace_schedules(page.schedules, self._clock())
        self.store.set_stats(stats)
        logger.debug(f'Refreshed {len(page.schedules)}/{page.total} schedule(s)')
        if self._on_refresh is not None:
            self._on_refresh(self.store)
        return True

    async def run_forever(self) -> None:
        """Refresh on a fixed interval until stop() is called."""
        logger.info(
            f'Starting refresh loop, interval={self.config.refresh_interval_seconds:g}s'
        )
        while not self._stop.is_set():
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f'Error in refresh loop: {e}', exc_info=True)

            try:
                await asyncio.wait_for(
                    self._stop.wait(),
                    timeout=self.config.refresh_interval_seconds,
                )
                break
            except asyncio.TimeoutError:
                continue
        logger.info('Refresh loop stopped')

    def start(self) -> asyncio.Task[None]:
        """Start the periodic refresh as a background task (idempotent)."""
        if self.is_running:
            assert self._task is not None
            return self._task
        self._stop.clear()
        self._task = asyncio.create_task(self.run_forever(), name='runwarden-refresh')
        return self._task

    def request_stop(self) -> None:
        self._stop.set()

    async def stop(self) -> None:
        """Stop the refresh loop and wait for it to wind down."""
        self._stop.set()
        task, self._task = self._task, None
        if task is None:
            return
        try:
            await asyncio.wait_for(task, timeout=self.config.request_timeout_seconds)
        except asyncio.TimeoutError:
            # A refresh still waiting on the network; drop it
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.stop()
        await self.repository.close()

    # ------------------------------------------------------------------
    # single actions
    # ------------------------------------------------------------------

    def _failed(self, action: str, error: RunwardenError) -> Err[RunwardenError]:
        logger.warning(f'{action} failed: {error.message}')
        self.store.record_error(error)
        return Err(error)

    async def create_schedule(
        self, form: Optional[ScheduleFormState] = None
    ) -> ActionResult[Schedule]:
        """
        Validate the form, create the schedule and refresh.

        Validation failures never reach the repository. After a successful
        create the form's per-submission fields are reset.
        """
        if form is not None:
            self.store.set_form(form)
        validated = validate_schedule_form(
            self.store.form,
            self._clock(),
            lead=self.lead_time,
            max_interval=self.config.max_custom_interval_days,
        )
        if is_err(validated):
            return self._failed('Create', validated.err_value)

        try:
            schedule = await self.repository.create(validated.ok_value)
        except RunwardenError as e:
            return self._failed('Create', e)

        self.store.clear_error()
        self.store.upsert(schedule)
        self.store.reset_form()
        await self.refresh()
        return Ok(schedule)

    async def update_schedule(
        self, schedule_id: str, request: UpdateScheduleRequest
    ) -> ActionResult[Schedule]:
        current = self.store.get(schedule_id)
        try:
            if current is None:
                current = (await self.repository.get(schedule_id)).schedule
        except RunwardenError as e:
            return self._failed('Update', e)

        checked = validate_update(current, request, self._clock(), lead=self.lead_time)
        if is_err(checked):
            return self._failed('Update', checked.err_value)

        try:
            schedule = await self.repository.update(schedule_id, checked.ok_value)
        except RunwardenError as e:
            return self._failed('Update', e)

        self.store.clear_error()
        self.store.upsert(schedule)
        return Ok(schedule)

    async def run_now(
        self, schedule_id: str, notes: Optional[str] = None
    ) -> ActionResult[RunNowResult]:
        try:
            result = await self.repository.run_now(schedule_id, notes)
        except RunwardenError as e:
            return self._failed('Run now', e)
        self.store.clear_error()
        await self.refresh()
        return Ok(result)

    async def cancel(self, schedule_id: str) -> ActionResult[str]:
        try:
            message = await self.repository.cancel(schedule_id)
        except RunwardenError as e:
            return self._failed('Cancel', e)
        self.store.clear_error()
        await self.refresh()
        return Ok(message)

    async def delete(self, schedule_id: str) -> ActionResult[str]:
        try:
            message = await self.repository.delete(schedule_id)
        except RunwardenError as e:
            return self._failed('Delete', e)
        self.store.clear_error()
        self.store.remove(schedule_id)
        await self.refresh()
        return Ok(message)

    # ------------------------------------------------------------------
    # bulk actions
    # ------------------------------------------------------------------

    async def _perform(self, action: BulkAction, schedule_id: str) -> ActionResult[str]:
        try:
            if action == BulkAction.CANCEL:
                return Ok(await self.repository.cancel(schedule_id))
            return Ok(await self.repository.delete(schedule_id))
        except RunwardenError as e:
            return Err(e)

    async def bulk_action(
        self, action: BulkAction, schedule_ids: Optional[Iterable[str]] = None
    ) -> BulkActionReport:
        """
        Apply `action` to every id (default: the current selection) in parallel.

        Each request settles independently; one failure never aborts the
        others. The list is refreshed and the selection cleared afterwards
        regardless of the outcome.
        """
        action = BulkAction(action)
        ids = list(dict.fromkeys(
            schedule_ids if schedule_ids is not None else sorted(self.store.selected_ids)
        ))
        report = BulkActionReport(action=action)
        if not ids:
            return report

        outcomes = await asyncio.gather(
            *(self._perform(action, schedule_id) for schedule_id in ids),
            return_exceptions=True,
        )
        for schedule_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, (Ok, Err)):
                report.results[schedule_id] = outcome
            elif isinstance(outcome, Exception):
                logger.error(
                    f'Unexpected error during bulk {action.value} of {schedule_id}: {outcome}',
                    exc_info=outcome,
                )
                report.results[schedule_id] = Err(
                    TransportError(
                        message=f'Unexpected error: {outcome}',
                        code=ErrorCode.TRANSPORT,
                        retryable=False,
                        cause=outcome,
                    )
                )
            else:
                raise outcome

        if report.is_clean:
            logger.info(report.summary())
            self.store.clear_error()
        else:
            logger.warning(report.summary())
            first_id, first_error = next(iter(report.failed.items()))
            self.store.record_error(
                RunwardenError(
                    message=report.summary(),
                    code=first_error.code,
                    notes=[f'{i}: {e.message}' for i, e in report.failed.items()],
                )
            )
            logger.debug(f'First bulk failure on {first_id}: {first_error.message}')

        self.store.select_none()
        await self.refresh()
        return report

    # ------------------------------------------------------------------
    # derived values
    # ------------------------------------------------------------------

    def counts(self, now: Optional[datetime] = None) -> ScheduleCounts:
        return derive_counts(self.store.schedules, now or self._clock())

    def overdue(self, now: Optional[datetime] = None) -> list[Schedule]:
        now = now or self._clock()
        return [s for s in self.store.schedules if s.is_overdue(now)]

    def due_soon(
        self, now: Optional[datetime] = None, window: timedelta = DUE_SOON_WINDOW
    ) -> list[Schedule]:
        now = now or self._clock()
        return sorted(
            (s for s in self.store.schedules if s.is_due_within(now, window.total_seconds())),
            key=lambda s: (s.run_at_utc, -s.priority),
        )

    def suggestions(self, now: Optional[datetime] = None) -> list[TimeSuggestion]:
        return suggest_times(now or self._clock(), self.store.form.timezone, self.lead_time)

    def apply_suggestion(self, suggestion: TimeSuggestion) -> ScheduleFormState:
        form = suggestion.apply_to(self.store.form)
        self.store.set_form(form)
        return form

    async def preview(self, schedule_id: str, count: int = 5) -> ActionResult[list[datetime]]:
        """Next `count` run instants of a schedule (display only)."""
        schedule = self.store.get(schedule_id)
        if schedule is None:
            try:
                schedule = (await self.repository.get(schedule_id)).schedule
            except RunwardenError as e:
                return self._failed('Preview', e)
        return Ok(upcoming_occurrences(schedule, self._clock(), count))
