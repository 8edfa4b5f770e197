# runwarden/core/repository/memory.py
from __future__ import annotations
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Optional
from runwarden.core.errors import ConflictError, ErrorCode, NotFoundError
from runwarden.core.logging import get_logger
from runwarden.core.models.requests import (
    CreateScheduleRequest,
    RunNowResult,
    ScheduleDetail,
    ScheduleFilters,
    ScheduleListPage,
    ScheduleStats,
    UpdateScheduleRequest,
)
from runwarden.core.models.schedule import Schedule, ScheduleRun
from runwarden.core.repository.base import ScheduleRepository
from runwarden.core.scheduler import lifecycle
from runwarden.core.scheduler.calculator import local_to_utc, timezone_info, utc_now
from runwarden.core.types.status import RunStatus, ScheduleStatus

logger = get_logger('memory')

RECENT_RUNS_LIMIT = 10
NEXT_WINDOW = timedelta(hours=24)


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemoryScheduleRepository(ScheduleRepository):
    """
    Process-local schedule store honoring the same rules as the service.

    Besides the repository contract it exposes the execution-engine side
    (start_due, finish_run) so the full lifecycle, including spawning the
    next occurrence of a recurring schedule, can be driven locally.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._clock = clock
        self._id_factory = id_factory
        self._schedules: dict[str, Schedule] = {}
        self._runs: dict[str, list[ScheduleRun]] = {}

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _require(self, schedule_id: str) -> Schedule:
        schedule = self._schedules.get(schedule_id)
        if schedule is None:
            raise NotFoundError(
                message=f'Schedule {schedule_id} not found',
                code=ErrorCode.NOT_FOUND,
                status_code=404,
                remote_code='NOT_FOUND',
                schedule_id=schedule_id,
            )
        return schedule

    def _store(self, schedule: Schedule) -> Schedule:
        self._schedules[schedule.id] = schedule
        return schedule

    def seed(self, schedules: Iterable[Schedule]) -> None:
        """Load existing schedules as-is (fixtures, demos)."""
        for schedule in schedules:
            self._store(schedule)

    def snapshot(self) -> list[Schedule]:
        return list(self._schedules.values())

    # ------------------------------------------------------------------
    # repository contract
    # ------------------------------------------------------------------

    async def create(self, request: CreateScheduleRequest) -> Schedule:
        for existing in self._schedules.values():
            if (
                existing.status == ScheduleStatus.SCHEDULED
                and existing.suite_id == request.suite_id
                and existing.run_at_utc == request.run_at_utc
            ):
                raise ConflictError(
                    message=(
                        f'Suite {request.suite_id} is already scheduled at '
                        f'{request.run_at_utc.isoformat()}'
                    ),
                    code=ErrorCode.CONFLICT,
                    status_code=409,
                    remote_code='DUPLICATE_SCHEDULE',
                    schedule_id=existing.id,
                )

        now = self._clock()
        schedule = self._store(
            Schedule(
                id=self._id_factory(),
                suite_id=request.suite_id,
                suite_name=request.suite_name,
                timezone=request.timezone,
                run_at_utc=request.run_at_utc,
                notes=request.notes,
                tags=list(request.tags),
                priority=request.priority,
                status=ScheduleStatus.SCHEDULED,
                created_at=now,
                updated_at=now,
                execution_options=request.execution_options,
                recurrence=request.recurrence,
                recurrence_end_date=request.recurrence_end_date,
            )
        )
        logger.info(f'Created schedule {schedule.id} at {schedule.run_at_utc.isoformat()}')

        if request.run_now:
            await self.run_now(schedule.id, notes='Run immediately on creation')
            schedule = self._schedules[schedule.id]
        return schedule

    async def list(self, filters: Optional[ScheduleFilters] = None) -> ScheduleListPage:
        filters = filters or ScheduleFilters()
        matching = sorted(
            (s for s in self._schedules.values() if filters.matches(s)),
            key=lambda s: (s.run_at_utc, -s.priority, s.id),
        )
        window = matching[filters.offset : filters.offset + filters.limit]
        return ScheduleListPage(
            schedules=window,
            total=len(matching),
            page=filters.offset // filters.limit + 1,
            limit=filters.limit,
            has_more=filters.offset + filters.limit < len(matching),
        )

    async def get(self, schedule_id: str) -> ScheduleDetail:
        schedule = self._require(schedule_id)
        runs = sorted(
            self._runs.get(schedule_id, []), key=lambda r: r.started_at, reverse=True
        )
        return ScheduleDetail(
            schedule=schedule,
            recent_runs=runs[:RECENT_RUNS_LIMIT],
            timezone_info=timezone_info(schedule.timezone, schedule.run_at_utc),
        )

    async def update(self, schedule_id: str, request: UpdateScheduleRequest) -> Schedule:
        schedule = self._require(schedule_id)
        lifecycle.ensure_action(schedule, lifecycle.ScheduleAction.UPDATE)

        changes: dict[str, object] = {'updated_at': self._clock()}
        tz = request.timezone or schedule.timezone
        if request.run_at is not None:
            changes['run_at_utc'] = local_to_utc(request.run_at, tz)
            changes['recurrence_anchor_utc'] = None
        elif request.timezone is not None and request.timezone != schedule.timezone:
            # Same wall-clock time, reinterpreted in the new zone
            changes['run_at_utc'] = local_to_utc(
                schedule.run_at_local.replace(tzinfo=None), tz
            )
            changes['recurrence_anchor_utc'] = None
        if request.timezone is not None:
            changes['timezone'] = request.timezone
        if request.notes is not None:
            changes['notes'] = request.notes
        if request.tags is not None:
            changes['tags'] = list(request.tags)
        if request.priority is not None:
            changes['priority'] = request.priority
        if request.execution_options is not None:
            changes['execution_options'] = request.execution_options

        updated = self._store(schedule.model_copy(update=changes))
        logger.info(f'Updated schedule {schedule_id}')
        return updated

    async def run_now(self, schedule_id: str, notes: Optional[str] = None) -> RunNowResult:
        schedule = self._require(schedule_id)
        now = self._clock()
        run = self._start_run(schedule, now)
        logger.info(
            f'Schedule {schedule_id} triggered manually'
            + (f' ({notes})' if notes else '')
        )
        return RunNowResult(run=run, message='Schedule execution started')

    async def cancel(self, schedule_id: str) -> str:
        schedule = self._require(schedule_id)
        self._store(lifecycle.cancel(schedule, self._clock()))
        logger.info(f'Canceled schedule {schedule_id}')
        return 'Schedule canceled'

    async def delete(self, schedule_id: str) -> str:
        self._require(schedule_id)
        del self._schedules[schedule_id]
        self._runs.pop(schedule_id, None)
        logger.info(f'Deleted schedule {schedule_id}')
        return 'Schedule deleted'

    async def stats(self) -> ScheduleStats:
        now = self._clock()
        by_status: dict[str, int] = {s.value: 0 for s in ScheduleStatus}
        next_24h = 0
        overdue = 0
        for schedule in self._schedules.values():
            by_status[schedule.status.value] += 1
            if schedule.is_overdue(now):
                overdue += 1
            elif schedule.is_due_within(now, NEXT_WINDOW.total_seconds()):
                next_24h += 1
        return ScheduleStats(
            total=len(self._schedules),
            by_status=by_status,
            next_24h=next_24h,
            overdue=overdue,
        )

    # ------------------------------------------------------------------
    # execution-engine side
    # ------------------------------------------------------------------

    def _start_run(self, schedule: Schedule, at: datetime) -> ScheduleRun:
        self._store(lifecycle.start(schedule, at))
        run = ScheduleRun(
            id=self._id_factory(),
            schedule_id=schedule.id,
            started_at=at,
            status=RunStatus.RUNNING,
        )
        self._runs.setdefault(schedule.id, []).append(run)
        return run

    def start_due(self, now: Optional[datetime] = None) -> list[ScheduleRun]:
        """Start every scheduled schedule whose run time has arrived."""
        now = now or self._clock()
        due = [
            s
            for s in self._schedules.values()
            if s.status == ScheduleStatus.SCHEDULED and s.run_at_utc <= now
        ]
        return [self._start_run(s, now) for s in sorted(due, key=lambda s: s.run_at_utc)]

    def finish_run(
        self,
        run_id: str,
        status: RunStatus,
        *,
        tests_passed: int = 0,
        tests_failed: int = 0,
        tests_skipped: int = 0,
        error_message: Optional[str] = None,
        finished_at: Optional[datetime] = None,
    ) -> Optional[Schedule]:
        """
        Record the outcome of a run.

        Returns the newly scheduled next occurrence for recurring schedules,
        or None when the series is over (or the schedule is one-off).
        """
        finished_at = finished_at or self._clock()
        run, schedule_id = self._find_run(run_id)
        lifecycle.ensure_run_transition(run, status)

        finished = run.model_copy(
            update={
                'status': status,
                'finished_at': finished_at,
                'duration_ms': int((finished_at - run.started_at).total_seconds() * 1000),
                'tests_passed': tests_passed,
                'tests_failed': tests_failed,
                'tests_skipped': tests_skipped,
                'tests_total': tests_passed + tests_failed + tests_skipped,
                'error_message': error_message,
            }
        )
        runs = self._runs[schedule_id]
        runs[runs.index(run)] = finished

        schedule = self._schedules.get(schedule_id)
        if schedule is None:
            return None
        schedule = self._store(lifecycle.apply_run_report(schedule, finished, finished_at))

        next_at = lifecycle.next_occurrence_after_run(schedule, finished_at)
        if next_at is None:
            return None
        follow_up = self._store(
            schedule.model_copy(
                update={
                    'id': self._id_factory(),
                    'run_at_utc': next_at,
                    'recurrence_anchor_utc': schedule.anchor_utc,
                    'status': ScheduleStatus.SCHEDULED,
                    'created_at': finished_at,
                    'updated_at': finished_at,
                    'last_run': finished,
                }
            )
        )
        logger.info(
            f'Scheduled next occurrence {follow_up.id} of {schedule_id} at {next_at.isoformat()}'
        )
        return follow_up

    def _find_run(self, run_id: str) -> tuple[ScheduleRun, str]:
        for schedule_id, runs in self._runs.items():
            for run in runs:
                if run.id == run_id:
                    return run, schedule_id
        raise NotFoundError(
            message=f'Run {run_id} not found',
            code=ErrorCode.NOT_FOUND,
            status_code=404,
            remote_code='NOT_FOUND',
        )
