# runwarden/core/cli.py
"""
CLI for inspecting and managing scheduled test runs.

The service location comes from RUNWARDEN_API_BASE_URL (or --api-url);
see ClientConfig.from_env for the other environment variables.
"""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from result import is_err

from runwarden.core.errors import ErrorCode, RunwardenError, ConfigurationError
from runwarden.core.logging import get_logger
from runwarden.core.models.app import ClientConfig
from runwarden.core.models.requests import ScheduleFilters, ScheduleFormState
from runwarden.core.models.schedule import (
    Browser,
    ExecutionMode,
    ExecutionStrategy,
    Schedule,
)
from runwarden.core.repository.http import HttpScheduleRepository
from runwarden.core.scheduler.calculator import (
    describe_schedule_recurrence,
    format_time_until,
    utc_now,
)
from runwarden.core.scheduler.coordinator import BulkAction, SchedulerCoordinator
from runwarden.core.scheduler.store import ScheduleStore
from runwarden.core.scheduler.validator import RECURRENCE_TYPES
from runwarden.core.types.status import ScheduleStatus

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def setup_logging(loglevel: str) -> None:
    """Configure logging level globally."""
    from runwarden.core.logging import set_default_level

    level = getattr(logging, loglevel.upper(), logging.WARNING)
    set_default_level(level)

    for name in logging.Logger.manager.loggerDict:
        if isinstance(name, str) and name.startswith('runwarden.'):
            lgr = logging.getLogger(name)
            lgr.setLevel(level)
            for handler in lgr.handlers:
                handler.setLevel(level)


def build_config(args: argparse.Namespace) -> ClientConfig:
    """Environment first, then command-line overrides."""
    try:
        return ClientConfig.from_env(
            api_base_url=args.api_url,
            request_timeout_seconds=args.timeout,
        )
    except PydanticValidationError as e:
        raise ConfigurationError(
            message='invalid client configuration',
            code=ErrorCode.CONFIG_INVALID,
            notes=[err['msg'] for err in e.errors()],
        ) from e


def build_filters(args: argparse.Namespace) -> ScheduleFilters:
    """List filters from the command line, rejected up front when out of range."""
    try:
        return ScheduleFilters(
            status=[ScheduleStatus(s) for s in args.status or []],
            suite_id=args.suite,
            limit=args.limit,
            offset=args.offset,
        )
    except PydanticValidationError as e:
        raise ConfigurationError(
            message='invalid list arguments',
            code=ErrorCode.CLI_INVALID_ARGS,
            notes=[
                f"--{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ],
            help_text='--limit must be between 1 and 500 and --offset must not be negative',
        ) from e


def _print_error(error: RunwardenError) -> None:
    print(error.format_rust_style(), file=sys.stderr)


def format_schedule_line(schedule: Schedule, now: datetime) -> str:
    local = schedule.run_at_local.strftime('%Y-%m-%d %H:%M %Z')
    if schedule.status == ScheduleStatus.SCHEDULED:
        eta = format_time_until(schedule.minutes_until_run(now))
    else:
        eta = '-'
    line = (
        f'{schedule.id:<34} {schedule.status.value:<10} {eta:>8}  '
        f'{local:<22} p{schedule.priority:<3}{schedule.suite_name or schedule.suite_id}'
    )
    recurrence = describe_schedule_recurrence(schedule)
    if recurrence:
        line += f'  ({recurrence})'
    return line


def print_store(store: ScheduleStore) -> None:
    now = utc_now()
    for schedule in store.schedules:
        print(format_schedule_line(schedule, now))
    if store.stats is not None:
        stats = store.stats
        print(
            f'\n{stats.total} total, '
            + ', '.join(f'{s.value} {stats.count(s)}' for s in ScheduleStatus)
            + f'; {stats.next_24h} in next 24h, {stats.overdue} overdue'
        )


def _run(
    args: argparse.Namespace,
    body: Callable[[SchedulerCoordinator], Awaitable[bool]],
    on_refresh: Optional[Callable[[ScheduleStore], None]] = None,
) -> None:
    """Build a coordinator, run `body` against it and exit 1 if it reports failure."""
    logger = get_logger('cli')
    setup_logging(args.loglevel)

    try:
        config = build_config(args)
    except RunwardenError as e:
        _print_error(e)
        sys.exit(1)

    async def main_async() -> bool:
        coordinator = SchedulerCoordinator(
            HttpScheduleRepository(config), config, on_refresh=on_refresh
        )
        async with coordinator:
            return await body(coordinator)

    try:
        ok = asyncio.run(main_async())
    except KeyboardInterrupt:
        logger.info('Interrupted by user')
        return
    if not ok:
        sys.exit(1)


def list_command(args: argparse.Namespace) -> None:
    """Handle list command."""
    try:
        filters = build_filters(args)
    except RunwardenError as e:
        _print_error(e)
        sys.exit(1)

    async def body(coordinator: SchedulerCoordinator) -> bool:
        try:
            page = await coordinator.repository.list(filters)
        except RunwardenError as e:
            _print_error(e)
            return False
        now = utc_now()
        for schedule in page.schedules:
            print(format_schedule_line(schedule, now))
        more = ' (more available)' if page.has_more else ''
        print(f'\npage {page.page}, {len(page.schedules)} of {page.total}{more}')
        return True

    _run(args, body)


def stats_command(args: argparse.Namespace) -> None:
    """Handle stats command."""

    async def body(coordinator: SchedulerCoordinator) -> bool:
        try:
            stats = await coordinator.repository.stats()
        except RunwardenError as e:
            _print_error(e)
            return False
        print(f'total      {stats.total}')
        for status in ScheduleStatus:
            print(f'{status.value:<10} {stats.count(status)}')
        print(f'next 24h   {stats.next_24h}')
        print(f'overdue    {stats.overdue}')
        return True

    _run(args, body)


def create_command(args: argparse.Namespace) -> None:
    """Handle create command."""

    async def body(coordinator: SchedulerCoordinator) -> bool:
        recurring = args.recurrence != 'none'
        options = {
            'mode': args.mode,
            'execution': args.execution,
            'retries': args.retries,
            'browser': args.browser,
            'environment': args.environment,
        }
        if args.timeout_ms is not None:
            options['timeout_ms'] = args.timeout_ms
        form = ScheduleFormState(
            suite_id=args.suite_id,
            suite_name=args.suite_name or '',
            date=args.date or '',
            time=args.time or '',
            timezone=args.timezone or coordinator.config.default_timezone,
            notes=args.notes or '',
            tags=args.tag or [],
            priority=args.priority,
            run_now=args.run_now,
            recurring=recurring,
            recurrence_type=args.recurrence,
            recurrence_interval=args.interval,
            recurrence_days=args.day or [],
            recurrence_end_date=args.until or '',
            execution_options=options,
        )
        result = await coordinator.create_schedule(form)
        if is_err(result):
            _print_error(result.err_value)
            if not form.time:
                picks = ', '.join(
                    f'{s.date} {s.time}' for s in coordinator.suggestions()
                )
                print(f'suggested times ({form.timezone}): {picks}', file=sys.stderr)
            return False
        schedule = result.ok_value
        print(f'Created schedule {schedule.id}')
        print(format_schedule_line(schedule, utc_now()))
        return True

    _run(args, body)


def run_now_command(args: argparse.Namespace) -> None:
    """Handle run-now command."""

    async def body(coordinator: SchedulerCoordinator) -> bool:
        result = await coordinator.run_now(args.schedule_id, args.notes)
        if is_err(result):
            _print_error(result.err_value)
            return False
        outcome = result.ok_value
        print(f'{outcome.message or "Run started"}: run {outcome.run.id}')
        return True

    _run(args, body)


def bulk_command(args: argparse.Namespace, action: BulkAction) -> None:
    """Handle cancel and delete; several ids run as one parallel bulk action."""

    async def body(coordinator: SchedulerCoordinator) -> bool:
        report = await coordinator.bulk_action(action, args.schedule_ids)
        for schedule_id in report.succeeded:
            print(f'ok      {schedule_id}')
        for schedule_id, error in report.failed.items():
            print(f'failed  {schedule_id}: {error.message}')
        print(report.summary())
        return report.is_clean

    _run(args, body)


def preview_command(args: argparse.Namespace) -> None:
    """Handle preview command."""

    async def body(coordinator: SchedulerCoordinator) -> bool:
        result = await coordinator.preview(args.schedule_id, args.count)
        if is_err(result):
            _print_error(result.err_value)
            return False
        occurrences = result.ok_value
        if not occurrences:
            print('No upcoming occurrences')
        for at in occurrences:
            print(at.isoformat())
        return True

    _run(args, body)


def watch_command(args: argparse.Namespace) -> None:
    """Handle watch command: refresh periodically until interrupted."""
    logger = get_logger('cli')

    def redraw(store: ScheduleStore) -> None:
        print(f'\n--- {utc_now().strftime("%Y-%m-%d %H:%M:%S")} UTC ---')
        print_store(store)

    async def body(coordinator: SchedulerCoordinator) -> bool:
        task = coordinator.start()

        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            logger.info('Received interrupt signal, stopping refresh loop...')
            coordinator.request_stop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, signal_handler)
            except NotImplementedError:
                pass

        await task
        return True

    _run(args, body, on_refresh=redraw)


def main() -> None:
    """Main CLI entry point."""
    try:
        common = argparse.ArgumentParser(add_help=False)
        common.add_argument(
            '--api-url',
            help='Schedule service base URL (default: $RUNWARDEN_API_BASE_URL)',
        )
        common.add_argument(
            '--timeout',
            type=float,
            help='Request timeout in seconds (default: $RUNWARDEN_REQUEST_TIMEOUT or 10)',
        )
        common.add_argument(
            '--loglevel',
            choices=LOG_LEVELS,
            default='WARNING',
            type=str.upper,
            help='Logging level (default: WARNING)',
        )

        parser = argparse.ArgumentParser(
            prog='runwarden',
            description='Schedule, inspect and cancel test-suite runs',
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  runwarden list --status scheduled
  runwarden create --suite-id smoke --date 2026-11-02 --time 03:00 --timezone Europe/London
  runwarden create --suite-id nightly --date 2026-11-02 --time 01:00 \\
      --recurrence weekly --day monday --day wednesday --day friday
  runwarden cancel 3f2a 9b1c 77de
  runwarden watch
""",
        )
        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        list_parser = subparsers.add_parser('list', parents=[common], help='List schedules')
        list_parser.add_argument(
            '--status',
            action='append',
            choices=[s.value for s in ScheduleStatus],
            help='Filter by status (repeatable)',
        )
        list_parser.add_argument('--suite', help='Filter by suite id')
        list_parser.add_argument('--limit', type=int, default=50, help='Page size (default: 50)')
        list_parser.add_argument('--offset', type=int, default=0, help='Page offset')

        subparsers.add_parser('stats', parents=[common], help='Show summary counters')

        create_parser = subparsers.add_parser(
            'create', parents=[common], help='Create a schedule'
        )
        create_parser.add_argument('--suite-id', required=True, help='Suite to run')
        create_parser.add_argument('--suite-name', help='Display name of the suite')
        create_parser.add_argument('--date', help='Local date, YYYY-MM-DD')
        create_parser.add_argument('--time', help='Local time, HH:MM')
        create_parser.add_argument(
            '--timezone', help='IANA zone of date/time (default: $RUNWARDEN_DEFAULT_TIMEZONE or UTC)'
        )
        create_parser.add_argument('--notes')
        create_parser.add_argument('--tag', action='append', help='Tag (repeatable)')
        create_parser.add_argument('--priority', type=int, default=5, help='1-10 (default: 5)')
        create_parser.add_argument(
            '--recurrence', choices=RECURRENCE_TYPES, default='none'
        )
        create_parser.add_argument(
            '--interval', type=int, default=1, help='Days between runs for custom recurrence'
        )
        create_parser.add_argument(
            '--day', action='append', help='Weekday for weekly recurrence (repeatable)'
        )
        create_parser.add_argument('--until', help='Last local date of the recurrence, YYYY-MM-DD')
        create_parser.add_argument(
            '--run-now', action='store_true', default=False, help='Also start a run immediately'
        )
        create_parser.add_argument(
            '--mode', choices=[m.value for m in ExecutionMode], default=ExecutionMode.HEADLESS.value
        )
        create_parser.add_argument(
            '--execution',
            choices=[e.value for e in ExecutionStrategy],
            default=ExecutionStrategy.PARALLEL.value,
        )
        create_parser.add_argument('--retries', type=int, default=1, help='0-3 (default: 1)')
        create_parser.add_argument(
            '--browser', choices=[b.value for b in Browser], default=Browser.CHROMIUM.value
        )
        create_parser.add_argument('--environment', default='staging')
        create_parser.add_argument('--timeout-ms', type=int, help='Per-run timeout in ms')

        run_now_parser = subparsers.add_parser(
            'run-now', parents=[common], help='Start a scheduled run immediately'
        )
        run_now_parser.add_argument('schedule_id')
        run_now_parser.add_argument('--notes')

        cancel_parser = subparsers.add_parser(
            'cancel', parents=[common], help='Cancel one or more scheduled schedules'
        )
        cancel_parser.add_argument('schedule_ids', nargs='+')

        delete_parser = subparsers.add_parser(
            'delete', parents=[common], help='Delete one or more schedules'
        )
        delete_parser.add_argument('schedule_ids', nargs='+')

        preview_parser = subparsers.add_parser(
            'preview', parents=[common], help='Show upcoming occurrences of a schedule'
        )
        preview_parser.add_argument('schedule_id')
        preview_parser.add_argument('--count', type=int, default=5)

        subparsers.add_parser(
            'watch', parents=[common], help='Refresh the schedule list until interrupted'
        )

        args = parser.parse_args()

        match args.command:
            case 'list':
                list_command(args)
            case 'stats':
                stats_command(args)
            case 'create':
                create_command(args)
            case 'run-now':
                run_now_command(args)
            case 'cancel':
                bulk_command(args, BulkAction.CANCEL)
            case 'delete':
                bulk_command(args, BulkAction.DELETE)
            case 'preview':
                preview_command(args)
            case 'watch':
                watch_command(args)
            case _:
                parser.print_help()
                sys.exit(1)
    except KeyboardInterrupt:
        print('\nInterrupted by user')
        sys.exit(0)


if __name__ == '__main__':
    main()
