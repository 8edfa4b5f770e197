"""runwarden - scheduling core for a test-run dashboard"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.errors import (
    RunwardenError,
    ErrorCode,
    ConfigurationError,
    ScheduleValidationError,
    DomainError,
    InvalidStateError,
    NotFoundError,
    ConflictError,
    RemoteValidationError,
    TransportError,
    ValidationReport,
    MultipleValidationErrors,
)
from .core.models.app import ClientConfig
from .core.models.schedule import (
    Weekday,
    NoRecurrence,
    DailyRecurrence,
    WeeklyRecurrence,
    MonthlyRecurrence,
    CustomRecurrence,
    RecurrencePattern,
    ExecutionMode,
    ExecutionStrategy,
    Browser,
    ExecutionOptions,
    Schedule,
    ScheduleRun,
)
from .core.models.requests import (
    CreateScheduleRequest,
    UpdateScheduleRequest,
    ScheduleFilters,
    ScheduleFormState,
    ScheduleListPage,
    ScheduleDetail,
    ScheduleStats,
    RunNowResult,
    TimezoneInfo,
)
from .core.types.status import (
    ScheduleStatus,
    RunStatus,
    SCHEDULE_TERMINAL_STATES,
    RUN_TERMINAL_STATES,
)
from .core.repository import (
    ScheduleRepository,
    HttpScheduleRepository,
    InMemoryScheduleRepository,
)
from .core.scheduler import (
    SchedulerCoordinator,
    BulkAction,
    BulkActionReport,
    ScheduleCounts,
    ScheduleAction,
    ScheduleStore,
    TimeSuggestion,
    suggest_times,
    next_occurrence,
    upcoming_occurrences,
    describe_recurrence,
    describe_schedule_recurrence,
    format_time_until,
    validate_schedule_form,
)

__all__ = [
    # Errors
    'RunwardenError',
    'ErrorCode',
    'ConfigurationError',
    'ScheduleValidationError',
    'DomainError',
    'InvalidStateError',
    'NotFoundError',
    'ConflictError',
    'RemoteValidationError',
    'TransportError',
    'ValidationReport',
    'MultipleValidationErrors',
    # Config
    'ClientConfig',
    # Models
    'Weekday',
    'NoRecurrence',
    'DailyRecurrence',
    'WeeklyRecurrence',
    'MonthlyRecurrence',
    'CustomRecurrence',
    'RecurrencePattern',
    'ExecutionMode',
    'ExecutionStrategy',
    'Browser',
    'ExecutionOptions',
    'Schedule',
    'ScheduleRun',
    'CreateScheduleRequest',
    'UpdateScheduleRequest',
    'ScheduleFilters',
    'ScheduleFormState',
    'ScheduleListPage',
    'ScheduleDetail',
    'ScheduleStats',
    'RunNowResult',
    'TimezoneInfo',
    'ScheduleStatus',
    'RunStatus',
    'SCHEDULE_TERMINAL_STATES',
    'RUN_TERMINAL_STATES',
    # Repositories
    'ScheduleRepository',
    'HttpScheduleRepository',
    'InMemoryScheduleRepository',
    # Scheduling
    'SchedulerCoordinator',
    'BulkAction',
    'BulkActionReport',
    'ScheduleCounts',
    'ScheduleAction',
    'ScheduleStore',
    'TimeSuggestion',
    'suggest_times',
    'next_occurrence',
    'upcoming_occurrences',
    'describe_recurrence',
    'describe_schedule_recurrence',
    'format_time_until',
    'validate_schedule_form',
]
