"""Rust-style error display and the error taxonomy for runwarden.

Three families of failures reach callers:

* ``ScheduleValidationError`` -- local, raised (or returned) before anything
  is sent to the backend. Always user-correctable.
* ``DomainError`` and subclasses -- the backend understood the request and
  refused it (invalid state transition, not found, conflict).
* ``TransportError`` -- the request never produced a usable answer
  (network failure, timeout, 5xx).
"""

from __future__ import annotations

import inspect
import linecache
import os
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Used by _find_user_frame to tell library frames from user code.
_RUNWARDEN_PKG_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class ErrorCode(str, Enum):
    """Error codes for runwarden errors.

    Organized by category:
    - E100-E199: Local schedule validation errors
    - E200-E299: Config/CLI errors
    - E300-E399: Remote domain errors
    - E400-E499: Transport errors
    """

    # Schedule validation (E100-E199)
    SCHEDULE_MISSING_DATETIME = 'E100'
    SCHEDULE_MISSING_SUITE = 'E101'
    SCHEDULE_LEAD_TIME = 'E102'
    SCHEDULE_WEEKLY_NO_DAYS = 'E103'
    SCHEDULE_INVALID_INTERVAL = 'E104'
    SCHEDULE_INVALID_TIMEZONE = 'E105'
    SCHEDULE_MALFORMED_DATETIME = 'E106'
    SCHEDULE_END_BEFORE_START = 'E107'
    SCHEDULE_INVALID_OPTIONS = 'E108'
    SCHEDULE_UNKNOWN_RECURRENCE = 'E109'
    SCHEDULE_INVALID_WEEKDAY = 'E110'

    # Config/CLI (E200-E299)
    CONFIG_INVALID = 'E200'
    CONFIG_INVALID_TIMEZONE = 'E201'
    CLI_INVALID_ARGS = 'E202'

    # Remote domain (E300-E399)
    INVALID_STATE = 'E300'
    NOT_FOUND = 'E301'
    CONFLICT = 'E302'
    REMOTE_VALIDATION = 'E303'
    DOMAIN = 'E399'

    # Transport (E400-E499)
    TRANSPORT = 'E400'


class _Colors:
    """ANSI escape codes for terminal colors."""

    RESET = '\033[0m'
    BOLD = '\033[1m'
    RED = '\033[91m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    DIM = '\033[2m'


class _NoColors:
    """No-op color codes for non-TTY output."""

    RESET = ''
    BOLD = ''
    RED = ''
    BLUE = ''
    CYAN = ''
    GREEN = ''
    YELLOW = ''
    DIM = ''


def _env_flag(name: str) -> bool:
    return os.environ.get(name, '').lower() in ('1', 'true', 'yes')


def _should_use_colors() -> bool:
    """Determine if colors should be used in output."""
    if _env_flag('RUNWARDEN_FORCE_COLOR'):
        return True

    # https://no-color.org/
    if os.environ.get('NO_COLOR') is not None:
        return False

    return hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()


def _should_show_verbose() -> bool:
    """Determine if verbose output (full traceback) should be shown."""
    return _env_flag('RUNWARDEN_VERBOSE')


def _should_use_plain_errors() -> bool:
    """Determine if plain Python errors should be used instead of Rust-style."""
    return _env_flag('RUNWARDEN_PLAIN_ERRORS')


@dataclass
class SourceLocation:
    """Source code location information."""

    file: str
    line: int

    @classmethod
    def from_frame(cls, frame: Any) -> SourceLocation:
        return cls(file=frame.f_code.co_filename, line=frame.f_lineno)

    def get_source_line(self) -> str | None:
        """Read the source line from the file."""
        line = linecache.getline(self.file, self.line)
        return line.rstrip('\n') if line else None

    def format_short(self) -> str:
        return f'{self.file}:{self.line}'


@dataclass
class RunwardenError(Exception):
    """Base exception for runwarden errors.

    Provides Rust-style error formatting with:
    - Error code and category
    - Source location with code snippet (configuration errors only)
    - Notes and help text
    """

    message: str
    code: ErrorCode | None = None
    location: SourceLocation | None = None
    notes: list[str] = field(default_factory=lambda: [])
    help_text: str | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def with_note(self, note: str) -> RunwardenError:
        """Add a note to the error (fluent API)."""
        self.notes.append(note)
        return self

    def with_help(self, help_text: str) -> RunwardenError:
        """Set help text (fluent API)."""
        self.help_text = help_text
        return self

    @property
    def user_message(self) -> str:
        """Single-line message suitable for in-place display next to an action."""
        return self.message

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        """Format the error in Rust style."""
        if use_colors is None:
            use_colors = _should_use_colors()

        c = _Colors if use_colors else _NoColors
        lines: list[str] = ['']

        code_part = f'[{self.code.value}]' if self.code else ''
        lines.append(f'{c.BOLD}{c.RED}error{code_part}:{c.RESET} {self.message}')

        if self.location:
            lines.append(
                f'  {c.BLUE}-->{c.RESET} {c.CYAN}{self.location.format_short()}{c.RESET}'
            )
            source_line = self.location.get_source_line()
            if source_line:
                line_num = str(self.location.line)
                padding = ' ' * len(line_num)
                stripped = source_line.lstrip()
                indent = len(source_line) - len(stripped)
                underline = ' ' * indent + '^' * len(stripped)
                lines.append(f'   {c.BLUE}{padding}|{c.RESET}')
                lines.append(f'   {c.BLUE}{line_num}|{c.RESET} {source_line}')
                lines.append(
                    f'   {c.BLUE}{padding}|{c.RESET} {c.RED}{underline}{c.RESET}'
                )

        for note in self.notes:
            note_lines = note.split('\n')
            lines.append(
                f'   {c.BLUE}={c.RESET} {c.BOLD}{c.BLUE}note{c.RESET}: {note_lines[0]}'
            )
            for note_line in note_lines[1:]:
                lines.append(f'          {note_line}')

        if self.help_text:
            lines.append('')
            lines.append(f'   {c.BLUE}={c.RESET} {c.BOLD}{c.GREEN}help{c.RESET}:')
            for help_line in self.help_text.split('\n'):
                lines.append(f'        {help_line}')

        return '\n'.join(lines)

    def __str__(self) -> str:
        """Plain text (no ANSI colors), safe for logs and JSON."""
        return self.format_rust_style(use_colors=False)


_original_excepthook = sys.excepthook


def _runwarden_excepthook(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: Any,
) -> None:
    """Custom exception hook for RunwardenError exceptions."""
    if _should_use_plain_errors() or not isinstance(exc_value, RunwardenError):
        _original_excepthook(exc_type, exc_value, exc_tb)
        return

    print(exc_value.format_rust_style(), file=sys.stderr)

    if _should_show_verbose():
        print(file=sys.stderr)
        c = _Colors if _should_use_colors() else _NoColors
        print(
            f'{c.DIM}Full traceback (RUNWARDEN_VERBOSE=1):{c.RESET}',
            file=sys.stderr,
        )
        traceback.print_exception(exc_type, exc_value, exc_tb, file=sys.stderr)


def install_error_handler() -> None:
    """Install the custom exception hook for Rust-style error display."""
    sys.excepthook = _runwarden_excepthook


def uninstall_error_handler() -> None:
    """Restore the original exception hook."""
    sys.excepthook = _original_excepthook


# =============================================================================
# Specific Error Classes
# =============================================================================


@dataclass
class ConfigurationError(RunwardenError):
    """Raised when client configuration or CLI arguments are invalid."""

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.location is None:
            user_frame = _find_user_frame()
            if user_frame is not None:
                self.location = SourceLocation.from_frame(user_frame)


@dataclass
class ScheduleValidationError(RunwardenError):
    """A schedule request violated a local rule. Never reaches the network."""

    field_name: str | None = None


@dataclass
class DomainError(RunwardenError):
    """The backend rejected a request (4xx). Reported verbatim, never retried."""

    status_code: int | None = None
    remote_code: str | None = None
    schedule_id: str | None = None


@dataclass
class InvalidStateError(DomainError):
    """The requested transition is not valid from the schedule's current status."""

    pass


@dataclass
class NotFoundError(DomainError):
    """The schedule does not exist (or was already deleted)."""

    pass


@dataclass
class ConflictError(DomainError):
    """The backend detected a duplicate schedule."""

    pass


@dataclass
class RemoteValidationError(DomainError):
    """The backend refused the payload (e.g. the suite no longer exists)."""

    pass


@dataclass
class TransportError(RunwardenError):
    """Network failure, timeout, or 5xx. Periodic refresh treats it as transient."""

    status_code: int | None = None
    retryable: bool = True
    cause: BaseException | None = None


# =============================================================================
# Phase-Gated Error Collection
# =============================================================================


class ValidationReport:
    """Collects multiple RunwardenError instances within a validation phase."""

    def __init__(self, phase_name: str) -> None:
        self.phase_name: str = phase_name
        self.errors: list[RunwardenError] = []

    def add(self, error: RunwardenError) -> None:
        self.errors.append(error)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        """Format all collected errors, then append an aborting summary."""
        if use_colors is None:
            use_colors = _should_use_colors()

        c = _Colors if use_colors else _NoColors
        parts = [error.format_rust_style(use_colors=use_colors) for error in self.errors]
        parts.append(
            f'\n{c.BOLD}{c.RED}error{c.RESET}: aborting due to {len(self.errors)} previous errors'
        )
        return '\n'.join(parts)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


@dataclass
class MultipleValidationErrors(RunwardenError):
    """Wraps a ValidationReport containing 2+ errors."""

    report: ValidationReport = field(default_factory=lambda: ValidationReport(''))

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f'aborting due to {len(self.report.errors)} previous errors'
        super().__post_init__()

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        return self.report.format_rust_style(use_colors=use_colors)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


def raise_collected(report: ValidationReport) -> None:
    """Raise collected errors.

    - 0 errors: no-op
    - 1 error: raises the original error (preserves except clauses)
    - 2+ errors: raises MultipleValidationErrors wrapping the report
    """
    count = len(report.errors)
    if count == 0:
        return
    if count == 1:
        raise report.errors[0]
    raise MultipleValidationErrors(
        message=f'aborting due to {count} previous errors',
        report=report,
    )


def _find_user_frame() -> Any | None:
    """Find the first frame outside of runwarden internals."""
    frame = inspect.currentframe()
    while frame is not None:
        filename = frame.f_code.co_filename
        if filename.startswith('<'):
            frame = frame.f_back
            continue
        if (
            not filename.startswith(_RUNWARDEN_PKG_DIR)
            and '/site-packages/' not in filename
            and '/pydantic' not in filename
        ):
            return frame
        frame = frame.f_back
    return None
