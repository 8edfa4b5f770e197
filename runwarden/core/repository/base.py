# runwarden/core/repository/base.py
"""Contract for the service that stores schedules and triggers their runs.

Error policy
------------
Every method is asynchronous and raises instead of returning error values:

* ``DomainError`` subclasses when the service refuses the request
  (``InvalidStateError``, ``NotFoundError``, ``ConflictError``,
  ``RemoteValidationError``).
* ``TransportError`` when no usable answer came back (network failure,
  timeout, 5xx).

Callers that need per-item outcomes (bulk actions) convert these into
``Result`` values at their own boundary.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Optional
from typing_extensions import Self
from runwarden.core.models.requests import (
    CreateScheduleRequest,
    RunNowResult,
    ScheduleDetail,
    ScheduleFilters,
    ScheduleListPage,
    ScheduleStats,
    UpdateScheduleRequest,
)
from runwarden.core.models.schedule import Schedule


class ScheduleRepository(ABC):
    """Abstract CRUD + action surface for schedules."""

    @abstractmethod
    async def create(self, request: CreateScheduleRequest) -> Schedule:
        """Persist a new schedule. ConflictError on duplicates."""

    @abstractmethod
    async def list(self, filters: Optional[ScheduleFilters] = None) -> ScheduleListPage:
        """One page of schedules matching `filters`."""

    @abstractmethod
    async def get(self, schedule_id: str) -> ScheduleDetail:
        """Schedule plus its recent runs. NotFoundError if absent."""

    @abstractmethod
    async def update(self, schedule_id: str, request: UpdateScheduleRequest) -> Schedule:
        """Edit a schedule; InvalidStateError unless it is still scheduled."""

    @abstractmethod
    async def run_now(self, schedule_id: str, notes: Optional[str] = None) -> RunNowResult:
        """Trigger immediate execution of a scheduled schedule."""

    @abstractmethod
    async def cancel(self, schedule_id: str) -> str:
        """Cancel a scheduled schedule; returns the service's message."""

    @abstractmethod
    async def delete(self, schedule_id: str) -> str:
        """Remove a schedule in any status; returns the service's message."""

    @abstractmethod
    async def stats(self) -> ScheduleStats:
        """Summary counters across all schedules."""

    async def close(self) -> None:
        """Release underlying resources. Default: nothing to release."""
        return None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()
