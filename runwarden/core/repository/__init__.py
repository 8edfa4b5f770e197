"""
Schedule repositories.

- ScheduleRepository: abstract contract the coordinator depends on
- HttpScheduleRepository: REST client for the schedule service
- InMemoryScheduleRepository: local store that enforces the lifecycle rules
"""

from runwarden.core.repository.base import ScheduleRepository
from runwarden.core.repository.http import HttpScheduleRepository
from runwarden.core.repository.memory import InMemoryScheduleRepository

__all__ = [
    'ScheduleRepository',
    'HttpScheduleRepository',
    'InMemoryScheduleRepository',
]
