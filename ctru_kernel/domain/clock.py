"""
Clock -- injectable time source.

Recalculation timestamps, consumption stamps and aggregate refresh times
all come from a Clock handed in by the caller; nothing below the facade
reads the wall clock itself.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, always timezone-aware."""
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Clock pinned to one instant, for tests and replayed runs."""

    def __init__(self, fixed_time: datetime):
        self._fixed_time = fixed_time

    def now(self) -> datetime:
        return self._fixed_time
