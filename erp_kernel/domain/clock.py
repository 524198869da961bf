"""
Injectable time source.

Services take a ``Clock`` in their constructor and never read the wall
clock themselves, so document numbers, leave timestamps and audit rows
can be pinned in tests.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Timezone-aware current instant."""

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def __init__(self, tz: timezone = timezone.utc):
        self._tz = tz

    def now(self) -> datetime:
        return datetime.now(self._tz)


class DeterministicClock(Clock):
    """Frozen at ``start`` until moved with ``advance``."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 6, 15, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta: float) -> datetime:
        """``advance(days=1)``, ``advance(minutes=5)``, ..."""
        self._now += timedelta(**delta)
        return self._now
