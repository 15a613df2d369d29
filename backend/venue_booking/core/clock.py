"""
Injectable wall clock and UTC helpers.

Everything that compares instants goes through `to_utc`/`as_utc` so aware
datetimes from clients and naive UTC datetimes read back from SQLite compare
the same way.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current instant, timezone-aware UTC."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """Clock that only moves when told to. Used by tests and replay tools."""

    def __init__(self, current: datetime):
        self.current = to_utc(current)

    def now(self) -> datetime:
        return self.current

    def advance(self, delta) -> None:
        self.current = self.current + delta


def to_utc(value: datetime) -> datetime:
    """Convert an aware datetime to UTC. Naive input is rejected."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError("datetime must be timezone-aware")
    return value.astimezone(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat a stored datetime as UTC (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


_clock: Clock = SystemClock()


def get_clock() -> Clock:
    return _clock
