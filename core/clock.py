"""
Core Module - Clock.

Sentiment tier windows are measured back from clock.now(), and
decision records are stamped with it, so both are injected
rather than read from the system directly. Everything is UTC.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


class ClockProtocol(ABC):
    """Source of the current UTC time."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(ClockProtocol):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class MockClock(ClockProtocol):
    """Fixed clock for tests; moves only when told to."""

    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = ensure_utc(initial_time or datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._time

    def advance(self, **kwargs: float) -> None:
        """Move forward by a timedelta (hours=..., minutes=...)."""
        self._time += timedelta(**kwargs)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (sqlite drops tzinfo on read)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def from_iso8601(value: str) -> datetime:
    """Parse an ISO 8601 timestamp, accepting a trailing Z."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(value))


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ensure_utc",
    "from_iso8601",
]
