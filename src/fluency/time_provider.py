"""
Time sources for the scheduler.

The scheduler never reads the system clock directly; it receives a
TimeProvider and threads ``now`` through every time-sensitive call.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class TimeProvider(Protocol):
    """Anything exposing the current UTC time."""

    @property
    def now(self) -> datetime: ...


class SystemTimeProvider:
    """Wall-clock time in UTC."""

    @property
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FakeTimeProvider:
    """Controllable clock for tests and replays."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    @property
    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(
        self,
        *,
        seconds: float = 0,
        minutes: float = 0,
        hours: float = 0,
        days: float = 0,
    ) -> datetime:
        """Move the clock forward and return the new time."""
        self._now += timedelta(seconds=seconds, minutes=minutes, hours=hours, days=days)
        return self._now


def to_unix_seconds(value: datetime) -> int:
    """Convert an aware datetime to whole unix seconds."""
    return int(value.timestamp())


def to_unix_millis(value: datetime) -> int:
    """Convert an aware datetime to unix milliseconds."""
    return int(value.timestamp() * 1000)
