"""Injectable time sources.

All engine code reads "now" through a ``Clock`` so expiry evaluation and
expiry-bucket filtering can be driven deterministically in tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current, timezone-aware UTC time."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Manually advanced clock for tests and replay tooling."""

    def __init__(self, start: datetime | None = None) -> None:
        start = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        if start.tzinfo is None:
            raise ValueError('FixedClock requires a timezone-aware datetime')
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now

    def set(self, value: datetime) -> None:
        if value.tzinfo is None:
            raise ValueError('FixedClock requires a timezone-aware datetime')
        self._now = value
