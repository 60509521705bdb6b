"""
Injectable time source.

Lifecycle rules that depend on "now" (quota period rollover, pickup-date
gating, bid expiry) take a ``Clock`` so tests can pin time.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock:
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Returns the same instant until moved with ``set`` / ``advance``."""

    def __init__(self, fixed_time: datetime):
        self._now = fixed_time

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **delta) -> datetime:
        self._now += timedelta(**delta)
        return self._now


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
