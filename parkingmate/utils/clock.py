# parkingmate/utils/clock.py
"""
Injectable time source.
All window checks take `now` from a Clock so tests can pin it.
Timestamps are naive UTC, matching the DateTime columns.
"""

from datetime import datetime, timezone


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Clock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    """Clock frozen at a given instant. Used by tests and replay scripts."""

    def __init__(self, at: datetime):
        self._at = to_naive_utc(at)

    def now(self) -> datetime:
        return self._at

    def set(self, at: datetime):
        self._at = to_naive_utc(at)

    def advance(self, delta):
        self._at = self._at + delta


system_clock = Clock()
