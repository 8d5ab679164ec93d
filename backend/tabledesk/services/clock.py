"""
Time source for the order lifecycle.

Services never call datetime.now() directly; they receive a Clock so that
business-day boundaries and timestamps can be pinned in tests and in the
sweep command (``--as-of``).
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant, timezone-aware UTC."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """A clock frozen at a given instant (naive values are taken as UTC)."""

    def __init__(self, at: datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        self._at = at.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._at

    def advance(self, **delta: float) -> None:
        self._at = self._at + timedelta(**delta)


def _zone(tz_name: str | None):
    if not tz_name or tz_name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(tz_name)


def business_day_start(now: datetime, tz_name: str | None) -> datetime:
    """
    Start of the business day containing ``now`` in the restaurant's timezone,
    returned as a UTC instant.
    """
    local = now.astimezone(_zone(tz_name))
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)


_system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency: the wall clock (overridden in tests)."""
    return _system_clock
