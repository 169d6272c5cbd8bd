"""Injectable wall clock. Time-of-day rules (night, afternoon) read local hours."""

from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def system_clock(tz_name: str = "UTC") -> Clock:
    """Clock returning aware datetimes in the operating area's timezone."""
    tz = ZoneInfo(tz_name)

    def _now() -> datetime:
        return datetime.now(tz)

    return _now


def fixed_clock(moment: datetime) -> Clock:
    """Clock frozen at `moment` (replays and tests)."""

    def _now() -> datetime:
        return moment

    return _now
