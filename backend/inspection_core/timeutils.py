"""School-timezone date helpers.

Every instant the engine compares is offset-qualified and converted into the
configured school timezone; the host process timezone is never consulted.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import List, Optional

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import get_settings


def school_zone(name: Optional[str] = None) -> ZoneInfo:
    tz_name = name or get_settings().school_timezone
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise RuntimeError(f"Unknown school timezone: {tz_name}") from exc


def school_now(now: Optional[datetime] = None, *, tz: Optional[ZoneInfo] = None) -> datetime:
    zone = tz or school_zone()
    if now is None:
        return datetime.now(zone)
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("Naive datetimes are not accepted; pass an offset-aware instant.")
    return now.astimezone(zone)


def school_today(now: Optional[datetime] = None, *, tz: Optional[ZoneInfo] = None) -> date:
    return school_now(now, tz=tz).date()


def local_instant(day: date, hour: int = 0, minute: int = 0, *, tz: Optional[ZoneInfo] = None) -> datetime:
    return datetime.combine(day, time(hour=hour, minute=minute), tzinfo=tz or school_zone())


def previous_weekdays(target: date, count: int) -> List[date]:
    """Return the ``count`` most recent Monday to Friday dates strictly before ``target``, newest first."""
    days: List[date] = []
    cursor = target
    while len(days) < count:
        cursor -= timedelta(days=1)
        if cursor.weekday() < 5:
            days.append(cursor)
    return days


__all__ = [
    "local_instant",
    "previous_weekdays",
    "school_now",
    "school_today",
    "school_zone",
]
