"""Write-window checks for daily scores and weekly reviews.

Rules (school timezone throughout):

- daily: writable only on the record's own date.
- weekly: writable from 00:00 on the Monday of the week until 12:00 on the
  Monday after its Friday (Friday + 3 days), exclusive.
- the privileged role may always write, but any write outside the window is
  flagged ``is_override``; ``enforce_deadline`` emits ``deadline_override``
  for it so the write path leaves an audit entry.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Literal, Optional

from pydantic import BaseModel

from .config import get_settings
from .telemetry import EventName, emit_event
from .timeutils import local_instant, school_now, school_zone

logger = logging.getLogger(__name__)

RecordKind = Literal["daily", "weekly"]
Locale = Literal["zh", "en"]

WEEKLY_GRACE_DAYS = 3
WEEKLY_DEADLINE_HOUR = 12

_ZH_WEEKDAYS = ["一", "二", "三", "四", "五", "六", "日"]
_EN_WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_EN_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


class DeadlineResult(BaseModel):
    allowed: bool
    is_override: bool = False
    deadline: Optional[datetime] = None
    deadline_formatted: Optional[str] = None
    message: Optional[str] = None


class DeadlinePassedError(PermissionError):
    """A non-privileged write was attempted outside its window."""

    def __init__(self, result: DeadlineResult) -> None:
        super().__init__(result.message or "Write window has closed.")
        self.result = result


def weekly_deadline(week_friday: date) -> datetime:
    return local_instant(week_friday + timedelta(days=WEEKLY_GRACE_DAYS), WEEKLY_DEADLINE_HOUR, tz=school_zone())


def weekly_window_start(week_friday: date) -> datetime:
    monday = week_friday - timedelta(days=week_friday.weekday())
    return local_instant(monday, tz=school_zone())


def is_daily_open(record_date: date, *, now: Optional[datetime] = None) -> bool:
    return record_date == school_now(now).date()


def format_deadline(deadline: datetime, locale: Locale = "en") -> str:
    local = deadline.astimezone(school_zone())
    clock = local.strftime("%H:%M")
    if locale == "zh":
        return f"{local.month}月{local.day}日 周{_ZH_WEEKDAYS[local.weekday()]} {clock}"
    return f"{_EN_MONTHS[local.month - 1]} {local.day} ({_EN_WEEKDAYS[local.weekday()]}) {clock}"


def _is_privileged(role: str) -> bool:
    return role.strip().upper() == get_settings().privileged_role.upper()


def check_deadline(
    kind: RecordKind,
    record_date: date,
    role: str,
    *,
    now: Optional[datetime] = None,
    locale: Locale = "en",
) -> DeadlineResult:
    """Decide whether a write of ``kind`` for ``record_date`` is allowed right now.

    For weekly records ``record_date`` is the week's Friday. Pure query: an
    override is only flagged here and is emitted by ``enforce_deadline``.
    """
    privileged = _is_privileged(role)

    if kind == "daily":
        if is_daily_open(record_date, now=now):
            return DeadlineResult(allowed=True)
        if privileged:
            result = DeadlineResult(
                allowed=True,
                is_override=True,
                message=(
                    "日评录入已超过截止时间，管理员超期修改"
                    if locale == "zh"
                    else "Daily scoring window has closed; admin override"
                ),
            )
            return result
        return DeadlineResult(
            allowed=False,
            message=(
                "日评录入已截止，仅可录入当天数据"
                if locale == "zh"
                else "Daily scoring window has closed; only today's records can be entered"
            ),
        )

    if kind != "weekly":
        raise ValueError(f"Unknown record kind: {kind}")

    current = school_now(now)
    deadline = weekly_deadline(record_date)
    formatted = format_deadline(deadline, locale)
    not_yet_open = current < weekly_window_start(record_date)
    if not not_yet_open and current < deadline:
        return DeadlineResult(allowed=True, deadline=deadline, deadline_formatted=formatted)

    if not_yet_open:
        closed_message = "周评尚未开放" if locale == "zh" else "Weekly review is not open yet"
    elif locale == "zh":
        closed_message = f"周评录入已截止（截止时间：{formatted}）"
    else:
        closed_message = f"Weekly review deadline has passed (deadline: {formatted})"

    if privileged:
        result = DeadlineResult(
            allowed=True,
            is_override=True,
            deadline=deadline,
            deadline_formatted=formatted,
            message=(
                f"{closed_message}，管理员超期修改" if locale == "zh" else f"{closed_message}; admin override"
            ),
        )
        return result
    return DeadlineResult(
        allowed=False,
        deadline=deadline,
        deadline_formatted=formatted,
        message=closed_message,
    )


def enforce_deadline(
    kind: RecordKind,
    record_date: date,
    role: str,
    *,
    now: Optional[datetime] = None,
    locale: Locale = "en",
) -> DeadlineResult:
    result = check_deadline(kind, record_date, role, now=now, locale=locale)
    if not result.allowed:
        logger.info("Rejected %s write for %s by role %s: %s", kind, record_date, role, result.message)
        raise DeadlinePassedError(result)
    if result.is_override:
        _emit_override(kind, record_date, role, result)
    return result


def _emit_override(kind: str, record_date: date, role: str, result: DeadlineResult) -> None:
    emit_event(
        EventName.DEADLINE_OVERRIDE,
        kind=kind,
        record_date=record_date,
        role=role,
        deadline=result.deadline,
    )


__all__ = [
    "DeadlinePassedError",
    "DeadlineResult",
    "check_deadline",
    "enforce_deadline",
    "format_deadline",
    "is_daily_open",
    "weekly_deadline",
    "weekly_window_start",
]
