"""Semester calendar: numbered school weeks with explicit school-day dates."""

from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from .config import get_settings
from .timeutils import school_today

logger = logging.getLogger(__name__)

CALENDAR_DIR = Path(__file__).resolve().parent / "calendars"
DEFAULT_CALENDAR_FILE = CALENDAR_DIR / "2025-2026-2.json"


class WeekNotFoundError(LookupError):
    """Raised when a week number or date falls outside the loaded semester."""


class Holiday(BaseModel):
    name: str
    dates: List[date] = Field(default_factory=list)


class SchoolWeek(BaseModel):
    week: int = Field(ge=1)
    label: str
    start_date: date
    end_date: date
    school_days: List[date] = Field(default_factory=list)
    note: Optional[str] = None

    @model_validator(mode="after")
    def _check_days(self) -> "SchoolWeek":
        if self.end_date < self.start_date:
            raise ValueError(f"Week {self.week} ends before it starts.")
        previous: Optional[date] = None
        for day in self.school_days:
            if day < self.start_date or day > self.end_date:
                raise ValueError(f"Week {self.week} school day {day} lies outside {self.start_date}..{self.end_date}.")
            if previous is not None and day <= previous:
                raise ValueError(f"Week {self.week} school days must be strictly increasing.")
            previous = day
        return self

    @property
    def friday(self) -> date:
        """Anchor date used for weekly records: the Friday of the ISO week containing ``start_date``."""
        return date.fromordinal(self.start_date.toordinal() - self.start_date.weekday() + 4)

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class SchoolCalendar(BaseModel):
    semester: str
    semester_name: str = ""
    start_date: date
    end_date: date
    weeks: List[SchoolWeek] = Field(default_factory=list)
    holidays: List[Holiday] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_weeks(self) -> "SchoolCalendar":
        previous: Optional[SchoolWeek] = None
        for index, week in enumerate(self.weeks, start=1):
            if week.week != index:
                raise ValueError(f"Week numbers must be contiguous from 1; found {week.week} at position {index}.")
            if week.start_date < self.start_date or week.end_date > self.end_date:
                raise ValueError(f"Week {week.week} lies outside the semester bounds.")
            if previous is not None and week.start_date <= previous.end_date:
                raise ValueError(f"Week {week.week} overlaps week {previous.week}.")
            previous = week
        return self


class CalendarProvider:
    """Lookup service over one semester calendar.

    The calendar is injected and can be swapped wholesale with ``replace`` when
    the semester changes; lookups never mutate it.
    """

    def __init__(self, calendar: Optional[SchoolCalendar] = None) -> None:
        self._lock = threading.RLock()
        self._calendar: Optional[SchoolCalendar] = calendar

    @property
    def calendar(self) -> SchoolCalendar:
        with self._lock:
            if self._calendar is None:
                raise RuntimeError("No school calendar has been loaded.")
            return self._calendar

    @property
    def is_loaded(self) -> bool:
        return self._calendar is not None

    def load(self, calendar: SchoolCalendar) -> None:
        with self._lock:
            if self._calendar is not None:
                raise RuntimeError("A calendar is already loaded; use replace() to swap semesters.")
            self._calendar = calendar

    def replace(self, calendar: SchoolCalendar) -> SchoolCalendar | None:
        with self._lock:
            previous = self._calendar
            self._calendar = calendar
        logger.info(
            "School calendar replaced: %s -> %s",
            previous.semester if previous else None,
            calendar.semester,
        )
        return previous

    @property
    def weeks(self) -> List[SchoolWeek]:
        return list(self.calendar.weeks)

    @property
    def week_count(self) -> int:
        return len(self.calendar.weeks)

    def week_by_number(self, number: int) -> Optional[SchoolWeek]:
        weeks = self.calendar.weeks
        if 1 <= number <= len(weeks):
            return weeks[number - 1]
        return None

    def require_week(self, number: int) -> SchoolWeek:
        week = self.week_by_number(number)
        if week is None:
            raise WeekNotFoundError(f"Week {number} is not part of semester {self.calendar.semester}.")
        return week

    def week_by_date(self, day: date) -> Optional[SchoolWeek]:
        for week in self.calendar.weeks:
            if week.contains(day):
                return week
        return None

    def current_week(self, now: Optional[datetime] = None) -> Optional[SchoolWeek]:
        """Week containing "today" in the school timezone.

        Between weeks (weekends, holidays) the most recent finished week is
        returned; outside the semester the result is ``None``.
        """
        today = school_today(now)
        calendar = self.calendar
        if today < calendar.start_date or today > calendar.end_date:
            return None
        exact = self.week_by_date(today)
        if exact is not None:
            return exact
        finished = [week for week in calendar.weeks if week.end_date <= today]
        return finished[-1] if finished else None

    def school_days(self, from_week: int, to_week: int) -> List[date]:
        days: List[date] = []
        for week in self.calendar.weeks:
            if from_week <= week.week <= to_week:
                days.extend(week.school_days)
        return days

    def is_school_day(self, day: date) -> bool:
        week = self.week_by_date(day)
        return week is not None and day in week.school_days

    @staticmethod
    def holiday_note(week: SchoolWeek) -> Optional[str]:
        return week.note


def load_calendar_file(path: Path | str) -> SchoolCalendar:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    calendar = SchoolCalendar.model_validate(payload)
    logger.info("Loaded school calendar %s with %d weeks from %s", calendar.semester, len(calendar.weeks), path)
    return calendar


_provider: Optional[CalendarProvider] = None
_provider_lock = threading.Lock()


def get_calendar_provider() -> CalendarProvider:
    global _provider
    with _provider_lock:
        if _provider is None:
            configured = get_settings().calendar_path
            _provider = CalendarProvider(load_calendar_file(configured or DEFAULT_CALENDAR_FILE))
        return _provider


def set_calendar_provider(provider: Optional[CalendarProvider]) -> None:
    """Install a process-wide provider (``None`` resets to the configured file)."""
    global _provider
    with _provider_lock:
        _provider = provider


__all__ = [
    "CalendarProvider",
    "Holiday",
    "SchoolCalendar",
    "SchoolWeek",
    "WeekNotFoundError",
    "get_calendar_provider",
    "load_calendar_file",
    "set_calendar_provider",
]
