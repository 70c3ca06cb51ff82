"""Weekly A/B/C grade advice from a class's daily records and weekly indicators."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from .db import session_scope
from .records import ConfidenceLevel, DailyCheckRecord, WeeklyCheckRecord
from .repositories import inspection_store
from .school_calendar import CalendarProvider, get_calendar_provider

logger = logging.getLogger(__name__)

ABSENTEEISM_CODE = "W-1"
INCIDENT_CODES = ("W-2", "W-3", "W-4")
INDICATOR_CODES = (ABSENTEEISM_CODE,) + INCIDENT_CODES
NARRATIVE_CODE = "W-5"

WARNING_PASS_RATE = 0.7
EXCELLENT_PASS_RATE = 0.9
LOW_CONFIDENCE_RECORDS = 5
MEDIUM_CONFIDENCE_RECORDS = 10

Grade = Literal["A", "B", "C"]


class WeeklyGradeSuggestion(BaseModel):
    grade: Grade
    reason: str
    reasons: List[str] = Field(default_factory=list)
    confidence: ConfidenceLevel
    pass_rate: int
    daily_records: int
    weekly_indicators_filled: int


def _confidence(total: int, indicators_filled: int) -> ConfidenceLevel:
    level: ConfidenceLevel = "high"
    if total < LOW_CONFIDENCE_RECORDS:
        level = "low"
    elif total < MEDIUM_CONFIDENCE_RECORDS:
        level = "medium"
    if indicators_filled < len(INDICATOR_CODES):
        level = "medium" if level == "high" else "low"
    return level


def suggest_weekly_grade(
    daily_records: Sequence[DailyCheckRecord],
    weekly_records: Iterable[WeeklyCheckRecord],
) -> WeeklyGradeSuggestion:
    """Classify a week. C is checked first, then A; B is the fallback.

    Every condition that fires is listed in ``reasons`` so the grade can be
    audited, not only the first one.
    """
    total = len(daily_records)
    passed = sum(1 for record in daily_records if record.passed is True)
    pass_rate = passed / total if total else 0.0
    percent = round(pass_rate * 100)

    failures = [record for record in daily_records if record.passed is False]
    serious = sum(1 for record in failures if record.severity == "serious")
    moderate = sum(1 for record in failures if record.severity == "moderate")

    indicators = {
        record.code: record.option_value
        for record in weekly_records
        if record.code in INDICATOR_CODES
    }
    absenteeism = indicators.get(ABSENTEEISM_CODE)
    incidents = [indicators.get(code) for code in INCIDENT_CODES]
    absenteeism_severe = absenteeism == "gte2"
    absenteeism_issue = absenteeism in ("1", "gte2")
    incident_severe = "gte2" in incidents
    incident_minor = "1" in incidents
    filled = sum(1 for value in indicators.values() if value is not None)
    confidence = _confidence(total, filled)

    def _result(grade: Grade, reasons: List[str], reason: str) -> WeeklyGradeSuggestion:
        return WeeklyGradeSuggestion(
            grade=grade,
            reason=reason,
            reasons=reasons,
            confidence=confidence,
            pass_rate=percent,
            daily_records=total,
            weekly_indicators_filled=filled,
        )

    warning: List[str] = []
    if serious >= 1:
        warning.append(f"{serious} serious daily non-compliance")
    if incident_severe:
        warning.append("an incident indicator reached 2 or more")
    if absenteeism_severe:
        warning.append("outdoor-activity absence reached 2 or more")
    if pass_rate < WARNING_PASS_RATE:
        warning.append(f"pass rate {percent}% is below {round(WARNING_PASS_RATE * 100)}%")
    if warning:
        return _result("C", warning, "; ".join(warning))

    if (
        pass_rate >= EXCELLENT_PASS_RATE
        and not incident_minor
        and not absenteeism_issue
        and moderate == 0
    ):
        reason = f"excellent week: pass rate {percent}% with no incidents"
        return _result("A", [reason], reason)

    details: List[str] = []
    if pass_rate < EXCELLENT_PASS_RATE:
        details.append(f"pass rate {percent}% is below {round(EXCELLENT_PASS_RATE * 100)}%")
    if incident_minor or absenteeism_issue:
        details.append("a weekly indicator recorded one incident")
    if moderate > 0:
        details.append(f"{moderate} moderate daily non-compliance")
    if details:
        return _result("B", details, f"stable: {', '.join(details)}")
    return _result("B", [], "stable week")


def suggest_weekly_grade_for_class(
    class_id: str,
    week_number: int,
    *,
    calendar_provider: Optional[CalendarProvider] = None,
) -> WeeklyGradeSuggestion:
    """Grade ``class_id`` for a calendar week using stored daily and weekly records."""
    week = (calendar_provider or get_calendar_provider()).require_week(week_number)
    with session_scope(commit=False) as session:
        daily = inspection_store.daily_records(
            session,
            start=week.start_date,
            before=week.end_date + timedelta(days=1),
            class_id=class_id,
        )
        weekly = inspection_store.weekly_records(
            session,
            class_id=class_id,
            week_friday=week.friday,
            exclude_codes=(NARRATIVE_CODE,),
        )
    suggestion = suggest_weekly_grade(daily, weekly)
    logger.debug("Week %s grade for class %s: %s (%s)", week.week, class_id, suggestion.grade, suggestion.confidence)
    return suggestion


__all__ = [
    "ABSENTEEISM_CODE",
    "INCIDENT_CODES",
    "WeeklyGradeSuggestion",
    "suggest_weekly_grade",
    "suggest_weekly_grade_for_class",
]
