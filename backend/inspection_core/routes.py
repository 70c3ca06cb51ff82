"""REST endpoints over the scheduling, suggestion, grading and deadline rules."""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from .coverage_scheduler import (
    AdjustSuggestion,
    ConfirmResult,
    EmptySelectionError,
    InvalidWeekRangeError,
    ScheduleOverview,
    ScheduleResult,
    UnknownCheckItemError,
    WeekDayPlan,
    WeekRecommendation,
    confirm_week_plan,
    generate_schedule,
    get_adjust_suggestions,
    get_schedule_overview,
    get_week_plans,
    get_week_recommendation,
)
from .daily_suggestions import DailySuggestions, suggest_daily_items
from .deadline import DeadlinePassedError, DeadlineResult, Locale, RecordKind, check_deadline, enforce_deadline
from .records import DailyCheckRecord, WeeklyCheckRecord
from .school_calendar import SchoolWeek, WeekNotFoundError, get_calendar_provider
from .weekly_grade import WeeklyGradeSuggestion, suggest_weekly_grade, suggest_weekly_grade_for_class


router = APIRouter(prefix="/api/inspection", tags=["inspection"])
logger = logging.getLogger(__name__)


class GenerateScheduleRequest(BaseModel):
    from_week: int = Field(..., ge=1)
    to_week: int = Field(..., ge=1)
    actor_id: str = Field(..., min_length=1)
    target_grade: Optional[int] = Field(default=None, ge=1)
    force: bool = False


class ConfirmWeekRequest(BaseModel):
    week: int = Field(..., ge=1)
    check_item_ids: List[str] = Field(default_factory=list)
    actor_id: str = Field(..., min_length=1)
    target_grade: Optional[int] = Field(default=None, ge=1)


class WeeklyGradeRequest(BaseModel):
    daily_records: List[DailyCheckRecord] = Field(default_factory=list)
    weekly_records: List[WeeklyCheckRecord] = Field(default_factory=list)


class CurrentWeekPayload(BaseModel):
    semester: str
    week: Optional[SchoolWeek] = None


def _not_found(exc: LookupError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post("/schedule/generate", response_model=ScheduleResult, status_code=status.HTTP_200_OK)
def generate_schedule_endpoint(payload: GenerateScheduleRequest) -> ScheduleResult:
    try:
        return generate_schedule(
            payload.from_week,
            payload.to_week,
            payload.actor_id,
            target_grade=payload.target_grade,
            force=payload.force,
        )
    except InvalidWeekRangeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/schedule/confirm-week", response_model=ConfirmResult, status_code=status.HTTP_200_OK)
def confirm_week_endpoint(payload: ConfirmWeekRequest) -> ConfirmResult:
    try:
        return confirm_week_plan(
            payload.week,
            payload.check_item_ids,
            payload.actor_id,
            target_grade=payload.target_grade,
        )
    except EmptySelectionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (WeekNotFoundError, UnknownCheckItemError) as exc:
        raise _not_found(exc) from exc


@router.get("/schedule/overview", response_model=ScheduleOverview, status_code=status.HTTP_200_OK)
def schedule_overview_endpoint() -> ScheduleOverview:
    return get_schedule_overview()


@router.get(
    "/schedule/week-recommendation",
    response_model=WeekRecommendation,
    status_code=status.HTTP_200_OK,
)
def week_recommendation_endpoint(week: int = Query(..., ge=1)) -> WeekRecommendation:
    try:
        return get_week_recommendation(week)
    except WeekNotFoundError as exc:
        raise _not_found(exc) from exc


@router.get(
    "/schedule/adjust-suggestions",
    response_model=List[AdjustSuggestion],
    status_code=status.HTTP_200_OK,
)
def adjust_suggestions_endpoint() -> List[AdjustSuggestion]:
    return get_adjust_suggestions()


@router.get("/schedule/weeks", response_model=List[WeekDayPlan], status_code=status.HTTP_200_OK)
def week_plans_endpoint(weeks: List[int] = Query(..., description="Week numbers to list")) -> List[WeekDayPlan]:
    return get_week_plans(weeks)


@router.get("/daily-suggestions", response_model=DailySuggestions, status_code=status.HTTP_200_OK)
def daily_suggestions_endpoint(target_date: Optional[date] = Query(default=None, alias="date")) -> DailySuggestions:
    return suggest_daily_items(target_date)


@router.post("/weekly-grade", response_model=WeeklyGradeSuggestion, status_code=status.HTTP_200_OK)
def weekly_grade_endpoint(payload: WeeklyGradeRequest) -> WeeklyGradeSuggestion:
    return suggest_weekly_grade(payload.daily_records, payload.weekly_records)


@router.get(
    "/weekly-grade/{class_id}",
    response_model=WeeklyGradeSuggestion,
    status_code=status.HTTP_200_OK,
)
def class_weekly_grade_endpoint(class_id: str, week: int = Query(..., ge=1)) -> WeeklyGradeSuggestion:
    try:
        return suggest_weekly_grade_for_class(class_id, week)
    except WeekNotFoundError as exc:
        raise _not_found(exc) from exc


@router.get("/deadline", response_model=DeadlineResult, status_code=status.HTTP_200_OK)
def deadline_endpoint(
    kind: RecordKind = Query(...),
    record_date: date = Query(..., alias="date"),
    role: str = Query(..., min_length=1),
    locale: Locale = Query(default="en"),
) -> DeadlineResult:
    return check_deadline(kind, record_date, role, locale=locale)


class DeadlineEnforceRequest(BaseModel):
    kind: RecordKind
    record_date: date
    role: str = Field(..., min_length=1)
    locale: Locale = "en"


@router.post("/deadline/enforce", response_model=DeadlineResult, status_code=status.HTTP_200_OK)
def enforce_deadline_endpoint(payload: DeadlineEnforceRequest) -> DeadlineResult:
    """Pre-flight for write paths: 403 with the computed deadline when the window is closed."""
    try:
        return enforce_deadline(payload.kind, payload.record_date, payload.role, locale=payload.locale)
    except DeadlinePassedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.result.model_dump(mode="json"),
        ) from exc


@router.get("/calendar/current-week", response_model=CurrentWeekPayload, status_code=status.HTTP_200_OK)
def current_week_endpoint() -> CurrentWeekPayload:
    provider = get_calendar_provider()
    return CurrentWeekPayload(semester=provider.calendar.semester, week=provider.current_week())


__all__ = ["router"]
