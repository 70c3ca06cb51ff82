"""Domain models shared by the scheduling, suggestion and grading rules."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


CheckModule = Literal["DAILY", "WEEKLY"]
PlanCategory = Literal["resident", "rotating"]
Severity = Literal["minor", "moderate", "serious"]
WeeklyOption = Literal["0", "1", "gte2"]
ConfidenceLevel = Literal["low", "medium", "high"]


class CheckItem(BaseModel):
    id: str
    code: Optional[str] = None
    title: str = ""
    module: CheckModule = "DAILY"
    plan_category: PlanCategory = "rotating"
    is_dynamic: bool = False
    dynamic_date: Optional[date] = None
    is_active: bool = True
    sort_order: int = 0
    created_at: Optional[datetime] = None

    @property
    def is_resident(self) -> bool:
        return self.plan_category == "resident"

    @property
    def group_key(self) -> str:
        """Statistical grouping key: the stable code, or the id for uncoded items."""
        return self.code or self.id

    @property
    def display_code(self) -> str:
        return self.code or "?"


class DailyCheckRecord(BaseModel):
    check_item_id: str
    code: Optional[str] = None
    record_date: date
    passed: Optional[bool] = None
    severity: Optional[Severity] = None


class WeeklyCheckRecord(BaseModel):
    code: Optional[str] = None
    option_value: Optional[WeeklyOption] = None


class PlanInclusion(BaseModel):
    """One check item's appearance in one daily plan."""

    check_item_id: str
    plan_date: date


class PlannedDay(BaseModel):
    plan_date: date
    item_ids: List[str] = Field(default_factory=list)
    codes: List[str] = Field(default_factory=list)


__all__ = [
    "CheckItem",
    "CheckModule",
    "ConfidenceLevel",
    "DailyCheckRecord",
    "PlanCategory",
    "PlanInclusion",
    "PlannedDay",
    "Severity",
    "WeeklyCheckRecord",
    "WeeklyOption",
]
