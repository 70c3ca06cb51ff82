"""Semester coverage scheduling for daily check items.

Resident items go into every plan. Rotating items fill the remaining slots
greedily: fewest inclusions since the semester started, then the longest
idle, then the item code. The greedy pass never draws random numbers, so
regenerating the same day over the same history returns the same item set.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .config import get_settings
from .db import session_scope
from .records import CheckItem, ConfidenceLevel, DailyCheckRecord, PlannedDay
from .repositories import InspectionRepository, inspection_store
from .school_calendar import CalendarProvider, SchoolWeek, get_calendar_provider
from .telemetry import EventName, emit_event
from .timeutils import school_today

logger = logging.getLogger(__name__)

RECENT_FAIL_WINDOW_DAYS = 14
ADJUST_WINDOW_DAYS = 30
ADJUST_MIN_RECORDS = 10
PROMOTE_FAIL_RATE = 0.25
DEMOTE_FAIL_RATE = 0.05
MAX_RESIDENT_ITEMS = 3
MIN_FORCED_GAP_WEEKS = 4
STALE_WEEKS_NOTICE = 3
RECENT_FAIL_NOTICE = 0.15

_WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


class InvalidWeekRangeError(ValueError):
    """Requested week numbers are reversed or outside the loaded calendar."""


class EmptySelectionError(ValueError):
    """A manual week plan was confirmed without any check items."""


class UnknownCheckItemError(LookupError):
    """A manual week plan referenced check items that do not exist."""


class ItemSummary(BaseModel):
    code: Optional[str] = None
    title: str


class ScheduleResult(BaseModel):
    generated: int = 0
    skipped: int = 0
    resident: List[ItemSummary] = Field(default_factory=list)
    days: List[PlannedDay] = Field(default_factory=list)


class ConfirmResult(BaseModel):
    week: int
    generated: int
    item_ids: List[str] = Field(default_factory=list)


class RecommendedItem(BaseModel):
    id: str
    code: Optional[str] = None
    title: str
    is_resident: bool
    score: float
    fail_rate: float = 0.0
    weeks_since_last: Optional[int] = None
    forced: bool = False
    reasons: List[str] = Field(default_factory=list)


class Deviation(BaseModel):
    code: str
    type: Literal["added", "removed"]
    reason: str


class WeekRecommendation(BaseModel):
    week_number: int
    recommended: List[RecommendedItem] = Field(default_factory=list)
    baseline: List[str] = Field(default_factory=list)
    baseline_source: Literal["plan", "projected"] = "projected"
    deviations: List[Deviation] = Field(default_factory=list)
    data_points: int = 0
    data_confidence: ConfidenceLevel = "low"


class AdjustSuggestion(BaseModel):
    type: Literal["promote", "demote"]
    item_id: str
    code: str
    title: str
    reason: str
    fail_rate: int
    record_count: int


class WeekOverview(BaseModel):
    week: int
    label: str
    date_range: str
    days: int
    items: List[str] = Field(default_factory=list)
    resident_codes: List[str] = Field(default_factory=list)
    planned_days: int = 0
    generated: bool = False
    note: Optional[str] = None


class CalendarSummary(BaseModel):
    semester: str
    semester_name: str
    start_date: date
    end_date: date


class ScheduleOverview(BaseModel):
    calendar: CalendarSummary
    resident: List[ItemSummary] = Field(default_factory=list)
    weeks: List[WeekOverview] = Field(default_factory=list)
    total_days: int = 0
    generated_days: int = 0
    current_week: Optional[int] = None


class PlanEntry(BaseModel):
    code: Optional[str] = None
    title: str
    is_resident: bool


class DayPlan(BaseModel):
    id: str
    items: List[PlanEntry] = Field(default_factory=list)


class WeekDayPlan(BaseModel):
    plan_date: date
    weekday: str
    week: int
    plan: Optional[DayPlan] = None
    source: Literal["generated", "none"] = "none"


def select_daily_items(
    day: date,
    residents: Sequence[CheckItem],
    rotating: Sequence[CheckItem],
    history: Mapping[date, Sequence[str]],
    *,
    target: int,
    since: Optional[date] = None,
) -> List[CheckItem]:
    """Pick the item set for ``day`` given prior plans in ``history``.

    ``history`` maps plan dates to the item ids planned that day; only dates in
    ``[since, day)`` count. Residents are always kept, even past ``target``.
    """
    counts: Dict[str, int] = {}
    last_seen: Dict[str, date] = {}
    for plan_date, item_ids in history.items():
        if plan_date >= day or (since is not None and plan_date < since):
            continue
        for item_id in item_ids:
            counts[item_id] = counts.get(item_id, 0) + 1
            previous = last_seen.get(item_id)
            if previous is None or plan_date > previous:
                last_seen[item_id] = plan_date

    slots = max(0, target - len(residents))
    ranked = sorted(
        rotating,
        key=lambda item: (
            counts.get(item.id, 0),
            last_seen.get(item.id, date.min),
            item.group_key,
            item.id,
        ),
    )
    return list(residents) + ranked[:slots]


def split_categories(items: Iterable[CheckItem]) -> Tuple[List[CheckItem], List[CheckItem]]:
    residents: List[CheckItem] = []
    rotating: List[CheckItem] = []
    for item in items:
        (residents if item.is_resident else rotating).append(item)
    return residents, rotating


def _fail_rates(records: Iterable[DailyCheckRecord]) -> Dict[str, Tuple[int, int]]:
    """Map item id to ``(total, failed)`` over records that carry a pass/fail result."""
    stats: Dict[str, Tuple[int, int]] = {}
    for record in records:
        if record.passed is None:
            continue
        total, failed = stats.get(record.check_item_id, (0, 0))
        stats[record.check_item_id] = (total + 1, failed + (0 if record.passed else 1))
    return stats


def _date_range_label(week: SchoolWeek) -> str:
    return f"{week.start_date.month}/{week.start_date.day}~{week.end_date.month}/{week.end_date.day}"


class CoverageScheduler:
    """Builds and inspects daily plans over the loaded semester calendar."""

    def __init__(
        self,
        *,
        calendar_provider: Optional[CalendarProvider] = None,
        repository: Optional[InspectionRepository] = None,
        daily_item_target: Optional[int] = None,
    ) -> None:
        self._calendar_provider = calendar_provider
        self._repository = repository or inspection_store
        self._daily_item_target = daily_item_target

    @property
    def calendar(self) -> CalendarProvider:
        return self._calendar_provider or get_calendar_provider()

    @property
    def daily_item_target(self) -> int:
        if self._daily_item_target is not None:
            return self._daily_item_target
        return get_settings().daily_item_target

    # -- mutations -------------------------------------------------------

    def generate_schedule(
        self,
        from_week: int,
        to_week: int,
        actor_id: Optional[str],
        *,
        target_grade: Optional[int] = None,
        force: bool = False,
    ) -> ScheduleResult:
        provider = self.calendar
        self._validate_range(provider, from_week, to_week)
        days = provider.school_days(from_week, to_week)
        semester_start = provider.calendar.start_date
        target = self.daily_item_target

        start = time.perf_counter()
        try:
            with session_scope() as session:
                residents, rotating = self._eligible_items(session)
                result = ScheduleResult(resident=[ItemSummary(code=item.code, title=item.title) for item in residents])
                if days:
                    history = self._history(session, since=semester_start, before=days[-1], target_grade=target_grade)
                    existing = self._repository.plans_by_date(session, days, target_grade=target_grade)
                    for day in days:
                        plan = existing.get(day)
                        if plan is not None and not force:
                            result.skipped += 1
                            history[day] = [entry.check_item_id for entry in plan.items]
                            continue
                        selection = select_daily_items(
                            day,
                            residents,
                            rotating,
                            history,
                            target=target,
                            since=semester_start,
                        )
                        item_ids = [item.id for item in selection]
                        self._repository.replace_plan(
                            session,
                            day,
                            item_ids,
                            actor_id=actor_id,
                            target_grade=target_grade,
                        )
                        history[day] = item_ids
                        result.generated += 1
                        result.days.append(
                            PlannedDay(
                                plan_date=day,
                                item_ids=item_ids,
                                codes=[item.display_code for item in selection],
                            )
                        )
                self._repository.record_audit(
                    session,
                    EventName.SCHEDULE_GENERATED,
                    actor_id,
                    {
                        "from_week": from_week,
                        "to_week": to_week,
                        "target_grade": target_grade,
                        "force": force,
                        "generated": result.generated,
                        "skipped": result.skipped,
                    },
                )
        except Exception as exc:  # noqa: BLE001
            emit_event(
                EventName.SCHEDULE_GENERATED,
                status="error",
                from_week=from_week,
                to_week=to_week,
                duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
                error=str(exc),
                exception_type=exc.__class__.__name__,
            )
            logger.exception("Schedule generation failed for weeks %s-%s", from_week, to_week)
            raise

        emit_event(
            EventName.SCHEDULE_GENERATED,
            status="success",
            actor=actor_id,
            from_week=from_week,
            to_week=to_week,
            target_grade=target_grade,
            force=force,
            generated=result.generated,
            skipped=result.skipped,
            duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
        )
        return result

    def confirm_week_plan(
        self,
        week_number: int,
        check_item_ids: Sequence[str],
        actor_id: Optional[str],
        *,
        target_grade: Optional[int] = None,
    ) -> ConfirmResult:
        """Pin ``check_item_ids`` (in order, duplicates dropped) on every school day of the week."""
        week = self.calendar.require_week(week_number)
        item_ids = list(dict.fromkeys(check_item_ids))
        if not item_ids:
            raise EmptySelectionError("At least one check item must be selected.")

        with session_scope() as session:
            known = self._repository.get_items(session, item_ids)
            missing = [item_id for item_id in item_ids if item_id not in known]
            if missing:
                raise UnknownCheckItemError(f"Unknown check items: {', '.join(missing)}")
            for day in week.school_days:
                self._repository.replace_plan(
                    session,
                    day,
                    item_ids,
                    actor_id=actor_id,
                    target_grade=target_grade,
                )
            self._repository.record_audit(
                session,
                EventName.WEEK_PLAN_CONFIRMED,
                actor_id,
                {"week": week.week, "target_grade": target_grade, "item_ids": item_ids},
            )

        emit_event(
            EventName.WEEK_PLAN_CONFIRMED,
            actor=actor_id,
            week=week.week,
            target_grade=target_grade,
            item_count=len(item_ids),
            generated=len(week.school_days),
        )
        return ConfirmResult(week=week.week, generated=len(week.school_days), item_ids=item_ids)

    def ensure_week_plan(self, day: date, actor_id: Optional[str] = "system") -> bool:
        """Fill the whole-school plans for ``day``'s week when none exist yet.

        Returns ``False`` when the date is outside the calendar, when any day of
        that week already has a plan, or when there are no eligible items.
        """
        provider = self.calendar
        week = provider.week_by_date(day)
        if week is None or not week.school_days:
            return False

        with session_scope() as session:
            if self._repository.plans_by_date(session, week.school_days):
                return False
            residents, rotating = self._eligible_items(session)
            if not residents and not rotating:
                return False
            semester_start = provider.calendar.start_date
            history = self._history(session, since=semester_start, before=week.school_days[0])
            for school_day in week.school_days:
                selection = select_daily_items(
                    school_day,
                    residents,
                    rotating,
                    history,
                    target=self.daily_item_target,
                    since=semester_start,
                )
                item_ids = [item.id for item in selection]
                self._repository.replace_plan(session, school_day, item_ids, actor_id=actor_id)
                history[school_day] = item_ids
            self._repository.record_audit(session, EventName.WEEK_PLAN_ENSURED, actor_id, {"week": week.week})

        emit_event(EventName.WEEK_PLAN_ENSURED, actor=actor_id, week=week.week, days=len(week.school_days))
        return True

    # -- read-only views -------------------------------------------------

    def get_week_recommendation(self, week_number: int, *, as_of: Optional[datetime] = None) -> WeekRecommendation:
        provider = self.calendar
        week = provider.require_week(week_number)
        today = school_today(as_of)
        target = self.daily_item_target

        with session_scope(commit=False) as session:
            residents, rotating = self._eligible_items(session)
            records = self._repository.daily_records(
                session,
                start=today - timedelta(days=RECENT_FAIL_WINDOW_DAYS),
                before=today + timedelta(days=1),
            )
            inclusions = self._repository.inclusions(session, before=today + timedelta(days=1))
            baseline_source: Literal["plan", "projected"] = "projected"
            baseline_ids: List[str] = []
            if week.school_days:
                first_day = week.school_days[0]
                plan = self._repository.get_plan(session, first_day)
                if plan is not None:
                    baseline_source = "plan"
                    baseline_ids = [entry.check_item_id for entry in plan.items]
                else:
                    semester_start = provider.calendar.start_date
                    history = self._history(session, since=semester_start, before=first_day)
                    projected = select_daily_items(
                        first_day, residents, rotating, history, target=target, since=semester_start
                    )
                    baseline_ids = [item.id for item in projected]
            known = self._repository.get_items(session, baseline_ids)

        stats = _fail_rates(records)
        last_planned: Dict[str, date] = {}
        for inclusion in inclusions:
            previous = last_planned.get(inclusion.check_item_id)
            if previous is None or inclusion.plan_date > previous:
                last_planned[inclusion.check_item_id] = inclusion.plan_date

        slots = max(1, target - len(residents))
        max_gap = max(MIN_FORCED_GAP_WEEKS, math.ceil(len(rotating) / slots) * 2)

        scored: List[RecommendedItem] = []
        for item in rotating:
            total, failed = stats.get(item.id, (0, 0))
            fail_rate = failed / total if total else 0.0
            last = last_planned.get(item.id)
            weeks_since = len(rotating) + 1 if last is None else max(0, (today - last).days // 7)
            forced = weeks_since >= max_gap
            reasons: List[str] = []
            if forced:
                reasons.append(f"not checked for {weeks_since} weeks; coverage required")
            elif weeks_since >= STALE_WEEKS_NOTICE:
                reasons.append(f"not checked for {weeks_since} weeks")
            if fail_rate > RECENT_FAIL_NOTICE:
                reasons.append(f"fail rate {round(fail_rate * 100)}% over the last two weeks")
            if not reasons:
                reasons.append("balanced rotation")
            scored.append(
                RecommendedItem(
                    id=item.id,
                    code=item.code,
                    title=item.title,
                    is_resident=False,
                    score=0.0,
                    fail_rate=round(fail_rate, 4),
                    weeks_since_last=weeks_since,
                    forced=forced,
                    reasons=reasons,
                )
            )

        scored.sort(
            key=lambda entry: (
                not entry.forced,
                -round(entry.fail_rate, 2),
                -(entry.weeks_since_last or 0),
                entry.code or entry.id,
            )
        )
        selected = scored[:slots]
        for index, entry in enumerate(selected):
            entry.score = round(1 - index * 0.1, 2)

        recommended = [
            RecommendedItem(
                id=item.id,
                code=item.code,
                title=item.title,
                is_resident=True,
                score=1.0,
                reasons=["resident item"],
            )
            for item in residents
        ] + selected

        resident_ids = {item.id for item in residents}
        baseline_codes = [known[item_id].display_code for item_id in baseline_ids if item_id in known]
        baseline_set = set(baseline_ids)
        recommended_ids = {entry.id for entry in recommended}
        deviations: List[Deviation] = []
        for entry in selected:
            if entry.code and entry.id not in baseline_set:
                deviations.append(Deviation(code=entry.code, type="added", reason=entry.reasons[0]))
        for item_id in baseline_ids:
            baseline_item = known.get(item_id)
            if baseline_item is None or item_id in recommended_ids or item_id in resident_ids:
                continue
            if baseline_item.is_resident or not baseline_item.code:
                continue
            deviations.append(
                Deviation(
                    code=baseline_item.code,
                    type="removed",
                    reason="recently stable; yields its slot to items needing more attention",
                )
            )

        data_points = sum(total for total, _ in stats.values())
        confidence: ConfidenceLevel = "high" if data_points >= 30 else "medium" if data_points >= 10 else "low"
        return WeekRecommendation(
            week_number=week.week,
            recommended=recommended,
            baseline=baseline_codes,
            baseline_source=baseline_source,
            deviations=deviations,
            data_points=data_points,
            data_confidence=confidence,
        )

    def get_adjust_suggestions(self, *, as_of: Optional[datetime] = None) -> List[AdjustSuggestion]:
        """Suggest promoting chronically failing rotating items and demoting spotless residents."""
        today = school_today(as_of)
        with session_scope(commit=False) as session:
            residents, rotating = self._eligible_items(session)
            records = self._repository.daily_records(
                session,
                start=today - timedelta(days=ADJUST_WINDOW_DAYS),
                before=today + timedelta(days=1),
            )
        stats = _fail_rates(records)
        suggestions: List[AdjustSuggestion] = []

        if len(residents) < MAX_RESIDENT_ITEMS:
            for item in rotating:
                total, failed = stats.get(item.id, (0, 0))
                if total < ADJUST_MIN_RECORDS:
                    continue
                fail_rate = failed / total
                if fail_rate > PROMOTE_FAIL_RATE:
                    percent = round(fail_rate * 100)
                    suggestions.append(
                        AdjustSuggestion(
                            type="promote",
                            item_id=item.id,
                            code=item.display_code,
                            title=item.title,
                            reason=f"fail rate {percent}% over the last 30 days; consider making it resident",
                            fail_rate=percent,
                            record_count=total,
                        )
                    )

        for item in residents:
            total, failed = stats.get(item.id, (0, 0))
            if total < ADJUST_MIN_RECORDS:
                continue
            fail_rate = failed / total
            if fail_rate < DEMOTE_FAIL_RATE:
                percent = round(fail_rate * 100)
                suggestions.append(
                    AdjustSuggestion(
                        type="demote",
                        item_id=item.id,
                        code=item.display_code,
                        title=item.title,
                        reason=f"fail rate only {percent}% over the last 30 days; it can move back to rotation",
                        fail_rate=percent,
                        record_count=total,
                    )
                )
        return suggestions

    def get_schedule_overview(self, *, as_of: Optional[datetime] = None) -> ScheduleOverview:
        provider = self.calendar
        calendar = provider.calendar
        all_days = [day for week in calendar.weeks for day in week.school_days]
        with session_scope(commit=False) as session:
            residents, _ = self._eligible_items(session)
            plans = self._repository.plans_by_date(session, all_days)
            plan_codes = {
                plan_date: [entry.check_item.code for entry in plan.items if entry.check_item.code]
                for plan_date, plan in plans.items()
            }

        resident_codes = [item.display_code for item in residents]
        overview = ScheduleOverview(
            calendar=CalendarSummary(
                semester=calendar.semester,
                semester_name=calendar.semester_name,
                start_date=calendar.start_date,
                end_date=calendar.end_date,
            ),
            resident=[ItemSummary(code=item.code, title=item.title) for item in residents],
        )
        for week in calendar.weeks:
            planned = [day for day in week.school_days if day in plan_codes]
            overview.total_days += len(week.school_days)
            overview.generated_days += len(planned)
            overview.weeks.append(
                WeekOverview(
                    week=week.week,
                    label=week.label,
                    date_range=_date_range_label(week),
                    days=len(week.school_days),
                    items=plan_codes[planned[0]] if planned else [],
                    resident_codes=resident_codes,
                    planned_days=len(planned),
                    generated=bool(week.school_days) and len(planned) == len(week.school_days),
                    note=week.note,
                )
            )
        current = provider.current_week(as_of)
        overview.current_week = current.week if current else None
        return overview

    def get_week_plans(self, week_numbers: Iterable[int]) -> List[WeekDayPlan]:
        wanted = set(week_numbers)
        weeks = [week for week in self.calendar.weeks if week.week in wanted]
        all_days = [day for week in weeks for day in week.school_days]
        with session_scope(commit=False) as session:
            residents, _ = self._eligible_items(session)
            resident_ids = {item.id for item in residents}
            plans = self._repository.plans_by_date(session, all_days)
            result: List[WeekDayPlan] = []
            for week in weeks:
                for day in week.school_days:
                    plan = plans.get(day)
                    result.append(
                        WeekDayPlan(
                            plan_date=day,
                            weekday=_WEEKDAY_LABELS[day.weekday()],
                            week=week.week,
                            plan=(
                                DayPlan(
                                    id=plan.id,
                                    items=[
                                        PlanEntry(
                                            code=entry.check_item.code,
                                            title=entry.check_item.title,
                                            is_resident=entry.check_item_id in resident_ids,
                                        )
                                        for entry in plan.items
                                    ],
                                )
                                if plan is not None
                                else None
                            ),
                            source="generated" if plan is not None else "none",
                        )
                    )
        return result

    # -- helpers ---------------------------------------------------------

    @staticmethod
    def _validate_range(provider: CalendarProvider, from_week: int, to_week: int) -> None:
        count = provider.week_count
        if from_week > to_week:
            raise InvalidWeekRangeError(f"from_week ({from_week}) must not exceed to_week ({to_week}).")
        if from_week < 1 or to_week > count:
            raise InvalidWeekRangeError(f"Week range {from_week}-{to_week} is outside the calendar (1-{count}).")

    def _eligible_items(self, session: Session) -> Tuple[List[CheckItem], List[CheckItem]]:
        items = self._repository.list_daily_items(session, include_inactive=True)
        retired = [item.display_code for item in items if item.is_resident and not item.is_active]
        if retired:
            logger.warning("Inactive resident check items omitted from scheduling: %s", ", ".join(retired))
        return split_categories(item for item in items if item.is_active)

    def _history(
        self,
        session: Session,
        *,
        since: date,
        before: date,
        target_grade: Optional[int] = None,
    ) -> Dict[date, List[str]]:
        history: Dict[date, List[str]] = {}
        for inclusion in self._repository.inclusions(
            session, start=since, before=before, target_grade=target_grade
        ):
            history.setdefault(inclusion.plan_date, []).append(inclusion.check_item_id)
        return history


scheduler = CoverageScheduler()


def generate_schedule(
    from_week: int,
    to_week: int,
    actor_id: Optional[str],
    *,
    target_grade: Optional[int] = None,
    force: bool = False,
) -> ScheduleResult:
    return scheduler.generate_schedule(from_week, to_week, actor_id, target_grade=target_grade, force=force)


def confirm_week_plan(
    week_number: int,
    check_item_ids: Sequence[str],
    actor_id: Optional[str],
    *,
    target_grade: Optional[int] = None,
) -> ConfirmResult:
    return scheduler.confirm_week_plan(week_number, check_item_ids, actor_id, target_grade=target_grade)


def ensure_week_plan(day: date, actor_id: Optional[str] = "system") -> bool:
    return scheduler.ensure_week_plan(day, actor_id)


def get_week_recommendation(week_number: int, *, as_of: Optional[datetime] = None) -> WeekRecommendation:
    return scheduler.get_week_recommendation(week_number, as_of=as_of)


def get_adjust_suggestions(*, as_of: Optional[datetime] = None) -> List[AdjustSuggestion]:
    return scheduler.get_adjust_suggestions(as_of=as_of)


def get_schedule_overview(*, as_of: Optional[datetime] = None) -> ScheduleOverview:
    return scheduler.get_schedule_overview(as_of=as_of)


def get_week_plans(week_numbers: Iterable[int]) -> List[WeekDayPlan]:
    return scheduler.get_week_plans(week_numbers)


__all__ = [
    "AdjustSuggestion",
    "ConfirmResult",
    "CoverageScheduler",
    "EmptySelectionError",
    "InvalidWeekRangeError",
    "ScheduleOverview",
    "ScheduleResult",
    "UnknownCheckItemError",
    "WeekDayPlan",
    "WeekRecommendation",
    "confirm_week_plan",
    "ensure_week_plan",
    "generate_schedule",
    "get_adjust_suggestions",
    "get_schedule_overview",
    "get_week_plans",
    "get_week_recommendation",
    "scheduler",
    "select_daily_items",
    "split_categories",
]
