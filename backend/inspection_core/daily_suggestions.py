"""Rule-based ranking of rotating daily check items for a given day.

score = fail_rate * 0.35 + min(days_since_planned / 14, 1) * 0.40 + rotation

``rotation`` is ``deterministic_random("{date}-{code}") * 0.25``: stable for a
day, different across days. Nothing here calls a model or the network.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from .db import session_scope
from .deterministic import deterministic_random, rotation_seed
from .records import CheckItem, DailyCheckRecord, PlanInclusion
from .repositories import inspection_store
from .timeutils import previous_weekdays, school_today

logger = logging.getLogger(__name__)

LOOKBACK_WEEKDAYS = 30
NEVER_PLANNED_DAYS = 30
STALENESS_HORIZON_DAYS = 14
FAIL_RATE_WEIGHT = 0.35
STALENESS_WEIGHT = 0.40
ROTATION_WEIGHT = 0.25
RECOMMEND_THRESHOLD = 0.3
TOP_N = 3
LOW_DATA_RECORDS = 20
HIGH_FAIL_RATE = 0.30
WATCH_FAIL_RATE = 0.15
STALE_NOTICE_DAYS = 5


class ItemSuggestion(BaseModel):
    check_item_id: str
    code: Optional[str] = None
    title: str
    score: float
    fail_rate: int
    days_since_last_planned: int
    reasons: List[str] = Field(default_factory=list)
    recommended: bool = False


class DailySuggestions(BaseModel):
    target_date: date
    suggestions: List[ItemSuggestion] = Field(default_factory=list)
    recommended: List[ItemSuggestion] = Field(default_factory=list)
    data_points: int = 0
    message: str
    source: Literal["rule"] = "rule"


def rotation_term(target_date: date, code: str) -> float:
    return deterministic_random(rotation_seed(target_date.isoformat(), code)) * ROTATION_WEIGHT


def _reasons(fail_rate: float, days_since: int, has_records: bool) -> List[str]:
    reasons: List[str] = []
    percent = round(fail_rate * 100)
    if fail_rate >= HIGH_FAIL_RATE:
        reasons.append(f"needs attention: fail rate {percent}%")
    elif fail_rate >= WATCH_FAIL_RATE:
        reasons.append(f"watch: fail rate {percent}%")
    if days_since >= STALE_NOTICE_DAYS:
        reasons.append(f"not checked in {days_since} days")
    if not reasons:
        if has_records:
            reasons.append(f"stable (pass rate {round((1 - fail_rate) * 100)}%)")
        else:
            reasons.append("insufficient data; keep in rotation")
    return reasons


def rank_daily_items(
    target_date: date,
    items: Sequence[CheckItem],
    records: Iterable[DailyCheckRecord],
    plan_dates: Iterable[PlanInclusion],
) -> DailySuggestions:
    """Score ``items`` for ``target_date`` from window-restricted history.

    ``records`` and ``plan_dates`` must already be limited to the lookback
    window; only active, rotating, non-dynamic daily items are ranked.
    """
    candidates = [
        item
        for item in items
        if item.module == "DAILY" and item.is_active and not item.is_dynamic and not item.is_resident
    ]

    record_list = list(records)
    stats: Dict[str, List[int]] = {}
    for record in record_list:
        bucket = stats.setdefault(record.code or record.check_item_id, [0, 0])
        bucket[0] += 1
        if record.passed is False:
            bucket[1] += 1

    last_planned: Dict[str, date] = {}
    for inclusion in plan_dates:
        previous = last_planned.get(inclusion.check_item_id)
        if previous is None or inclusion.plan_date > previous:
            last_planned[inclusion.check_item_id] = inclusion.plan_date

    suggestions: List[tuple[float, ItemSuggestion]] = []
    for item in candidates:
        total, failed = stats.get(item.group_key, (0, 0))
        fail_rate = failed / total if total else 0.0
        last = last_planned.get(item.id)
        days_since = NEVER_PLANNED_DAYS if last is None else max(0, (target_date - last).days)
        staleness = min(days_since / STALENESS_HORIZON_DAYS, 1.0)
        score = (
            fail_rate * FAIL_RATE_WEIGHT
            + staleness * STALENESS_WEIGHT
            + rotation_term(target_date, item.group_key)
        )
        suggestions.append(
            (
                score,
                ItemSuggestion(
                    check_item_id=item.id,
                    code=item.code,
                    title=item.title,
                    score=round(score, 3),
                    fail_rate=round(fail_rate * 100),
                    days_since_last_planned=days_since,
                    reasons=_reasons(fail_rate, days_since, total > 0),
                    recommended=score > RECOMMEND_THRESHOLD,
                ),
            )
        )

    suggestions.sort(key=lambda pair: (-pair[0], pair[1].code or pair[1].check_item_id))
    ranked = [suggestion for _, suggestion in suggestions]

    data_points = len(record_list)
    if not ranked:
        message = "No active rotating daily check items are available."
    elif data_points < LOW_DATA_RECORDS:
        message = (
            f"Only {data_points} check records in the last {LOOKBACK_WEEKDAYS} school days; "
            "suggestions rely mostly on rotation."
        )
    else:
        message = f"Based on {data_points} check records from the last {LOOKBACK_WEEKDAYS} school days."

    return DailySuggestions(
        target_date=target_date,
        suggestions=ranked,
        recommended=ranked[:TOP_N],
        data_points=data_points,
        message=message,
    )


def suggest_daily_items(target_date: Optional[date] = None, *, now: Optional[datetime] = None) -> DailySuggestions:
    """Load the lookback window from storage and rank items for ``target_date`` (default: today)."""
    day = target_date or school_today(now)
    window_start = previous_weekdays(day, LOOKBACK_WEEKDAYS)[-1]
    with session_scope(commit=False) as session:
        items = inspection_store.list_daily_items(session)
        records = inspection_store.daily_records(session, start=window_start, before=day)
        inclusions = inspection_store.inclusions(session, start=window_start, before=day, any_scope=True)
    logger.debug(
        "Ranking %d daily items for %s from %d records since %s",
        len(items),
        day,
        len(records),
        window_start,
    )
    return rank_daily_items(day, items, records, inclusions)


__all__ = [
    "DailySuggestions",
    "ItemSuggestion",
    "rank_daily_items",
    "rotation_term",
    "suggest_daily_items",
]
