from __future__ import annotations

from datetime import date, timedelta

import pytest

from inspection_core.daily_suggestions import rank_daily_items, rotation_term, suggest_daily_items
from inspection_core.db import session_scope
from inspection_core.records import CheckItem, DailyCheckRecord, PlanInclusion
from inspection_core.repositories import inspection_store

TARGET = date(2026, 3, 16)


def _records(item: CheckItem, outcomes: list[bool]) -> list[DailyCheckRecord]:
    return [
        DailyCheckRecord(
            check_item_id=item.id,
            code=item.code,
            record_date=TARGET - timedelta(days=index + 1),
            passed=passed,
        )
        for index, passed in enumerate(outcomes)
    ]


def test_rotation_term_is_stable_and_varies_by_date() -> None:
    first = rotation_term(TARGET, "D-3")
    assert rotation_term(TARGET, "D-3") == first
    assert 0.0 <= first < 0.25
    later = [rotation_term(TARGET + timedelta(days=offset), "D-3") for offset in range(1, 6)]
    assert any(value != first for value in later)


def test_score_blends_fail_rate_staleness_and_rotation() -> None:
    fresh = CheckItem(id="fresh", code="D-2")
    never = CheckItem(id="never", code="D-3")
    records = _records(fresh, [False, True, True, True])
    plans = [PlanInclusion(check_item_id="fresh", plan_date=TARGET - timedelta(days=7))]

    result = rank_daily_items(TARGET, [fresh, never], records, plans)

    scores = {entry.code: entry for entry in result.suggestions}
    expected_fresh = 0.25 * 0.35 + 0.5 * 0.40 + rotation_term(TARGET, "D-2")
    expected_never = 0.40 + rotation_term(TARGET, "D-3")
    assert scores["D-2"].score == pytest.approx(round(expected_fresh, 3))
    assert scores["D-3"].score == pytest.approx(round(expected_never, 3))
    assert scores["D-2"].days_since_last_planned == 7
    assert scores["D-3"].days_since_last_planned == 30
    assert scores["D-2"].fail_rate == 25
    assert scores["D-3"].recommended is True


def test_only_active_rotating_fixed_daily_items_are_ranked() -> None:
    items = [
        CheckItem(id="resident", code="D-1", plan_category="resident"),
        CheckItem(id="retired", code="D-2", is_active=False),
        CheckItem(id="adhoc", code="D-8", is_dynamic=True, dynamic_date=TARGET),
        CheckItem(id="weekly", code="W-1", module="WEEKLY"),
        CheckItem(id="rotating", code="D-3"),
    ]

    result = rank_daily_items(TARGET, items, [], [])

    assert [entry.check_item_id for entry in result.suggestions] == ["rotating"]


def test_ranking_orders_by_score_and_caps_recommendations() -> None:
    items = [CheckItem(id=f"item-{index}", code=f"D-{index}") for index in range(2, 8)]
    result = rank_daily_items(TARGET, items, [], [])

    scores = [entry.score for entry in result.suggestions]
    assert scores == sorted(scores, reverse=True)
    assert len(result.recommended) == 3
    assert result.recommended == result.suggestions[:3]
    assert result.source == "rule"


def test_reasons_explain_each_signal() -> None:
    failing = CheckItem(id="failing", code="D-2")
    watch = CheckItem(id="watch", code="D-3")
    steady = CheckItem(id="steady", code="D-4")
    unknown = CheckItem(id="unknown", code="D-5")
    records = (
        _records(failing, [False, False, True, True])
        + _records(watch, [False, True, True, True, True])
        + _records(steady, [True, True, True, True])
    )
    plans = [
        PlanInclusion(check_item_id="failing", plan_date=TARGET - timedelta(days=1)),
        PlanInclusion(check_item_id="watch", plan_date=TARGET - timedelta(days=2)),
        PlanInclusion(check_item_id="steady", plan_date=TARGET - timedelta(days=3)),
        PlanInclusion(check_item_id="unknown", plan_date=TARGET - timedelta(days=4)),
    ]

    result = rank_daily_items(TARGET, [failing, watch, steady, unknown], records, plans)
    reasons = {entry.code: entry.reasons for entry in result.suggestions}

    assert reasons["D-2"] == ["needs attention: fail rate 50%"]
    assert reasons["D-3"] == ["watch: fail rate 20%"]
    assert reasons["D-4"] == ["stable (pass rate 100%)"]
    assert reasons["D-5"] == ["insufficient data; keep in rotation"]


def test_staleness_reason_and_low_data_message() -> None:
    item = CheckItem(id="stale", code="D-2")
    plans = [PlanInclusion(check_item_id="stale", plan_date=TARGET - timedelta(days=6))]

    result = rank_daily_items(TARGET, [item], _records(item, [True] * 3), plans)

    assert result.suggestions[0].reasons == ["not checked in 6 days"]
    assert result.data_points == 3
    assert "Only 3 check records" in result.message


def test_records_are_grouped_by_code() -> None:
    current = CheckItem(id="new-id", code="D-2")
    legacy = [
        DailyCheckRecord(check_item_id="old-id", code="D-2", record_date=TARGET - timedelta(days=1), passed=False),
        DailyCheckRecord(check_item_id="new-id", code="D-2", record_date=TARGET - timedelta(days=2), passed=True),
    ]

    result = rank_daily_items(TARGET, [current], legacy, [])

    assert result.suggestions[0].fail_rate == 50


def test_empty_catalogue_returns_message() -> None:
    result = rank_daily_items(TARGET, [], [], [])
    assert result.suggestions == []
    assert result.recommended == []
    assert "No active rotating" in result.message


def test_suggest_daily_items_is_repeatable(make_item, make_class, make_record) -> None:
    make_item("D-1", category="resident")
    d2 = make_item("D-2")
    d3 = make_item("D-3")
    d4 = make_item("D-4")
    class_id = make_class()
    for offset in range(1, 11):
        day = TARGET - timedelta(days=offset)
        if day.weekday() >= 5:
            continue
        make_record(class_id, d2, day, passed=offset % 2 == 0)
        make_record(class_id, d3, day, passed=True)
    make_record(class_id, d4, TARGET, passed=False)
    with session_scope() as session:
        inspection_store.replace_plan(session, TARGET - timedelta(days=2), [d3], actor_id="seed")
        inspection_store.replace_plan(session, TARGET, [d4], actor_id="seed")

    first = suggest_daily_items(TARGET)
    second = suggest_daily_items(TARGET)

    assert first.model_dump() == second.model_dump()
    assert [entry.code for entry in first.suggestions] == [entry.code for entry in second.suggestions]
    by_code = {entry.code: entry for entry in first.suggestions}
    assert set(by_code) == {"D-2", "D-3", "D-4"}
    assert by_code["D-4"].fail_rate == 0
    assert by_code["D-4"].days_since_last_planned == 30
    assert by_code["D-3"].days_since_last_planned == 2
    assert first.data_points == 12
