from __future__ import annotations

from datetime import date
from typing import Optional

import pytest

from inspection_core.records import DailyCheckRecord, WeeklyCheckRecord
from inspection_core.school_calendar import WeekNotFoundError
from inspection_core.weekly_grade import suggest_weekly_grade, suggest_weekly_grade_for_class


def _daily(passed: int, failed: int, *, severity: Optional[str] = None) -> list[DailyCheckRecord]:
    records = [
        DailyCheckRecord(check_item_id=f"pass-{index}", record_date=date(2026, 3, 2), passed=True)
        for index in range(passed)
    ]
    records.extend(
        DailyCheckRecord(
            check_item_id=f"fail-{index}",
            record_date=date(2026, 3, 3),
            passed=False,
            severity=severity,
        )
        for index in range(failed)
    )
    return records


def _weekly(**values: str) -> list[WeeklyCheckRecord]:
    indicators = {"W-1": "0", "W-2": "0", "W-3": "0", "W-4": "0"}
    indicators.update({code.replace("_", "-"): value for code, value in values.items()})
    return [WeeklyCheckRecord(code=code, option_value=value) for code, value in indicators.items()]


def test_low_pass_rate_is_the_only_reason_for_c() -> None:
    result = suggest_weekly_grade(_daily(13, 7), _weekly())

    assert result.grade == "C"
    assert result.reasons == ["pass rate 65% is below 70%"]
    assert result.reason == "pass rate 65% is below 70%"
    assert result.confidence == "high"
    assert result.pass_rate == 65
    assert result.daily_records == 20
    assert result.weekly_indicators_filled == 4


def test_every_warning_condition_is_reported() -> None:
    result = suggest_weekly_grade(_daily(1, 3, severity="serious"), _weekly(W_1="gte2", W_3="gte2"))

    assert result.grade == "C"
    assert len(result.reasons) == 4
    assert result.reasons[0] == "3 serious daily non-compliance"
    assert result.reason == "; ".join(result.reasons)
    assert result.confidence == "low"


def test_empty_week_is_c_with_low_confidence() -> None:
    result = suggest_weekly_grade([], [])

    assert result.grade == "C"
    assert result.pass_rate == 0
    assert result.confidence == "low"
    assert result.weekly_indicators_filled == 0


def test_absenteeism_alone_forces_c() -> None:
    result = suggest_weekly_grade(_daily(10, 0), _weekly(W_1="gte2"))

    assert result.grade == "C"
    assert result.reasons == ["outdoor-activity absence reached 2 or more"]


def test_clean_week_is_a() -> None:
    result = suggest_weekly_grade(_daily(10, 0), _weekly())

    assert result.grade == "A"
    assert result.confidence == "high"
    assert result.pass_rate == 100


def test_single_incident_downgrades_to_b() -> None:
    result = suggest_weekly_grade(_daily(10, 0), _weekly(W_2="1"))

    assert result.grade == "B"
    assert result.reasons == ["a weekly indicator recorded one incident"]
    assert result.reason.startswith("stable: ")


def test_moderate_failure_or_middling_rate_is_b() -> None:
    moderate = suggest_weekly_grade(_daily(19, 1, severity="moderate"), _weekly())
    middling = suggest_weekly_grade(_daily(8, 2), _weekly())

    assert moderate.grade == "B"
    assert moderate.reasons == ["1 moderate daily non-compliance"]
    assert middling.grade == "B"
    assert middling.reasons == ["pass rate 80% is below 90%"]


def test_confidence_drops_when_indicators_are_missing() -> None:
    weekly = [record for record in _weekly() if record.code != "W-4"]
    result = suggest_weekly_grade(_daily(10, 0), weekly)

    assert result.grade == "A"
    assert result.weekly_indicators_filled == 3
    assert result.confidence == "medium"


def test_narrative_and_unknown_codes_are_ignored() -> None:
    weekly = _weekly() + [
        WeeklyCheckRecord(code="W-5", option_value="gte2"),
        WeeklyCheckRecord(code=None, option_value="gte2"),
    ]
    result = suggest_weekly_grade(_daily(10, 0), weekly)

    assert result.grade == "A"
    assert result.weekly_indicators_filled == 4


def test_medium_confidence_from_record_count() -> None:
    result = suggest_weekly_grade(_daily(6, 0), _weekly())

    assert result.grade == "A"
    assert result.confidence == "medium"


def test_grade_for_class_reads_the_calendar_week(
    calendar_provider, make_item, make_class, make_record
) -> None:
    class_id = make_class()
    other_class = make_class(section=2)
    daily_item = make_item("D-2")
    indicators = {code: make_item(code, category=None, module="WEEKLY") for code in ("W-1", "W-2", "W-3", "W-4", "W-5")}

    for day in (2, 3, 4, 5, 6):
        make_record(class_id, daily_item, date(2026, 3, day), passed=day != 6)
        make_record(other_class, daily_item, date(2026, 3, day), passed=False, severity="serious")
    make_record(class_id, daily_item, date(2026, 3, 9), passed=False, severity="serious")
    friday = date(2026, 3, 6)
    for code, item_id in indicators.items():
        make_record(class_id, item_id, friday, option_value="gte2" if code == "W-5" else "0")

    result = suggest_weekly_grade_for_class(class_id, 1)

    assert result.daily_records == 5
    assert result.pass_rate == 80
    assert result.weekly_indicators_filled == 4
    assert result.grade == "B"
    assert result.confidence == "medium"


def test_grade_for_unknown_week_raises(calendar_provider) -> None:
    with pytest.raises(WeekNotFoundError):
        suggest_weekly_grade_for_class("class-1", 9)
