from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Callable, Iterator, Optional

import pytest

from inspection_core.config import get_settings
from inspection_core.db import Base, dispose_engine, get_engine, session_scope
from inspection_core.db.models import CheckItemModel, CheckRecordModel, SchoolClassModel
from inspection_core.school_calendar import CalendarProvider, SchoolCalendar, SchoolWeek, set_calendar_provider
from inspection_core.telemetry import TelemetryEvent, clear_listeners, register_listener


def _weekdays(start: date, count: int) -> list[date]:
    return [date.fromordinal(start.toordinal() + offset) for offset in range(count)]


def build_test_calendar() -> SchoolCalendar:
    """Three weeks in March 2026; week 2 loses Monday and Tuesday to a holiday."""
    return SchoolCalendar(
        semester="test-2026-spring",
        semester_name="Test spring semester",
        start_date=date(2026, 3, 2),
        end_date=date(2026, 3, 20),
        weeks=[
            SchoolWeek(
                week=1,
                label="Week 1",
                start_date=date(2026, 3, 2),
                end_date=date(2026, 3, 6),
                school_days=_weekdays(date(2026, 3, 2), 5),
            ),
            SchoolWeek(
                week=2,
                label="Week 2",
                start_date=date(2026, 3, 9),
                end_date=date(2026, 3, 13),
                school_days=_weekdays(date(2026, 3, 11), 3),
                note="Short week",
            ),
            SchoolWeek(
                week=3,
                label="Week 3",
                start_date=date(2026, 3, 16),
                end_date=date(2026, 3, 20),
                school_days=_weekdays(date(2026, 3, 16), 5),
            ),
        ],
    )


@pytest.fixture
def calendar_provider() -> Iterator[CalendarProvider]:
    provider = CalendarProvider(build_test_calendar())
    set_calendar_provider(provider)
    yield provider
    set_calendar_provider(None)


@pytest.fixture
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    db_path = tmp_path / "inspection.db"
    monkeypatch.setenv("INSPECTION_DATABASE_URL", f"sqlite:///{db_path}")
    get_settings.cache_clear()
    dispose_engine()
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield engine
    dispose_engine()
    get_settings.cache_clear()


@pytest.fixture
def telemetry_events() -> Iterator[list[TelemetryEvent]]:
    events: list[TelemetryEvent] = []
    clear_listeners()
    register_listener(events.append)
    yield events
    clear_listeners()


@pytest.fixture
def make_item(database) -> Callable[..., str]:
    def _make(
        code: Optional[str],
        *,
        category: Optional[str] = "rotating",
        module: str = "DAILY",
        active: bool = True,
        dynamic: bool = False,
        sort_order: int = 0,
    ) -> str:
        with session_scope() as session:
            item = CheckItemModel(
                code=code,
                title=f"Item {code}",
                module=module,
                plan_category=category,
                is_active=active,
                is_dynamic=dynamic,
                sort_order=sort_order,
            )
            session.add(item)
            session.flush()
            return item.id

    return _make


@pytest.fixture
def make_class(database) -> Callable[..., str]:
    def _make(grade: int = 3, section: int = 1) -> str:
        with session_scope() as session:
            school_class = SchoolClassModel(name=f"Grade {grade} Class {section}", grade=grade, section=section)
            session.add(school_class)
            session.flush()
            return school_class.id

    return _make


@pytest.fixture
def make_record(database) -> Callable[..., None]:
    def _make(
        class_id: str,
        item_id: str,
        record_date: date,
        *,
        passed: Optional[bool] = None,
        option_value: Optional[str] = None,
        severity: Optional[str] = None,
    ) -> None:
        with session_scope() as session:
            session.add(
                CheckRecordModel(
                    class_id=class_id,
                    check_item_id=item_id,
                    record_date=record_date,
                    passed=passed,
                    option_value=option_value,
                    severity=severity,
                )
            )

    return _make
