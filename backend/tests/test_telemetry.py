from __future__ import annotations

import logging
from datetime import date
from enum import Enum

import pytest
from pydantic import BaseModel
from sqlalchemy import select

from inspection_core.db import session_scope
from inspection_core.db.models import AuditEventModel
from inspection_core.telemetry import EventName, TelemetryEvent, emit_event, register_listener
from inspection_core.telemetry_pipeline import install_audit_listener, persist_event


class _Source(str, Enum):
    RULE = "rule"


class _Summary(BaseModel):
    week: int
    day: date


def test_emit_event_sanitizes_dates_and_logs(telemetry_events, caplog) -> None:
    caplog.set_level(logging.INFO, logger="inspection.telemetry")

    emit_event(EventName.WEEK_PLAN_ENSURED, week=2, day=date(2026, 3, 11))

    assert telemetry_events == [
        TelemetryEvent(name=EventName.WEEK_PLAN_ENSURED, payload={"week": 2, "day": "2026-03-11"})
    ]
    assert any("TELEMETRY" in message and '"event": "week_plan_ensured"' in message for message in caplog.messages)


def test_emit_event_sanitizes_enums_and_models(telemetry_events) -> None:
    emit_event(
        EventName.WEEK_PLAN_ENSURED,
        week=2,
        source=_Source.RULE,
        summary=_Summary(week=2, day=date(2026, 3, 11)),
        days=(date(2026, 3, 11), date(2026, 3, 12)),
    )

    payload = telemetry_events[0].payload
    assert payload["source"] == "rule"
    assert payload["summary"] == {"week": 2, "day": "2026-03-11"}
    assert payload["days"] == ["2026-03-11", "2026-03-12"]


def test_unknown_event_name_is_rejected(telemetry_events) -> None:
    with pytest.raises(ValueError):
        emit_event("schedule_deleted", status="success")

    assert telemetry_events == []


def test_missing_required_fields_are_logged(telemetry_events, caplog) -> None:
    caplog.set_level(logging.WARNING, logger="inspection.telemetry")

    emit_event("schedule_generated", status="success")

    assert [event.name for event in telemetry_events] == [EventName.SCHEDULE_GENERATED]
    assert any(
        "schedule_generated is missing fields: duration_ms, from_week, to_week" in message
        for message in caplog.messages
    )


def test_listener_only_receives_subscribed_events(telemetry_events) -> None:
    overrides: list[EventName] = []
    register_listener(lambda event: overrides.append(event.name), events=["deadline_override"])

    emit_event(EventName.WEEK_PLAN_ENSURED, week=3)
    emit_event(EventName.DEADLINE_OVERRIDE, kind="daily", record_date=date(2026, 3, 2), role="ADMIN")

    assert overrides == [EventName.DEADLINE_OVERRIDE]
    assert len(telemetry_events) == 2


def test_subscribing_to_unknown_event_is_rejected() -> None:
    with pytest.raises(ValueError):
        register_listener(lambda event: None, events=["week_plan_deleted"])


def test_failing_listener_does_not_block_others(telemetry_events) -> None:
    def broken(event: TelemetryEvent) -> None:
        raise RuntimeError("listener down")

    register_listener(broken)
    seen: list[EventName] = []
    register_listener(lambda event: seen.append(event.name))

    emit_event(EventName.SCHEDULE_GENERATED, status="success", from_week=1, to_week=2, duration_ms=4)

    assert seen == [EventName.SCHEDULE_GENERATED]
    assert [event.name for event in telemetry_events] == [EventName.SCHEDULE_GENERATED]


def _audit_rows() -> list[AuditEventModel]:
    with session_scope(commit=False) as session:
        return list(session.scalars(select(AuditEventModel)))


def test_deadline_override_is_persisted_as_audit_event(database, telemetry_events) -> None:
    install_audit_listener()

    emit_event(EventName.DEADLINE_OVERRIDE, kind="weekly", record_date=date(2026, 3, 6), role="ADMIN", deadline=None)
    emit_event(EventName.SCHEDULE_GENERATED, status="success", from_week=1, to_week=1, duration_ms=2)

    rows = _audit_rows()
    assert len(rows) == 1
    assert rows[0].event_type == "deadline_override"
    assert rows[0].actor == "ADMIN"
    assert rows[0].payload["record_date"] == "2026-03-06"


def test_persist_event_ignores_unaudited_events(database) -> None:
    persist_event(TelemetryEvent(name=EventName.WEEK_PLAN_ENSURED, payload={"week": 2}))

    assert _audit_rows() == []


def test_persist_event_logs_storage_failures(monkeypatch, caplog) -> None:
    def broken_scope(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr("inspection_core.telemetry_pipeline.session_scope", broken_scope)

    persist_event(TelemetryEvent(name=EventName.DEADLINE_OVERRIDE, payload={"role": "ADMIN"}))

    assert "Failed to persist deadline_override audit event" in caplog.text
