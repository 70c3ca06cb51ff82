"""Telemetry listener that persists deadline overrides to the audit trail."""

from __future__ import annotations

import logging
from typing import FrozenSet

from .db.session import session_scope
from .repositories.inspection_store import inspection_store
from .telemetry import EventName, TelemetryEvent, register_listener

logger = logging.getLogger(__name__)

_AUDITED_EVENTS: FrozenSet[EventName] = frozenset({EventName.DEADLINE_OVERRIDE})


def persist_event(event: TelemetryEvent) -> None:
    name = EventName(event.name)
    if name not in _AUDITED_EVENTS:
        return
    role = event.payload.get("role")
    actor = role if isinstance(role, str) and role.strip() else None
    try:
        with session_scope() as session:
            inspection_store.record_audit(session, name, actor, dict(event.payload))
    except Exception:  # noqa: BLE001
        logger.exception("Failed to persist %s audit event", name.value)


def install_audit_listener() -> None:
    register_listener(persist_event, events=_AUDITED_EVENTS)


__all__ = ["install_audit_listener", "persist_event"]
