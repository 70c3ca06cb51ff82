"""Structured telemetry for schedule writes, deadline overrides and pool health.

Event names form a closed set (``EventName``); each carries a small set of
fields that downstream consumers rely on. Listeners may subscribe to a subset
of events, which is how the audit pipeline picks up overrides only.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel

logger = logging.getLogger("inspection.telemetry")


class EventName(str, Enum):
    SCHEDULE_GENERATED = "schedule_generated"
    WEEK_PLAN_CONFIRMED = "week_plan_confirmed"
    WEEK_PLAN_ENSURED = "week_plan_ensured"
    DEADLINE_OVERRIDE = "deadline_override"
    DB_POOL_STATUS = "db_pool_status"


REQUIRED_FIELDS: Dict[EventName, FrozenSet[str]] = {
    EventName.SCHEDULE_GENERATED: frozenset({"status", "from_week", "to_week", "duration_ms"}),
    EventName.WEEK_PLAN_CONFIRMED: frozenset({"actor", "week", "item_count"}),
    EventName.WEEK_PLAN_ENSURED: frozenset({"week"}),
    EventName.DEADLINE_OVERRIDE: frozenset({"kind", "record_date", "role"}),
    EventName.DB_POOL_STATUS: frozenset({"trigger", "status"}),
}


@dataclass(frozen=True)
class TelemetryEvent:
    name: EventName
    payload: Dict[str, Any]


Listener = Callable[[TelemetryEvent], None]

_listeners: List[Tuple[Listener, Optional[FrozenSet[EventName]]]] = []
_lock = RLock()


def register_listener(listener: Listener, *, events: Optional[Iterable[Union[EventName, str]]] = None) -> None:
    """Register an in-process listener, optionally limited to ``events``."""
    subscribed = frozenset(EventName(name) for name in events) if events is not None else None
    with _lock:
        _listeners.append((listener, subscribed))


def clear_listeners() -> None:
    """Remove all registered listeners. Mainly used to reset test state."""
    with _lock:
        _listeners.clear()


def emit_event(name: Union[EventName, str], **fields: Any) -> None:
    """Emit a structured event and fan it out to the listeners subscribed to it.

    Unknown names raise ``ValueError``; missing required fields are logged but
    do not block the event.
    """
    event_name = EventName(name)
    missing = REQUIRED_FIELDS[event_name] - fields.keys()
    if missing:
        logger.warning("Telemetry event %s is missing fields: %s", event_name.value, ", ".join(sorted(missing)))

    event = TelemetryEvent(name=event_name, payload=_sanitize(fields))

    with _lock:
        listeners = [listener for listener, subscribed in _listeners if subscribed is None or event_name in subscribed]

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", event_name.value)

    structured = {"event": event_name.value, **event.payload}
    logger.info("TELEMETRY %s", json.dumps(structured, default=str, ensure_ascii=False))


def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _plain(value) for key, value in fields.items()}


def _plain(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(item) for item in value]
    return value


__all__ = [
    "EventName",
    "REQUIRED_FIELDS",
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "register_listener",
]
