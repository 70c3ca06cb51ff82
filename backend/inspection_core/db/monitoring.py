"""Connection pool observability for the inspection database."""

from __future__ import annotations

import os
import time
import weakref
from dataclasses import dataclass
from typing import Dict

from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..telemetry import EventName, emit_event


@dataclass
class PoolCounters:
    connects: int = 0
    checkouts: int = 0
    checkins: int = 0
    last_emit: float = 0.0


_COUNTERS: "weakref.WeakKeyDictionary[Engine, PoolCounters]" = weakref.WeakKeyDictionary()
_EMIT_INTERVAL = float(os.getenv("INSPECTION_DB_TELEMETRY_INTERVAL", "60"))


def instrument_engine(engine: Engine) -> None:
    """Count pool activity on ``engine`` and periodically emit ``db_pool_status``."""
    if engine in _COUNTERS:
        return

    counters = PoolCounters()
    _COUNTERS[engine] = counters

    def maybe_emit(trigger: str) -> None:
        now = time.time()
        if _EMIT_INTERVAL > 0 and (now - counters.last_emit) < _EMIT_INTERVAL:
            return
        counters.last_emit = now
        emit_event(
            EventName.DB_POOL_STATUS,
            trigger=trigger,
            status=pool_status(engine),
            connects=counters.connects,
            checkouts=counters.checkouts,
            checkins=counters.checkins,
        )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        counters.connects += 1
        maybe_emit("connect")

    @event.listens_for(engine, "checkout")
    def _on_checkout(dbapi_connection, connection_record, connection_proxy) -> None:  # type: ignore[no-untyped-def]
        counters.checkouts += 1
        maybe_emit("checkout")

    @event.listens_for(engine, "checkin")
    def _on_checkin(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        counters.checkins += 1
        maybe_emit("checkin")


def get_pool_snapshot(engine: Engine) -> Dict[str, object]:
    counters = _COUNTERS.get(engine) or PoolCounters()
    return {
        "status": pool_status(engine),
        "connects": counters.connects,
        "checkouts": counters.checkouts,
        "checkins": counters.checkins,
    }


def pool_status(engine: Engine) -> str:
    try:
        return engine.pool.status()  # type: ignore[no-untyped-call]
    except Exception as exc:  # pragma: no cover - pool implementations without status()
        return f"unavailable: {exc}"


__all__ = ["get_pool_snapshot", "instrument_engine", "pool_status"]
