"""Print a one-off JSON snapshot of the inspection database pool."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from sqlalchemy import func, select, text

from inspection_core.db.models import DailyPlanModel
from inspection_core.db.monitoring import get_pool_snapshot
from inspection_core.db.session import get_engine, session_scope

LOGGER = logging.getLogger("inspection.db_metrics")


def collect_snapshot() -> dict[str, object]:
    engine = get_engine()
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
    with session_scope(commit=False) as session:
        plan_count = session.execute(select(func.count()).select_from(DailyPlanModel)).scalar_one()
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "pool": get_pool_snapshot(engine),
        "daily_plans": plan_count,
    }


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        print(json.dumps(collect_snapshot()))
        return 0
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Failed to collect database metrics: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
