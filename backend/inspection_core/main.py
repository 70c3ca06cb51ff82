import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .db import get_engine
from .db.monitoring import get_pool_snapshot
from .logging_config import configure_logging
from .routes import router as inspection_router
from .telemetry_pipeline import install_audit_listener


configure_logging()
install_audit_listener()
logger = logging.getLogger(__name__)
app = FastAPI(title="Inspection Rule Engine", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(inspection_router)

settings_snapshot = get_settings()
logger.info("Inspection engine starting in timezone %s", settings_snapshot.school_timezone)
logger.info("Database configured: %s", bool(settings_snapshot.database_url))


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "timezone": settings.school_timezone}


@app.get("/healthz/database")
def database_health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    try:
        engine = get_engine()
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    payload: Dict[str, Any] = {"status": "ok", "dialect": engine.dialect.name}
    if settings.debug_endpoints:
        payload["pool"] = get_pool_snapshot(engine)
    return payload
