from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Request
from sqlalchemy import text

router = APIRouter(tags=["system"])
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

_start_time = time.monotonic()


@router.get("/health")
async def health_check(request: Request):
    """Session store + database health."""
    store_check = await _check_session_store(request)
    db_check = await _check_database(request)

    overall = "healthy"
    alerts = []
    if db_check["status"] != "ok":
        overall = "unhealthy"
        alerts.append("database_unreachable")
    if store_check["status"] != "ok":
        if overall == "healthy":
            overall = "degraded"
        alerts.append("session_store_unreachable")

    return {
        "status": overall,
        "version": APP_VERSION,
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "checks": {
            "session_store": store_check,
            "database": db_check,
        },
        "alerts": alerts,
    }


async def _check_session_store(request: Request) -> dict:
    """Ping the session store and measure latency."""
    store = request.app.state.session_manager.store
    start = time.monotonic()
    if not await store.ping():
        return {"status": "error", "error": "ping failed"}
    latency_ms = round((time.monotonic() - start) * 1000, 1)
    return {"status": "ok", "latency_ms": latency_ms}


async def _check_database(request: Request) -> dict:
    """Check database connectivity and measure latency."""
    try:
        start = time.monotonic()
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
        latency_ms = round((time.monotonic() - start) * 1000, 1)
        return {"status": "ok", "latency_ms": latency_ms}
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        return {"status": "error", "error": str(e)}
