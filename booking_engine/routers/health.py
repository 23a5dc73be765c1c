"""
Liveness endpoint: reports the version, database reachability and
whether the reminder sweep is running.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from booking_engine import db
from booking_engine.models import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])

VERSION = "0.1.0"


async def _database_ok() -> bool:
    try:
        await db.get_db().execute("SELECT 1")
    except Exception:
        logger.exception("Health check: database unreachable")
        return False
    return True


@router.get(
    "/health",
    response_model=HealthResponse,
    operation_id="getHealth",
    summary="Service health and dependency status",
)
async def get_health(request: Request) -> HealthResponse:
    database_ok = await _database_ok()
    sweeper = getattr(request.app.state, "reminder_sweeper", None)
    return HealthResponse(
        status="ok" if database_ok else "degraded",
        version=VERSION,
        database="ok" if database_ok else "unavailable",
        reminders_running=bool(sweeper and sweeper.running),
        timestamp=datetime.now(timezone.utc),
    )
