"""
Health API — liveness, readiness and a detailed status report.

GET /api/v1/health           — Basic status and uptime
GET /api/v1/health/detailed  — Database and realtime checks (503 when degraded)
GET /api/v1/health/ready     — 200 only when the database answers
GET /api/v1/health/live      — Always 200 while the process serves requests
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.core.config import APP_VERSION, ENVIRONMENT
from app.db.supabase_client import check_connection
from app.models.health import (
    DetailedHealthResponse,
    HealthChecks,
    HealthResponse,
    ProbeResponse,
    RealtimeCheck,
)
from app.services.telemetry_hub import TelemetryHub, get_telemetry_hub

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/health", tags=["health"])

_STARTED_AT = time.monotonic()


def _uptime() -> float:
    return round(time.monotonic() - _STARTED_AT, 3)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _database_ok() -> bool:
    try:
        await asyncio.to_thread(check_connection)
    except Exception as exc:
        logger.warning("Database health check failed: %s", exc)
        return False
    return True


@router.get("", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="OK",
        timestamp=_now(),
        uptime=_uptime(),
        environment=ENVIRONMENT,
    )


@router.get(
    "/detailed",
    response_model=DetailedHealthResponse,
    responses={503: {"model": DetailedHealthResponse}},
)
async def health_detailed(
    hub: TelemetryHub = Depends(get_telemetry_hub),
):
    """
    Probe Supabase and report live telemetry fan-out state.

    The overall status is DEGRADED, with HTTP 503, when any check errors.
    """
    database = "ok" if await _database_ok() else "error"
    report = DetailedHealthResponse(
        status="OK" if database == "ok" else "DEGRADED",
        timestamp=_now(),
        uptime=_uptime(),
        environment=ENVIRONMENT,
        version=APP_VERSION,
        checks=HealthChecks(
            database=database,
            realtime=RealtimeCheck(
                status="ok",
                connections=hub.connection_count,
                tracked_vehicles=len(hub.registry),
            ),
        ),
    )
    code = status.HTTP_200_OK if report.status == "OK" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=report.model_dump())


@router.get("/ready", response_model=ProbeResponse)
async def readiness():
    if not await _database_ok():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=ProbeResponse(status="not ready", detail="Database unavailable").model_dump(),
        )
    return ProbeResponse(status="ready")


@router.get("/live", response_model=ProbeResponse)
async def liveness() -> ProbeResponse:
    return ProbeResponse(status="alive")
