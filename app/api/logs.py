"""
Logs API — OBD command logs from the reader app.

POST /api/v1/logs          — Submit one log or a batch
GET  /api/v1/logs/alllogs  — Newest logs, optionally filtered
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.security import get_current_user_id
from app.db.supabase_client import get_service_client
from app.models.logs import LogsListResponse, LogsSubmitResponse, ObdLogEntry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/logs", tags=["logs"])

LOGS_TABLE = "logs"


@router.post(
    "",
    status_code=status.HTTP_200_OK,
    response_model=LogsSubmitResponse,
)
async def submit_logs(
    payload: Union[list[ObdLogEntry], ObdLogEntry],
) -> LogsSubmitResponse:
    """
    Store OBD command logs. Accepts a single object or a list.

    Open to the reader app without a session, like telemetry ingest.

    Returns:
        200: Inserted rows.
        400: Empty batch.
        500: Database error.
    """
    entries = payload if isinstance(payload, list) else [payload]
    if not entries:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload format.",
        )

    rows = [entry.to_row() for entry in entries]
    client = get_service_client()
    try:
        result = client.table(LOGS_TABLE).insert(rows).execute()
    except Exception as exc:
        logger.error("Failed to insert %d logs: %s", len(rows), exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit logs.",
        )

    logger.info("Stored %d OBD logs", len(rows))
    return LogsSubmitResponse(data=result.data or [])


@router.get(
    "/alllogs",
    status_code=status.HTTP_200_OK,
    response_model=LogsListResponse,
)
async def list_logs(
    error_type: Optional[str] = Query(default=None, alias="errorType"),
    pid: Optional[str] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(get_current_user_id),
) -> LogsListResponse:
    """Newest logs first, filtered by error type and PID."""
    client = get_service_client()
    query = client.table(LOGS_TABLE).select("*")
    if error_type:
        query = query.eq("error_type", error_type)
    if pid:
        query = query.eq("pid", pid)

    try:
        result = (
            query.order("created_at", desc=True)
            .range(offset, offset + limit - 1)
            .execute()
        )
    except Exception as exc:
        logger.error("Failed to fetch logs: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch logs.",
        )

    logs = result.data or []
    return LogsListResponse(logs=logs, count=len(logs))
