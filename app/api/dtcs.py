"""
DTC API — diagnostic trouble codes reported for a vehicle.

POST /api/v1/dtcs                                — Record a DTC
PUT  /api/v1/dtcs/{dtc_id}                       — Update status or details
GET  /api/v1/dtcs/{dtc_id}                       — One DTC
GET  /api/v1/dtcs/vehicle/{vehicle_id}/active    — Active DTCs, most severe first
GET  /api/v1/dtcs/vehicle/{vehicle_id}/resolved  — Last 50 resolved DTCs
GET  /api/v1/dtcs                                — Filtered, sorted, paginated list
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.security import get_current_user_id
from app.db.supabase_client import get_service_client
from app.models.dtcs import (
    ActiveDtcsResponse,
    DtcCreateRequest,
    DtcListResponse,
    DtcResponse,
    DtcStatus,
    DtcUpdateRequest,
    ImpactLevel,
    Pagination,
    ResolvedDtcsResponse,
)
from app.services.diagnostics import impact_breakdown, sort_by_severity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/dtcs", tags=["dtcs"])

DTCS_TABLE = "vehicle_dtcs"
RESOLVED_HISTORY_LIMIT = 50

SortField = Literal[
    "occurred_at", "dtc_code", "impact_level", "status", "created_at", "updated_at",
]


def _require_uuid(value: str, label: str) -> None:
    try:
        uuid.UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{label} must be a valid UUID.",
        )


def _fetch_dtc(client, dtc_id: str) -> dict:
    try:
        result = client.table(DTCS_TABLE).select("*").eq("id", dtc_id).execute()
    except Exception as exc:
        logger.error("Failed to load DTC %s: %s", dtc_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve DTC.",
        )
    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="DTC not found.",
        )
    return result.data[0]


# ===================================================================
# POST /api/v1/dtcs
# ===================================================================

@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=DtcResponse,
)
async def create_dtc(
    payload: DtcCreateRequest,
    user_id: str = Depends(get_current_user_id),
) -> DtcResponse:
    """
    Record a DTC for a vehicle.

    Returns:
        201: DTC stored.
        409: The vehicle already has an active DTC with this code.
        422: Validation error in the request payload.
        500: Database error.
    """
    client = get_service_client()

    existing = (
        client.table(DTCS_TABLE)
        .select("id")
        .eq("vehicle_id", payload.vehicle_id)
        .eq("dtc_code", payload.dtc_code)
        .eq("status", "active")
        .execute()
    )
    if existing.data:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Active DTC with this code already exists for this vehicle.",
        )

    now = datetime.now(timezone.utc).isoformat()
    dtc_data = {
        "vehicle_id": payload.vehicle_id,
        "dtc_code": payload.dtc_code,
        "description": payload.description,
        "impact_level": payload.impact_level,
        "status": payload.status,
        "occurred_at": payload.occurred_at.isoformat() if payload.occurred_at else now,
        "created_at": now,
        "updated_at": now,
    }

    try:
        result = client.table(DTCS_TABLE).insert(dtc_data).execute()
    except Exception as exc:
        logger.error("Failed to add DTC %s: %s", payload.dtc_code, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add DTC.",
        )

    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add DTC.",
        )

    logger.info("DTC added: %s for vehicle %s", payload.dtc_code, payload.vehicle_id[:8])
    return DtcResponse(**result.data[0])


# ===================================================================
# PUT /api/v1/dtcs/{dtc_id}
# ===================================================================

@router.put(
    "/{dtc_id}",
    status_code=status.HTTP_200_OK,
    response_model=DtcResponse,
)
async def update_dtc(
    dtc_id: str,
    payload: DtcUpdateRequest,
    user_id: str = Depends(get_current_user_id),
) -> DtcResponse:
    """
    Update a DTC. Moving to "resolved" stamps resolved_at once.

    Returns:
        200: Updated DTC.
        404: DTC not found.
        422: Empty payload, or resolved without notes.
        500: Database error.
    """
    _require_uuid(dtc_id, "DTC ID")
    client = get_service_client()
    existing = _fetch_dtc(client, dtc_id)

    now = datetime.now(timezone.utc).isoformat()
    update_data = payload.model_dump(exclude_unset=True)
    update_data["updated_at"] = now
    if payload.status == "resolved" and existing.get("status") != "resolved":
        update_data["resolved_at"] = now

    try:
        result = (
            client.table(DTCS_TABLE)
            .update(update_data)
            .eq("id", dtc_id)
            .execute()
        )
    except Exception as exc:
        logger.error("Failed to update DTC %s: %s", dtc_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update DTC.",
        )

    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update DTC.",
        )

    logger.info(
        "DTC updated: %s - status %s",
        dtc_id[:8], payload.status or existing.get("status"),
    )
    return DtcResponse(**result.data[0])


# ===================================================================
# GET /api/v1/dtcs/vehicle/{vehicle_id}/active|resolved
# ===================================================================

@router.get(
    "/vehicle/{vehicle_id}/active",
    status_code=status.HTTP_200_OK,
    response_model=ActiveDtcsResponse,
)
async def get_active_dtcs(
    vehicle_id: str,
    user_id: str = Depends(get_current_user_id),
) -> ActiveDtcsResponse:
    """Active DTCs for a vehicle, high impact first, newest first within a level."""
    _require_uuid(vehicle_id, "Vehicle ID")
    client = get_service_client()

    try:
        result = (
            client.table(DTCS_TABLE)
            .select("*")
            .eq("vehicle_id", vehicle_id)
            .eq("status", "active")
            .execute()
        )
    except Exception as exc:
        logger.error("Failed to load active DTCs for %s: %s", vehicle_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve active DTCs.",
        )

    rows = sort_by_severity(result.data or [])
    return ActiveDtcsResponse(
        dtcs=[DtcResponse(**row) for row in rows],
        total_active=len(rows),
        impact_breakdown=impact_breakdown(rows),
    )


@router.get(
    "/vehicle/{vehicle_id}/resolved",
    status_code=status.HTTP_200_OK,
    response_model=ResolvedDtcsResponse,
)
async def get_resolved_dtcs(
    vehicle_id: str,
    user_id: str = Depends(get_current_user_id),
) -> ResolvedDtcsResponse:
    """The most recently resolved DTCs for a vehicle."""
    _require_uuid(vehicle_id, "Vehicle ID")
    client = get_service_client()

    try:
        result = (
            client.table(DTCS_TABLE)
            .select("*")
            .eq("vehicle_id", vehicle_id)
            .eq("status", "resolved")
            .order("resolved_at", desc=True)
            .limit(RESOLVED_HISTORY_LIMIT)
            .execute()
        )
    except Exception as exc:
        logger.error("Failed to load resolved DTCs for %s: %s", vehicle_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve resolved DTCs.",
        )

    rows = result.data or []
    return ResolvedDtcsResponse(
        dtcs=[DtcResponse(**row) for row in rows],
        total_resolved=len(rows),
    )


# ===================================================================
# GET /api/v1/dtcs/{dtc_id}
# ===================================================================

@router.get(
    "/{dtc_id}",
    status_code=status.HTTP_200_OK,
    response_model=DtcResponse,
)
async def get_dtc(
    dtc_id: str,
    user_id: str = Depends(get_current_user_id),
) -> DtcResponse:
    _require_uuid(dtc_id, "DTC ID")
    client = get_service_client()
    return DtcResponse(**_fetch_dtc(client, dtc_id))


# ===================================================================
# GET /api/v1/dtcs
# ===================================================================

@router.get(
    "",
    status_code=status.HTTP_200_OK,
    response_model=DtcListResponse,
)
async def list_dtcs(
    vehicle_id: Optional[str] = Query(default=None),
    dtc_status: Optional[DtcStatus] = Query(default=None, alias="status"),
    impact_level: Optional[ImpactLevel] = Query(default=None),
    from_date: Optional[datetime] = Query(default=None),
    to_date: Optional[datetime] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort_by: SortField = Query(default="occurred_at"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    user_id: str = Depends(get_current_user_id),
) -> DtcListResponse:
    """
    List DTCs with optional filters.

    Returns:
        200: One page of DTCs plus pagination metadata.
        400: to_date earlier than from_date.
        500: Database error.
    """
    if vehicle_id:
        _require_uuid(vehicle_id, "Vehicle ID")
    if from_date and to_date and to_date < from_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="To date must be after from date.",
        )

    client = get_service_client()
    query = client.table(DTCS_TABLE).select("*", count="exact")
    if vehicle_id:
        query = query.eq("vehicle_id", vehicle_id)
    if dtc_status:
        query = query.eq("status", dtc_status)
    if impact_level:
        query = query.eq("impact_level", impact_level)
    if from_date:
        query = query.gte("occurred_at", from_date.isoformat())
    if to_date:
        query = query.lte("occurred_at", to_date.isoformat())

    offset = (page - 1) * limit
    try:
        result = (
            query.order(sort_by, desc=sort_order == "desc")
            .range(offset, offset + limit - 1)
            .execute()
        )
    except Exception as exc:
        logger.error("Failed to list DTCs: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve DTCs.",
        )

    rows = result.data or []
    total = result.count if result.count is not None else len(rows)
    return DtcListResponse(
        dtcs=[DtcResponse(**row) for row in rows],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        ),
    )
