"""
Vehicles API — vehicle registration and per-vehicle DTC statistics.

POST   /api/v1/vehicles                  — Register a vehicle
PUT    /api/v1/vehicles/{vehicle_id}     — Update a vehicle
DELETE /api/v1/vehicles/{vehicle_id}     — Delete a vehicle with no active DTCs
GET    /api/v1/vehicles/{vehicle_id}     — Vehicle + DTC statistics
GET    /api/v1/vehicles/owner/{owner_id} — All of an owner's vehicles + statistics
"""

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.security import get_current_user_id
from app.db.supabase_client import get_service_client
from app.models.vehicles import (
    VehicleCreateRequest,
    VehicleDeleteResponse,
    VehicleListResponse,
    VehicleResponse,
    VehicleUpdateRequest,
)
from app.services.diagnostics import vehicle_dtc_statistics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/vehicles", tags=["vehicles"])

VEHICLES_TABLE = "vehicles"
DTCS_TABLE = "vehicle_dtcs"


def _require_uuid(value: str, label: str) -> None:
    try:
        uuid.UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{label} must be a valid UUID.",
        )


def _fetch_vehicle(client, vehicle_id: str) -> dict:
    """Load a vehicle row or raise 404."""
    try:
        result = (
            client.table(VEHICLES_TABLE)
            .select("*")
            .eq("id", vehicle_id)
            .execute()
        )
    except Exception as exc:
        logger.error("Failed to load vehicle %s: %s", vehicle_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve vehicle.",
        )

    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Vehicle not found.",
        )
    return result.data[0]


def _ensure_vin_available(client, vin: str, exclude_id: str | None = None) -> None:
    query = client.table(VEHICLES_TABLE).select("id").eq("vin", vin)
    if exclude_id:
        query = query.neq("id", exclude_id)
    result = query.execute()
    if result.data:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Vehicle with this VIN already exists.",
        )


def _with_statistics(client, vehicle: dict) -> VehicleResponse:
    dtcs = (
        client.table(DTCS_TABLE)
        .select("status, impact_level")
        .eq("vehicle_id", vehicle["id"])
        .execute()
    )
    return VehicleResponse(
        **vehicle,
        statistics=vehicle_dtc_statistics(dtcs.data or []),
    )


# ===================================================================
# POST /api/v1/vehicles
# ===================================================================

@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=VehicleResponse,
)
async def create_vehicle(
    payload: VehicleCreateRequest,
    user_id: str = Depends(get_current_user_id),
) -> VehicleResponse:
    """
    Register a vehicle.

    The owner defaults to the authenticated user when owner_id is omitted.

    Returns:
        201: Vehicle created.
        401: Missing or invalid authentication token.
        409: Another vehicle already has this VIN.
        422: Validation error in the request payload.
        500: Database error.
    """
    client = get_service_client()

    if payload.vin:
        _ensure_vin_available(client, payload.vin)

    now = datetime.now(timezone.utc).isoformat()
    vehicle_data = {
        "brand": payload.brand,
        "model": payload.model,
        "registration_date": payload.registration_date.isoformat(),
        "type": payload.type,
        "vin": payload.vin,
        "owner_id": payload.owner_id or user_id,
        "created_at": now,
        "updated_at": now,
    }

    try:
        result = client.table(VEHICLES_TABLE).insert(vehicle_data).execute()
    except Exception as exc:
        logger.error("Failed to add vehicle for user %s: %s", user_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add vehicle.",
        )

    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add vehicle.",
        )

    vehicle = result.data[0]
    logger.info(
        "Vehicle added: %s %s (%s)",
        payload.brand, payload.model, vehicle["id"][:8],
    )
    return VehicleResponse(**vehicle)


# ===================================================================
# PUT /api/v1/vehicles/{vehicle_id}
# ===================================================================

@router.put(
    "/{vehicle_id}",
    status_code=status.HTTP_200_OK,
    response_model=VehicleResponse,
)
async def update_vehicle(
    vehicle_id: str,
    payload: VehicleUpdateRequest,
    user_id: str = Depends(get_current_user_id),
) -> VehicleResponse:
    """
    Update the fields sent in the payload.

    Returns:
        200: Updated vehicle.
        404: Vehicle not found.
        409: Another vehicle already has the new VIN.
        500: Database error.
    """
    _require_uuid(vehicle_id, "Vehicle ID")
    client = get_service_client()
    existing = _fetch_vehicle(client, vehicle_id)

    update_data = payload.model_dump(mode="json", exclude_unset=True)
    if payload.vin and payload.vin != existing.get("vin"):
        _ensure_vin_available(client, payload.vin, exclude_id=vehicle_id)
    update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

    try:
        result = (
            client.table(VEHICLES_TABLE)
            .update(update_data)
            .eq("id", vehicle_id)
            .execute()
        )
    except Exception as exc:
        logger.error("Failed to update vehicle %s: %s", vehicle_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update vehicle.",
        )

    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update vehicle.",
        )

    logger.info("Vehicle updated: %s", vehicle_id[:8])
    return VehicleResponse(**result.data[0])


# ===================================================================
# DELETE /api/v1/vehicles/{vehicle_id}
# ===================================================================

@router.delete(
    "/{vehicle_id}",
    status_code=status.HTTP_200_OK,
    response_model=VehicleDeleteResponse,
)
async def delete_vehicle(
    vehicle_id: str,
    user_id: str = Depends(get_current_user_id),
) -> VehicleDeleteResponse:
    """
    Permanently delete a vehicle.

    Returns:
        200: Vehicle deleted.
        404: Vehicle not found.
        409: Vehicle still has active DTCs.
        500: Database error.
    """
    _require_uuid(vehicle_id, "Vehicle ID")
    client = get_service_client()
    _fetch_vehicle(client, vehicle_id)

    active = (
        client.table(DTCS_TABLE)
        .select("id")
        .eq("vehicle_id", vehicle_id)
        .eq("status", "active")
        .execute()
    )
    if active.data:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete vehicle with active DTCs. Please resolve all DTCs first.",
        )

    try:
        client.table(VEHICLES_TABLE).delete().eq("id", vehicle_id).execute()
    except Exception as exc:
        logger.error("Failed to delete vehicle %s: %s", vehicle_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete vehicle.",
        )

    logger.info("Vehicle deleted: %s", vehicle_id[:8])
    return VehicleDeleteResponse(vehicle_id=vehicle_id)


# ===================================================================
# GET /api/v1/vehicles/owner/{owner_id}
# ===================================================================

@router.get(
    "/owner/{owner_id}",
    status_code=status.HTTP_200_OK,
    response_model=VehicleListResponse,
)
async def get_owner_vehicles(
    owner_id: str,
    user_id: str = Depends(get_current_user_id),
) -> VehicleListResponse:
    """
    List every vehicle an owner has, each with its DTC statistics.

    Returns:
        200: Vehicles (possibly empty).
        500: Database error.
    """
    _require_uuid(owner_id, "Owner ID")
    client = get_service_client()

    try:
        result = (
            client.table(VEHICLES_TABLE)
            .select("*")
            .eq("owner_id", owner_id)
            .order("created_at")
            .execute()
        )
        vehicles = [_with_statistics(client, v) for v in (result.data or [])]
    except Exception as exc:
        logger.error("Failed to load vehicles for owner %s: %s", owner_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve vehicles.",
        )

    return VehicleListResponse(vehicles=vehicles, total=len(vehicles))


# ===================================================================
# GET /api/v1/vehicles/{vehicle_id}
# ===================================================================

@router.get(
    "/{vehicle_id}",
    status_code=status.HTTP_200_OK,
    response_model=VehicleResponse,
)
async def get_vehicle(
    vehicle_id: str,
    user_id: str = Depends(get_current_user_id),
) -> VehicleResponse:
    """
    Fetch a vehicle with its DTC counts.

    Returns:
        200: Vehicle with `statistics`.
        404: Vehicle not found.
        500: Database error.
    """
    _require_uuid(vehicle_id, "Vehicle ID")
    client = get_service_client()
    vehicle = _fetch_vehicle(client, vehicle_id)

    try:
        return _with_statistics(client, vehicle)
    except Exception as exc:
        logger.error("Failed to load DTC stats for vehicle %s: %s", vehicle_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve vehicle.",
        )
