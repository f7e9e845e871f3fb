"""
Vehicle Models — Pydantic schemas for vehicle records.

- POST /api/v1/vehicles — Register a vehicle
- PUT /api/v1/vehicles/{vehicle_id} — Update a vehicle
- GET /api/v1/vehicles/{vehicle_id}, /owner/{owner_id} — Vehicle + DTC stats
- DELETE /api/v1/vehicles/{vehicle_id}
"""

from __future__ import annotations

import re
import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# 17 characters, no I, O or Q.
VIN_PATTERN = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")
MIN_REGISTRATION_DATE = date(1900, 1, 1)


def _max_registration_date() -> date:
    # Up to Dec 31, two years ahead.
    return date(date.today().year + 2, 12, 31)


def _check_registration_date(v: date) -> date:
    if v < MIN_REGISTRATION_DATE:
        raise ValueError("Registration date must be after Jan 1, 1900")
    latest = _max_registration_date()
    if v > latest:
        raise ValueError(f"Registration date cannot be later than {latest.year}")
    return v


def _check_vin(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip().upper()
    if len(v) != 17:
        raise ValueError("VIN must be exactly 17 characters long")
    if not VIN_PATTERN.match(v):
        raise ValueError("VIN must contain only valid characters (A-H, J-N, P-R, Z, 0-9)")
    return v


def _check_uuid(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        uuid.UUID(v)
    except ValueError:
        raise ValueError("Please provide a valid owner ID")
    return v


class VehicleCreateRequest(BaseModel):
    """
    Payload for POST /api/v1/vehicles.

    owner_id defaults to the authenticated user when omitted.
    """

    brand: str = Field(..., min_length=2, max_length=50)
    model: str = Field(..., min_length=1, max_length=100)
    registration_date: date
    type: str = Field(..., min_length=1)
    vin: Optional[str] = None
    owner_id: Optional[str] = None

    @field_validator("registration_date")
    @classmethod
    def validate_registration_date(cls, v: date) -> date:
        return _check_registration_date(v)

    @field_validator("vin")
    @classmethod
    def validate_vin(cls, v: Optional[str]) -> Optional[str]:
        return _check_vin(v)

    @field_validator("owner_id")
    @classmethod
    def validate_owner_id(cls, v: Optional[str]) -> Optional[str]:
        return _check_uuid(v)


class VehicleUpdateRequest(BaseModel):
    """Payload for PUT /api/v1/vehicles/{vehicle_id}. Only sent fields change."""

    brand: Optional[str] = Field(default=None, min_length=2, max_length=50)
    model: Optional[str] = Field(default=None, min_length=1, max_length=100)
    registration_date: Optional[date] = None
    type: Optional[str] = Field(default=None, min_length=1)
    vin: Optional[str] = None
    owner_id: Optional[str] = None

    @field_validator("registration_date")
    @classmethod
    def validate_registration_date(cls, v: Optional[date]) -> Optional[date]:
        return None if v is None else _check_registration_date(v)

    @field_validator("vin")
    @classmethod
    def validate_vin(cls, v: Optional[str]) -> Optional[str]:
        return _check_vin(v)

    @field_validator("owner_id")
    @classmethod
    def validate_owner_id(cls, v: Optional[str]) -> Optional[str]:
        return _check_uuid(v)

    @model_validator(mode="after")
    def require_some_field(self) -> VehicleUpdateRequest:
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


class VehicleStatistics(BaseModel):
    total_dtcs: int = 0
    active_dtcs: int = 0
    resolved_dtcs: int = 0
    high_impact: int = 0


class VehicleResponse(BaseModel):
    """A vehicle row. Extra columns from the table are passed through."""

    model_config = ConfigDict(extra="allow")

    id: str
    brand: str
    model: str
    registration_date: Optional[str] = None
    type: Optional[str] = None
    vin: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    statistics: Optional[VehicleStatistics] = None


class VehicleDeleteResponse(BaseModel):
    status: str = "deleted"
    vehicle_id: str
    message: str = "Vehicle deleted successfully"


class VehicleListResponse(BaseModel):
    """Response from GET /api/v1/vehicles/owner/{owner_id}."""

    vehicles: list[VehicleResponse]
    total: int
