"""
DTC Models — Pydantic schemas for diagnostic trouble codes.

A DTC row belongs to one vehicle and moves between active, resolved and
ignored. Codes follow the OBD-II shape: one letter and four digits (P0524).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ImpactLevel = Literal["low", "mid", "high"]
DtcStatus = Literal["active", "resolved", "ignored"]
DTC_CODE_PATTERN = r"^[A-Z][0-9]{4}$"


class DtcCreateRequest(BaseModel):
    """Payload for POST /api/v1/dtcs."""

    vehicle_id: str
    dtc_code: str = Field(..., pattern=DTC_CODE_PATTERN)
    description: str = Field(..., min_length=10, max_length=500)
    impact_level: ImpactLevel
    status: DtcStatus = "active"
    occurred_at: Optional[datetime] = None

    @field_validator("vehicle_id")
    @classmethod
    def validate_vehicle_id(cls, v: str) -> str:
        try:
            uuid.UUID(v)
        except ValueError:
            raise ValueError("Vehicle ID must be a valid UUID")
        return v

    @field_validator("occurred_at")
    @classmethod
    def validate_occurred_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        aware = v if v.tzinfo else v.replace(tzinfo=timezone.utc)
        if aware > datetime.now(timezone.utc):
            raise ValueError("Occurred at cannot be in the future")
        return v


class DtcUpdateRequest(BaseModel):
    """
    Payload for PUT /api/v1/dtcs/{dtc_id}.

    At least one field is required, and resolution_notes must accompany
    a change to status "resolved".
    """

    description: Optional[str] = Field(default=None, min_length=10, max_length=500)
    impact_level: Optional[ImpactLevel] = None
    status: Optional[DtcStatus] = None
    resolution_notes: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def check_fields(self) -> DtcUpdateRequest:
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        if self.status == "resolved" and not self.resolution_notes:
            raise ValueError("Resolution notes are required when marking DTC as resolved")
        return self


class DtcResponse(BaseModel):
    """A vehicle_dtcs row; extra columns pass through."""

    model_config = ConfigDict(extra="allow")

    id: str
    vehicle_id: str
    dtc_code: str
    description: Optional[str] = None
    impact_level: Optional[str] = None
    status: Optional[str] = None
    occurred_at: Optional[str] = None
    resolved_at: Optional[str] = None
    resolution_notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ImpactBreakdown(BaseModel):
    high: int = 0
    mid: int = 0
    low: int = 0


class ActiveDtcsResponse(BaseModel):
    dtcs: list[DtcResponse]
    total_active: int
    impact_breakdown: ImpactBreakdown


class ResolvedDtcsResponse(BaseModel):
    dtcs: list[DtcResponse]
    total_resolved: int


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class DtcListResponse(BaseModel):
    """Response from GET /api/v1/dtcs."""

    dtcs: list[DtcResponse]
    pagination: Pagination
