"""
Telemetry Models — one timestamped set of OBD instrument readings.

Readings use the camelCase column names of vehicle_performance_data on
the wire and in the database; Python code uses the snake_case attribute
names. Both spellings are accepted on input.

Absent or null readings stay absent: they are dropped from the insert row
and from broadcast payloads instead of being coerced to zero.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# int first so whole-number readings stay integers for integer columns.
Reading = Optional[Union[int, float]]

PERFORMANCE_TABLE = "vehicle_performance_data"


class TelemetrySample(BaseModel):
    """A telemetry sample as sent by the mobile app's OBD reader."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    vehicle_id: str = Field(..., min_length=1)
    rpm: Reading = None
    speed: Reading = None
    coolant_temp: Reading = Field(default=None, alias="coolantTemp")
    engine_temp: Reading = Field(default=None, alias="engineTemp")
    fuel_tank_level: Reading = Field(default=None, alias="fuelTankLevel")
    intake_air_temp: Reading = Field(default=None, alias="intakeAirTemp")
    battery_voltage: Reading = Field(default=None, alias="batteryVoltage")
    fuel_consumption: Reading = Field(default=None, alias="fuelConsumption")
    timestamp: Optional[datetime] = None

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def validate_vehicle_id(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("Vehicle ID is required")
        return v

    def stamped(self) -> TelemetrySample:
        """Return this sample with a server-assigned UTC timestamp if it has none."""
        if self.timestamp is not None:
            return self
        return self.model_copy(update={"timestamp": datetime.now(timezone.utc)})

    def to_row(self) -> dict:
        """Column dict for vehicle_performance_data, without null readings."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PerformanceDataCreate(TelemetrySample):
    """Payload for POST /api/v1/performance-data. vehicle_id must be a UUID."""

    @field_validator("vehicle_id")
    @classmethod
    def validate_vehicle_uuid(cls, v: str) -> str:
        try:
            uuid.UUID(v)
        except ValueError:
            raise ValueError("Vehicle ID must be a valid UUID")
        return v


def build_broadcast_payload(sample: TelemetrySample, record: dict) -> dict:
    """
    Message pushed to subscribers for one stored sample.

    Carries every reading the caller sent plus the persisted timestamp
    (falling back to the sample's own when the row has none).
    """
    payload = sample.to_row()
    persisted_ts = record.get("timestamp")
    if persisted_ts:
        payload["timestamp"] = persisted_ts
    if record.get("id") is not None:
        payload["id"] = record["id"]
    return payload
