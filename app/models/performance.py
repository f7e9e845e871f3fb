"""
Performance Data Models — response schemas for the telemetry REST API.

Stored rows are returned as plain dicts: the vehicle_performance_data
columns are the OBD reader's camelCase names and are passed through as-is.
The request model lives in app/models/telemetry.py (PerformanceDataCreate),
shared with the WebSocket ingest path.
"""

from typing import Optional

from pydantic import BaseModel, Field


class PerformanceDataCreateResponse(BaseModel):
    """Response from POST /api/v1/performance-data."""

    message: str = "Performance data stored successfully"
    data: dict = Field(
        ...,
        description="The stored row, including its server id and timestamp.",
    )


class DateRange(BaseModel):
    start: str
    end: str


class PerformanceDataListResponse(BaseModel):
    """Response from GET /api/v1/performance-data/{vehicle_id}."""

    data: list[dict]
    filter_type: str
    total_records: int
    date_range: DateRange


class AggregatedDataResponse(BaseModel):
    """Response from GET /api/v1/performance-data/aggregated."""

    aggregated_data: list[dict]
    group_by: str
    metrics: list[str]
    aggregation_type: str
    total_periods: int
    from_date: Optional[str] = None
    to_date: Optional[str] = None
