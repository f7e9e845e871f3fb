"""
Performance Data API — telemetry ingest and history.

POST /api/v1/performance-data — Store one sample and push it to live subscribers
GET /api/v1/performance-data/aggregated — Per-period chart aggregates
GET /api/v1/performance-data/{vehicle_id} — Raw samples for a day, week, or range
"""

import logging
import uuid
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from app.core.security import get_current_user_id
from app.db.performance_gateway import PersistenceError
from app.db.supabase_client import get_service_client
from app.models.performance import (
    AggregatedDataResponse,
    DateRange,
    PerformanceDataCreateResponse,
    PerformanceDataListResponse,
)
from app.models.telemetry import PERFORMANCE_TABLE, PerformanceDataCreate
from app.services.performance_stats import (
    aggregate_by_period,
    resolve_date_window,
    strip_nulls,
)
from app.services.telemetry_ingest import TelemetryIngestor, get_ingestor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/performance-data", tags=["performance-data"])


def _require_uuid(value: str, label: str) -> None:
    try:
        uuid.UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{label} must be a valid UUID.",
        )


# ===================================================================
# POST /api/v1/performance-data
# ===================================================================

@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=PerformanceDataCreateResponse,
)
async def store_performance_data(
    payload: PerformanceDataCreate,
    background_tasks: BackgroundTasks,
    ingestor: TelemetryIngestor = Depends(get_ingestor),
) -> PerformanceDataCreateResponse:
    """
    Store one telemetry sample and fan it out to WebSocket subscribers.

    The stored row is returned first; the broadcast runs as a background
    task after the response, so a slow or failing subscriber never delays
    or undoes the write. Nothing is broadcast when the insert fails.

    Returns:
        201: Sample stored (broadcast scheduled).
        422: Invalid payload (missing/non-UUID vehicle_id, non-numeric reading).
        500: Database error.
    """
    try:
        record = await ingestor.store(payload)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store performance data",
        )

    background_tasks.add_task(ingestor.broadcast, payload, record)
    return PerformanceDataCreateResponse(data=record)


# ===================================================================
# GET /api/v1/performance-data/aggregated
# ===================================================================

@router.get(
    "/aggregated",
    status_code=status.HTTP_200_OK,
    response_model=AggregatedDataResponse,
)
async def get_aggregated_data(
    vehicle_id: str = Query(...),
    from_date: Optional[str] = Query(default=None),
    to_date: Optional[str] = Query(default=None),
    group_by: Literal["hour", "day", "week", "month"] = Query(default="day"),
    metrics: list[Literal["rpm", "speed", "temperature"]] = Query(
        default=["rpm", "speed", "temperature"],
    ),
    aggregation_type: Literal["avg", "min", "max", "all"] = Query(default="all"),
    user_id: str = Depends(get_current_user_id),
) -> AggregatedDataResponse:
    """
    Aggregate a vehicle's samples into hour/day/week/month buckets for charts.

    Returns:
        200: Aggregated buckets (empty list when there is no data).
        400: to_date earlier than from_date.
        401: Missing or invalid authentication token.
        500: Database error.
    """
    _require_uuid(vehicle_id, "Vehicle ID")
    if from_date and to_date and to_date < from_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="To date must be after from date",
        )

    client = get_service_client()
    query = (
        client.table(PERFORMANCE_TABLE)
        .select("timestamp, rpm, speed, coolantTemp")
        .eq("vehicle_id", vehicle_id)
    )
    if from_date:
        query = query.gte("timestamp", from_date)
    if to_date:
        query = query.lte("timestamp", to_date)

    try:
        result = query.order("timestamp").execute()
    except Exception as exc:
        logger.error("Aggregation query failed for vehicle %s: %s", vehicle_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve aggregated data",
        )

    buckets = aggregate_by_period(
        result.data or [],
        group_by=group_by,
        metrics=metrics,
        aggregation_type=aggregation_type,
    )

    return AggregatedDataResponse(
        aggregated_data=buckets,
        group_by=group_by,
        metrics=list(metrics),
        aggregation_type=aggregation_type,
        total_periods=len(buckets),
        from_date=from_date,
        to_date=to_date,
    )


# ===================================================================
# GET /api/v1/performance-data/{vehicle_id}
# ===================================================================

@router.get(
    "/{vehicle_id}",
    status_code=status.HTTP_200_OK,
    response_model=PerformanceDataListResponse,
)
async def get_performance_data(
    vehicle_id: str,
    filter_type: Optional[str] = Query(default=None, alias="filterType"),
    date: Optional[str] = Query(default=None),
    from_date: Optional[str] = Query(default=None, alias="fromDate"),
    to_date: Optional[str] = Query(default=None, alias="toDate"),
    user_id: str = Depends(get_current_user_id),
) -> PerformanceDataListResponse:
    """
    List a vehicle's samples, oldest first, within a date window.

    filterType:
    - day (default): the given date, or today
    - weekend: Monday to Sunday of the week containing date
    - range / week: fromDate..toDate (both required)

    Null columns are stripped from each record.

    Returns:
        200: Samples and window metadata.
        400: Range filter without fromDate/toDate, or bad dates.
        401: Missing or invalid authentication token.
        500: Database error.
    """
    _require_uuid(vehicle_id, "Vehicle ID")

    try:
        start, end = resolve_date_window(filter_type, date, from_date, to_date)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        )

    client = get_service_client()
    try:
        result = (
            client.table(PERFORMANCE_TABLE)
            .select("*")
            .eq("vehicle_id", vehicle_id)
            .gte("timestamp", start)
            .lte("timestamp", end)
            .order("timestamp")
            .execute()
        )
    except Exception as exc:
        logger.error("Performance data query failed for vehicle %s: %s", vehicle_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve performance data",
        )

    records = [strip_nulls(row) for row in (result.data or [])]

    return PerformanceDataListResponse(
        data=records,
        filter_type=filter_type or "day",
        total_records=len(records),
        date_range=DateRange(start=start, end=end),
    )
