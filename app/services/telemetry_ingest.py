"""
Telemetry Ingest — persist one sample, then fan it out to subscribers.

The two steps are sequential and independent:
- exactly one insert attempt per ingest; a failure raises PersistenceError
  and nothing is broadcast,
- the broadcast happens only after a successful insert, at most one frame
  per current subscriber, and its outcome never affects the stored row.

Neither step is retried here.
"""

import logging
from typing import Awaitable, Callable, Optional

from fastapi import Depends

from app.db.performance_gateway import PersistenceError, insert_performance_row
from app.models.telemetry import TelemetrySample, build_broadcast_payload
from app.services.telemetry_hub import TelemetryHub, get_telemetry_hub

logger = logging.getLogger(__name__)

PERFORMANCE_EVENT = "performance-data"

PersistFn = Callable[[dict], Awaitable[dict]]

__all__ = [
    "PERFORMANCE_EVENT",
    "PersistenceError",
    "TelemetryIngestor",
    "get_ingestor",
]


class TelemetryIngestor:
    """Ingest handler shared by the REST route and the WebSocket endpoint."""

    def __init__(self, hub: TelemetryHub, persist: Optional[PersistFn] = None) -> None:
        self.hub = hub
        self._persist = persist

    async def store(self, sample: TelemetrySample) -> dict:
        """
        Persist the sample and return the stored record.

        The record always carries a timestamp: the database's, or the
        server-assigned one sent with the insert.

        Raises:
            PersistenceError: The gateway did not store the row.
        """
        row = sample.stamped().to_row()
        persist = self._persist or insert_performance_row

        try:
            record = await persist(row)
        except PersistenceError as exc:
            logger.error(
                "Failed to store performance data for vehicle %s: %s",
                sample.vehicle_id,
                exc,
            )
            raise

        record = dict(record)
        record.setdefault("timestamp", row["timestamp"])
        logger.info("Performance data stored for vehicle: %s", sample.vehicle_id)
        return record

    async def broadcast(self, sample: TelemetrySample, record: dict) -> int:
        """Push the stored sample to the vehicle's subscribers. Returns deliveries."""
        payload = build_broadcast_payload(sample, record)
        return await self.hub.broadcast(sample.vehicle_id, PERFORMANCE_EVENT, payload)

    async def ingest(self, sample: TelemetrySample) -> dict:
        """store() then broadcast(). Returns the stored record."""
        record = await self.store(sample)
        await self.broadcast(sample, record)
        return record


def get_ingestor(hub: TelemetryHub = Depends(get_telemetry_hub)) -> TelemetryIngestor:
    """FastAPI dependency: an ingestor bound to the process-wide hub."""
    return TelemetryIngestor(hub)
