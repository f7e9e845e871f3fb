"""
Telemetry WebSocket — live vehicle performance data.

Endpoint: /ws/telemetry

Every frame, in both directions, is a JSON object {"event": ..., "data": ...}.

Client -> server events:
- subscribe-vehicle    data: "<vehicle_id>" or {"vehicle_id": ...}
                       reply: subscribed {vehicleId, message}
- unsubscribe-vehicle  data: as above
                       reply: unsubscribed {vehicleId}
- performance-data     data: a telemetry sample
                       reply: data-stored {success, vehicleId, timestamp}
                              or data-error {message}

Server -> subscriber events:
- performance-data     every stored sample for a subscribed vehicle

Malformed frames and unknown events get an "error" reply; the socket stays
open. On close (clean or abrupt) all of the connection's subscriptions are
dropped.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from app.db.performance_gateway import PersistenceError
from app.models.telemetry import TelemetrySample
from app.services.telemetry_hub import TelemetryHub, get_telemetry_hub
from app.services.telemetry_ingest import TelemetryIngestor, get_ingestor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telemetry"])

VEHICLE_ID_REQUIRED = "Vehicle ID is required"


def _extract_vehicle_id(data: Any) -> str | None:
    if isinstance(data, dict):
        data = data.get("vehicle_id") or data.get("vehicleId")
    if isinstance(data, (str, int)) and not isinstance(data, bool):
        vehicle_id = str(data).strip()
        return vehicle_id or None
    return None


def _validation_message(exc: ValidationError) -> str:
    for error in exc.errors():
        if error.get("loc") and error["loc"][0] == "vehicle_id":
            return VEHICLE_ID_REQUIRED
    return "Invalid performance data"


@router.websocket("/ws/telemetry")
async def telemetry_socket(
    websocket: WebSocket,
    hub: TelemetryHub = Depends(get_telemetry_hub),
    ingestor: TelemetryIngestor = Depends(get_ingestor),
) -> None:
    connection_id = await hub.connect(websocket)
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except (ValueError, KeyError):
                # KeyError: binary frame, no "text" payload
                await hub.send(connection_id, "error", "Invalid message format")
                continue
            await _dispatch(hub, ingestor, connection_id, message)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(connection_id)


async def _dispatch(
    hub: TelemetryHub,
    ingestor: TelemetryIngestor,
    connection_id: str,
    message: Any,
) -> None:
    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        await hub.send(connection_id, "error", "Invalid message format")
        return

    event = message["event"]
    data = message.get("data")

    if event == "subscribe-vehicle":
        vehicle_id = _extract_vehicle_id(data)
        if vehicle_id is None:
            await hub.send(connection_id, "error", VEHICLE_ID_REQUIRED)
            return
        hub.subscribe(connection_id, vehicle_id)
        await hub.send(connection_id, "subscribed", {
            "vehicleId": vehicle_id,
            "message": "Successfully subscribed to vehicle updates",
        })

    elif event == "unsubscribe-vehicle":
        vehicle_id = _extract_vehicle_id(data)
        if vehicle_id is None:
            await hub.send(connection_id, "error", VEHICLE_ID_REQUIRED)
            return
        hub.unsubscribe(connection_id, vehicle_id)
        await hub.send(connection_id, "unsubscribed", {"vehicleId": vehicle_id})

    elif event == "performance-data":
        await _handle_performance_data(hub, ingestor, connection_id, data)

    else:
        await hub.send(connection_id, "error", f"Unknown event: {event}")


async def _handle_performance_data(
    hub: TelemetryHub,
    ingestor: TelemetryIngestor,
    connection_id: str,
    data: Any,
) -> None:
    try:
        sample = TelemetrySample.model_validate(data if isinstance(data, dict) else {})
    except ValidationError as exc:
        await hub.send(connection_id, "data-error", {"message": _validation_message(exc)})
        return

    try:
        record = await ingestor.store(sample)
    except PersistenceError:
        await hub.send(connection_id, "data-error", {
            "message": "Failed to store performance data",
        })
        return

    await hub.send(connection_id, "data-stored", {
        "success": True,
        "vehicleId": sample.vehicle_id,
        "timestamp": record["timestamp"],
    })
    await ingestor.broadcast(sample, record)
