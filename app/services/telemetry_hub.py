"""
Telemetry Hub — live WebSocket connections and per-vehicle fan-out.

The hub is the transport side of real-time telemetry:
- assigns each accepted WebSocket a connection id,
- keeps the ConnectionRegistry in sync (drop_connection runs exactly once
  per connection, on its first disconnect),
- sends JSON frames of the form {"event": ..., "data": ...} to one
  connection, or to every subscriber of a vehicle.

Sending to a connection that is gone or no longer open is a silent no-op.
"""

import asyncio
import logging
import uuid
from typing import Any

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.services.connection_registry import ConnectionRegistry

logger = logging.getLogger(__name__)


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


class TelemetryHub:
    """Connection id -> WebSocket map plus the vehicle subscription registry."""

    def __init__(self, registry: ConnectionRegistry | None = None) -> None:
        self.registry = registry if registry is not None else ConnectionRegistry()
        # Pruned only by disconnect(), which the endpoint always calls on close
        self._connections: dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Accept the WebSocket and return its new connection id."""
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = websocket
        logger.info("Client connected: %s", connection_id[:8])
        return connection_id

    def disconnect(self, connection_id: str) -> bool:
        """
        Forget a connection and drop all of its subscriptions.

        Returns False if the connection was already gone, so repeated
        close notifications never touch the registry twice.
        """
        if self._connections.pop(connection_id, None) is None:
            return False
        vehicles = self.registry.drop_connection(connection_id)
        logger.info(
            "Client disconnected: %s (was subscribed to %d vehicle(s))",
            connection_id[:8],
            len(vehicles),
        )
        return True

    def subscribe(self, connection_id: str, vehicle_id: str) -> None:
        self.registry.subscribe(vehicle_id, connection_id)
        logger.info("Client %s subscribed to vehicle %s", connection_id[:8], vehicle_id)

    def unsubscribe(self, connection_id: str, vehicle_id: str) -> None:
        self.registry.unsubscribe(vehicle_id, connection_id)
        logger.info("Client %s unsubscribed from vehicle %s", connection_id[:8], vehicle_id)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def send(self, connection_id: str, event: str, data: Any) -> bool:
        """
        Send one event frame to a connection.

        Returns True if the frame was handed to the socket, False if the
        connection is unknown, closed, or failed mid-send.
        """
        websocket = self._connections.get(connection_id)
        if websocket is None or not _is_open(websocket):
            return False

        try:
            await websocket.send_json({"event": event, "data": data})
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.debug("Skipping send to %s: %s", connection_id[:8], exc)
            return False
        return True

    async def broadcast(self, vehicle_id: str, event: str, data: Any) -> int:
        """
        Send an event to every current subscriber of vehicle_id.

        Returns the number of connections the frame was delivered to.
        """
        subscribers = self.registry.subscribers_of(vehicle_id)
        if not subscribers:
            return 0

        results = await asyncio.gather(
            *(self.send(connection_id, event, data) for connection_id in subscribers)
        )
        delivered = sum(1 for ok in results if ok)
        logger.debug(
            "Broadcast %s for vehicle %s to %d/%d subscriber(s)",
            event,
            vehicle_id,
            delivered,
            len(subscribers),
        )
        return delivered


# Process-wide hub, shared by the WebSocket endpoint and the REST ingest route.
telemetry_hub = TelemetryHub()


def get_telemetry_hub() -> TelemetryHub:
    """FastAPI dependency returning the process-wide hub (overridable in tests)."""
    return telemetry_hub
