"""
Telemetry Hub & Ingest Tests

Tests cover:
1. TelemetryHub connect/disconnect, exactly-once cleanup
2. send() skips unknown, closed and failing sockets
3. broadcast() reaches every subscriber and only subscribers
4. TelemetryIngestor persists before broadcasting
5. A persistence failure broadcasts nothing
6. Null readings never appear in the stored row or the broadcast
7. The WebSocket handler loop, driven with scripted frames

All sockets are in-memory fakes; no database or network is needed.

Run with: pytest tests/test_telemetry_ingest.py -v
"""

from unittest.mock import AsyncMock

import pytest
from starlette.websockets import WebSocketDisconnect, WebSocketState

from app.api.telemetry_ws import telemetry_socket
from app.db.performance_gateway import PersistenceError
from app.models.telemetry import TelemetrySample, build_broadcast_payload
from app.services.telemetry_hub import TelemetryHub
from app.services.telemetry_ingest import PERFORMANCE_EVENT, TelemetryIngestor


VEHICLE_ID = "8a1f3e2c-5b6d-4e7f-9a0b-1c2d3e4f5a6b"


class FakeSocket:
    """Minimal stand-in for a Starlette WebSocket."""

    def __init__(self, incoming=None, fail_on_send: bool = False):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.accepted = False
        self.sent: list[dict] = []
        self._incoming = list(incoming or [])
        self._fail_on_send = fail_on_send

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self._fail_on_send:
            raise RuntimeError("socket is closing")
        self.sent.append(data)

    async def receive_json(self):
        if not self._incoming:
            raise WebSocketDisconnect(code=1000)
        item = self._incoming.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close_abruptly(self):
        self.client_state = WebSocketState.DISCONNECTED

    def events(self) -> list[str]:
        return [frame["event"] for frame in self.sent]


def _stored_record(row: dict) -> dict:
    return {"id": "row-1", **row}


# ---------------------------------------------------------------------------
# TelemetryHub
# ---------------------------------------------------------------------------

class TestTelemetryHub:

    @pytest.mark.asyncio
    async def test_connect_accepts_and_registers(self):
        hub = TelemetryHub()
        ws = FakeSocket()

        conn_id = await hub.connect(ws)

        assert ws.accepted
        assert hub.is_connected(conn_id)
        assert hub.connection_count == 1

    @pytest.mark.asyncio
    async def test_disconnect_drops_all_subscriptions(self):
        hub = TelemetryHub()
        conn_id = await hub.connect(FakeSocket())
        hub.subscribe(conn_id, "vehicle-1")
        hub.subscribe(conn_id, "vehicle-2")

        assert hub.disconnect(conn_id) is True
        assert hub.connection_count == 0
        assert len(hub.registry) == 0

    @pytest.mark.asyncio
    async def test_disconnect_runs_cleanup_once(self):
        hub = TelemetryHub()
        conn_id = await hub.connect(FakeSocket())
        hub.subscribe(conn_id, "vehicle-1")

        assert hub.disconnect(conn_id) is True
        assert hub.disconnect(conn_id) is False
        print("  second disconnect is a no-op")

    @pytest.mark.asyncio
    async def test_send_to_unknown_connection_is_noop(self):
        hub = TelemetryHub()
        assert await hub.send("missing", "error", "x") is False

    @pytest.mark.asyncio
    async def test_send_skips_closed_socket(self):
        hub = TelemetryHub()
        ws = FakeSocket()
        conn_id = await hub.connect(ws)
        ws.close_abruptly()

        assert await hub.send(conn_id, "error", "x") is False
        assert ws.sent == []

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self):
        hub = TelemetryHub()
        conn_id = await hub.connect(FakeSocket(fail_on_send=True))

        assert await hub.send(conn_id, "error", "x") is False

    @pytest.mark.asyncio
    async def test_broadcast_reaches_only_subscribers(self):
        hub = TelemetryHub()
        watcher_a, watcher_b, bystander = FakeSocket(), FakeSocket(), FakeSocket()
        a = await hub.connect(watcher_a)
        b = await hub.connect(watcher_b)
        await hub.connect(bystander)
        hub.subscribe(a, "vehicle-1")
        hub.subscribe(b, "vehicle-1")

        delivered = await hub.broadcast("vehicle-1", "performance-data", {"rpm": 900})

        assert delivered == 2
        assert watcher_a.sent == [{"event": "performance-data", "data": {"rpm": 900}}]
        assert watcher_b.sent == [{"event": "performance-data", "data": {"rpm": 900}}]
        assert bystander.sent == []

    @pytest.mark.asyncio
    async def test_broadcast_continues_past_a_failing_subscriber(self):
        hub = TelemetryHub()
        healthy, broken = FakeSocket(), FakeSocket(fail_on_send=True)
        h = await hub.connect(healthy)
        b = await hub.connect(broken)
        hub.subscribe(h, "vehicle-1")
        hub.subscribe(b, "vehicle-1")

        delivered = await hub.broadcast("vehicle-1", "performance-data", {"rpm": 900})

        assert delivered == 1
        assert len(healthy.sent) == 1

    @pytest.mark.asyncio
    async def test_broadcast_without_subscribers(self):
        hub = TelemetryHub()
        assert await hub.broadcast("vehicle-1", "performance-data", {}) == 0


# ---------------------------------------------------------------------------
# TelemetryIngestor
# ---------------------------------------------------------------------------

class TestTelemetryIngestor:

    @pytest.mark.asyncio
    async def test_ingest_persists_then_broadcasts(self):
        hub = TelemetryHub()
        watcher = FakeSocket()
        conn_id = await hub.connect(watcher)
        hub.subscribe(conn_id, VEHICLE_ID)

        calls = []

        async def persist(row):
            calls.append(("persist", len(watcher.sent)))
            return _stored_record(row)

        ingestor = TelemetryIngestor(hub, persist=persist)
        sample = TelemetrySample(vehicle_id=VEHICLE_ID, rpm=2500, speed=60)

        record = await ingestor.ingest(sample)

        # Nothing was sent before the insert finished.
        assert calls == [("persist", 0)]
        assert record["rpm"] == 2500
        assert watcher.events() == [PERFORMANCE_EVENT]
        payload = watcher.sent[0]["data"]
        assert payload["vehicle_id"] == VEHICLE_ID
        assert payload["rpm"] == 2500
        assert payload["timestamp"] == record["timestamp"]
        print("  persist-then-broadcast OK")

    @pytest.mark.asyncio
    async def test_persistence_failure_broadcasts_nothing(self):
        hub = TelemetryHub()
        watcher = FakeSocket()
        conn_id = await hub.connect(watcher)
        hub.subscribe(conn_id, VEHICLE_ID)

        persist = AsyncMock(side_effect=PersistenceError("connection refused"))
        ingestor = TelemetryIngestor(hub, persist=persist)

        with pytest.raises(PersistenceError):
            await ingestor.ingest(TelemetrySample(vehicle_id=VEHICLE_ID, rpm=800))

        persist.assert_awaited_once()
        assert watcher.sent == []

    @pytest.mark.asyncio
    async def test_broadcast_failure_does_not_affect_stored_record(self):
        hub = TelemetryHub()
        conn_id = await hub.connect(FakeSocket(fail_on_send=True))
        hub.subscribe(conn_id, VEHICLE_ID)

        persist = AsyncMock(side_effect=lambda row: _stored_record(row))
        ingestor = TelemetryIngestor(hub, persist=persist)

        record = await ingestor.ingest(TelemetrySample(vehicle_id=VEHICLE_ID, speed=42))

        assert record["speed"] == 42
        persist.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_null_readings_are_not_stored(self):
        persist = AsyncMock(side_effect=lambda row: _stored_record(row))
        ingestor = TelemetryIngestor(TelemetryHub(), persist=persist)

        sample = TelemetrySample.model_validate({
            "vehicle_id": VEHICLE_ID,
            "rpm": 1200,
            "coolantTemp": None,
            "batteryVoltage": 12.6,
        })
        await ingestor.store(sample)

        row = persist.await_args.args[0]
        assert row["rpm"] == 1200
        assert row["batteryVoltage"] == 12.6
        assert "coolantTemp" not in row
        assert "speed" not in row
        assert "timestamp" in row

    @pytest.mark.asyncio
    async def test_client_timestamp_is_kept(self):
        persist = AsyncMock(side_effect=lambda row: {"id": "row-1"})
        ingestor = TelemetryIngestor(TelemetryHub(), persist=persist)

        sample = TelemetrySample(vehicle_id=VEHICLE_ID, timestamp="2024-05-01T10:00:00Z")
        record = await ingestor.store(sample)

        assert record["timestamp"].startswith("2024-05-01T10:00:00")


# ---------------------------------------------------------------------------
# Broadcast payload
# ---------------------------------------------------------------------------

class TestBroadcastPayload:

    def test_payload_uses_persisted_timestamp(self):
        sample = TelemetrySample(vehicle_id="v-1", rpm=900).stamped()
        payload = build_broadcast_payload(
            sample, {"id": 7, "timestamp": "2024-01-01T00:00:00+00:00"}
        )

        assert payload["timestamp"] == "2024-01-01T00:00:00+00:00"
        assert payload["id"] == 7
        assert payload["rpm"] == 900

    def test_payload_omits_missing_readings(self):
        sample = TelemetrySample(vehicle_id="v-1", speed=0).stamped()
        payload = build_broadcast_payload(sample, {})

        assert payload["speed"] == 0
        assert "rpm" not in payload
        assert "fuelTankLevel" not in payload


# ---------------------------------------------------------------------------
# WebSocket handler loop
# ---------------------------------------------------------------------------

class TestTelemetrySocketHandler:

    @pytest.mark.asyncio
    async def test_subscribe_ack_and_cleanup_on_close(self):
        hub = TelemetryHub()
        ws = FakeSocket(incoming=[
            {"event": "subscribe-vehicle", "data": "vehicle-1"},
            {"event": "subscribe-vehicle", "data": {"vehicleId": "vehicle-2"}},
        ])

        await telemetry_socket(ws, hub=hub, ingestor=TelemetryIngestor(hub))

        assert ws.events() == ["subscribed", "subscribed"]
        assert ws.sent[1]["data"]["vehicleId"] == "vehicle-2"
        assert hub.connection_count == 0
        assert len(hub.registry) == 0
        print("  subscriptions dropped on close")

    @pytest.mark.asyncio
    async def test_abrupt_close_drops_subscriptions(self):
        hub = TelemetryHub()
        ws = FakeSocket(incoming=[
            {"event": "subscribe-vehicle", "data": "vehicle-1"},
            WebSocketDisconnect(code=1006),
        ])

        await telemetry_socket(ws, hub=hub, ingestor=TelemetryIngestor(hub))

        assert "vehicle-1" not in hub.registry

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        hub = TelemetryHub()
        observed = []

        class ObservingSocket(FakeSocket):
            async def send_json(self, data):
                await super().send_json(data)
                observed.append("vehicle-1" in hub.registry)

        ws = ObservingSocket(incoming=[
            {"event": "subscribe-vehicle", "data": "vehicle-1"},
            {"event": "unsubscribe-vehicle", "data": "vehicle-1"},
        ])

        await telemetry_socket(ws, hub=hub, ingestor=TelemetryIngestor(hub))

        assert ws.events() == ["subscribed", "unsubscribed"]
        assert observed == [True, False]

    @pytest.mark.asyncio
    async def test_missing_vehicle_id_is_an_error(self):
        hub = TelemetryHub()
        ws = FakeSocket(incoming=[
            {"event": "subscribe-vehicle", "data": ""},
            {"event": "unsubscribe-vehicle"},
        ])

        await telemetry_socket(ws, hub=hub, ingestor=TelemetryIngestor(hub))

        assert ws.sent == [
            {"event": "error", "data": "Vehicle ID is required"},
            {"event": "error", "data": "Vehicle ID is required"},
        ]

    @pytest.mark.asyncio
    async def test_malformed_and_unknown_frames_keep_socket_open(self):
        hub = TelemetryHub()
        ws = FakeSocket(incoming=[
            ValueError("not json"),
            ["not", "an", "object"],
            {"event": "teleport", "data": {}},
            {"event": "subscribe-vehicle", "data": "vehicle-1"},
        ])

        await telemetry_socket(ws, hub=hub, ingestor=TelemetryIngestor(hub))

        assert ws.events() == ["error", "error", "error", "subscribed"]
        assert ws.sent[2]["data"] == "Unknown event: teleport"

    @pytest.mark.asyncio
    async def test_performance_data_stored_and_broadcast(self):
        hub = TelemetryHub()
        watcher = FakeSocket()
        watcher_id = await hub.connect(watcher)
        hub.subscribe(watcher_id, VEHICLE_ID)

        persist = AsyncMock(side_effect=lambda row: _stored_record(row))
        sender = FakeSocket(incoming=[
            {"event": "performance-data", "data": {"vehicle_id": VEHICLE_ID, "rpm": 3100}},
        ])

        await telemetry_socket(sender, hub=hub, ingestor=TelemetryIngestor(hub, persist=persist))

        assert sender.events() == ["data-stored"]
        ack = sender.sent[0]["data"]
        assert ack["success"] is True
        assert ack["vehicleId"] == VEHICLE_ID
        assert ack["timestamp"]
        assert watcher.events() == ["performance-data"]
        assert watcher.sent[0]["data"]["rpm"] == 3100

    @pytest.mark.asyncio
    async def test_performance_data_without_vehicle_id(self):
        hub = TelemetryHub()
        persist = AsyncMock()
        ws = FakeSocket(incoming=[
            {"event": "performance-data", "data": {"rpm": 3100}},
        ])

        await telemetry_socket(ws, hub=hub, ingestor=TelemetryIngestor(hub, persist=persist))

        assert ws.sent == [
            {"event": "data-error", "data": {"message": "Vehicle ID is required"}},
        ]
        persist.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_performance_data_store_failure(self):
        hub = TelemetryHub()
        watcher = FakeSocket()
        watcher_id = await hub.connect(watcher)
        hub.subscribe(watcher_id, VEHICLE_ID)

        persist = AsyncMock(side_effect=PersistenceError("timeout"))
        ws = FakeSocket(incoming=[
            {"event": "performance-data", "data": {"vehicle_id": VEHICLE_ID, "rpm": 3100}},
        ])

        await telemetry_socket(ws, hub=hub, ingestor=TelemetryIngestor(hub, persist=persist))

        assert ws.sent == [
            {"event": "data-error", "data": {"message": "Failed to store performance data"}},
        ]
        assert watcher.sent == []
