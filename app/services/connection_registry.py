"""
Connection Registry — which live connections want which vehicle's telemetry.

Owns a single map of vehicle_id -> set of connection ids. A vehicle key
exists only while at least one connection is subscribed to it; the set is
removed in the same critical section that empties it.

All mutations and snapshots go through one lock, so callers on the event
loop and in worker threads never observe a torn or stale set.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Process-wide vehicle -> subscriber-set map."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, set[str]] = {}
        self._lock = threading.Lock()

    def subscribe(self, vehicle_id: str, connection_id: str) -> None:
        """Add connection_id to vehicle_id's subscribers. Idempotent."""
        with self._lock:
            self._subscriptions.setdefault(vehicle_id, set()).add(connection_id)

    def unsubscribe(self, vehicle_id: str, connection_id: str) -> None:
        """Remove connection_id from vehicle_id. No-op if it was never subscribed."""
        with self._lock:
            self._discard(vehicle_id, connection_id)

    def drop_connection(self, connection_id: str) -> list[str]:
        """
        Remove connection_id from every vehicle it subscribed to.

        Returns the vehicle ids it was removed from (empty if none).
        """
        with self._lock:
            affected = [
                vehicle_id
                for vehicle_id, members in self._subscriptions.items()
                if connection_id in members
            ]
            for vehicle_id in affected:
                self._discard(vehicle_id, connection_id)

        if affected:
            logger.debug(
                "Dropped connection %s from %d vehicle(s)",
                connection_id[:8],
                len(affected),
            )
        return affected

    def subscribers_of(self, vehicle_id: str) -> frozenset[str]:
        """Snapshot of the connections subscribed to vehicle_id."""
        with self._lock:
            return frozenset(self._subscriptions.get(vehicle_id, ()))

    def vehicles(self) -> frozenset[str]:
        """Snapshot of every vehicle with at least one subscriber."""
        with self._lock:
            return frozenset(self._subscriptions)

    def __contains__(self, vehicle_id: object) -> bool:
        with self._lock:
            return vehicle_id in self._subscriptions

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _discard(self, vehicle_id: str, connection_id: str) -> None:
        # Caller holds the lock.
        members = self._subscriptions.get(vehicle_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._subscriptions[vehicle_id]
