"""
Broadcast Hub - Owns the set of open listener connections.

The set is only mutated from the event loop thread and broadcast
iterates over a snapshot, so register/unregister can interleave with
an in-flight broadcast without disturbing it.

Example:
    hub = BroadcastHub()
    hub.register(conn)
    delivered = await hub.broadcast(event)
    hub.unregister(conn)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from ..events import Event
    from .connection import ListenerConnection

__all__ = ["BroadcastHub"]

logger = structlog.get_logger(__name__)


class BroadcastHub:
    """Authoritative registry of listener connections and fan-out."""

    __slots__ = ("_connections",)

    def __init__(self) -> None:
        self._connections: set[ListenerConnection] = set()

    def register(self, connection: ListenerConnection) -> None:
        """Add a connection (after a successful handshake)."""
        self._connections.add(connection)
        logger.debug("listener_registered", listener=connection.identity, total=len(self))

    def unregister(self, connection: ListenerConnection) -> bool:
        """Remove a connection. Idempotent.

        Returns:
            True if the connection was present
        """
        if connection not in self._connections:
            return False
        self._connections.discard(connection)
        logger.debug("listener_unregistered", listener=connection.identity, total=len(self))
        return True

    def snapshot(self) -> list[ListenerConnection]:
        """Copy of the current connection set."""
        return list(self._connections)

    def size(self) -> int:
        """Current number of registered connections."""
        return len(self._connections)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection: object) -> bool:
        return connection in self._connections

    async def broadcast(self, event: Event) -> int:
        """Write one event to every open connection.

        Writes run concurrently and are individually bounded by each
        connection's write timeout. A failed write neither aborts the
        others nor removes the connection.

        Returns:
            Number of connections the event was actually written to
        """
        payload = event.to_dict()
        targets = [c for c in self.snapshot() if c.is_open]
        if not targets:
            return 0

        results = await asyncio.gather(*(c.send(payload) for c in targets))
        return sum(1 for ok in results if ok)
