"""
Listener Connections - Per-listener channel and its lifecycle.

State machine per connection:
- CONNECTING: handshake in progress
- OPEN: registered with the hub, receives broadcasts
- CLOSING: remote close, local error, or keepalive timeout
- CLOSED: unregistered

Transitions:
- CONNECTING → OPEN: handshake completes; register; send welcome
- OPEN → OPEN: ping received → pong reply
- OPEN → CLOSING: disconnect, error, or keepalive timeout
- CLOSING → CLOSED: unregister; arm idle shutdown if nobody is left
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

import structlog
from starlette.websockets import WebSocket, WebSocketState

from ..events import PING, pong_message, welcome_message
from .hub import BroadcastHub
from .idle import IdleShutdown

__all__ = ["ConnectionLifecycle", "ConnectionState", "ListenerConnection"]

logger = structlog.get_logger(__name__)

NORMAL_CLOSURE = 1000
GOING_AWAY = 1001


class ConnectionState(Enum):
    """Listener connection states."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ListenerConnection:
    """One live channel to one remote listener.

    Writes are bounded by ``write_timeout``; a write that fails or times
    out reports False and leaves the connection for the transport (or
    the keepalive timeout) to reap.
    """

    def __init__(self, websocket: WebSocket, write_timeout: float = 2.0) -> None:
        self.websocket = websocket
        self.write_timeout = write_timeout
        self.state = ConnectionState.CONNECTING
        self.connected_at = time.time()

        client = websocket.client
        address = f"{client.host}:{client.port}" if client else "unknown"
        self.identity = f"{address}:{int(self.connected_at * 1000)}"

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    async def send(self, payload: dict[str, Any]) -> bool:
        """Send one JSON message.

        Returns:
            True if the message was written
        """
        if not self.is_open:
            return False

        try:
            await asyncio.wait_for(
                self.websocket.send_text(json.dumps(payload)),
                timeout=self.write_timeout,
            )
            return True
        except asyncio.TimeoutError:
            logger.warning("listener_write_timeout", listener=self.identity, timeout=self.write_timeout)
            return False
        except Exception as e:
            logger.warning("listener_write_failed", listener=self.identity, error=str(e))
            return False

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Close the channel from our side."""
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self.state = ConnectionState.CLOSING

        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await asyncio.wait_for(
                self.websocket.close(code=code, reason=reason),
                timeout=self.write_timeout,
            )
        except Exception as e:
            logger.debug("listener_close_failed", listener=self.identity, error=str(e))

    def __repr__(self) -> str:
        return f"ListenerConnection({self.identity!r}, {self.state.value})"


class ConnectionLifecycle:
    """Accepts listeners, answers keepalives, and reclaims dead channels.

    Connection attempts still in their handshake count as activity, so
    the idle timer is cancelled as soon as one starts and only re-armed
    once the hub is empty with nothing pending.

    Example:
        lifecycle = ConnectionLifecycle(hub, idle, keepalive_timeout=60)

        @app.websocket("/")
        async def listener(websocket: WebSocket):
            await lifecycle.serve(websocket)
    """

    def __init__(
        self,
        hub: BroadcastHub,
        idle: IdleShutdown,
        keepalive_timeout: float = 60.0,
        write_timeout: float = 2.0,
        is_shutting_down: Callable[[], bool] | None = None,
    ) -> None:
        self.hub = hub
        self.idle = idle
        self.keepalive_timeout = keepalive_timeout
        self.write_timeout = write_timeout
        self.is_shutting_down = is_shutting_down or (lambda: False)
        self._pending = 0

    @property
    def pending(self) -> int:
        """Connections still in their handshake."""
        return self._pending

    def is_idle(self) -> bool:
        """No registered listeners and no handshakes in flight."""
        return self.hub.size() == 0 and self._pending == 0

    async def serve(self, websocket: WebSocket) -> None:
        """Run one listener connection from handshake to removal."""
        if self.is_shutting_down():
            await websocket.close(code=GOING_AWAY, reason="Server shutting down")
            return

        conn = ListenerConnection(websocket, write_timeout=self.write_timeout)
        self._pending += 1
        self.idle.cancel()

        try:
            try:
                await websocket.accept()
                conn.state = ConnectionState.OPEN
                self.hub.register(conn)
            finally:
                self._pending -= 1

            logger.info("listener_connected", listener=conn.identity, total=self.hub.size())

            await conn.send(welcome_message())
            await self._read_loop(conn)
        except Exception as e:
            logger.warning("listener_error", listener=conn.identity, error=str(e))
        finally:
            self._release(conn)

    async def close_all(self, code: int = NORMAL_CLOSURE, reason: str = "") -> int:
        """Close every registered connection.

        Returns:
            Number of connections asked to close
        """
        targets = self.hub.snapshot()
        await asyncio.gather(*(c.close(code, reason) for c in targets))
        return len(targets)

    async def _read_loop(self, conn: ListenerConnection) -> None:
        while True:
            try:
                message = await self._receive(conn.websocket)
            except asyncio.TimeoutError:
                logger.info(
                    "listener_keepalive_timeout",
                    listener=conn.identity,
                    timeout=self.keepalive_timeout,
                )
                await conn.close(GOING_AWAY, "Keepalive timeout")
                return

            if message["type"] == "websocket.disconnect":
                return

            text = message.get("text")
            if text is None and message.get("bytes") is not None:
                text = message["bytes"].decode("utf-8", errors="replace")
            if text is not None:
                await self._handle_frame(conn, text)

    async def _receive(self, websocket: WebSocket) -> dict[str, Any]:
        if self.keepalive_timeout and self.keepalive_timeout > 0:
            return await asyncio.wait_for(websocket.receive(), timeout=self.keepalive_timeout)
        return await websocket.receive()

    async def _handle_frame(self, conn: ListenerConnection, text: str) -> None:
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("listener_invalid_frame", listener=conn.identity)
            return

        if isinstance(data, dict) and data.get("type") == PING:
            await conn.send(pong_message())

    def _release(self, conn: ListenerConnection) -> None:
        if conn.state is not ConnectionState.CLOSED:
            conn.state = ConnectionState.CLOSING
        removed = self.hub.unregister(conn)
        conn.state = ConnectionState.CLOSED

        if removed:
            logger.info("listener_disconnected", listener=conn.identity, total=self.hub.size())

        if self.is_idle() and not self.is_shutting_down():
            self.idle.arm()
