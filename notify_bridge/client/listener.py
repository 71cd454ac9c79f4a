"""
Listener - Reconnecting WebSocket client for the broker channel.

States:
    idle -> connecting -> connected -> disconnected -> connecting ...

- A successful handshake resets the backoff and starts the keepalive ping
- Close or error schedules the next attempt after the current backoff
  delay, then doubles it up to the ceiling (retries forever)
- reconnect() resets the backoff and forces close-then-connect now
- close() cancels everything; no transition fires afterwards

Usage:
    listener = Listener(url, on_event=gate.handle, on_status=runtime.set_status)
    listener.start()
    ...
    await listener.close()
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

import structlog
import websockets
from websockets.exceptions import WebSocketException

from ..events import PING, Event, EventError, is_housekeeping
from .backoff import Backoff
from .session import ConnectionStatus

__all__ = ["Listener"]

logger = structlog.get_logger(__name__)

KEEPALIVE_INTERVAL = 20.0

ConnectFactory = Callable[[str], Awaitable[Any]]
EventCallback = Callable[[Event], Awaitable[object]]
StatusCallback = Callable[[ConnectionStatus], Awaitable[object]]

TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


async def _default_connect(url: str) -> Any:
    return await websockets.connect(url)


class Listener:
    """Connection state machine for one broker URL.

    Args:
        url: Broker channel URL (ws://host:port)
        on_event: Awaited for every non-housekeeping event
        on_status: Awaited on every status transition
        backoff: Reconnect delay policy
        keepalive_interval: Seconds between pings while connected
        connect: Transport factory returning an open websocket
    """

    def __init__(
        self,
        url: str,
        on_event: EventCallback,
        on_status: StatusCallback | None = None,
        backoff: Backoff | None = None,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
        connect: ConnectFactory | None = None,
    ) -> None:
        self.url = url
        self.backoff = backoff or Backoff()
        self.keepalive_interval = keepalive_interval
        self._on_event = on_event
        self._on_status = on_status
        self._connect = connect or _default_connect

        self.status = ConnectionStatus.IDLE
        self._ws: Any = None
        self._task: asyncio.Task | None = None
        self._wake = asyncio.Event()
        self._immediate = False
        self._closed = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    def start(self) -> None:
        """Leave idle: the first attempt happens immediately."""
        if self._closed or self.running:
            return
        self._task = asyncio.create_task(self._run(), name="notify-listener")

    async def reconnect(self) -> None:
        """Manual reconnect: floor delay, close if open, connect now."""
        if self._closed:
            return
        logger.info("manual_reconnect", status=self.status.value)
        self.backoff.reset()
        self._immediate = True
        self._wake.set()

        if not self.running:
            self.start()
            return

        ws = self._ws
        if ws is not None:
            await self._close_transport(ws)

    async def close(self) -> None:
        """Tear down: cancel timers, close the transport, stop transitions."""
        if self._closed:
            return
        self._closed = True

        ws = self._ws
        if ws is not None:
            await self._close_transport(ws)

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.debug("listener_closed")

    # ─────────────────────────────────────────────────────────────────
    # State machine
    # ─────────────────────────────────────────────────────────────────

    async def _run(self) -> None:
        while not self._closed:
            self._immediate = False
            self._wake.clear()
            await self._set_status(ConnectionStatus.CONNECTING)

            try:
                ws = await self._connect(self.url)
            except TRANSPORT_ERRORS as e:
                logger.info("listener_connect_failed", url=self.url, error=str(e))
                await self._set_status(ConnectionStatus.ERROR)
            else:
                await self._session(ws)

            if self._closed:
                break
            await self._set_status(ConnectionStatus.DISCONNECTED)

            if self._immediate:
                continue
            delay = self.backoff.advance()
            logger.debug("reconnect_scheduled", delay=delay, attempt=self.backoff.attempts)
            await self._wait(delay)

    async def _session(self, ws: Any) -> None:
        """One connected period, from handshake to close/error."""
        self._ws = ws
        self.backoff.reset()
        await self._set_status(ConnectionStatus.CONNECTED)
        logger.info("listener_connected", url=self.url)

        keepalive = asyncio.create_task(self._keepalive(ws))
        try:
            async for raw in ws:
                await self._dispatch(raw)
        except TRANSPORT_ERRORS as e:
            logger.info("listener_connection_error", error=str(e))
            await self._set_status(ConnectionStatus.ERROR)
        finally:
            keepalive.cancel()
            try:
                await keepalive
            except asyncio.CancelledError:
                pass
            self._ws = None
            await self._close_transport(ws)

        logger.info("listener_disconnected", url=self.url)

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.debug("listener_invalid_message")
            return

        if is_housekeeping(data):
            logger.debug("listener_housekeeping", type=data.get("type"))
            return

        try:
            event = Event.from_dict(data, stamp=False)
        except EventError as e:
            logger.debug("listener_unknown_message", error=str(e))
            return

        try:
            await self._on_event(event)
        except Exception:
            logger.exception("listener_event_handler_failed", type=event.kind.value)

    async def _keepalive(self, ws: Any) -> None:
        """Ping at a fixed interval. The pong only confirms liveness."""
        payload = json.dumps({"type": PING})
        while True:
            await asyncio.sleep(self.keepalive_interval)
            try:
                await ws.send(payload)
            except TRANSPORT_ERRORS as e:
                logger.debug("keepalive_send_failed", error=str(e))
                return

    async def _wait(self, delay: float) -> None:
        """Sleep ``delay`` seconds unless woken by reconnect()."""
        try:
            await asyncio.wait_for(self._wake.wait(), delay)
        except asyncio.TimeoutError:
            pass

    async def _set_status(self, status: ConnectionStatus) -> None:
        if self._closed or status == self.status:
            return
        self.status = status
        if self._on_status is not None:
            try:
                await self._on_status(status)
            except Exception:
                logger.exception("listener_status_handler_failed", status=status.value)

    async def _close_transport(self, ws: Any) -> None:
        try:
            await ws.close()
        except TRANSPORT_ERRORS as e:
            logger.debug("listener_close_failed", error=str(e))
