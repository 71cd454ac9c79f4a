"""
Client Runtime - Wires listener, gate, session and storage together.

Also the request surface for a UI layer: six request kinds, each
answered with a plain dict (or None for anything unrecognized).

Usage:
    runtime = ClientRuntime(client_config, store=JsonFileStore(path))
    await runtime.start()
    status = await runtime.handle_request({"type": "getStatus"})
    await runtime.close()
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

import structlog

from ..config import ClientConfig
from ..events import Event, EventKind, utc_now_iso
from ..logs import set_debug
from .backoff import Backoff
from .gate import NotificationGate
from .listener import ConnectFactory, Listener
from .notifier import RecordingNotifier, Renderer
from .session import ConnectionStatus, SessionState, load_session, save_session
from .settings import KeyValueStore, MemoryStore, Settings, load_settings, save_settings

__all__ = ["TEST_MESSAGE", "ClientRuntime"]

logger = structlog.get_logger(__name__)

TEST_MESSAGE = "This is a test notification from Claude Code Notifier"


class ClientRuntime:
    """Listener-side process state.

    Args:
        config: Client configuration
        store: Persistent key-value store (defaults to in-memory)
        renderer: Notification renderer (defaults to recording)
        connect: Transport factory override for the listener
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        store: KeyValueStore | None = None,
        renderer: Renderer | None = None,
        connect: ConnectFactory | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.store = store if store is not None else MemoryStore()
        self.renderer = renderer if renderer is not None else RecordingNotifier()

        self.session = SessionState(max_recent=self.config.max_recent)
        self.gate = NotificationGate(
            self.session,
            self.renderer,
            store=self.store,
            auto_dismiss=self.config.auto_dismiss,
            on_change=self.persist,
        )
        self.listener = Listener(
            self.config.ws_url,
            on_event=self.gate.handle,
            on_status=self.set_status,
            backoff=Backoff(self.config.reconnect_floor, self.config.reconnect_ceiling),
            keepalive_interval=self.config.keepalive_interval,
            connect=connect,
        )

    @property
    def settings(self) -> Settings:
        return self.gate.settings

    async def start(self) -> None:
        """Restore state and settings, then start connecting."""
        await load_session(self.store, self.session)
        self.gate.settings = await load_settings(self.store)
        set_debug("notify_bridge.client", self.settings.debug_mode)
        await self.gate.refresh_badge()
        self.listener.start()
        logger.info("client_started", url=self.config.ws_url, unread=self.session.unread_count)

    async def close(self) -> None:
        """Teardown: no timer or transition fires afterwards."""
        self.gate.close()
        await self.listener.close()
        await self.renderer.close()
        logger.info("client_stopped")

    async def update_settings(self, **changes: bool) -> Settings:
        """Apply and persist setting changes (unknown names raise TypeError)."""
        settings = replace(self.settings, **changes)
        self.gate.settings = settings
        set_debug("notify_bridge.client", settings.debug_mode)
        await save_settings(self.store, settings)
        return settings

    async def set_status(self, status: ConnectionStatus) -> None:
        self.session.connection_status = status
        logger.debug("connection_status", status=status.value)
        await self.gate.refresh_badge()
        await self.persist()

    async def persist(self) -> None:
        await save_session(self.store, self.session)

    async def notification_clicked(self, notification_id: str) -> None:
        await self.gate.clicked(notification_id)

    # ─────────────────────────────────────────────────────────────────
    # UI requests
    # ─────────────────────────────────────────────────────────────────

    async def handle_request(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Answer one UI request.

        Returns:
            Response dict, or None for unrecognized requests
        """
        kind = message.get("type") if isinstance(message, dict) else None

        if kind == "getStatus":
            return {
                "isConnected": self.session.is_connected,
                "connectionStatus": self.session.connection_status.value,
                "recentNotifications": self.session.recent_dicts(),
                "unreadCount": self.session.unread_count,
            }

        if kind == "markAsRead":
            await self.gate.acknowledge()
            return {"success": True}

        if kind == "testNotification":
            event = Event(EventKind.PERMISSION_PROMPT, TEST_MESSAGE, utc_now_iso())
            await self.gate.handle(event, force=True)
            return {"success": True}

        if kind == "reconnect":
            await self.listener.reconnect()
            return {"success": True}

        if kind == "clearNotifications":
            self.session.clear()
            await self.gate.refresh_badge()
            await self.persist()
            return {"success": True}

        if kind == "removeNotification":
            index = message.get("index")
            if isinstance(index, int) and not isinstance(index, bool):
                if self.session.remove(index):
                    await self.gate.refresh_badge()
                    await self.persist()
            return {"success": True, "notifications": self.session.recent_dicts()}

        logger.debug("unknown_request", type=kind)
        return None

