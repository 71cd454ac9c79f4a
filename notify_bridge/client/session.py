"""
Session State - What the listener knows about itself.

Holds connection status, the bounded most-recent-first list of
received notifications, the unread counter and the badge derived
from them. Mutated only by the listener's own handlers on a single
event loop, so no locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from ..events import Event, EventKind, utc_now_iso
from .settings import KeyValueStore

__all__ = [
    "Badge",
    "ConnectionStatus",
    "SessionState",
    "StoredNotification",
    "load_session",
    "save_session",
]

logger = structlog.get_logger(__name__)

MAX_RECENT = 10

GREEN = "#22c55e"
GRAY = "#6b7280"
RED = "#ef4444"
ORANGE = "#f97316"

KIND_COLORS = {
    EventKind.PERMISSION_PROMPT.value: RED,
    EventKind.IDLE_PROMPT.value: ORANGE,
    EventKind.STOP.value: GREEN,
}


class ConnectionStatus(str, Enum):
    """Listener connection state."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


# status -> (text, color)
STATUS_BADGES = {
    ConnectionStatus.IDLE: ("", GRAY),
    ConnectionStatus.CONNECTING: ("…", GRAY),
    ConnectionStatus.CONNECTED: ("", GREEN),
    ConnectionStatus.DISCONNECTED: ("!", GRAY),
    ConnectionStatus.ERROR: ("X", RED),
}


@dataclass(frozen=True)
class Badge:
    """Compact status indicator: short text on a colored background."""

    text: str
    color: str


@dataclass(frozen=True)
class StoredNotification:
    """A received event as kept in the recent list."""

    type: str
    message: str | None
    timestamp: str
    received_at: str

    @classmethod
    def from_event(cls, event: Event) -> StoredNotification:
        return cls(
            type=event.kind.value,
            message=event.message,
            timestamp=event.timestamp,
            received_at=utc_now_iso(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "timestamp": self.timestamp,
            "receivedAt": self.received_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredNotification:
        return cls(
            type=str(data["type"]),
            message=data.get("message"),
            timestamp=str(data.get("timestamp", "")),
            received_at=str(data.get("receivedAt", "")),
        )


@dataclass
class SessionState:
    """Listener-side session.

    Attributes:
        connection_status: Drives reconnection display and the badge
        recent: Most-recent-first, at most ``max_recent`` entries
        unread_count: Rendered notifications since the last acknowledgement
        last_notification_type: Kind of the most recent unread notification
    """

    max_recent: int = MAX_RECENT
    connection_status: ConnectionStatus = ConnectionStatus.IDLE
    recent: list[StoredNotification] = field(default_factory=list)
    unread_count: int = 0
    last_notification_type: str | None = None

    def record(self, event: Event) -> StoredNotification:
        """Prepend an event, dropping the oldest entries on overflow."""
        stored = StoredNotification.from_event(event)
        self.recent.insert(0, stored)
        del self.recent[self.max_recent:]
        return stored

    def mark_unread(self, kind: EventKind | str) -> None:
        self.unread_count += 1
        self.last_notification_type = kind.value if isinstance(kind, EventKind) else kind

    def acknowledge(self) -> None:
        """User has seen everything. Recent list is kept."""
        self.unread_count = 0
        self.last_notification_type = None

    def clear(self) -> None:
        self.recent.clear()
        self.acknowledge()

    def remove(self, index: int) -> bool:
        """Drop one entry from the recent list.

        Returns:
            True if ``index`` was in range
        """
        if not 0 <= index < len(self.recent):
            return False
        del self.recent[index]
        self.unread_count = max(0, self.unread_count - 1)
        return True

    @property
    def is_connected(self) -> bool:
        return self.connection_status == ConnectionStatus.CONNECTED

    def badge(self) -> Badge:
        """Unread count colored by kind, else the connection status."""
        if self.unread_count > 0:
            text = "9+" if self.unread_count > 9 else str(self.unread_count)
            return Badge(text, KIND_COLORS.get(self.last_notification_type or "", GRAY))
        text, color = STATUS_BADGES[self.connection_status]
        return Badge(text, color)

    def recent_dicts(self) -> list[dict[str, Any]]:
        return [n.to_dict() for n in self.recent]

    def to_dict(self) -> dict[str, Any]:
        return {
            "connectionStatus": self.connection_status.value,
            "recentNotifications": self.recent_dicts(),
            "unreadCount": self.unread_count,
            "lastNotificationType": self.last_notification_type,
        }

    def restore(self, data: dict[str, Any]) -> None:
        """Apply previously saved values; malformed entries are skipped."""
        recent = data.get("recentNotifications")
        if isinstance(recent, list):
            restored = []
            for item in recent:
                try:
                    restored.append(StoredNotification.from_dict(item))
                except (KeyError, TypeError):
                    continue
            self.recent = restored[: self.max_recent]

        unread = data.get("unreadCount")
        if isinstance(unread, int) and unread >= 0:
            self.unread_count = unread

        last = data.get("lastNotificationType")
        if last is None or last in KIND_COLORS:
            self.last_notification_type = last


SESSION_KEYS = ["connectionStatus", "recentNotifications", "unreadCount", "lastNotificationType"]


async def save_session(store: KeyValueStore, state: SessionState) -> bool:
    try:
        await store.set(state.to_dict())
        return True
    except Exception as e:
        logger.warning("session_write_failed", error=str(e))
        return False


async def load_session(store: KeyValueStore, state: SessionState) -> None:
    """Restore saved session values into ``state``.

    Connection status is not restored: a fresh runtime always starts idle.
    """
    try:
        data = await store.get(SESSION_KEYS)
    except Exception as e:
        logger.warning("session_read_failed", error=str(e))
        return
    state.restore(data)
