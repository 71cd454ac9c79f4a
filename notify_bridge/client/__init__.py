"""
Client - The desktop listener.

Components:
- Listener: reconnecting WebSocket state machine with keepalive
- NotificationGate: records, filters and renders incoming events
- SessionState: recent list, unread count, badge
- ClientRuntime: wiring plus the UI request surface
"""

from .backoff import Backoff, next_delay
from .gate import DEFAULT_MESSAGES, PRESENTATION, NotificationGate
from .listener import Listener
from .notifier import DesktopNotification, DesktopNotifier, RecordingNotifier
from .runtime import ClientRuntime
from .session import Badge, ConnectionStatus, SessionState, StoredNotification
from .settings import DEFAULT_SETTINGS, JsonFileStore, MemoryStore, Settings

__all__ = [
    "DEFAULT_MESSAGES",
    "DEFAULT_SETTINGS",
    "PRESENTATION",
    "Backoff",
    "Badge",
    "ClientRuntime",
    "ConnectionStatus",
    "DesktopNotification",
    "DesktopNotifier",
    "JsonFileStore",
    "Listener",
    "MemoryStore",
    "NotificationGate",
    "RecordingNotifier",
    "SessionState",
    "Settings",
    "StoredNotification",
    "next_delay",
]
