"""
Events - The unit of notification traffic.

An Event is created once at the submission endpoint, then serialized
and copied to each listener. Housekeeping frames ("connected", "ping",
"pong") share the wire format but are never Events.

Usage:
    event = parse_event(request_body)     # raises EventError
    payload = event.to_dict()             # {"type", "message", "timestamp"}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

__all__ = [
    "CONNECTED",
    "HOUSEKEEPING_TYPES",
    "PING",
    "PONG",
    "Event",
    "EventError",
    "EventKind",
    "InvalidKind",
    "InvalidPayload",
    "is_housekeeping",
    "parse_event",
    "pong_message",
    "utc_now_iso",
    "welcome_message",
]

CONNECTED = "connected"
PING = "ping"
PONG = "pong"
HOUSEKEEPING_TYPES = frozenset({CONNECTED, PING, PONG})

WELCOME_TEXT = "Connected to Claude Code notification server"


class EventKind(str, Enum):
    """Closed set of notification kinds."""

    PERMISSION_PROMPT = "permission_prompt"
    IDLE_PROMPT = "idle_prompt"
    STOP = "stop"

    @classmethod
    def values(cls) -> list[str]:
        return [k.value for k in cls]


class EventError(ValueError):
    """Rejected submission. ``reason`` is the wire-level error string."""

    reason = "Invalid request"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.reason)


class InvalidPayload(EventError):
    reason = "Invalid JSON payload"


class InvalidKind(EventError):
    reason = "Invalid notification type"


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True, frozen=True)
class Event:
    """Immutable notification event.

    Attributes:
        kind: What happened
        message: Optional human-readable text
        timestamp: ISO-8601 UTC string (descriptive only)
    """

    kind: EventKind
    message: str | None = None
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Wire representation; ``message`` is omitted when absent."""
        data: dict[str, Any] = {"type": self.kind.value}
        if self.message is not None:
            data["message"] = self.message
        data["timestamp"] = self.timestamp
        return data

    @classmethod
    def from_dict(cls, data: Any, *, stamp: bool = True) -> Event:
        """Build an Event from a decoded JSON object.

        Args:
            data: Decoded JSON value
            stamp: Assign the current time when no timestamp was supplied

        Raises:
            InvalidPayload: ``data`` is not a JSON object
            InvalidKind: ``type`` is outside the closed enumeration
        """
        if not isinstance(data, dict):
            raise InvalidPayload(f"expected object, got {type(data).__name__}")

        raw_kind = data.get("type")
        try:
            kind = EventKind(raw_kind)
        except ValueError:
            raise InvalidKind(f"unknown type: {raw_kind!r}") from None

        message = data.get("message")
        if message is not None and not isinstance(message, str):
            message = str(message)

        timestamp = data.get("timestamp")
        if timestamp is not None and not isinstance(timestamp, str):
            timestamp = str(timestamp)
        if not timestamp and stamp:
            timestamp = utc_now_iso()

        return cls(kind=kind, message=message, timestamp=timestamp or "")


def parse_event(body: bytes | str) -> Event:
    """Decode a submission body into an Event.

    Raises:
        InvalidPayload: Body is not valid JSON or not an object
        InvalidKind: Unknown notification type
    """
    try:
        data = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidPayload(str(e)) from None
    return Event.from_dict(data)


def is_housekeeping(data: Any) -> bool:
    """True for transport frames that must never be treated as Events."""
    return isinstance(data, dict) and data.get("type") in HOUSEKEEPING_TYPES


def welcome_message() -> dict[str, str]:
    return {"type": CONNECTED, "message": WELCOME_TEXT, "timestamp": utc_now_iso()}


def pong_message() -> dict[str, str]:
    return {"type": PONG, "timestamp": utc_now_iso()}
