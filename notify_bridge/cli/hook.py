"""
CLI Hook - Turn one Claude Code hook invocation into a broker event.

The hook name comes from CLAUDE_HOOK_NAME; unknown hooks fall back to
the event's own "type" field. A "message" in the event JSON always
wins over the default text.
"""

import json
import os
from typing import Any, TextIO

import httpx
import structlog

from ..config import BrokerConfig
from ..events import EventKind, utc_now_iso
from .client import BrokerClient
from .daemon import ensure_broker

__all__ = ["HOOK_MESSAGES", "build_payload", "parse_hook_input", "run_hook"]

logger = structlog.get_logger(__name__)

HOOK_ENV = "CLAUDE_HOOK_NAME"

HOOK_MESSAGES = {
    EventKind.PERMISSION_PROMPT.value: "Claude Code needs your permission to proceed",
    EventKind.IDLE_PROMPT.value: "Claude Code is waiting for your input",
    EventKind.STOP.value: "Claude Code has finished and is ready for your next instruction",
}

FALLBACK_TYPE = "notification"
FALLBACK_MESSAGE = "Claude Code notification"


def parse_hook_input(text: str) -> dict[str, Any]:
    """Decode the hook's stdin; anything but a JSON object yields {}."""
    text = text.strip()
    if not text:
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def build_payload(hook_name: str | None, event: dict[str, Any]) -> dict[str, str]:
    """Derive the submission body for one hook invocation."""
    if hook_name in HOOK_MESSAGES:
        kind = hook_name
        message = HOOK_MESSAGES[hook_name]
    else:
        raw = event.get("type")
        kind = raw if isinstance(raw, str) and raw else FALLBACK_TYPE
        message = FALLBACK_MESSAGE

    override = event.get("message")
    if isinstance(override, str) and override:
        message = override

    return {"type": kind, "message": message, "timestamp": utc_now_iso()}


def run_hook(config: BrokerConfig, stdin: TextIO) -> int:
    """Ensure the broker, then submit. Never fails the calling tool.

    Returns:
        Always 0
    """
    try:
        text = "" if stdin.isatty() else stdin.read()
    except (OSError, ValueError):
        text = ""

    payload = build_payload(os.environ.get(HOOK_ENV), parse_hook_input(text))

    try:
        ensure_broker(config)
        with BrokerClient(config) as client:
            result = client.notify(payload["type"], payload["message"], payload["timestamp"])
        logger.debug("hook_submitted", type=payload["type"], result=result)
    except (httpx.HTTPError, OSError) as e:
        logger.debug("hook_submit_failed", type=payload["type"], error=str(e))

    return 0
