"""
Settings - User preferences and the listener's persistent store.

Storage is a small async key-value interface so the listener never
cares where state lives. Any read/write failure falls back to the
hardcoded defaults and never blocks notification delivery.
"""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Protocol

import structlog

__all__ = [
    "DEFAULT_SETTINGS",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "Settings",
    "load_settings",
    "save_settings",
]

logger = structlog.get_logger(__name__)

SETTINGS_KEY = "settings"

# Python attribute -> stored key
_STORAGE_KEYS = {
    "notifications_enabled": "notificationsEnabled",
    "sound_enabled": "soundEnabled",
    "notify_on_stop": "notifyOnStop",
    "notify_on_idle": "notifyOnIdle",
    "dark_mode": "darkMode",
    "hide_disconnected_help": "hideDisconnectedHelp",
    "debug_mode": "debugMode",
}


@dataclass(frozen=True)
class Settings:
    """User-controlled notification preferences."""

    notifications_enabled: bool = True
    sound_enabled: bool = False
    notify_on_stop: bool = True
    notify_on_idle: bool = True
    dark_mode: bool = False
    hide_disconnected_help: bool = False
    debug_mode: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {_STORAGE_KEYS[k]: v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Any) -> Settings:
        """Overlay stored values onto the defaults; bad entries are ignored."""
        if not isinstance(data, dict):
            return cls()
        values = {}
        for f in fields(cls):
            stored = data.get(_STORAGE_KEYS[f.name])
            if isinstance(stored, bool):
                values[f.name] = stored
        return cls(**values)


DEFAULT_SETTINGS = Settings()


class KeyValueStore(Protocol):
    """Async key-value storage surviving restarts."""

    async def get(self, keys: list[str]) -> dict[str, Any]: ...

    async def set(self, items: dict[str, Any]) -> None: ...


class MemoryStore:
    """In-process store (tests, ephemeral sessions)."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(initial or {})

    async def get(self, keys: list[str]) -> dict[str, Any]:
        return {k: self.data[k] for k in keys if k in self.data}

    async def set(self, items: dict[str, Any]) -> None:
        self.data.update(items)


class JsonFileStore:
    """Store backed by one JSON file, written atomically.

    File I/O runs in a worker thread so the listener's event loop
    never blocks on disk.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def get(self, keys: list[str]) -> dict[str, Any]:
        data = await asyncio.to_thread(self._read)
        return {k: data[k] for k in keys if k in data}

    async def set(self, items: dict[str, Any]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._update, items)

    def _read(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text())
        except FileNotFoundError:
            return {}
        return data if isinstance(data, dict) else {}

    def _update(self, items: dict[str, Any]) -> None:
        try:
            data = self._read()
        except (OSError, ValueError):
            data = {}
        data.update(items)

        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Write to temp file in same directory, then atomic rename
        tmp_path = self.path.parent / f".{self.path.name}.tmp.{os.getpid()}"
        tmp_path.write_text(json.dumps(data, indent=2))
        os.replace(str(tmp_path), str(self.path))


async def load_settings(store: KeyValueStore) -> Settings:
    """Read settings, falling back to defaults on any store failure."""
    try:
        result = await store.get([SETTINGS_KEY])
    except Exception as e:
        logger.warning("settings_read_failed", error=str(e))
        return DEFAULT_SETTINGS
    return Settings.from_dict(result.get(SETTINGS_KEY))


async def save_settings(store: KeyValueStore, settings: Settings) -> bool:
    """Persist settings.

    Returns:
        True if the store accepted the write
    """
    try:
        await store.set({SETTINGS_KEY: settings.to_dict()})
        return True
    except Exception as e:
        logger.warning("settings_write_failed", error=str(e))
        return False
