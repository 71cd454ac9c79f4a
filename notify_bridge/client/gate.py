"""
Notification Gate - Decides what gets rendered.

For each incoming event:
1. Look up the per-kind presentation
2. Record it in the recent list (always)
3. Stop if the kind is switched off (idle_prompt, stop)
4. Stop if notifications are switched off globally
5. Render: permission prompts persist, others auto-dismiss
6. Count it as unread and refresh the badge
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog

from ..events import Event, EventKind
from .notifier import DesktopNotification, Renderer
from .session import SessionState
from .settings import DEFAULT_SETTINGS, KeyValueStore, Settings, load_settings

__all__ = ["DEFAULT_MESSAGES", "PRESENTATION", "NotificationGate", "Presentation"]

logger = structlog.get_logger(__name__)

AUTO_DISMISS_SECONDS = 5.0


@dataclass(frozen=True)
class Presentation:
    title: str
    priority: int
    persistent: bool


PRESENTATION = {
    EventKind.PERMISSION_PROMPT: Presentation("Claude needs permission", priority=2, persistent=True),
    EventKind.IDLE_PROMPT: Presentation("Claude is waiting", priority=1, persistent=False),
    EventKind.STOP: Presentation("Claude finished", priority=0, persistent=False),
}

DEFAULT_MESSAGES = {
    EventKind.PERMISSION_PROMPT: "Claude Code needs your permission to proceed",
    EventKind.IDLE_PROMPT: "Claude Code is waiting for your input",
    EventKind.STOP: "Claude Code has finished and is ready for your next instruction",
}


def kind_enabled(kind: EventKind, settings: Settings) -> bool:
    """Per-kind switch. Permission prompts cannot be silenced individually."""
    if kind == EventKind.IDLE_PROMPT:
        return settings.notify_on_idle
    if kind == EventKind.STOP:
        return settings.notify_on_stop
    return True


class NotificationGate:
    """Record, filter and render incoming events.

    Args:
        session: Session state to record into
        renderer: Where notifications and the badge go
        settings: User settings to start from
        store: When given, settings are re-read from it for every event,
            so changes made by another process apply without a restart
        auto_dismiss: Seconds before transient notifications are cleared
        on_change: Awaited after every session mutation (persistence)
    """

    def __init__(
        self,
        session: SessionState,
        renderer: Renderer,
        settings: Settings = DEFAULT_SETTINGS,
        store: KeyValueStore | None = None,
        auto_dismiss: float = AUTO_DISMISS_SECONDS,
        on_change: Callable[[], Awaitable[object]] | None = None,
    ) -> None:
        self.session = session
        self.renderer = renderer
        self.settings = settings
        self.store = store
        self.auto_dismiss = auto_dismiss
        self._on_change = on_change
        self._dismiss_tasks: dict[str, asyncio.Task] = {}
        self._seq = itertools.count(1)

    async def handle(self, event: Event, *, force: bool = False) -> bool:
        """Process one event.

        Args:
            event: Incoming event (housekeeping already filtered)
            force: Skip the settings checks (test notifications)

        Returns:
            True if the event was rendered
        """
        presentation = PRESENTATION[event.kind]
        if self.store is not None:
            self.settings = await load_settings(self.store)
        self.session.record(event)

        if not force:
            if not kind_enabled(event.kind, self.settings):
                logger.debug("notification_suppressed", type=event.kind.value, reason="kind_disabled")
                await self._changed()
                return False
            if not self.settings.notifications_enabled:
                logger.debug("notification_suppressed", type=event.kind.value, reason="disabled")
                await self._changed()
                return False

        notification = DesktopNotification(
            id=f"claude-{event.kind.value}-{int(time.time() * 1000)}-{next(self._seq)}",
            kind=event.kind.value,
            title=presentation.title,
            message=event.message or DEFAULT_MESSAGES[event.kind],
            priority=presentation.priority,
            persistent=presentation.persistent,
            sound=self.settings.sound_enabled,
            expire_seconds=None if presentation.persistent else self.auto_dismiss,
        )

        try:
            await self.renderer.show(notification)
        except Exception as e:
            logger.warning("notification_render_failed", id=notification.id, error=str(e))

        if not presentation.persistent:
            self._schedule_dismiss(notification.id)

        self.session.mark_unread(event.kind)
        await self.refresh_badge()
        await self._changed()

        logger.info("notification_shown", type=event.kind.value, unread=self.session.unread_count)
        return True

    async def acknowledge(self) -> None:
        """Popup opened or notification clicked: nothing is unread anymore."""
        self.session.acknowledge()
        await self.refresh_badge()
        await self._changed()

    async def clicked(self, notification_id: str) -> None:
        """A notification was clicked: clear it and acknowledge."""
        self._cancel_dismiss(notification_id)
        await self._clear(notification_id)
        await self.acknowledge()

    async def refresh_badge(self) -> None:
        try:
            await self.renderer.set_badge(self.session.badge())
        except Exception as e:
            logger.warning("badge_update_failed", error=str(e))

    def close(self) -> None:
        """Cancel pending auto-dismiss timers."""
        for task in self._dismiss_tasks.values():
            task.cancel()
        self._dismiss_tasks.clear()

    def _schedule_dismiss(self, notification_id: str) -> None:
        self._dismiss_tasks[notification_id] = asyncio.create_task(
            self._dismiss_later(notification_id)
        )

    def _cancel_dismiss(self, notification_id: str) -> None:
        task = self._dismiss_tasks.pop(notification_id, None)
        if task is not None:
            task.cancel()

    async def _dismiss_later(self, notification_id: str) -> None:
        try:
            await asyncio.sleep(self.auto_dismiss)
            await self._clear(notification_id)
        finally:
            self._dismiss_tasks.pop(notification_id, None)

    async def _clear(self, notification_id: str) -> None:
        try:
            await self.renderer.clear(notification_id)
        except Exception as e:
            logger.warning("notification_clear_failed", id=notification_id, error=str(e))

    async def _changed(self) -> None:
        if self._on_change is not None:
            await self._on_change()
