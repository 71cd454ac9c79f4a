"""
Desktop Notifications - Rendering of gated notifications.

Two renderers share one small interface:
- DesktopNotifier: notify-send, run as an asyncio subprocess
- RecordingNotifier: keeps everything in memory (tests, headless use)

Rendering failures are logged and reported as False, never raised.
"""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

import structlog

from .session import Badge

__all__ = ["DesktopNotification", "DesktopNotifier", "RecordingNotifier", "Renderer"]

logger = structlog.get_logger(__name__)

APP_NAME = "Claude Code Notifier"
SOUND_HINT = "string:sound-name:message-new-instant"
COMMAND_TIMEOUT = 5.0
CLICK_ACTION = "default"

ClickCallback = Callable[[str], Awaitable[object]]


@dataclass(frozen=True)
class DesktopNotification:
    """One notification as handed to a renderer."""

    id: str
    kind: str
    title: str
    message: str
    priority: int = 0
    persistent: bool = False
    sound: bool = False
    expire_seconds: float | None = None


class Renderer(Protocol):
    async def show(self, notification: DesktopNotification) -> bool: ...

    async def clear(self, notification_id: str) -> bool: ...

    async def set_badge(self, badge: Badge) -> None: ...

    async def close(self) -> None: ...


class DesktopNotifier:
    """notify-send based renderer.

    Persistent notifications are sent with critical urgency (the
    notification daemon keeps them until dismissed); transient ones get
    an explicit expire time. Server-side ids are captured with
    ``--print-id`` so a notification can later be closed over D-Bus.

    With ``on_click`` set, each notification carries a default action and
    notify-send is kept running (``--wait``) in a background task until
    the notification goes away; choosing the action awaits
    ``on_click(notification_id)``.
    """

    def __init__(
        self,
        enabled: bool = True,
        on_click: ClickCallback | None = None,
    ) -> None:
        self._enabled = enabled
        self.on_click = on_click
        self._notify_send = shutil.which("notify-send")
        self._gdbus = shutil.which("gdbus")
        self._server_ids: dict[str, str] = {}
        self._watchers: dict[str, asyncio.Task] = {}
        self.badge: Badge | None = None

        if enabled and not self._notify_send:
            logger.warning("notify_send_not_found", message="Desktop notifications disabled")

    @property
    def available(self) -> bool:
        """Check if notifications are available."""
        return self._enabled and self._notify_send is not None

    def build_command(self, notification: DesktopNotification) -> list[str]:
        urgency = "critical" if notification.persistent else "normal"
        cmd = [
            self._notify_send or "notify-send",
            f"--urgency={urgency}",
            f"--app-name={APP_NAME}",
            "--icon=dialog-information",
            "--print-id",
        ]
        if not notification.persistent and notification.expire_seconds:
            cmd.append(f"--expire-time={int(notification.expire_seconds * 1000)}")
        if notification.sound:
            cmd.append(f"--hint={SOUND_HINT}")
        if self.on_click is not None:
            cmd.extend([f"--action={CLICK_ACTION}=Open", "--wait"])
        cmd.extend([notification.title, notification.message])
        return cmd

    async def _run(self, cmd: list[str]) -> str | None:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), COMMAND_TIMEOUT)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise
        if proc.returncode != 0:
            raise RuntimeError(stderr.decode(errors="replace").strip() or f"exit {proc.returncode}")
        return stdout.decode(errors="replace").strip()

    async def show(self, notification: DesktopNotification) -> bool:
        """Send a desktop notification.

        Returns:
            True if notify-send accepted it
        """
        if not self.available:
            return False

        try:
            if self.on_click is not None:
                output = await self._spawn_waiting(notification)
            else:
                output = await self._run(self.build_command(notification))
        except asyncio.TimeoutError:
            logger.warning("notification_timeout", title=notification.title)
            return False
        except Exception as e:
            logger.warning("notification_failed", title=notification.title, error=str(e))
            return False

        if output and output.isdigit():
            self._server_ids[notification.id] = output
        logger.debug("notification_sent", id=notification.id, kind=notification.kind)
        return True

    async def _spawn_waiting(self, notification: DesktopNotification) -> str:
        """Start a ``--wait`` notify-send and return the printed server id.

        The process stays attached to a watcher task that reports the
        click and reaps it.
        """
        proc = await asyncio.create_subprocess_exec(
            *self.build_command(notification),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            line = await asyncio.wait_for(proc.stdout.readline(), COMMAND_TIMEOUT)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise

        if not line:
            returncode = await proc.wait()
            raise RuntimeError(f"exit {returncode}")

        self._watchers[notification.id] = asyncio.create_task(
            self._watch(notification.id, proc)
        )
        return line.decode(errors="replace").strip()

    async def _watch(self, notification_id: str, proc: asyncio.subprocess.Process) -> None:
        try:
            async for raw in proc.stdout:
                if raw.decode(errors="replace").strip() != CLICK_ACTION:
                    continue
                logger.info("notification_clicked", id=notification_id)
                if self.on_click is not None:
                    try:
                        await self.on_click(notification_id)
                    except Exception:
                        logger.exception("notification_click_failed", id=notification_id)
            await proc.wait()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise
        finally:
            self._watchers.pop(notification_id, None)

    async def clear(self, notification_id: str) -> bool:
        """Close a shown notification (best-effort)."""
        server_id = self._server_ids.pop(notification_id, None)
        if server_id is None or self._gdbus is None:
            return False

        try:
            await self._run([
                self._gdbus, "call", "--session",
                "--dest", "org.freedesktop.Notifications",
                "--object-path", "/org/freedesktop/Notifications",
                "--method", "org.freedesktop.Notifications.CloseNotification",
                server_id,
            ])
        except Exception as e:
            logger.debug("notification_close_failed", id=notification_id, error=str(e))
            return False
        return True

    async def set_badge(self, badge: Badge) -> None:
        # Desktop notification daemons have no badge; keep it for status output
        self.badge = badge
        logger.debug("badge_updated", text=badge.text, color=badge.color)

    async def close(self) -> None:
        """Stop waiting on shown notifications."""
        watchers = list(self._watchers.values())
        for task in watchers:
            task.cancel()
        await asyncio.gather(*watchers, return_exceptions=True)


class RecordingNotifier:
    """In-memory renderer."""

    def __init__(self) -> None:
        self.shown: list[DesktopNotification] = []
        self.cleared: list[str] = []
        self.badges: list[Badge] = []
        self.active: dict[str, DesktopNotification] = {}
        self.closed = False

    @property
    def badge(self) -> Badge | None:
        return self.badges[-1] if self.badges else None

    async def show(self, notification: DesktopNotification) -> bool:
        self.shown.append(notification)
        self.active[notification.id] = notification
        return True

    async def clear(self, notification_id: str) -> bool:
        self.cleared.append(notification_id)
        return self.active.pop(notification_id, None) is not None

    async def set_badge(self, badge: Badge) -> None:
        self.badges.append(badge)

    async def close(self) -> None:
        self.closed = True
