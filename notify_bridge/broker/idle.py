"""
Idle Shutdown - Terminate the broker when nobody is listening.

Unlike a request-activity monitor, this is a one-shot grace timer:
armed when the last listener leaves, cancelled when a new one
arrives. Arm and cancel are synchronous calls on the event loop
thread, so they cannot interleave with connection bookkeeping.
"""

import asyncio
from collections.abc import Callable

import structlog

__all__ = ["IdleShutdown"]

logger = structlog.get_logger(__name__)


class IdleShutdown:
    """Grace timer that fires ``on_idle`` if still idle when it expires.

    Example:
        idle = IdleShutdown(
            grace_seconds=300,
            on_idle=controller.request_shutdown,
            is_idle=lambda: hub.size() == 0,
        )

        idle.arm()      # last listener left
        idle.cancel()   # a listener connected
    """

    def __init__(
        self,
        grace_seconds: float = 300.0,
        on_idle: Callable[[], None] | None = None,
        is_idle: Callable[[], bool] | None = None,
    ) -> None:
        """Initialize idle shutdown timer.

        Args:
            grace_seconds: Seconds the broker may stay idle
            on_idle: Callback when the grace period expires while idle
            is_idle: Re-checked at expiry; a False result skips ``on_idle``
        """
        self.grace_seconds = grace_seconds
        self.on_idle = on_idle
        self.is_idle = is_idle or (lambda: True)

        self._handle: asyncio.TimerHandle | None = None
        self._stopped = False

    @property
    def armed(self) -> bool:
        """Check if the grace timer is pending."""
        return self._handle is not None

    def arm(self) -> None:
        """Start the grace timer. No-op if already armed or stopped."""
        if self._handle is not None or self._stopped:
            return

        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.grace_seconds, self._fire)

        logger.info("idle_shutdown_armed", grace_seconds=self.grace_seconds)

    def cancel(self) -> None:
        """Cancel a pending grace timer."""
        if self._handle is None:
            return

        self._handle.cancel()
        self._handle = None

        logger.info("idle_shutdown_cancelled")

    def stop(self) -> None:
        """Cancel and refuse any further arming (used during shutdown)."""
        self._stopped = True
        self.cancel()

    def _fire(self) -> None:
        self._handle = None

        if self._stopped:
            return

        if not self.is_idle():
            logger.debug("idle_shutdown_skipped")
            return

        logger.info("idle_timeout_reached", grace_seconds=self.grace_seconds)
        if self.on_idle:
            self.on_idle()
