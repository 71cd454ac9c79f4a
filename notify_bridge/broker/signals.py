"""
Signal Handling - Graceful shutdown support.

Counts SIGTERM/SIGINT deliveries: the first one runs the registered
shutdown callbacks, any later one asks for a forced exit.
"""

import signal
from typing import Callable

import structlog

__all__ = ["SignalHandler"]

logger = structlog.get_logger(__name__)


class SignalHandler:
    """Tracks termination signals and dispatches shutdown callbacks.

    Callbacks may run inside a signal handler, so they should only
    schedule work (e.g. ``loop.call_soon_threadsafe``), never await it.

    Example:
        handler = SignalHandler()
        handler.register(lambda: loop.call_soon_threadsafe(stop))

        forced = handler.handle(signal.SIGTERM)
    """

    def __init__(self) -> None:
        self._callbacks: list[Callable[[], None]] = []
        self._received = 0

    def register(self, callback: Callable[[], None]) -> None:
        """Register a callback to run once on the first shutdown request."""
        self._callbacks.append(callback)

    def handle(self, sig: signal.Signals) -> bool:
        """Handle a received signal.

        Returns:
            True if this delivery should force an immediate exit
        """
        self._received += 1
        logger.info("signal_received", signal=sig.name, count=self._received)

        if self._received > 1:
            logger.warning("forced_shutdown", signal=sig.name)
            return True

        for callback in self._callbacks:
            try:
                callback()
            except Exception as e:
                logger.error("callback_error", error=str(e))
        return False
