"""
Process Lifecycle Controller - Bind, start, and stop the broker.

Handles:
- Binding the single local port (occupied port = fatal BindError)
- PID file write on startup, removal on shutdown
- Idle shutdown and termination signals
- Idempotent graceful shutdown

Shutdown order:
1. Mark shutting down (later triggers are no-ops)
2. Close every listener with a normal-closure code
3. Remove the PID file
4. Stop accepting (uvicorn exits)
"""

import asyncio
import signal
import socket
import time

import structlog
import uvicorn

from ..config import BrokerConfig
from .connection import NORMAL_CLOSURE, ConnectionLifecycle
from .hub import BroadcastHub
from .idle import IdleShutdown
from .pid import PIDFile
from .signals import SignalHandler

__all__ = ["BindError", "BrokerController", "BrokerServer"]

logger = structlog.get_logger(__name__)


class BindError(RuntimeError):
    """The broker port is already in use (or otherwise unbindable)."""


class BrokerServer(uvicorn.Server):
    """uvicorn server whose exit signals go through our SignalHandler.

    The first signal starts the broker's own graceful shutdown (which
    closes listeners with 1000 before the accept loop stops); a second
    one falls back to uvicorn's forced exit.
    """

    def __init__(self, config: uvicorn.Config, signal_handler: SignalHandler) -> None:
        super().__init__(config)
        self.signal_handler = signal_handler

    def handle_exit(self, sig: int, frame) -> None:
        if self.signal_handler.handle(signal.Signals(sig)):
            self.should_exit = True
            self.force_exit = True


class BrokerController:
    """Owns the broker's components and drives its process lifecycle.

    Example:
        controller = BrokerController(BrokerConfig())
        sys.exit(controller.run())
    """

    def __init__(self, config: BrokerConfig | None = None) -> None:
        self.config = config or BrokerConfig()
        self.hub = BroadcastHub()
        self.pid_file = PIDFile(self.config.pid_file)
        self.signal_handler = SignalHandler()

        self.idle = IdleShutdown(
            grace_seconds=self.config.idle_timeout,
            on_idle=lambda: self.request_shutdown("idle_timeout"),
            is_idle=lambda: self.lifecycle.is_idle(),
        )
        self.lifecycle = ConnectionLifecycle(
            self.hub,
            self.idle,
            keepalive_timeout=self.config.keepalive_timeout,
            write_timeout=self.config.write_timeout,
            is_shutting_down=lambda: self.shutting_down,
        )

        self.server: uvicorn.Server | None = None
        self.started_at = time.monotonic()
        self._shutting_down = False
        self._shutdown_task: asyncio.Task | None = None

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def uptime(self) -> float:
        """Seconds since the controller was created."""
        return time.monotonic() - self.started_at

    # ─────────────────────────────────────────────────────────────────
    # Startup
    # ─────────────────────────────────────────────────────────────────

    def bind(self) -> socket.socket:
        """Bind the listening socket.

        Raises:
            BindError: Port occupied or address unusable
        """
        host, port = self.config.host, self.config.port
        family = socket.AF_INET6 if ":" in host else socket.AF_INET

        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            raise BindError(f"Cannot bind {host}:{port}: {e.strerror or e}") from e

        logger.info("broker_bound", host=host, port=port)
        return sock

    async def startup(self) -> None:
        """Called once the app starts serving."""
        self.pid_file.write()

        logger.info(
            "broker_started",
            notify_url=f"{self.config.base_url}/notify",
            ws_url=self.config.ws_url,
            pid_file=str(self.pid_file.path),
        )

        if self.lifecycle.is_idle():
            self.idle.arm()

    # ─────────────────────────────────────────────────────────────────
    # Shutdown
    # ─────────────────────────────────────────────────────────────────

    def request_shutdown(self, reason: str = "requested") -> None:
        """Schedule graceful shutdown from synchronous code."""
        if self._shutting_down or self._shutdown_task is not None:
            return
        self._shutdown_task = asyncio.get_running_loop().create_task(self.shutdown(reason))

    async def shutdown(self, reason: str = "requested") -> None:
        """Graceful shutdown. Idempotent: later calls return immediately."""
        if self._shutting_down:
            return
        self._shutting_down = True

        logger.info("broker_stopping", reason=reason, listeners=self.hub.size())

        self.idle.stop()

        try:
            await asyncio.wait_for(
                self.lifecycle.close_all(NORMAL_CLOSURE, "Server shutting down"),
                timeout=self.config.shutdown_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("listener_close_timeout", timeout=self.config.shutdown_timeout)

        self.pid_file.remove()

        if self.server is not None:
            self.server.should_exit = True

        logger.info("broker_stopped", reason=reason)

    # ─────────────────────────────────────────────────────────────────
    # Running
    # ─────────────────────────────────────────────────────────────────

    def run(self) -> int:
        """Bind and serve until shutdown.

        Returns:
            Exit code (1 if the port could not be bound)
        """
        try:
            sock = self.bind()
        except BindError as e:
            logger.error("broker_bind_failed", error=str(e))
            return 1

        try:
            asyncio.run(self.serve(sock))
        finally:
            sock.close()
        return 0

    async def serve(self, sock: socket.socket) -> None:
        """Serve the app on an already-bound socket."""
        from .app import create_app

        loop = asyncio.get_running_loop()
        self.signal_handler.register(
            lambda: loop.call_soon_threadsafe(self.request_shutdown, "signal")
        )

        uvicorn_config = uvicorn.Config(
            create_app(self),
            log_level="warning",  # We have our own logging
            access_log=False,
            lifespan="on",
        )
        self.server = BrokerServer(uvicorn_config, self.signal_handler)
        await self.server.serve(sockets=[sock])
