"""Tests for broker lifecycle management."""

import asyncio
import os
import signal
import socket
from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from notify_bridge.broker import (
    BindError,
    BroadcastHub,
    BrokerController,
    ConnectionLifecycle,
    ConnectionState,
    IdleShutdown,
    PIDFile,
    SignalHandler,
)


class TestPIDFile:
    """Test PID file management."""

    def test_write(self, temp_dir):
        """Records the current process ID."""
        pid_path = temp_dir / "run" / "broker.pid"
        pid_file = PIDFile(pid_path)

        assert pid_file.write() == os.getpid()
        assert pid_file.read() == os.getpid()
        assert [p.name for p in pid_path.parent.iterdir()] == ["broker.pid"]

    def test_write_replaces_recorded_pid(self, temp_dir):
        """A PID left by a reused or dead process is overwritten."""
        pid_path = temp_dir / "broker.pid"
        pid_path.write_text("1")

        PIDFile(pid_path).write()

        assert int(pid_path.read_text()) == os.getpid()

    def test_remove(self, temp_dir):
        """Removes the file once; a second remove reports False."""
        pid_file = PIDFile(temp_dir / "broker.pid")
        pid_file.write()

        assert pid_file.remove() is True
        assert pid_file.remove() is False

    def test_read_invalid(self, temp_dir):
        """Garbage content reads as None."""
        pid_path = temp_dir / "broker.pid"
        pid_path.write_text("not-a-pid")

        assert PIDFile(pid_path).read() is None

    def test_is_running_stale_pid(self, temp_dir):
        """Detects and cleans up stale PID files."""
        pid_path = temp_dir / "broker.pid"
        pid_path.write_text("999999999")
        pid_file = PIDFile(pid_path)

        assert pid_file.is_running() is False
        assert not pid_path.exists()

    def test_signal_without_process(self, temp_dir):
        """Nothing recorded means nothing to signal."""
        assert PIDFile(temp_dir / "broker.pid").signal(signal.SIGTERM) is False

    def test_signal_live_process(self, temp_dir):
        """Signals reach the recorded process."""
        pid_file = PIDFile(temp_dir / "broker.pid")
        pid_file.write()

        with patch("notify_bridge.broker.pid.os.kill") as kill:
            assert pid_file.signal(signal.SIGTERM) is True

        kill.assert_called_with(os.getpid(), signal.SIGTERM)


class TestSignalHandler:
    """Test signal handler."""

    def test_first_signal_runs_callbacks(self):
        """First signal triggers shutdown callbacks, not a forced exit."""
        handler = SignalHandler()
        called = []
        handler.register(lambda: called.append("called"))

        forced = handler.handle(signal.SIGTERM)

        assert forced is False
        assert called == ["called"]

    def test_second_signal_forces(self):
        """Second signal asks for a forced exit; callbacks run once."""
        handler = SignalHandler()
        called = []
        handler.register(lambda: called.append("called"))

        handler.handle(signal.SIGTERM)
        forced = handler.handle(signal.SIGINT)

        assert forced is True
        assert called == ["called"]

    def test_callback_error_isolated(self):
        """A failing callback does not stop the others."""
        handler = SignalHandler()
        called = []

        def boom():
            raise ValueError("boom")

        handler.register(boom)
        handler.register(lambda: called.append("second"))
        handler.handle(signal.SIGTERM)

        assert called == ["second"]


class TestIdleShutdown:
    """Test the idle grace timer."""

    @pytest.mark.asyncio
    async def test_fires_when_idle(self):
        """Fires after the grace period."""
        fired = []
        idle = IdleShutdown(grace_seconds=0.02, on_idle=lambda: fired.append(True))

        idle.arm()
        await asyncio.sleep(0.08)

        assert fired == [True]
        assert idle.armed is False

    @pytest.mark.asyncio
    async def test_cancel_prevents_firing(self):
        """Cancelled timers never fire."""
        fired = []
        idle = IdleShutdown(grace_seconds=0.02, on_idle=lambda: fired.append(True))

        idle.arm()
        idle.cancel()
        await asyncio.sleep(0.08)

        assert fired == []

    @pytest.mark.asyncio
    async def test_rechecks_idle_on_expiry(self):
        """A non-idle state at expiry skips the shutdown."""
        fired = []
        idle = IdleShutdown(
            grace_seconds=0.02,
            on_idle=lambda: fired.append(True),
            is_idle=lambda: False,
        )

        idle.arm()
        await asyncio.sleep(0.08)

        assert fired == []

    @pytest.mark.asyncio
    async def test_arm_twice_keeps_one_timer(self):
        """Re-arming an armed timer does not restart it."""
        idle = IdleShutdown(grace_seconds=10)

        idle.arm()
        first = idle._handle
        idle.arm()

        assert idle._handle is first
        idle.cancel()

    @pytest.mark.asyncio
    async def test_stopped_cannot_arm(self):
        """After stop() arming is refused."""
        idle = IdleShutdown(grace_seconds=10)

        idle.stop()
        idle.arm()

        assert idle.armed is False


class TestConnectionLifecycle:
    """Test per-listener handling with a fake transport."""

    def _lifecycle(self, keepalive_timeout=0.0, shutting_down=False):
        hub = BroadcastHub()
        idle = MagicMock(spec=IdleShutdown)
        lifecycle = ConnectionLifecycle(
            hub,
            idle,
            keepalive_timeout=keepalive_timeout,
            write_timeout=0.5,
            is_shutting_down=lambda: shutting_down,
        )
        return hub, idle, lifecycle

    @pytest.mark.asyncio
    async def test_register_welcome_and_release(self, fakes):
        """Accepted listener is registered, greeted, and removed on close."""
        hub, idle, lifecycle = self._lifecycle()
        ws = fakes.WebSocket()

        task = asyncio.create_task(lifecycle.serve(ws))
        assert await fakes.wait_until(lambda: hub.size() == 1)

        assert ws.accepted is True
        assert ws.sent[0]["type"] == "connected"
        idle.cancel.assert_called()

        ws.disconnect()
        await asyncio.wait_for(task, 1.0)

        assert hub.size() == 0
        idle.arm.assert_called_once()

    @pytest.mark.asyncio
    async def test_ping_answered(self, fakes):
        """Ping frames get a pong."""
        hub, idle, lifecycle = self._lifecycle()
        ws = fakes.WebSocket()
        task = asyncio.create_task(lifecycle.serve(ws))
        await fakes.wait_until(lambda: hub.size() == 1)

        ws.push({"type": "ping"})
        assert await fakes.wait_until(lambda: len(ws.sent) == 2)

        assert ws.sent[1]["type"] == "pong"
        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_binary_ping_answered(self, fakes):
        """Binary frames are decoded like text."""
        hub, idle, lifecycle = self._lifecycle()
        ws = fakes.WebSocket()
        task = asyncio.create_task(lifecycle.serve(ws))
        await fakes.wait_until(lambda: hub.size() == 1)

        ws.inbox.put_nowait({"type": "websocket.receive", "bytes": b'{"type": "ping"}'})
        assert await fakes.wait_until(lambda: len(ws.sent) == 2)

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_keepalive_timeout_closes(self, fakes):
        """A silent listener is closed with going-away."""
        hub, idle, lifecycle = self._lifecycle(keepalive_timeout=0.05)
        ws = fakes.WebSocket()

        await asyncio.wait_for(lifecycle.serve(ws), 1.0)

        assert ws.closed_with == (1001, "Keepalive timeout")
        assert hub.size() == 0

    @pytest.mark.asyncio
    async def test_refused_while_shutting_down(self, fakes):
        """New listeners are turned away during shutdown."""
        hub, idle, lifecycle = self._lifecycle(shutting_down=True)
        ws = fakes.WebSocket()

        await lifecycle.serve(ws)

        assert ws.accepted is False
        assert ws.closed_with == (1001, "Server shutting down")
        idle.arm.assert_not_called()

    @pytest.mark.asyncio
    async def test_pending_handshake_blocks_idle(self, fakes):
        """A handshake in flight keeps the broker from counting as idle."""
        hub, idle, lifecycle = self._lifecycle()
        gate = asyncio.Event()
        ws = fakes.WebSocket()
        original_accept = ws.accept

        async def slow_accept():
            await gate.wait()
            await original_accept()

        ws.accept = slow_accept

        task = asyncio.create_task(lifecycle.serve(ws))
        await asyncio.sleep(0.01)

        assert lifecycle.pending == 1
        assert lifecycle.is_idle() is False

        gate.set()
        await fakes.wait_until(lambda: hub.size() == 1)
        assert lifecycle.pending == 0

        ws.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_close_all(self, fakes):
        """close_all closes every registered listener with the given code."""
        hub, idle, lifecycle = self._lifecycle()
        sockets = [fakes.WebSocket(port=p) for p in (1, 2)]
        tasks = [asyncio.create_task(lifecycle.serve(ws)) for ws in sockets]
        await fakes.wait_until(lambda: hub.size() == 2)

        count = await lifecycle.close_all(1000, "Server shutting down")
        await asyncio.wait_for(asyncio.gather(*tasks), 1.0)

        assert count == 2
        assert all(ws.closed_with == (1000, "Server shutting down") for ws in sockets)
        assert hub.size() == 0

    @pytest.mark.asyncio
    async def test_connection_states(self, fakes):
        """Connection ends CLOSED after release."""
        hub, idle, lifecycle = self._lifecycle()
        ws = fakes.WebSocket()
        task = asyncio.create_task(lifecycle.serve(ws))
        await fakes.wait_until(lambda: hub.size() == 1)
        conn = hub.snapshot()[0]

        assert conn.state is ConnectionState.OPEN

        ws.disconnect()
        await task

        assert conn.state is ConnectionState.CLOSED


class TestBrokerController:
    """Test startup, idle shutdown, and graceful shutdown."""

    @pytest.mark.asyncio
    async def test_idle_shutdown_removes_pid_file(self, config):
        """Nobody connects: the broker shuts itself down and cleans up."""
        controller = BrokerController(replace(config, idle_timeout=0.05))

        await controller.startup()
        assert config.pid_file.exists()

        await asyncio.sleep(0.3)

        assert controller.shutting_down is True
        assert not config.pid_file.exists()

    @pytest.mark.asyncio
    async def test_connection_cancels_idle_shutdown(self, config, fakes):
        """A listener arriving within the grace period keeps the broker alive."""
        controller = BrokerController(replace(config, idle_timeout=0.1))
        await controller.startup()

        ws = fakes.WebSocket()
        task = asyncio.create_task(controller.lifecycle.serve(ws))
        await fakes.wait_until(lambda: controller.hub.size() == 1)

        await asyncio.sleep(0.3)  # well past the original grace period

        assert controller.shutting_down is False
        assert config.pid_file.exists()

        ws.disconnect()
        await task
        assert controller.idle.armed is True
        await controller.shutdown("test")

    @pytest.mark.asyncio
    async def test_shutdown_idempotent(self, controller, config, fakes):
        """Repeated shutdown requests close listeners once."""
        await controller.startup()
        ws = fakes.WebSocket()
        task = asyncio.create_task(controller.lifecycle.serve(ws))
        await fakes.wait_until(lambda: controller.hub.size() == 1)

        await controller.shutdown("first")
        await controller.shutdown("second")
        await asyncio.wait_for(task, 1.0)

        assert ws.closed_with == (1000, "Server shutting down")
        assert not config.pid_file.exists()
        assert controller.idle.armed is False

    @pytest.mark.asyncio
    async def test_shutdown_stops_server(self, controller):
        """Shutdown tells uvicorn to stop accepting."""
        controller.server = MagicMock()
        controller.server.should_exit = False

        await controller.shutdown("test")

        assert controller.server.should_exit is True

    def test_bind_conflict(self, config):
        """An occupied port raises BindError and run() exits 1."""
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        port = blocker.getsockname()[1]

        try:
            controller = BrokerController(replace(config, port=port))

            with pytest.raises(BindError):
                controller.bind()
            assert controller.run() == 1
        finally:
            blocker.close()

    def test_bind_free_port(self, config):
        """A free port binds."""
        controller = BrokerController(replace(config, port=0))

        sock = controller.bind()
        try:
            assert sock.getsockname()[1] > 0
        finally:
            sock.close()
