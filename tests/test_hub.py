"""Tests for the broadcast hub."""

import asyncio

import pytest

from notify_bridge.broker import BroadcastHub, ConnectionState, ListenerConnection
from notify_bridge.events import Event, EventKind


class StubConnection:
    """Connection double with a fixed state and send outcome."""

    def __init__(self, name: str, is_open: bool = True, ok: bool = True) -> None:
        self.identity = name
        self.is_open = is_open
        self.ok = ok
        self.received: list[dict] = []

    async def send(self, payload: dict) -> bool:
        self.received.append(payload)
        return self.ok


EVENT = Event(EventKind.STOP, "done", "2024-01-01T00:00:00.000Z")


class TestRegistry:
    """Test membership bookkeeping."""

    def test_register_and_size(self):
        """Registered connections are counted."""
        hub = BroadcastHub()
        a, b = StubConnection("a"), StubConnection("b")

        hub.register(a)
        hub.register(b)

        assert hub.size() == 2
        assert a in hub

    def test_unregister_idempotent(self):
        """Removing twice is harmless."""
        hub = BroadcastHub()
        conn = StubConnection("a")
        hub.register(conn)

        assert hub.unregister(conn) is True
        assert hub.unregister(conn) is False
        assert len(hub) == 0

    def test_snapshot_is_copy(self):
        """Mutating the hub does not change a taken snapshot."""
        hub = BroadcastHub()
        conn = StubConnection("a")
        hub.register(conn)

        snap = hub.snapshot()
        hub.unregister(conn)

        assert snap == [conn]


class TestBroadcast:
    """Test fan-out."""

    @pytest.mark.asyncio
    async def test_counts_only_open_connections(self):
        """Delivered count equals connections open at broadcast time."""
        hub = BroadcastHub()
        open_a = StubConnection("a")
        open_b = StubConnection("b")
        closing = StubConnection("c", is_open=False)
        for conn in (open_a, open_b, closing):
            hub.register(conn)

        delivered = await hub.broadcast(EVENT)

        assert delivered == 2
        assert closing.received == []
        assert open_a.received == [EVENT.to_dict()]

    @pytest.mark.asyncio
    async def test_failed_write_not_counted(self):
        """A failed write is not counted and keeps its registration."""
        hub = BroadcastHub()
        good = StubConnection("good")
        bad = StubConnection("bad", ok=False)
        hub.register(good)
        hub.register(bad)

        delivered = await hub.broadcast(EVENT)

        assert delivered == 1
        assert bad in hub

    @pytest.mark.asyncio
    async def test_empty_hub(self):
        """Broadcasting to nobody delivers zero."""
        assert await BroadcastHub().broadcast(EVENT) == 0

    @pytest.mark.asyncio
    async def test_unregister_during_broadcast(self):
        """Removing a connection mid-broadcast does not disturb delivery."""
        hub = BroadcastHub()

        class Leaving(StubConnection):
            async def send(self, payload):
                hub.unregister(self)
                await asyncio.sleep(0)
                return await super().send(payload)

        leaving = Leaving("leaving")
        staying = StubConnection("staying")
        hub.register(leaving)
        hub.register(staying)

        delivered = await hub.broadcast(EVENT)

        assert delivered == 2
        assert hub.size() == 1

    @pytest.mark.asyncio
    async def test_stalled_listener_is_bounded(self, fakes):
        """A listener that never drains times out without blocking others."""
        hub = BroadcastHub()

        stalled_ws = fakes.WebSocket(port=1)
        stalled_ws.stall_sends = True
        stalled = ListenerConnection(stalled_ws, write_timeout=0.05)
        stalled.state = ConnectionState.OPEN

        healthy_ws = fakes.WebSocket(port=2)
        healthy = ListenerConnection(healthy_ws, write_timeout=0.05)
        healthy.state = ConnectionState.OPEN

        hub.register(stalled)
        hub.register(healthy)

        delivered = await asyncio.wait_for(hub.broadcast(EVENT), timeout=1.0)

        assert delivered == 1
        assert healthy_ws.sent == [EVENT.to_dict()]
