"""Shared test fixtures."""

import asyncio
import json
import tempfile
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from notify_bridge.broker import BrokerController, create_app
from notify_bridge.config import BrokerConfig, ClientConfig


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def config(temp_dir):
    """Create a broker configuration rooted in the temp directory."""
    return BrokerConfig(
        host="127.0.0.1",
        port=19099,  # Different port for tests
        idle_timeout=60,
        keepalive_timeout=0,
        runtime_dir=temp_dir,
        pid_file=temp_dir / "broker.pid",
        lock_file=temp_dir / "broker.lock",
    )


@pytest.fixture
def client_config(temp_dir):
    """Listener configuration with fast timers."""
    return ClientConfig(
        ws_url="ws://127.0.0.1:19099",
        reconnect_floor=0.01,
        reconnect_ceiling=0.04,
        keepalive_interval=0.05,
        max_recent=10,
        auto_dismiss=0.05,
        state_file=temp_dir / "state" / "client.json",
    )


@pytest.fixture
def controller(config):
    return BrokerController(config)


@pytest.fixture
def app(controller):
    return create_app(controller)


@pytest.fixture
def client(app):
    """TestClient with the app's lifespan running."""
    with TestClient(app) as c:
        yield c


class FakeWebSocket:
    """Minimal stand-in for a server-side starlette WebSocket."""

    def __init__(self, host: str = "127.0.0.1", port: int = 50000) -> None:
        self.client = SimpleNamespace(host=host, port=port)
        self.application_state = WebSocketState.CONNECTING
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.sent: list = []
        self.accepted = False
        self.closed_with = None
        self.stall_sends = False

    async def accept(self) -> None:
        self.accepted = True
        self.application_state = WebSocketState.CONNECTED

    async def receive(self) -> dict:
        return await self.inbox.get()

    async def send_text(self, text: str) -> None:
        if self.stall_sends:
            await asyncio.sleep(3600)
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed_with = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED
        self.inbox.put_nowait({"type": "websocket.disconnect", "code": code})

    def push(self, data) -> None:
        text = data if isinstance(data, str) else json.dumps(data)
        self.inbox.put_nowait({"type": "websocket.receive", "text": text})

    def disconnect(self) -> None:
        self.inbox.put_nowait({"type": "websocket.disconnect", "code": 1000})


class FakeTransport:
    """Client-side websocket: async-iterable inbound frames plus send/close."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list = []
        self.closed = False

    def feed(self, data) -> None:
        self.incoming.put_nowait(data if isinstance(data, str) else json.dumps(data))

    def drop(self) -> None:
        """Remote side closed normally."""
        self.incoming.put_nowait(None)

    def fail(self, exc: Exception) -> None:
        self.incoming.put_nowait(exc)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, data: str) -> None:
        if self.closed:
            raise OSError("transport closed")
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.incoming.put_nowait(None)


class FakeConnector:
    """Transport factory: fails ``failures`` times, then hands out FakeTransports."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.attempts = 0
        self.transports: list[FakeTransport] = []

    async def __call__(self, url: str) -> FakeTransport:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("Connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport | None:
        return self.transports[-1] if self.transports else None


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll ``predicate`` on the running loop until true or timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(interval)
    return True


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def fakes():
    """Access to the fake classes and helpers."""
    return SimpleNamespace(
        WebSocket=FakeWebSocket,
        Transport=FakeTransport,
        Connector=FakeConnector,
        wait_until=wait_until,
    )
