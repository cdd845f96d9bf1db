"""Test fixtures — fresh realtime objects per test, fakes for I/O.

Learn: Nothing here needs a network or Redis:

1. Server-side tests get a fresh SubscriptionRegistry + ConnectionHub and
   FakeSocket objects that record what the hub sends them.
2. Client tests drive RealtimeClient with a FakeLoop (time moves only when
   the test calls advance()) and FakeConnection objects the test opens,
   feeds and drops by hand — like fake timers + a mocked browser socket.
3. App tests build a new app per test with Redis disabled.
"""

import json
import os

# Single-process mode for every test, must be set before agenthq is imported
os.environ["AGENTHQ_REDIS_URL"] = ""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from starlette.websockets import WebSocketState

from agenthq.auth import ClientIdentity
from agenthq.auth.jwt import create_access_token
from agenthq.client.realtime import ClientConfig, RealtimeClient
from agenthq.main import create_app
from agenthq.realtime.hub import ConnectionHub
from agenthq.realtime.subscriptions import SubscriptionRegistry

ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"


# ═══════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════


class FakeSocket:
    """Stands in for a starlette WebSocket on the hub's send path."""

    def __init__(self, fail: bool = False):
        self.client_state = WebSocketState.CONNECTED
        self.sent: list[dict] = []
        self.fail = fail

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket is gone")
        self.sent.append(json.loads(text))


class FakeHandle:
    def __init__(self, when: float, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """Just enough of asyncio's loop for TimerSet: call_later + manual time."""

    def __init__(self):
        self.now = 0.0
        self._handles: list[FakeHandle] = []

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self.now + delay, lambda: callback(*args))
        self._handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [
                h for h in self._handles
                if not h.cancelled and not h.fired and h.when <= target
            ]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.now = handle.when
            handle.fired = True
            handle.callback()
        self.now = target

    @property
    def pending(self) -> list[FakeHandle]:
        return [h for h in self._handles if not h.cancelled and not h.fired]


class FakeConnection:
    """A socket the test controls: open(), receive(), drop(), fail()."""

    def __init__(self, url: str):
        self.url = url
        self.is_open = False
        self.sent: list[dict] = []
        self.closed_with = None
        self.handlers = None

    def start(self, **handlers) -> None:
        self.handlers = handlers

    def send(self, text: str) -> None:
        self.sent.append(json.loads(text))

    def close(self, code: int = 1000) -> None:
        self.closed_with = code
        self.is_open = False

    async def wait_closed(self) -> None:
        return None

    # ── test drivers ──

    def open(self) -> None:
        self.is_open = True
        self.handlers["on_open"]()

    def receive(self, raw) -> None:
        self.handlers["on_message"](raw)

    def drop(self, code: int = 1006) -> None:
        self.is_open = False
        self.handlers["on_close"](code)

    def fail(self, exc: Exception = None) -> None:
        self.handlers["on_error"](exc or ConnectionRefusedError("refused"))


# ═══════════════════════════════════════════════════════════
# Server-side fixtures
# ═══════════════════════════════════════════════════════════


@pytest.fixture()
def registry():
    return SubscriptionRegistry()


@pytest.fixture()
def hub(registry):
    return ConnectionHub(registry)


@pytest.fixture()
def connect_socket(hub):
    """Register a FakeSocket with the hub. Returns (client, socket)."""

    def _connect(identity_id: str = "user-1", org_id: str = ORG_ID, fail: bool = False):
        socket = FakeSocket(fail=fail)
        client = hub.register(socket, ClientIdentity(id=identity_id, type="user", org_id=org_id))
        return client, socket

    return _connect


@pytest.fixture()
def app():
    return create_app()


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client against the app (no lifespan, no network)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def user_token():
    return create_access_token("user-1", org_id=ORG_ID)


# ═══════════════════════════════════════════════════════════
# Client-side fixtures
# ═══════════════════════════════════════════════════════════


@pytest.fixture()
def fake_loop():
    return FakeLoop()


@pytest.fixture()
def connections():
    """Every FakeConnection the client has created, oldest first."""
    return []


@pytest.fixture()
def states():
    """Every state passed to on_connection_change, in order."""
    return []


@pytest.fixture()
def make_client(fake_loop, connections, states):
    def _make(**overrides) -> RealtimeClient:
        def factory(url: str) -> FakeConnection:
            conn = FakeConnection(url)
            connections.append(conn)
            return conn

        options = dict(
            url="ws://test/ws",
            token=lambda: "session-token",
            reconnect_delay=1.0,
            max_reconnect_delay=30.0,
            heartbeat_interval=30.0,
            polling_interval=30.0,
            on_connection_change=states.append,
        )
        options.update(overrides)
        return RealtimeClient(
            ClientConfig(**options), connection_factory=factory, loop=fake_loop
        )

    return _make
