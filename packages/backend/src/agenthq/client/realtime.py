"""Realtime client — one logical connection with reconnect and fallback.

Learn: RealtimeClient keeps exactly one socket alive per process and
hides transport details from application code, which only sees:
- connection state changes (connecting / connected / disconnected / error)
- typed domain events via on(event, listener)

State machine:

    disconnected ──connect()──▶ connecting ──open──▶ connected
         ▲                          │                    │
         │                        error                close
         │                          ▼                    ▼
         └─────── close ◀──────── error          disconnected
                                                 ├─ code != 1000 → reconnect (backoff)
                                                 └─ otherwise    → polling fallback

Everything runs on one event loop. Transitions happen in socket and
timer callbacks, so nothing here needs a lock. Each socket's callbacks
are bound to that socket; once a socket is replaced or dropped, its
late events are ignored.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog

from agenthq.client.connection import (
    CLOSE_NORMAL,
    Connection,
    Frame,
    WebSocketConnection,
)
from agenthq.client.timers import TimerSet
from agenthq.config import settings
from agenthq.realtime import events
from agenthq.realtime.events import parse_server_event
from agenthq.realtime.protocol import decode_message, encode_message

logger = structlog.get_logger()

# Timer names
RECONNECT = "reconnect"
HEARTBEAT = "heartbeat"
POLLING = "polling"


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


Listener = Callable[[Any], None]
CredentialProvider = Callable[[], Optional[str]]


def _no_credential() -> Optional[str]:
    return None


@dataclass
class ClientConfig:
    """Configuration for a RealtimeClient.

    Learn: token and api_key are providers, not values — they're called on
    every (re)connect so a refreshed session token is picked up without
    rebuilding the client.
    """

    url: str = field(default_factory=lambda: settings.ws_url)
    token: CredentialProvider = _no_credential
    api_key: CredentialProvider = _no_credential
    reconnect: bool = True
    reconnect_delay: float = field(
        default_factory=lambda: settings.ws_reconnect_base_delay
    )
    max_reconnect_delay: float = field(
        default_factory=lambda: settings.ws_reconnect_max_delay
    )
    heartbeat_interval: float = field(
        default_factory=lambda: settings.ws_heartbeat_interval
    )
    polling_fallback: bool = True
    polling_interval: float = field(
        default_factory=lambda: settings.ws_polling_interval
    )
    on_connection_change: Optional[Callable[[ConnectionState], None]] = None
    on_poll: Optional[Callable[[], None]] = None


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Exponential backoff: base * 2^attempt, capped."""
    return min(base * (2 ** attempt), cap)


def build_url(url: str, token: Optional[str], api_key: Optional[str]) -> str:
    """Attach the credential as a query param (token wins over api key)."""
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query))
    if token:
        query["token"] = token
    elif api_key:
        query["apiKey"] = api_key
    return urlunsplit(parts._replace(query=urlencode(query)))


class RealtimeClient:
    """Connection manager for the AgentHQ realtime endpoint.

    Learn: Owned by the application shell — create one at startup, share
    it, and close it on teardown (or use `async with`). There is no
    module-level singleton.
    """

    def __init__(
        self,
        config: ClientConfig,
        connection_factory: Callable[[str], Connection] = WebSocketConnection,
        loop: Any = None,
    ):
        self.config = config
        self.timers = TimerSet(loop)
        self._connection_factory = connection_factory
        self._conn: Optional[Connection] = None
        self._listeners: dict[str, dict[Listener, None]] = {}
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_enabled = config.reconnect
        self._reconnect_attempts = 0

    # ─── Public API ───────────────────────────────────────

    def connect(self) -> None:
        """Open the connection. Returns immediately; watch the state for the outcome."""
        self._reconnect_enabled = self.config.reconnect
        self._open()

    def disconnect(self) -> None:
        """Close for good (e.g. logout). No reconnect, no polling afterwards."""
        self._reconnect_enabled = False
        self.timers.cancel_all()
        self._drop_connection()
        self._set_state(ConnectionState.DISCONNECTED)

    async def aclose(self) -> None:
        """disconnect() and wait for the socket to finish closing."""
        conn = self._conn
        self.disconnect()
        if conn is not None:
            await conn.wait_closed()

    async def __aenter__(self) -> "RealtimeClient":
        self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def subscribe(self, channel_id: str) -> None:
        """Ask the server for a channel's events. Dropped if not connected."""
        self._send(events.SUBSCRIBE, {"channelId": channel_id})

    def unsubscribe(self, channel_id: str) -> None:
        self._send(events.UNSUBSCRIBE, {"channelId": channel_id})

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes exactly it.

        Typed events (post:new, agent:status, activity:new, insight:new)
        hand the listener a payload model; other events the raw data.
        """
        self._listeners.setdefault(event, {})[listener] = None

        def off() -> None:
            listeners = self._listeners.get(event)
            if listeners is None:
                return
            listeners.pop(listener, None)
            if not listeners:
                del self._listeners[event]

        return off

    def get_state(self) -> ConnectionState:
        return self._state

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    # ─── Connection lifecycle ─────────────────────────────

    def _open(self) -> None:
        if self._conn is not None and self._conn.is_open:
            return

        token = self.config.token()
        api_key = self.config.api_key()
        if not token and not api_key:
            logger.warning("agenthq.client.no_credential")
            self._set_state(ConnectionState.ERROR)
            return

        self._set_state(ConnectionState.CONNECTING)
        self.timers.cancel(RECONNECT)
        # Never two sockets at once
        self._drop_connection()

        try:
            conn = self._connection_factory(build_url(self.config.url, token, api_key))
            self._conn = conn
            conn.start(
                on_open=lambda: self._handle_open(conn),
                on_message=lambda raw: self._handle_message(conn, raw),
                on_close=lambda code: self._handle_close(conn, code),
                on_error=lambda exc: self._handle_error(conn, exc),
            )
        except Exception as e:
            logger.warning("agenthq.client.connect_failed", error=str(e))
            self._conn = None
            self._set_state(ConnectionState.ERROR)
            if self.config.polling_fallback:
                self._start_polling()

    def _drop_connection(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close(CLOSE_NORMAL)

    def _handle_open(self, conn: Connection) -> None:
        if conn is not self._conn:
            return
        self._reconnect_attempts = 0
        self.timers.cancel(RECONNECT)
        self.timers.cancel(POLLING)
        self.timers.call_every(
            HEARTBEAT, self.config.heartbeat_interval, self._send_heartbeat
        )
        self._set_state(ConnectionState.CONNECTED)

    def _handle_close(self, conn: Connection, code: int) -> None:
        if conn is not self._conn:
            return
        self._conn = None
        self.timers.cancel(HEARTBEAT)
        self._set_state(ConnectionState.DISCONNECTED)

        if self._reconnect_enabled and code != CLOSE_NORMAL:
            self._schedule_reconnect()
        elif self.config.polling_fallback:
            self._start_polling()

    def _handle_error(self, conn: Connection, exc: Exception) -> None:
        if conn is not self._conn:
            return
        # Reconnect scheduling is driven by the close that follows
        logger.warning("agenthq.client.transport_error", error=str(exc))
        self._set_state(ConnectionState.ERROR)

    def _handle_message(self, conn: Connection, raw: Frame) -> None:
        if conn is not self._conn:
            return
        self._dispatch(raw)

    # ─── Timers ───────────────────────────────────────────

    def _schedule_reconnect(self) -> None:
        delay = backoff_delay(
            self._reconnect_attempts,
            self.config.reconnect_delay,
            self.config.max_reconnect_delay,
        )
        self._reconnect_attempts += 1
        logger.info(
            "agenthq.client.reconnect_scheduled",
            delay=delay,
            attempt=self._reconnect_attempts,
        )
        self.timers.call_later(RECONNECT, delay, self._open)

    def _send_heartbeat(self) -> None:
        self._send(events.HEARTBEAT, {"timestamp": int(time.time() * 1000)})

    def _start_polling(self) -> None:
        if self.timers.is_active(POLLING):
            return
        self.timers.call_every(POLLING, self.config.polling_interval, self._poll_tick)

    def _poll_tick(self) -> None:
        # Signal only: consumers re-fetch on their own schedule
        self._set_state(ConnectionState.DISCONNECTED)
        if self.config.on_poll is not None:
            try:
                self.config.on_poll()
            except Exception:
                logger.exception("agenthq.client.poll_hook_failed")

    # ─── Messages ─────────────────────────────────────────

    def _send(self, event: str, data: Any) -> None:
        if self._conn is not None and self._conn.is_open:
            self._conn.send(encode_message(event, data))

    def _dispatch(self, raw: Frame) -> None:
        message = decode_message(raw)
        if message is None:
            logger.debug("agenthq.client.malformed_message")
            return

        listeners = self._listeners.get(message.event)
        if not listeners:
            return

        try:
            payload = parse_server_event(message).data
        except ValueError as e:
            logger.warning(
                "agenthq.client.invalid_payload", event=message.event, error=str(e)
            )
            return

        # Snapshot: a listener may unsubscribe itself
        for listener in list(listeners):
            try:
                listener(payload)
            except Exception:
                logger.exception("agenthq.client.listener_failed", event=message.event)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug("agenthq.client.state", old=self._state.value, new=state.value)
        self._state = state
        if self.config.on_connection_change is not None:
            try:
                self.config.on_connection_change(state)
            except Exception:
                logger.exception("agenthq.client.state_callback_failed")
