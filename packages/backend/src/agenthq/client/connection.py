"""Socket transport for the realtime client.

Learn: WebSocketConnection turns the `websockets` asyncio client into
the four callbacks the connection manager reacts to — open, message,
close(code), error — the same shape a browser WebSocket has. Two tasks
run while the socket is up (as in the server endpoint):
1. Reader — iterates incoming frames and hands them to on_message
2. Writer — drains an outbox so send() can be called synchronously

A failed connect reports on_error followed by on_close(1006). So does a
reader that dies on anything other than a normal close.
"""

import asyncio
from typing import Callable, Optional, Protocol, Union

import structlog
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

logger = structlog.get_logger()

CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006
CLOSE_INTERNAL_ERROR = 1011

Frame = Union[str, bytes]


class Connection(Protocol):
    """What RealtimeClient needs from a transport."""

    @property
    def is_open(self) -> bool: ...

    def start(
        self,
        *,
        on_open: Callable[[], None],
        on_message: Callable[[Frame], None],
        on_close: Callable[[int], None],
        on_error: Callable[[Exception], None],
    ) -> None: ...

    def send(self, text: str) -> None: ...

    def close(self, code: int = CLOSE_NORMAL) -> None: ...

    async def wait_closed(self) -> None: ...


class WebSocketConnection:
    """One socket, start to finish. Never reused after it closes."""

    def __init__(self, url: str, open_timeout: float = 10.0):
        self.url = url
        self.open_timeout = open_timeout
        self._ws: Optional[ClientConnection] = None
        self._task: Optional[asyncio.Task] = None
        self._closer: Optional[asyncio.Task] = None
        self._outbox: asyncio.Queue[str] = asyncio.Queue()

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    def start(
        self,
        *,
        on_open: Callable[[], None],
        on_message: Callable[[Frame], None],
        on_close: Callable[[int], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        self._task = asyncio.get_running_loop().create_task(
            self._run(on_open, on_message, on_close, on_error)
        )

    def send(self, text: str) -> None:
        if self.is_open:
            self._outbox.put_nowait(text)

    def close(self, code: int = CLOSE_NORMAL) -> None:
        if self._ws is not None:
            self._closer = asyncio.get_running_loop().create_task(self._ws.close(code))
        elif self._task is not None:
            # Still handshaking: abandon the attempt
            self._task.cancel()

    async def wait_closed(self) -> None:
        for task in (self._closer, self._task):
            if task is None:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(
        self,
        on_open: Callable[[], None],
        on_message: Callable[[Frame], None],
        on_close: Callable[[int], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        try:
            # Keep-alive is the application heartbeat, not protocol pings
            ws = await connect(
                self.url, open_timeout=self.open_timeout, ping_interval=None
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            on_error(e)
            on_close(CLOSE_ABNORMAL)
            return

        self._ws = ws
        on_open()

        writer = asyncio.create_task(self._drain_outbox(ws))
        failed = False
        try:
            async for raw in ws:
                on_message(raw)
        except ConnectionClosed:
            pass
        except Exception as e:
            # The reader is gone, so the socket must go too
            logger.exception("agenthq.client.reader_failed", url=self.url)
            failed = True
            await ws.close(CLOSE_INTERNAL_ERROR)
            on_error(e)
        finally:
            writer.cancel()

        if failed or ws.close_code is None:
            on_close(CLOSE_ABNORMAL)
        else:
            on_close(ws.close_code)

    async def _drain_outbox(self, ws: ClientConnection) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await ws.send(text)
            except ConnectionClosed:
                return
