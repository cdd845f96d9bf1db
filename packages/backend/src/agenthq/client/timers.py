"""Named, cancellable timers on top of loop.call_later.

Learn: The realtime client juggles three timers — reconnect backoff,
heartbeat, polling fallback. Keeping them in one place keyed by purpose
means every state transition can say exactly which timers should exist,
and teardown is a single cancel_all().

Any object with asyncio's call_later(delay, callback) signature works
as the loop, which is how tests drive time by hand.
"""

import asyncio
from typing import Any, Callable, Optional, Protocol


class _Handle(Protocol):
    def cancel(self) -> None: ...


class _Loop(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> _Handle: ...


class TimerSet:
    """At most one pending timer per name."""

    def __init__(self, loop: Optional[_Loop] = None):
        self._loop = loop
        self._handles: dict[str, _Handle] = {}
        self._delays: dict[str, float] = {}

    def _get_loop(self) -> _Loop:
        return self._loop if self._loop is not None else asyncio.get_running_loop()

    def call_later(self, name: str, delay: float, callback: Callable[[], None]) -> None:
        """Run callback once after delay, replacing any timer with this name."""
        self.cancel(name)

        def fire() -> None:
            self._handles.pop(name, None)
            self._delays.pop(name, None)
            callback()

        self._handles[name] = self._get_loop().call_later(delay, fire)
        self._delays[name] = delay

    def call_every(self, name: str, interval: float, callback: Callable[[], None]) -> None:
        """Run callback every interval seconds until cancelled."""
        self.cancel(name)

        def tick() -> None:
            # Re-arm first so the callback may cancel us
            self._handles[name] = self._get_loop().call_later(interval, tick)
            callback()

        self._handles[name] = self._get_loop().call_later(interval, tick)
        self._delays[name] = interval

    def cancel(self, name: str) -> None:
        handle = self._handles.pop(name, None)
        self._delays.pop(name, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for name in list(self._handles):
            self.cancel(name)

    def is_active(self, name: str) -> bool:
        return name in self._handles

    def delay(self, name: str) -> Optional[float]:
        """Delay (or interval) the named timer was scheduled with."""
        return self._delays.get(name)

    @property
    def active(self) -> set[str]:
        return set(self._handles)
