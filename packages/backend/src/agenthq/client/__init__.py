"""Realtime client — connect, subscribe, listen.

Learn: Typical use from an application shell:

    async with RealtimeClient(ClientConfig(token=lambda: session.token)) as rt:
        rt.on("post:new", lambda post: print(post.title))
        rt.subscribe(channel_id)
        ...

Subscriptions are not replayed across reconnects — re-issue them from
on_connection_change when the state becomes connected.
"""

from agenthq.client.realtime import (
    ClientConfig,
    ConnectionState,
    RealtimeClient,
    backoff_delay,
)
from agenthq.client.store import RealtimeStore

__all__ = [
    "ClientConfig",
    "ConnectionState",
    "RealtimeClient",
    "RealtimeStore",
    "backoff_delay",
]
