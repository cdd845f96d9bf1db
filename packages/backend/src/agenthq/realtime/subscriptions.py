"""Channel subscription registry — who listens to which channel.

Learn: A plain dict of channel_id → set of client ids. Lookups for
fan-out are O(1); tearing down a client walks every channel, which is
fine because disconnects are rare compared to broadcasts.

Invariant: a channel key only exists while it has at least one
subscriber. The moment its set empties, the key is removed.

One registry per process, created at startup and handed to the hub.
Clients are opaque strings; the registry never touches sockets.
"""

from typing import Iterator


class SubscriptionRegistry:
    """In-memory channel → subscriber index."""

    def __init__(self) -> None:
        self._channels: dict[str, set[str]] = {}

    def subscribe(self, channel_id: str, client_id: str) -> None:
        """Add a client to a channel. Subscribing twice is a no-op."""
        self._channels.setdefault(channel_id, set()).add(client_id)

    def unsubscribe(self, channel_id: str, client_id: str) -> None:
        """Remove a client from a channel, dropping the channel if it empties."""
        subscribers = self._channels.get(channel_id)
        if subscribers is None:
            return
        subscribers.discard(client_id)
        if not subscribers:
            del self._channels[channel_id]

    def unsubscribe_all(self, client_id: str) -> None:
        """Remove a client from every channel (called on disconnect)."""
        # Snapshot keys, channels are deleted while walking
        for channel_id in list(self._channels):
            self.unsubscribe(channel_id, client_id)

    def get_subscribers(self, channel_id: str) -> frozenset[str]:
        """Current subscribers of a channel (empty if none).

        Returns a frozen copy so callers can iterate while the registry
        keeps changing underneath them.
        """
        return frozenset(self._channels.get(channel_id, ()))

    def get_channel_count(self) -> int:
        return len(self._channels)

    def channels_for(self, client_id: str) -> set[str]:
        """Reverse lookup: every channel a client is subscribed to."""
        return {
            channel_id
            for channel_id, subscribers in self._channels.items()
            if client_id in subscribers
        }

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._channels

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._channels))
