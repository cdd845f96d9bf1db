"""Connection hub — the server side of the realtime layer.

Learn: The hub owns two maps:
1. client_id → ConnectedClient (the open sockets in this process)
2. the SubscriptionRegistry (channel_id → client ids)

Every socket gets a fresh client id, so two tabs of the same user are
two independent subscribers. When a socket goes away, unregister()
drops it from every channel in one pass.

Broadcasts are scoped by org: a client only ever receives events for
the org its credential belongs to, even if it subscribes to a channel
id from somewhere else.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from starlette.websockets import WebSocket, WebSocketState

from agenthq.auth import ClientIdentity
from agenthq.realtime import events
from agenthq.realtime.protocol import WsMessage, encode_message
from agenthq.realtime.subscriptions import SubscriptionRegistry

logger = structlog.get_logger()


@dataclass
class ConnectedClient:
    """One open socket and who it belongs to."""

    websocket: WebSocket
    identity: ClientIdentity
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    connected_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def org_id(self) -> str:
        return self.identity.org_id


class ConnectionHub:
    """Tracks open sockets and fans events out to them."""

    def __init__(self, registry: Optional[SubscriptionRegistry] = None):
        self.registry = registry if registry is not None else SubscriptionRegistry()
        self._clients: dict[str, ConnectedClient] = {}

    # ─── Connection lifecycle ─────────────────────────────

    def register(self, websocket: WebSocket, identity: ClientIdentity) -> ConnectedClient:
        client = ConnectedClient(websocket=websocket, identity=identity)
        self._clients[client.id] = client
        logger.info(
            "agenthq.ws.client_connected",
            client_id=client.id,
            identity=identity.id,
            identity_type=identity.type,
            org_id=identity.org_id,
        )
        return client

    def unregister(self, client_id: str) -> None:
        """Forget a client and all of its subscriptions."""
        client = self._clients.pop(client_id, None)
        self.registry.unsubscribe_all(client_id)
        if client:
            logger.info("agenthq.ws.client_disconnected", client_id=client_id)

    def get_client(self, client_id: str) -> Optional[ConnectedClient]:
        return self._clients.get(client_id)

    @property
    def clients(self) -> list[ConnectedClient]:
        return list(self._clients.values())

    # ─── Inbound frames ───────────────────────────────────

    async def handle_message(self, client: ConnectedClient, message: WsMessage) -> None:
        """Route one decoded client frame."""
        if message.event == events.SUBSCRIBE:
            channel_id = _channel_from(message.data)
            if channel_id is None:
                return
            self.registry.subscribe(channel_id, client.id)
            logger.debug("agenthq.ws.subscribed", client_id=client.id, channel_id=channel_id)
            await self.send_to_client(client, events.SUBSCRIBED, {"channelId": channel_id})

        elif message.event == events.UNSUBSCRIBE:
            channel_id = _channel_from(message.data)
            if channel_id is None:
                return
            self.registry.unsubscribe(channel_id, client.id)
            logger.debug("agenthq.ws.unsubscribed", client_id=client.id, channel_id=channel_id)
            await self.send_to_client(client, events.UNSUBSCRIBED, {"channelId": channel_id})

        elif message.event == events.HEARTBEAT:
            await self.send_to_client(
                client,
                events.HEARTBEAT_ACK,
                {"timestamp": datetime.now(timezone.utc).isoformat()},
            )

        else:
            logger.warning(
                "agenthq.ws.unknown_event", event=message.event, client_id=client.id
            )

    # ─── Outbound fan-out ─────────────────────────────────

    async def send_to_client(self, client: ConnectedClient, event: str, data: Any) -> bool:
        """Send one frame. Returns False if the socket is gone or the send failed."""
        if client.websocket.client_state != WebSocketState.CONNECTED:
            return False
        try:
            await client.websocket.send_text(encode_message(event, data))
            return True
        except Exception as e:
            # A dying socket must not abort fan-out to everyone else
            logger.warning(
                "agenthq.ws.send_failed", client_id=client.id, event=event, error=str(e)
            )
            return False

    async def broadcast_to_org(self, org_id: str, event: str, data: Any) -> int:
        """Send to every connected client of an org. Returns the delivery count."""
        delivered = 0
        for client in self.clients:
            if client.org_id == org_id and await self.send_to_client(client, event, data):
                delivered += 1
        return delivered

    async def broadcast_to_channel(
        self, org_id: str, channel_id: str, event: str, data: Any
    ) -> int:
        """Send to the channel's subscribers that belong to the org."""
        delivered = 0
        for client_id in self.registry.get_subscribers(channel_id):
            client = self._clients.get(client_id)
            if client is None or client.org_id != org_id:
                continue
            if await self.send_to_client(client, event, data):
                delivered += 1
        return delivered

    async def deliver(
        self, org_id: str, event: str, data: Any, channel_id: Optional[str] = None
    ) -> int:
        """Channel broadcast if a channel is given, org-wide otherwise."""
        if channel_id:
            return await self.broadcast_to_channel(org_id, channel_id, event, data)
        return await self.broadcast_to_org(org_id, event, data)

    def stats(self) -> dict[str, int]:
        return {
            "clients": len(self._clients),
            "channels": self.registry.get_channel_count(),
        }


def _channel_from(data: Any) -> Optional[str]:
    """Pull the channel id out of a subscribe/unsubscribe payload.

    Accepts channelId (current clients) and channel (older SDKs).
    """
    if not isinstance(data, dict):
        return None
    channel_id = data.get("channelId", data.get("channel"))
    if isinstance(channel_id, str) and channel_id:
        return channel_id
    return None
