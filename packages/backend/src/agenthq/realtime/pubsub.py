"""Event bus — how REST handlers push domain events to sockets.

Learn: Redis pub/sub is fire-and-forget. If no process is listening, the
message is lost. That's fine for real-time UI updates (the dashboard can
always re-fetch from the API to catch up).

Each process only knows its own sockets. With several API processes,
an event produced in process A must reach a subscriber connected to
process B, so every process:
1. PUBLISHes envelopes to agenthq:events:{org_id}
2. PSUBSCRIBEs to agenthq:events:* and hands each envelope to its hub

Without Redis (single process, tests) publish() goes straight to the
local hub.
"""

import asyncio
import json
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog

from agenthq.realtime.hub import ConnectionHub
from agenthq.realtime.protocol import jsonable

logger = structlog.get_logger()

CHANNEL_PREFIX = "agenthq:events:"


async def connect_redis(url: str) -> aioredis.Redis:
    """Open a Redis connection pool and verify it answers."""
    r = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
    await r.ping()
    return r


def encode_envelope(
    org_id: str, event: str, data: Any, channel_id: Optional[str] = None
) -> str:
    return json.dumps(
        {
            "org_id": org_id,
            "channel_id": channel_id,
            "event": event,
            "data": jsonable(data),
        },
        default=str,
    )


def decode_envelope(raw: str) -> Optional[dict[str, Any]]:
    """Parse a relay envelope, or None if it isn't one."""
    try:
        envelope = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError, RecursionError):
        return None
    if not isinstance(envelope, dict):
        return None
    if not isinstance(envelope.get("org_id"), str) or not isinstance(
        envelope.get("event"), str
    ):
        return None
    return envelope


class EventBus:
    """Entry point for event producers."""

    def __init__(self, hub: ConnectionHub, redis: Optional[aioredis.Redis] = None):
        self.hub = hub
        self.redis = redis
        self._running = False

    @property
    def distributed(self) -> bool:
        return self.redis is not None

    async def publish(
        self,
        org_id: str,
        event: str,
        data: Any,
        channel_id: Optional[str] = None,
    ) -> None:
        """Publish a domain event to an org, or to one channel within it.

        Learn: Every REST handler calls this after its database write.
        """
        if self.redis is None:
            await self.hub.deliver(org_id, event, data, channel_id=channel_id)
            return
        await self.redis.publish(
            f"{CHANNEL_PREFIX}{org_id}",
            encode_envelope(org_id, event, data, channel_id),
        )

    async def handle_envelope(self, raw: str) -> int:
        """Deliver one relayed envelope to this process's sockets."""
        envelope = decode_envelope(raw)
        if envelope is None:
            logger.warning("agenthq.relay.malformed_envelope")
            return 0
        return await self.hub.deliver(
            envelope["org_id"],
            envelope["event"],
            envelope.get("data"),
            channel_id=envelope.get("channel_id"),
        )

    async def run_relay(self) -> None:
        """Forward every Redis envelope to the local hub until stopped."""
        if self.redis is None:
            return
        pubsub = self.redis.pubsub()
        await pubsub.psubscribe(f"{CHANNEL_PREFIX}*")
        self._running = True
        logger.info("agenthq.relay.started")
        try:
            async for message in pubsub.listen():
                if not self._running:
                    break
                if message["type"] != "pmessage":
                    continue
                try:
                    await self.handle_envelope(message["data"])
                except Exception:
                    logger.exception("agenthq.relay.delivery_failed")
        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("agenthq.relay.stopped")

    def stop(self) -> None:
        self._running = False

    async def close(self) -> None:
        self.stop()
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
