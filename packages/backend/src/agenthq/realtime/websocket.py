"""WebSocket endpoint — real-time event delivery to connected clients.

Learn: Each client connects to /ws?token=<JWT or API key>. The handler:
1. Authenticates the credential from the query string
2. Registers the socket with the ConnectionHub
3. Reads client frames (subscribe / unsubscribe / heartbeat) until disconnect
4. Unregisters, which drops every subscription the socket held

Server → client pushes don't happen here. Producers call the EventBus,
which reaches the hub (directly or via the Redis relay) and the hub
writes to whichever sockets are subscribed.

This is a long-lived connection — one per browser tab or agent process.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from agenthq.auth import ClientIdentity
from agenthq.auth.api_keys import ApiKeyRegistry, is_api_key
from agenthq.auth.jwt import TokenError, identity_from_token
from agenthq.config import settings
from agenthq.realtime.hub import ConnectionHub
from agenthq.realtime.protocol import decode_message

logger = structlog.get_logger()
router = APIRouter()

# Application-defined close code (4000-4999 range)
CLOSE_UNAUTHORIZED = 4001


def authenticate(credential: str, api_keys: ApiKeyRegistry) -> Optional[ClientIdentity]:
    """Resolve a JWT or API key to an identity, or None if it's not valid."""
    if is_api_key(credential):
        return api_keys.lookup(credential)
    try:
        return identity_from_token(credential)
    except TokenError:
        return None


@router.websocket(settings.ws_path)
async def realtime_websocket(websocket: WebSocket):
    """WebSocket endpoint for channel subscriptions and event pushes.

    Authentication: ?token= (JWT or ahq_ API key) or ?apiKey= query param.
    Missing or invalid credentials close the socket with 4001.
    """
    hub: ConnectionHub = websocket.app.state.hub
    api_keys: ApiKeyRegistry = websocket.app.state.api_keys

    # ── Authentication ──────────────────────────────────────
    credential = websocket.query_params.get("token") or websocket.query_params.get("apiKey")

    if not credential:
        await websocket.close(code=CLOSE_UNAUTHORIZED, reason="Missing authentication token")
        return

    identity = authenticate(credential, api_keys)
    if identity is None:
        await websocket.close(code=CLOSE_UNAUTHORIZED, reason="Invalid authentication")
        return

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()
    client = hub.register(websocket, identity)

    try:
        while True:
            raw = await websocket.receive_text()
            message = decode_message(raw)
            if message is None:
                continue  # malformed frame
            await hub.handle_message(client, message)
    except WebSocketDisconnect:
        pass
    finally:
        hub.unregister(client.id)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
