"""WebSocket endpoint tests — handshake auth and the control protocol.

Learn: Starlette's TestClient runs the app in-process, so these cover
the real endpoint without a network. A close before accept surfaces as
WebSocketDisconnect when the test tries to connect.
"""

import pytest
from fastapi import Depends
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from agenthq.auth.api_keys import generate_api_key
from agenthq.auth.jwt import create_access_token
from agenthq.main import get_event_bus
from agenthq.realtime.pubsub import EventBus
from agenthq.realtime.websocket import CLOSE_UNAUTHORIZED


@pytest.fixture()
def ws_client(app):
    return TestClient(app)


# ═══════════════════════════════════════════════════════════
# Authentication
# ═══════════════════════════════════════════════════════════


def test_missing_credential_is_rejected(ws_client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect("/ws"):
            pass
    assert exc_info.value.code == CLOSE_UNAUTHORIZED


@pytest.mark.parametrize("credential", ["garbage", "ahq_unknown_key"])
def test_invalid_credential_is_rejected(ws_client, credential):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect(f"/ws?token={credential}"):
            pass
    assert exc_info.value.code == CLOSE_UNAUTHORIZED


def test_token_without_org_is_rejected(ws_client):
    token = create_access_token("user-1")
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect(f"/ws?token={token}"):
            pass
    assert exc_info.value.code == CLOSE_UNAUTHORIZED


def test_expired_token_is_rejected(ws_client):
    token = create_access_token("user-1", org_id="org-1", expires_minutes=-1)
    with pytest.raises(WebSocketDisconnect):
        with ws_client.websocket_connect(f"/ws?token={token}"):
            pass


def test_api_key_connects_as_agent(app, ws_client):
    raw_key = generate_api_key()
    app.state.api_keys.register(raw_key, agent_id="agent-1", org_id="org-1")

    with ws_client.websocket_connect(f"/ws?apiKey={raw_key}") as ws:
        ws.send_json({"event": "heartbeat", "data": {"timestamp": 1}})
        assert ws.receive_json()["event"] == "heartbeat_ack"

        [connected] = app.state.hub.clients
        assert connected.identity.type == "agent"
        assert connected.org_id == "org-1"


def test_revoked_api_key_is_rejected(app, ws_client):
    raw_key = generate_api_key()
    app.state.api_keys.register(raw_key, agent_id="agent-1", org_id="org-1")
    app.state.api_keys.revoke(raw_key)

    with pytest.raises(WebSocketDisconnect):
        with ws_client.websocket_connect(f"/ws?token={raw_key}"):
            pass


# ═══════════════════════════════════════════════════════════
# Control protocol
# ═══════════════════════════════════════════════════════════


def test_subscribe_unsubscribe_round_trip(app, ws_client, user_token):
    hub = app.state.hub

    with ws_client.websocket_connect(f"/ws?token={user_token}") as ws:
        ws.send_json({"event": "subscribe", "data": {"channelId": "general"}})
        assert ws.receive_json() == {"event": "subscribed", "data": {"channelId": "general"}}
        assert hub.stats() == {"clients": 1, "channels": 1}

        ws.send_json({"event": "unsubscribe", "data": {"channelId": "general"}})
        assert ws.receive_json() == {"event": "unsubscribed", "data": {"channelId": "general"}}
        assert hub.registry.get_channel_count() == 0


def test_malformed_frames_do_not_close_socket(ws_client, user_token):
    with ws_client.websocket_connect(f"/ws?token={user_token}") as ws:
        ws.send_text("not json")
        ws.send_json({"no_event": True})
        ws.send_json({"event": "foo", "data": {}})
        ws.send_json({"event": "heartbeat", "data": {"timestamp": 1}})

        # The first reply is the heartbeat ack, nothing was sent for the rest
        assert ws.receive_json()["event"] == "heartbeat_ack"


def test_deeply_nested_frame_does_not_close_socket(app, ws_client, user_token):
    with ws_client.websocket_connect(f"/ws?token={user_token}") as ws:
        ws.send_text("[" * 100_000 + "]" * 100_000)
        ws.send_json({"event": "heartbeat", "data": {"timestamp": 1}})

        assert ws.receive_json()["event"] == "heartbeat_ack"
        assert app.state.hub.stats()["clients"] == 1


def test_disconnect_drops_subscriptions(app, ws_client, user_token):
    hub = app.state.hub

    with ws_client.websocket_connect(f"/ws?token={user_token}") as ws:
        ws.send_json({"event": "subscribe", "data": {"channelId": "channel-1"}})
        ws.receive_json()
        ws.send_json({"event": "subscribe", "data": {"channelId": "channel-2"}})
        ws.receive_json()
        assert hub.registry.get_channel_count() == 2

    assert hub.stats() == {"clients": 0, "channels": 0}


# ═══════════════════════════════════════════════════════════
# Producers
# ═══════════════════════════════════════════════════════════


def test_producer_route_publishes_to_subscribers(app, user_token):
    """A REST handler gets the bus by dependency and its event reaches the socket."""

    @app.post("/api/v1/channels/{channel_id}/posts")
    async def create_post(channel_id: str, bus: EventBus = Depends(get_event_bus)):
        post = {"id": "post_1", "channel_id": channel_id, "content": "hello"}
        await bus.publish("org-1", "post:new", post, channel_id=channel_id)
        return post

    with TestClient(app) as http:  # runs the lifespan, which builds the bus
        with http.websocket_connect(f"/ws?token={user_token}") as ws:
            ws.send_json({"event": "subscribe", "data": {"channelId": "general"}})
            assert ws.receive_json()["event"] == "subscribed"

            resp = http.post("/api/v1/channels/general/posts")
            assert resp.status_code == 200

            frame = ws.receive_json()
            assert frame["event"] == "post:new"
            assert frame["data"]["id"] == "post_1"
