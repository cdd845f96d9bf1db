"""Credential tests — JWT identities and API key lookup."""

import pytest

from agenthq.auth.api_keys import (
    ApiKeyRegistry,
    generate_api_key,
    hash_api_key,
    is_api_key,
)
from agenthq.auth.jwt import (
    TokenError,
    create_access_token,
    identity_from_token,
    verify_token,
)
from agenthq.realtime.websocket import authenticate


# ═══════════════════════════════════════════════════════════
# JWT
# ═══════════════════════════════════════════════════════════


def test_token_round_trip():
    token = create_access_token("user-1", org_id="org-1")
    payload = verify_token(token)
    assert payload["sub"] == "user-1"
    assert payload["org_id"] == "org-1"
    assert payload["type"] == "access"


def test_identity_from_token():
    identity = identity_from_token(create_access_token("user-1", org_id="org-1"))
    assert identity.id == "user-1"
    assert identity.type == "user"
    assert identity.org_id == "org-1"


def test_token_without_org_has_no_identity():
    with pytest.raises(TokenError):
        identity_from_token(create_access_token("user-1"))


def test_expired_token():
    token = create_access_token("user-1", org_id="org-1", expires_minutes=-1)
    with pytest.raises(TokenError, match="expired"):
        verify_token(token)


def test_garbage_token():
    with pytest.raises(TokenError):
        verify_token("not.a.jwt")


# ═══════════════════════════════════════════════════════════
# API keys
# ═══════════════════════════════════════════════════════════


def test_generated_keys_have_prefix_and_differ():
    a, b = generate_api_key(), generate_api_key()
    assert is_api_key(a)
    assert a != b
    assert not is_api_key("eyJhbGciOiJIUzI1NiJ9")


def test_registry_stores_only_hashes():
    keys = ApiKeyRegistry()
    raw_key = generate_api_key()

    keys.register(raw_key, agent_id="agent-1", org_id="org-1")

    assert raw_key not in keys._keys
    assert hash_api_key(raw_key) in keys._keys
    assert keys.lookup(raw_key).id == "agent-1"
    assert keys.lookup(generate_api_key()) is None

    keys.revoke(raw_key)
    assert len(keys) == 0


def test_authenticate_picks_credential_kind():
    keys = ApiKeyRegistry()
    raw_key = generate_api_key()
    keys.register(raw_key, agent_id="agent-1", org_id="org-1")

    assert authenticate(raw_key, keys).type == "agent"
    assert authenticate(create_access_token("user-1", org_id="org-1"), keys).type == "user"
    assert authenticate("garbage", keys) is None
