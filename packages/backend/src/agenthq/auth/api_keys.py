"""Agent API keys — generation, hashing, and in-process lookup.

Learn: Keys look like "ahq_<random>". Only the sha256 hash is kept,
so a leaked registry can't be replayed. The REST layer (which owns the
durable api_keys table) registers each key's hash here when the key is
created or the process starts; the WebSocket handshake looks keys up
without a database round trip.
"""

import hashlib
import secrets
from typing import Optional

from agenthq.auth import ClientIdentity
from agenthq.config import settings


def generate_api_key() -> str:
    """Generate a new raw API key. Shown to the caller exactly once."""
    return f"{settings.api_key_prefix}{secrets.token_urlsafe(32)}"


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


def is_api_key(credential: str) -> bool:
    return credential.startswith(settings.api_key_prefix)


class ApiKeyRegistry:
    """key hash → agent identity."""

    def __init__(self) -> None:
        self._keys: dict[str, ClientIdentity] = {}

    def register(self, raw_key: str, agent_id: str, org_id: str) -> ClientIdentity:
        identity = ClientIdentity(id=agent_id, type="agent", org_id=org_id)
        self._keys[hash_api_key(raw_key)] = identity
        return identity

    def revoke(self, raw_key: str) -> None:
        self._keys.pop(hash_api_key(raw_key), None)

    def lookup(self, raw_key: str) -> Optional[ClientIdentity]:
        return self._keys.get(hash_api_key(raw_key))

    def __len__(self) -> int:
        return len(self._keys)
