"""Credential checks for realtime connections.

Learn: A WebSocket connection carries exactly one credential in its URL:
1. Users → JWT access token (?token=)
2. Agents → API key with the ahq_ prefix (?token= or ?apiKey=)

Both resolve to a ClientIdentity used to scope broadcasts by org.
Issuing credentials (login, key management) lives in the REST layer.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ClientIdentity:
    """Who is on the other end of a socket."""

    id: str
    type: str  # "user" or "agent"
    org_id: str
