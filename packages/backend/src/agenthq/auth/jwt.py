"""JWT access token creation and verification.

Learn: The REST layer issues tokens at login; the realtime layer only
needs to verify them. create_access_token is kept here so tests and
tooling can mint a token with the same secret the server checks.

The token carries the user id (sub) and org id for broadcast scoping.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from agenthq.auth import ClientIdentity
from agenthq.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(
    user_id: str,
    org_id: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token."""
    expires = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    payload = {
        "sub": user_id,
        "type": "access",
        "exp": expires,
        "iat": datetime.now(timezone.utc),
    }
    if org_id:
        payload["org_id"] = org_id
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        return jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")


def identity_from_token(token: str) -> ClientIdentity:
    """Verify a token and turn its claims into a user identity."""
    payload = verify_token(token)
    org_id = payload.get("org_id")
    if not payload.get("sub") or not org_id:
        raise TokenError("Token is missing sub or org_id")
    return ClientIdentity(id=payload["sub"], type="user", org_id=org_id)
