"""
JWT Authentication Module for PatrolSheet

Tokens are issued by the external identity provider and validated here by
signature only (CPU, no DB hit). The role claim is trusted as published.

Claims:
- sub:  officer id (stringified integer)
- role: admin, manager or officer
- name: display name (optional)
- iat / exp

Delivery: Authorization: Bearer <token> header only.

create_access_token exists for the seed script and tests; login and token
issuance belong to the identity provider.
"""

import os
import secrets
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt  # PyJWT
from fastapi import Request

from actor import Actor, ROLES
from errors import AuthenticationError

logger = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

# If not set, generates a random key (tokens invalidated on restart - fine for dev).
_default_secret = secrets.token_urlsafe(64)
JWT_SECRET = os.environ.get("PATROL_JWT_SECRET", _default_secret)
if JWT_SECRET == _default_secret:
    logger.warning(
        "PATROL_JWT_SECRET not set in environment - using random key. "
        "Tokens will be invalidated on restart."
    )

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_LIFETIME = timedelta(hours=12)


# =============================================================================
# TOKEN CREATION
# =============================================================================


def create_access_token(
    officer_id: int,
    role: str,
    name: Optional[str] = None,
    lifetime: timedelta = ACCESS_TOKEN_LIFETIME,
) -> str:
    """
    Create a signed JWT access token.

    Args:
        officer_id: Officer id in the identity provider
        role: "admin", "manager" or "officer"
        name: Display name
        lifetime: Token validity window

    Returns:
        Encoded JWT string
    """
    now = datetime.now(timezone.utc)

    payload = {
        "sub": str(officer_id),
        "role": role,
        "iat": now,
        "exp": now + lifetime,
    }
    if name:
        payload["name"] = name

    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


# =============================================================================
# TOKEN VALIDATION
# =============================================================================


class TokenClaims:
    """Parsed and validated JWT claims."""

    __slots__ = ("officer_id", "role", "name", "exp")

    def __init__(self, payload: dict):
        self.officer_id = int(payload["sub"])
        self.role = payload["role"]
        self.name = payload.get("name")
        self.exp = payload.get("exp")

    def to_actor(self) -> Actor:
        return Actor(officer_id=self.officer_id, role=self.role, name=self.name)


def validate_access_token(token: str) -> Optional[TokenClaims]:
    """
    Validate a JWT access token by checking its signature and expiration.

    Returns:
        TokenClaims if valid, None if invalid/expired/missing claims.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        claims = TokenClaims(payload)
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid JWT: {e}")
        return None
    except (KeyError, ValueError, TypeError) as e:
        logger.warning(f"JWT missing usable claims: {e}")
        return None

    if claims.role not in ROLES:
        logger.warning(f"JWT carries unknown role {claims.role!r}")
        return None
    return claims


def extract_token_from_request(request) -> Optional[str]:
    """Return the bearer token from the Authorization header, if any."""
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


# =============================================================================
# FASTAPI DEPENDENCY
# =============================================================================


async def get_current_actor(request: Request) -> Actor:
    """Resolve the acting identity for this request, or fail with 401."""
    token = extract_token_from_request(request)
    if not token:
        raise AuthenticationError("Authentication invalid")

    claims = validate_access_token(token)
    if claims is None:
        raise AuthenticationError("Authentication invalid")

    return claims.to_actor()
