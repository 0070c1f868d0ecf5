"""
Security utilities.

JWT access token validation and token blacklist keys. Tokens are
issued by the platform's identity service; this service only verifies them.
"""

from __future__ import annotations

from typing import Any

from jose import JWTError, jwt

from orghub.core.config import settings


# ---------------------------------------------------------------------------
# JWT tokens
# ---------------------------------------------------------------------------

def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and validate a JWT access token.

    Raises:
        JWTError: If the token is invalid, expired, tampered or not an access token.
    """
    payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    if payload.get("type") != "access":
        raise JWTError("Not an access token")
    return payload


# ---------------------------------------------------------------------------
# Redis key helpers
# ---------------------------------------------------------------------------

def blacklist_redis_key(jti: str) -> str:
    """Redis key for a blacklisted access token JTI. Format: blacklist:{jti}"""
    return f"blacklist:{jti}"
