"""
FastAPI dependency injection functions.

Provides the acting user id, Redis, and the organization manager with its
collaborators (database, authorizer gateway, email sender).
"""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from orghub.authz.gateway import HTTPAuthorizer
from orghub.core.config import settings
from orghub.core.database import Database, get_db
from orghub.core.errors import UnauthorizedError
from orghub.core.security import blacklist_redis_key, decode_access_token
from orghub.services.email_service import ResendSender
from orghub.services.organization_manager import OrganizationManager

# ---------------------------------------------------------------------------
# HTTP Bearer scheme (auto_error=False so we can return custom 401)
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """
    Return a shared async Redis client.

    Uses a module-level pool so connections are reused across requests.
    """
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            str(settings.REDIS_URL),
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_pool


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------

async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    redis: aioredis.Redis = Depends(get_redis),
) -> str:
    """
    Validate Bearer JWT and return the authenticated user id.

    Raises UnauthorizedError if:
    - No token provided
    - Token is invalid or expired
    - JTI is blacklisted
    - Token carries no subject (user id)
    """
    if credentials is None:
        raise UnauthorizedError("authorization header required")

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise UnauthorizedError("token is invalid or expired")

    if await redis.exists(blacklist_redis_key(payload.get("jti", ""))):
        raise UnauthorizedError("token has been revoked")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("token has no subject")
    return user_id


# ---------------------------------------------------------------------------
# Organization manager
# ---------------------------------------------------------------------------

_authorizer: HTTPAuthorizer | None = None


def get_authorizer() -> HTTPAuthorizer:
    """Return the shared policy engine client."""
    global _authorizer
    if _authorizer is None:
        _authorizer = HTTPAuthorizer(
            settings.AUTHZ_URL, get_db(), timeout=settings.AUTHZ_TIMEOUT_SECONDS
        )
    return _authorizer


def get_email_sender() -> ResendSender | None:
    """Return the email sender, or None when email delivery is not configured."""
    if not settings.RESEND_API_KEY:
        return None
    return ResendSender(settings.RESEND_API_KEY, settings.EMAIL_FROM)


def get_org_manager(
    db: Database = Depends(get_db),
    authorizer: HTTPAuthorizer = Depends(get_authorizer),
    email_sender: ResendSender | None = Depends(get_email_sender),
) -> OrganizationManager:
    """Dependency that constructs OrganizationManager."""
    return OrganizationManager(db=db, email_sender=email_sender, authorizer=authorizer)
