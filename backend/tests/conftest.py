"""
Pytest configuration for orghub backend tests.

The manager's collaborators are replaced by AsyncMock fakes so every test
can assert exactly which storage, authorization and email calls were made.
"""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from jose import jwt

from orghub.core.config import settings
from orghub.services.organization_manager import OrganizationManager

USER_ID = "00000000-0000-0000-0000-000000000001"


class FakeError(Exception):
    """Stand-in for gateway / storage / email failures."""


@pytest.fixture
def db() -> MagicMock:
    fake = MagicMock()
    fake.exec = AsyncMock(return_value=None)
    fake.query_row = AsyncMock(return_value=None)
    return fake


@pytest.fixture
def authorizer() -> MagicMock:
    fake = MagicMock()
    fake.authorize = AsyncMock(return_value=None)
    return fake


@pytest.fixture
def email_sender() -> MagicMock:
    fake = MagicMock()
    fake.send_email = AsyncMock(return_value=None)
    return fake


@pytest.fixture
def manager(db: MagicMock, authorizer: MagicMock, email_sender: MagicMock) -> OrganizationManager:
    return OrganizationManager(db=db, email_sender=email_sender, authorizer=authorizer)


def make_access_token(user_id: str | None = USER_ID, expire_minutes: int = 15) -> str:
    """Sign an access token the way the identity service issues them."""
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "jti": str(uuid.uuid4()),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(minutes=expire_minutes),
    }
    if user_id is not None:
        payload["sub"] = user_id
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
