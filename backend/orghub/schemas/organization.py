"""
Organization schemas.

Data carried into the organization manager. Field rules are not enforced
here: the manager validates every input itself so failures surface as
InvalidInputError with a stable message instead of a pydantic error.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

class Organization(BaseModel):
    """Organization as written by add/update."""

    name: str = ""
    display_name: str | None = None
    description: str | None = None
    home_url: str | None = None
    logo_image_id: str | None = None


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class AddMemberRequest(BaseModel):
    """Request body for POST /orgs/{org_name}/members."""

    user_alias: str = ""
    base_url: str | None = Field(
        default=None,
        description="Base URL for the invitation link; defaults to the configured BASE_URL",
    )


# ---------------------------------------------------------------------------
# Authorization policy
# ---------------------------------------------------------------------------

class AuthorizationPolicy(BaseModel):
    """Per-organization authorization policy."""

    authorization_enabled: bool = False
    predefined_policy: str | None = None
    custom_policy: str | None = None
    policy_data: dict[str, Any] | list[Any] | str | bytes | None = Field(
        default=None,
        description="JSON document referenced by the policy rules, as a value or encoded",
    )


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------

class AvailabilityResponse(BaseModel):
    available: bool
