"""
Organization business logic.

Handles org creation and updates, the membership lifecycle (invited ->
confirmed -> removed) and authorization policies. Every privileged
operation follows the same path: validate -> authorize -> persist ->
notify. Persistence goes through stored procedures that also compose the
JSON documents returned by the read operations, which are passed through
untouched.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from orghub.authz.gateway import GET_USER_ALIAS, Action, AuthorizeInput
from orghub.core.errors import require_user_id, translate_db_errors
from orghub.schemas.organization import AuthorizationPolicy, Organization
from orghub.services.email_service import invitation_email
from orghub.services.validation import (
    AUTHORIZATION_POLICY_RULES,
    AVAILABILITY_RULES,
    INVITATION_RULES,
    MEMBER_RULES,
    ORG_NAME_RULES,
    ORGANIZATION_NAME,
    ORGANIZATION_RULES,
    AvailabilityInput,
    MemberInput,
    PolicyInput,
    validate,
)

if TYPE_CHECKING:
    from orghub.authz.gateway import Authorizer
    from orghub.core.database import DB
    from orghub.services.email_service import EmailSender

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

ADD_ORGANIZATION = "select add_organization($1::uuid, $2::jsonb)"
UPDATE_ORGANIZATION = "select update_organization($1::uuid, $2::jsonb)"
GET_ORGANIZATION = "select get_organization($1::text)"
GET_USER_ORGANIZATIONS = "select get_user_organizations($1::uuid)"
ADD_ORGANIZATION_MEMBER = "select add_organization_member($1::uuid, $2::text, $3::text)"
CONFIRM_MEMBERSHIP = "select confirm_organization_membership($1::uuid, $2::text)"
DELETE_ORGANIZATION_MEMBER = "select delete_organization_member($1::uuid, $2::text, $3::text)"
GET_ORGANIZATION_MEMBERS = "select get_organization_members($1::uuid, $2::text)"
GET_AUTHORIZATION_POLICY = "select get_authorization_policy($1::uuid, $2::text)"
UPDATE_AUTHORIZATION_POLICY = "select update_authorization_policy($1::uuid, $2::text, $3::jsonb)"
GET_USER_EMAIL = 'select email from "user" where alias = $1'

AVAILABILITY_QUERIES = {
    ORGANIZATION_NAME: "select organization_id from organization where name = $1",
}


def _as_bytes(data: Any) -> bytes | None:
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


def _policy_data(data: Any) -> Any:
    if isinstance(data, (str, bytes)):
        return json.loads(data) if data else None
    return data


def _policy_document(policy: AuthorizationPolicy) -> str:
    return json.dumps(
        {
            "authorization_enabled": policy.authorization_enabled,
            "predefined_policy": policy.predefined_policy or None,
            "custom_policy": policy.custom_policy or None,
            "policy_data": _policy_data(policy.policy_data),
        }
    )


class OrganizationManager:
    """Handles all organization operations."""

    def __init__(
        self,
        db: DB,
        email_sender: EmailSender | None,
        authorizer: Authorizer,
    ) -> None:
        self.db = db
        self.email_sender = email_sender
        self.authorizer = authorizer

    async def _authorize(self, org_name: str, user_id: str, action: Action) -> None:
        # Errors from the gateway are surfaced as raised
        await self.authorizer.authorize(
            AuthorizeInput(organization_name=org_name, user_id=user_id, action=action)
        )

    async def _exec(self, query: str, *args: Any) -> None:
        with translate_db_errors():
            await self.db.exec(query, *args)

    async def _query_row(self, query: str, *args: Any) -> Any:
        with translate_db_errors():
            return await self.db.query_row(query, *args)

    async def _query_json(self, query: str, *args: Any) -> bytes | None:
        return _as_bytes(await self._query_row(query, *args))

    # -----------------------------------------------------------------------
    # Organizations
    # -----------------------------------------------------------------------

    async def add(self, user_id: str | None, org: Organization) -> None:
        """
        Create a new organization.

        The requesting user becomes its first member (owner); no
        authorization check applies to self-serve creation.
        """
        user_id = require_user_id(user_id)
        validate(ORGANIZATION_RULES, org)
        await self._exec(ADD_ORGANIZATION, user_id, org.model_dump_json())

    async def update(self, user_id: str | None, org: Organization) -> None:
        """Update the organization identified by org.name."""
        user_id = require_user_id(user_id)
        validate(ORGANIZATION_RULES, org)
        await self._authorize(org.name, user_id, Action.update_organization)
        await self._exec(UPDATE_ORGANIZATION, user_id, org.model_dump_json())

    async def get_json(self, org_name: str) -> bytes | None:
        """Return the organization as a JSON document."""
        validate(ORG_NAME_RULES, org_name)
        return await self._query_json(GET_ORGANIZATION, org_name)

    async def get_by_user_json(self, user_id: str | None) -> bytes | None:
        """Return the organizations the user belongs to as a JSON document."""
        user_id = require_user_id(user_id)
        return await self._query_json(GET_USER_ORGANIZATIONS, user_id)

    async def check_availability(self, resource_kind: str, value: str) -> bool:
        """Check whether a resource value (e.g. an organization name) is still free."""
        validate(AVAILABILITY_RULES, AvailabilityInput(resource_kind, value))
        query = f"select not exists ({AVAILABILITY_QUERIES[resource_kind]})"
        available = await self._query_row(query, value)
        return bool(available)

    # -----------------------------------------------------------------------
    # Members
    # -----------------------------------------------------------------------

    async def add_member(
        self,
        user_id: str | None,
        org_name: str,
        user_alias: str,
        base_url: str | None,
    ) -> None:
        """
        Invite a user to the organization.

        - Inserts the membership in the invited state
        - Emails the invited user a confirmation link built from base_url

        A failed email is raised to the caller, but the invitation stays
        persisted: the membership is valid, only the notification failed.
        """
        user_id = require_user_id(user_id)
        validate(INVITATION_RULES, MemberInput(org_name, user_alias, base_url))
        await self._authorize(org_name, user_id, Action.add_organization_member)
        await self._exec(ADD_ORGANIZATION_MEMBER, user_id, org_name, user_alias)

        if self.email_sender is None:
            return
        to_email = await self._query_row(GET_USER_EMAIL, user_alias)
        message = invitation_email(to_email, org_name, base_url)
        try:
            await self.email_sender.send_email(message)
        except Exception:
            logger.warning(
                "Invitation email failed: org=%s user_alias=%s", org_name, user_alias
            )
            raise

    async def confirm_membership(self, user_id: str | None, org_name: str) -> None:
        """Confirm the requesting user's pending membership."""
        user_id = require_user_id(user_id)
        validate(ORG_NAME_RULES, org_name)
        await self._exec(CONFIRM_MEMBERSHIP, user_id, org_name)

    async def delete_member(self, user_id: str | None, org_name: str, user_alias: str) -> None:
        """
        Remove a member from the organization.

        Users can always leave an organization themselves; removing anyone
        else requires the delete member permission.
        """
        user_id = require_user_id(user_id)
        validate(MEMBER_RULES, MemberInput(org_name, user_alias))

        requester_alias = await self._query_row(GET_USER_ALIAS, user_id)
        if requester_alias != user_alias:
            await self._authorize(org_name, user_id, Action.delete_organization_member)

        await self._exec(DELETE_ORGANIZATION_MEMBER, user_id, org_name, user_alias)

    async def get_members_json(self, user_id: str | None, org_name: str) -> bytes | None:
        """Return the organization members as a JSON document."""
        user_id = require_user_id(user_id)
        validate(ORG_NAME_RULES, org_name)
        return await self._query_json(GET_ORGANIZATION_MEMBERS, user_id, org_name)

    # -----------------------------------------------------------------------
    # Authorization policy
    # -----------------------------------------------------------------------

    async def get_authorization_policy_json(
        self, user_id: str | None, org_name: str
    ) -> bytes | None:
        """Return the organization's authorization policy as a JSON document."""
        user_id = require_user_id(user_id)
        validate(ORG_NAME_RULES, org_name)
        await self._authorize(org_name, user_id, Action.get_authorization_policy)
        return await self._query_json(GET_AUTHORIZATION_POLICY, user_id, org_name)

    async def update_authorization_policy(
        self,
        user_id: str | None,
        org_name: str,
        policy: AuthorizationPolicy | None,
    ) -> None:
        """
        Replace the organization's authorization policy.

        The policy is fully re-validated on every write, including the
        structural checks on custom policies, so an invalid policy is never
        persisted.
        """
        user_id = require_user_id(user_id)
        validate(AUTHORIZATION_POLICY_RULES, PolicyInput(org_name, policy))
        await self._authorize(org_name, user_id, Action.update_authorization_policy)
        await self._exec(
            UPDATE_AUTHORIZATION_POLICY, user_id, org_name, _policy_document(policy)
        )
