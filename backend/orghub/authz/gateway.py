"""
Authorizer gateway.

The organization manager asks "can user U perform action A in organization
O" before every privileged mutation. Each organization carries its own
policy (a predefined template or a custom module) and the policy data the
rules read, so the question is answered in three steps:

1. the organization's authorization settings are loaded from storage; when
   authorization is disabled every action is permitted
2. the organization's policy module is installed in the policy engine under
   a package of its own (orghub.authz.orgs.<org>)
3. the allow rule of that package is evaluated with the input documented
   below
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from orghub.authz.policy import ALLOW_RULE, POLICY_PACKAGE, PREDEFINED_POLICIES
from orghub.core.errors import InsufficientPrivilegeError

if TYPE_CHECKING:
    from orghub.core.database import DB

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

GET_ORGANIZATION_POLICY = """
select (
    select json_build_object(
        'authorization_enabled', authorization_enabled,
        'predefined_policy', predefined_policy,
        'custom_policy', custom_policy,
        'policy_data', policy_data
    )::text
    from organization
    where name = $1
)
"""
GET_USER_ALIAS = 'select alias from "user" where user_id = $1'

_PACKAGE_RE = re.compile(rf"^(\s*package\s+){re.escape(POLICY_PACKAGE)}\b", re.MULTILINE)


class Action(str, enum.Enum):
    """Actions an authorization policy can grant within an organization."""

    add_organization_member = "addOrganizationMember"
    add_organization_repository = "addOrganizationRepository"
    delete_organization = "deleteOrganization"
    delete_organization_member = "deleteOrganizationMember"
    delete_organization_repository = "deleteOrganizationRepository"
    get_authorization_policy = "getAuthorizationPolicy"
    transfer_organization_repository = "transferOrganizationRepository"
    update_authorization_policy = "updateAuthorizationPolicy"
    update_organization = "updateOrganization"
    update_organization_repository = "updateOrganizationRepository"


@dataclass(frozen=True)
class AuthorizeInput:
    organization_name: str
    user_id: str
    action: Action


class Authorizer(Protocol):
    """Raises when the action is not permitted; returns None otherwise."""

    async def authorize(self, input: AuthorizeInput) -> None: ...


def org_package(org_name: str) -> str:
    """Package an organization's policy is installed under."""
    # Organization names are [a-z0-9-]; identifiers must not start with a digit
    return f"{POLICY_PACKAGE}.orgs.org_{org_name.replace('-', '_')}"


def org_module(org_name: str, policy: str) -> str:
    """Rewrite the package clause of a policy to the organization's package."""
    return _PACKAGE_RE.sub(lambda m: m.group(1) + org_package(org_name), policy, count=1)


class HTTPAuthorizer:
    """
    Authorizer backed by a policy engine reachable over HTTP.

    Modules are installed through the engine's policy API
    (PUT /v1/policies/<id>) and decisions read from its data API
    (POST /v1/data/<package path>/allow). The input document is:

        {"user": <alias>, "action": <action>,
         "organization_name": <org>, "policy_data": <policy data>}

    A false or missing result is a denial; transport and server errors
    propagate as raised by httpx.
    """

    def __init__(
        self,
        base_url: str,
        db: DB,
        timeout: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.db = db
        self.timeout = timeout
        self._http_client = http_client
        # org name -> digest of the module last installed for it
        self._installed: dict[str, str] = {}

    def decision_url(self, org_name: str) -> str:
        path = org_package(org_name).replace(".", "/")
        return f"{self.base_url}/v1/data/{path}/{ALLOW_RULE}"

    def policy_url(self, org_name: str) -> str:
        return f"{self.base_url}/v1/policies/orghub/orgs/{org_name}"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._http_client

    async def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _load_settings(self, org_name: str) -> dict[str, Any] | None:
        row = await self.db.query_row(GET_ORGANIZATION_POLICY, org_name)
        if row is None:
            return None
        return json.loads(row)

    async def _install(self, client: httpx.AsyncClient, org_name: str, module: str) -> None:
        response = await client.put(
            self.policy_url(org_name),
            content=module.encode("utf-8"),
            headers={"Content-Type": "text/plain"},
        )
        response.raise_for_status()
        self._installed[org_name] = hashlib.sha256(module.encode("utf-8")).hexdigest()
        logger.debug("Installed authorization policy: org=%s", org_name)

    async def _evaluate(
        self, client: httpx.AsyncClient, org_name: str, input: dict[str, Any]
    ) -> dict[str, Any]:
        response = await client.post(self.decision_url(org_name), json={"input": input})
        response.raise_for_status()
        return response.json()

    async def authorize(self, input: AuthorizeInput) -> None:
        org_name = input.organization_name
        org_settings = await self._load_settings(org_name)
        if org_settings is None or not org_settings.get("authorization_enabled"):
            return

        policy = org_settings.get("custom_policy") or PREDEFINED_POLICIES.get(
            org_settings.get("predefined_policy") or ""
        )
        user_alias = await self.db.query_row(GET_USER_ALIAS, input.user_id)
        if not policy or not user_alias:
            logger.debug(
                "Authorization denied: org=%s user_id=%s (no policy or unknown user)",
                org_name, input.user_id,
            )
            raise InsufficientPrivilegeError()

        module = org_module(org_name, policy)
        digest = hashlib.sha256(module.encode("utf-8")).hexdigest()
        client = await self._get_client()
        if self._installed.get(org_name) != digest:
            await self._install(client, org_name, module)

        engine_input = {
            "user": user_alias,
            "action": input.action.value,
            "organization_name": org_name,
            "policy_data": org_settings.get("policy_data") or {},
        }
        body = await self._evaluate(client, org_name, engine_input)
        if "result" not in body:
            # Undefined decision: the module is no longer installed in the engine
            await self._install(client, org_name, module)
            body = await self._evaluate(client, org_name, engine_input)

        if body.get("result") is not True:
            logger.debug(
                "Authorization denied: org=%s user=%s action=%s",
                org_name, user_alias, input.action.value,
            )
            raise InsufficientPrivilegeError()
