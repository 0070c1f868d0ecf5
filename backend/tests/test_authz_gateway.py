"""
Policy engine gateway tests.

Storage is an AsyncMock; the engine is an httpx MockTransport recording
every request it receives.
"""

import hashlib
import json
import re
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from conftest import USER_ID
from orghub.authz.gateway import (
    GET_ORGANIZATION_POLICY,
    GET_USER_ALIAS,
    Action,
    AuthorizeInput,
    HTTPAuthorizer,
    org_module,
    org_package,
)
from orghub.authz.policy import RBAC_V1, parse_module
from orghub.core.errors import InsufficientPrivilegeError

INPUT = AuthorizeInput(
    organization_name="my-org",
    user_id=USER_ID,
    action=Action.add_organization_member,
)

POLICY_DATA = {"roles": {"owner": {"users": ["user1"]}}}

DECISION_URL = "http://authz:8181/v1/data/orghub/authz/orgs/org_my_org/allow"
POLICY_URL = "http://authz:8181/v1/policies/orghub/orgs/my-org"


def org_settings(enabled=True, predefined="rbac.v1", custom=None, data=POLICY_DATA) -> str:
    return json.dumps(
        {
            "authorization_enabled": enabled,
            "predefined_policy": predefined,
            "custom_policy": custom,
            "policy_data": data,
        }
    )


def make_db(settings_row, alias="user1") -> MagicMock:
    async def query_row(query, *args):
        if query == GET_ORGANIZATION_POLICY:
            return settings_row
        if query == GET_USER_ALIAS:
            return alias
        raise AssertionError(f"unexpected query {query!r}")

    db = MagicMock()
    db.query_row = AsyncMock(side_effect=query_row)
    return db


class Engine:
    """Records requests and answers decisions with the configured bodies."""

    def __init__(self, *decisions):
        self.decisions = list(decisions) or [{"result": True}]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "PUT":
            return httpx.Response(200, json={})
        body = self.decisions.pop(0) if len(self.decisions) > 1 else self.decisions[0]
        return httpx.Response(200, json=body)

    @property
    def evaluations(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    @property
    def installs(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "PUT"]


def make_authorizer(db, handler) -> HTTPAuthorizer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HTTPAuthorizer("http://authz:8181/", db, http_client=client)


# ---------------------------------------------------------------------------
# Package rewriting
# ---------------------------------------------------------------------------

def test_org_package():
    assert org_package("my-org") == "orghub.authz.orgs.org_my_org"
    assert org_package("0rg") == "orghub.authz.orgs.org_0rg"


def test_org_module_rewrites_package_only():
    module = parse_module(org_module("my-org", RBAC_V1))
    assert module.package == "orghub.authz.orgs.org_my_org"
    assert module.has_rule("allow")
    assert module.has_rule("allowed_actions")


# ---------------------------------------------------------------------------
# authorize
# ---------------------------------------------------------------------------

async def test_allowed():
    engine = Engine()
    authorizer = make_authorizer(make_db(org_settings()), engine)
    await authorizer.authorize(INPUT)
    await authorizer.close()

    assert [str(r.url) for r in engine.installs] == [POLICY_URL]
    assert engine.installs[0].content.decode() == org_module("my-org", RBAC_V1)
    assert [str(r.url) for r in engine.evaluations] == [DECISION_URL]
    assert json.loads(engine.evaluations[0].content) == {
        "input": {
            "user": "user1",
            "action": "addOrganizationMember",
            "organization_name": "my-org",
            "policy_data": POLICY_DATA,
        }
    }


async def test_input_covers_predefined_policy_references():
    engine = Engine()
    authorizer = make_authorizer(make_db(org_settings()), engine)
    await authorizer.authorize(INPUT)

    sent = json.loads(engine.evaluations[0].content)["input"]
    referenced = set(re.findall(r"\binput\.(\w+)", RBAC_V1))
    assert referenced <= set(sent)


async def test_custom_policy_installed():
    custom = "package orghub.authz\nallow := true\nallowed_actions := {\"all\"}\n"
    engine = Engine()
    authorizer = make_authorizer(make_db(org_settings(predefined=None, custom=custom)), engine)
    await authorizer.authorize(INPUT)

    installed = engine.installs[0].content.decode()
    assert installed.startswith("package orghub.authz.orgs.org_my_org\n")
    assert "allowed_actions" in installed


async def test_module_installed_once():
    engine = Engine()
    authorizer = make_authorizer(make_db(org_settings()), engine)
    await authorizer.authorize(INPUT)
    await authorizer.authorize(INPUT)

    assert len(engine.installs) == 1
    assert len(engine.evaluations) == 2


async def test_module_reinstalled_when_engine_lost_it():
    engine = Engine({}, {"result": True})
    authorizer = make_authorizer(make_db(org_settings()), engine)
    module = org_module("my-org", RBAC_V1)
    authorizer._installed["my-org"] = hashlib.sha256(module.encode("utf-8")).hexdigest()
    await authorizer.authorize(INPUT)

    assert len(engine.installs) == 1
    assert len(engine.evaluations) == 2


@pytest.mark.parametrize("settings_row", [None, org_settings(enabled=False)])
async def test_authorization_disabled(settings_row):
    engine = Engine({"result": False})
    authorizer = make_authorizer(make_db(settings_row), engine)
    await authorizer.authorize(INPUT)
    assert engine.requests == []


@pytest.mark.parametrize("body", [{"result": False}, {"result": "true"}])
async def test_denied(body):
    authorizer = make_authorizer(make_db(org_settings()), Engine(body))
    with pytest.raises(InsufficientPrivilegeError):
        await authorizer.authorize(INPUT)


async def test_undefined_decision_denied():
    engine = Engine({})
    authorizer = make_authorizer(make_db(org_settings()), engine)
    with pytest.raises(InsufficientPrivilegeError):
        await authorizer.authorize(INPUT)
    assert len(engine.evaluations) == 2


async def test_unknown_user_denied():
    engine = Engine()
    authorizer = make_authorizer(make_db(org_settings(), alias=None), engine)
    with pytest.raises(InsufficientPrivilegeError):
        await authorizer.authorize(INPUT)
    assert engine.requests == []


async def test_engine_failure_propagates():
    authorizer = make_authorizer(make_db(org_settings()), lambda request: httpx.Response(500))
    with pytest.raises(httpx.HTTPStatusError):
        await authorizer.authorize(INPUT)
