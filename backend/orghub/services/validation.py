"""
Input validation for organization operations.

Each rule is a pure function that returns a ValidationFailure or None. Rules
are grouped in ordered lists per operation and evaluated fail-fast, so the
first violated rule (in list order) is the one reported.
"""

from __future__ import annotations

import json
import re
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar
from urllib.parse import urlparse

from orghub.authz.policy import PolicyLintError, is_predefined_policy_valid, lint_custom_policy
from orghub.core.errors import InvalidInputError
from orghub.schemas.organization import AuthorizationPolicy, Organization

T = TypeVar("T")

ORG_NAME_RE = re.compile(r"[a-z0-9](?:[a-z0-9-]*[a-z0-9])?")

# Resource kinds accepted by check_availability
ORGANIZATION_NAME = "organizationName"
AVAILABILITY_RESOURCE_KINDS = frozenset({ORGANIZATION_NAME})


@dataclass(frozen=True)
class ValidationFailure:
    rule: str
    message: str


Rule = Callable[[T], ValidationFailure | None]


def validate(rules: Sequence[Rule[T]], subject: T) -> None:
    """Raise InvalidInputError for the first rule the subject violates."""
    for rule in rules:
        failure = rule(subject)
        if failure is not None:
            raise InvalidInputError(failure.message, rule=failure.rule)


# ---------------------------------------------------------------------------
# Subjects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MemberInput:
    org_name: str
    user_alias: str
    base_url: str | None = None


@dataclass(frozen=True)
class AvailabilityInput:
    resource_kind: str
    value: str


@dataclass(frozen=True)
class PolicyInput:
    org_name: str
    policy: AuthorizationPolicy | None


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

def name_provided(org: Organization) -> ValidationFailure | None:
    if not org.name:
        return ValidationFailure("name_provided", "name not provided")
    return None


def name_valid(org: Organization) -> ValidationFailure | None:
    if not ORG_NAME_RE.fullmatch(org.name):
        return ValidationFailure("name_valid", "invalid name")
    return None


def logo_image_id_valid(org: Organization) -> ValidationFailure | None:
    if not org.logo_image_id:
        return None
    try:
        uuid.UUID(org.logo_image_id)
    except ValueError:
        return ValidationFailure("logo_image_id_valid", "invalid logo image id")
    return None


def org_name_provided(org_name: str) -> ValidationFailure | None:
    if not org_name:
        return ValidationFailure("org_name_provided", "organization name not provided")
    return None


ORGANIZATION_RULES: list[Rule[Organization]] = [name_provided, name_valid, logo_image_id_valid]
ORG_NAME_RULES: list[Rule[str]] = [org_name_provided]


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

def member_org_name_provided(member: MemberInput) -> ValidationFailure | None:
    return org_name_provided(member.org_name)


def user_alias_provided(member: MemberInput) -> ValidationFailure | None:
    if not member.user_alias:
        return ValidationFailure("user_alias_provided", "user alias not provided")
    return None


def base_url_provided(member: MemberInput) -> ValidationFailure | None:
    if not member.base_url:
        return ValidationFailure("base_url_provided", "base url not provided")
    return None


def base_url_valid(member: MemberInput) -> ValidationFailure | None:
    parsed = urlparse(member.base_url or "")
    if not parsed.scheme or not parsed.netloc:
        return ValidationFailure("base_url_valid", "invalid base url")
    return None


MEMBER_RULES: list[Rule[MemberInput]] = [member_org_name_provided, user_alias_provided]
INVITATION_RULES: list[Rule[MemberInput]] = MEMBER_RULES + [base_url_provided, base_url_valid]


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------

def resource_kind_valid(check: AvailabilityInput) -> ValidationFailure | None:
    if check.resource_kind not in AVAILABILITY_RESOURCE_KINDS:
        return ValidationFailure("resource_kind_valid", "invalid resource kind")
    return None


def value_provided(check: AvailabilityInput) -> ValidationFailure | None:
    if not check.value:
        return ValidationFailure("value_provided", "invalid value")
    return None


AVAILABILITY_RULES: list[Rule[AvailabilityInput]] = [resource_kind_valid, value_provided]


# ---------------------------------------------------------------------------
# Authorization policy
# ---------------------------------------------------------------------------

def policy_org_name_provided(p: PolicyInput) -> ValidationFailure | None:
    return org_name_provided(p.org_name)


def policy_provided(p: PolicyInput) -> ValidationFailure | None:
    if p.policy is None:
        return ValidationFailure("policy_provided", "authorization policy not provided")
    return None


def policies_mutually_exclusive(p: PolicyInput) -> ValidationFailure | None:
    if p.policy.predefined_policy and p.policy.custom_policy:
        return ValidationFailure(
            "policies_mutually_exclusive", "both predefined and custom policies were provided"
        )
    return None


def policy_selected_when_enabled(p: PolicyInput) -> ValidationFailure | None:
    policy = p.policy
    if policy.authorization_enabled and not (policy.predefined_policy or policy.custom_policy):
        return ValidationFailure(
            "policy_selected_when_enabled", "a predefined or custom policy must be provided"
        )
    return None


def predefined_policy_valid(p: PolicyInput) -> ValidationFailure | None:
    name = p.policy.predefined_policy
    if name and not is_predefined_policy_valid(name):
        return ValidationFailure("predefined_policy_valid", "invalid predefined policy")
    return None


def custom_policy_valid(p: PolicyInput) -> ValidationFailure | None:
    if not p.policy.custom_policy:
        return None
    try:
        lint_custom_policy(p.policy.custom_policy)
    except PolicyLintError as exc:
        return ValidationFailure("custom_policy_valid", str(exc))
    return None


def policy_data_valid(p: PolicyInput) -> ValidationFailure | None:
    data = p.policy.policy_data
    if not data or not isinstance(data, (str, bytes)):
        return None
    try:
        json.loads(data)
    except ValueError:
        return ValidationFailure("policy_data_valid", "invalid policy data")
    return None


AUTHORIZATION_POLICY_RULES: list[Rule[PolicyInput]] = [
    policy_org_name_provided,
    policy_provided,
    policies_mutually_exclusive,
    policy_selected_when_enabled,
    predefined_policy_valid,
    custom_policy_valid,
    policy_data_valid,
]
