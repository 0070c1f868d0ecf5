"""
Authorization: the gateway capability and policy document checks.
"""

from orghub.authz.gateway import Action, Authorizer, AuthorizeInput, HTTPAuthorizer
from orghub.authz.policy import (
    POLICY_PACKAGE,
    PREDEFINED_POLICIES,
    PolicyLintError,
    PolicyModule,
    PolicySyntaxError,
    is_predefined_policy_valid,
    lint_custom_policy,
    parse_module,
)

__all__ = [
    "Action",
    "Authorizer",
    "AuthorizeInput",
    "HTTPAuthorizer",
    "POLICY_PACKAGE",
    "PREDEFINED_POLICIES",
    "PolicyLintError",
    "PolicyModule",
    "PolicySyntaxError",
    "is_predefined_policy_valid",
    "lint_custom_policy",
    "parse_module",
]
