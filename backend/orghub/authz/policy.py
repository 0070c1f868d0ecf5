"""
Authorization policy documents.

Organizations restrict what their members can do with either a predefined
policy from the versioned registry below or a custom policy written in the
Rego rule language. Policies are evaluated by an external policy engine, so
the only thing checked here is the contract the engine relies on: the
module must live in the orghub.authz package and define the allow and
allowed_actions rules. Rule bodies are never interpreted.

Rules see the requesting user's alias as input.user, the action as
input.action and the organization's policy data as input.policy_data.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import NamedTuple

POLICY_PACKAGE = "orghub.authz"
ALLOW_RULE = "allow"
ALLOWED_ACTIONS_RULE = "allowed_actions"


# ---------------------------------------------------------------------------
# Predefined policies
# ---------------------------------------------------------------------------

RBAC_V1 = """
package orghub.authz

import rego.v1

# input.policy_data layout:
# {"roles": {"owner": {"users": ["alias"]},
#            "<role>": {"users": ["alias"], "allowed_actions": ["action"]}}}

default allow := false

allow if {
    input.user in input.policy_data.roles.owner.users
}

allow if {
    some role in input.policy_data.roles
    input.user in role.users
    input.action in role.allowed_actions
}

allowed_actions contains "all" if {
    input.user in input.policy_data.roles.owner.users
}

allowed_actions contains action if {
    some role in input.policy_data.roles
    input.user in role.users
    some action in role.allowed_actions
}
"""

PREDEFINED_POLICIES: dict[str, str] = {
    "rbac.v1": RBAC_V1,
}


def is_predefined_policy_valid(name: str) -> bool:
    return name in PREDEFINED_POLICIES


# ---------------------------------------------------------------------------
# Module parsing
# ---------------------------------------------------------------------------

class PolicyLintError(ValueError):
    """A custom policy does not satisfy the policy engine contract."""


class PolicySyntaxError(PolicyLintError):
    """A custom policy could not be parsed as a module."""


class _Token(NamedTuple):
    kind: str
    value: str
    line: int


@dataclass
class PolicyModule:
    """Package and top level rule names of a parsed policy."""

    package: str
    rules: list[str] = field(default_factory=list)

    def has_rule(self, name: str) -> bool:
        return name in self.rules


_TOKEN_RE = re.compile(
    r"""
      (?P<ws>[ \t\r]+)
    | (?P<comment>\#[^\n]*)
    | (?P<newline>\n)
    | (?P<string>"(?:[^"\\\n]|\\.)*")
    | (?P<raw>`[^`]*`)
    | (?P<number>\d+(?:\.\d+)?)
    | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<open>[\[{(])
    | (?P<close>[\]})])
    | (?P<op>:=|==|!=|<=|>=|[=<>+\-*/%|&:,.;!])
    """,
    re.VERBOSE,
)

_PAIRS = {")": "(", "]": "[", "}": "{"}

# A top level statement is a rule when its head is followed by one of these
_RULE_MARKERS = {"=", ":=", "{", "if", "contains"}

# A line ending in one of these continues on the next line
_CONTINUATION_KEYWORDS = {"if", "contains", "else"}


def _continues(statement: list[_Token]) -> bool:
    if not statement:
        return False
    last = statement[-1]
    return last.kind == "op" or last.value in _CONTINUATION_KEYWORDS


def _tokenize(text: str) -> list[list[_Token]]:
    """
    Split a module into top level statements.

    Statements are separated by newlines at bracket depth 0, except after a
    trailing operator or keyword, where the expression carries on.
    """
    statements: list[list[_Token]] = [[]]
    stack: list[_Token] = []
    line = 1
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise PolicySyntaxError(f"unexpected character {text[pos]!r} at line {line}")
        kind = match.lastgroup or ""
        value = match.group()
        pos = match.end()
        if kind in ("ws", "comment"):
            continue
        if kind == "newline":
            if not stack and not _continues(statements[-1]):
                statements.append([])
            line += 1
            continue
        token = _Token(kind, value, line)
        if kind == "open":
            stack.append(token)
        elif kind == "close":
            if not stack or stack[-1].value != _PAIRS[value]:
                raise PolicySyntaxError(f"unexpected {value!r} at line {line}")
            stack.pop()
        line += value.count("\n")
        statements[-1].append(token)
    if stack:
        raise PolicySyntaxError(f"unclosed {stack[-1].value!r} at line {stack[-1].line}")
    return [s for s in statements if s]


def _parse_ref(tokens: list[_Token]) -> str:
    parts = []
    expect_ident = True
    for token in tokens:
        if expect_ident and token.kind == "ident":
            parts.append(token.value)
        elif not expect_ident and token.value == ".":
            pass
        else:
            raise PolicySyntaxError(f"unexpected {token.value!r} at line {token.line}")
        expect_ident = not expect_ident
    if not parts or expect_ident:
        line = tokens[-1].line if tokens else 1
        raise PolicySyntaxError(f"incomplete reference at line {line}")
    return ".".join(parts)


def parse_module(text: str) -> PolicyModule:
    """
    Parse the structure of a Rego module.

    Only the package clause, imports and rule heads are recognized; bracket
    balance and string literals are checked across the whole document.
    """
    statements = _tokenize(text)
    if not statements or statements[0][0].value != "package":
        raise PolicySyntaxError("package expected")

    module = PolicyModule(package=_parse_ref(statements[0][1:]))
    for stmt in statements[1:]:
        head = stmt[0]
        if head.value == "import":
            ref = stmt[1:]
            if len(ref) > 2 and ref[-2].value == "as":
                ref = ref[:-2]
            _parse_ref(ref)
            continue
        if head.value == "package":
            raise PolicySyntaxError(f"unexpected package at line {head.line}")
        if head.value == "else":
            continue
        if head.value == "default":
            stmt = stmt[1:]
            if not stmt:
                raise PolicySyntaxError(f"rule name expected at line {head.line}")
            head = stmt[0]
        if head.kind != "ident":
            raise PolicySyntaxError(f"unexpected {head.value!r} at line {head.line}")
        if not any(t.value in _RULE_MARKERS for t in stmt[1:]):
            raise PolicySyntaxError(f"rule body or value expected after {head.value!r} at line {head.line}")
        module.rules.append(head.value)
    return module


def lint_custom_policy(text: str) -> PolicyModule:
    """Check a custom policy declares the rules the policy engine queries."""
    try:
        module = parse_module(text)
    except PolicySyntaxError as exc:
        raise PolicySyntaxError(f"invalid custom policy: {exc}") from exc

    if module.package != POLICY_PACKAGE or not module.has_rule(ALLOW_RULE):
        raise PolicyLintError("allow rule not found in custom policy")
    if not module.has_rule(ALLOWED_ACTIONS_RULE):
        raise PolicyLintError("allowed actions rule not found in custom policy")
    return module
