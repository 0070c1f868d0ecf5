"""
Domain error taxonomy.

Every recoverable failure raised by the organization manager is an
OrgHubError subclass, so the HTTP layer can render it with the right status
code. Storage and email errors that are not listed here propagate untouched.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager


class OrgHubError(Exception):
    """Base class for errors the API renders as client errors."""

    kind = "error"
    code = "ERROR"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        self.message = message
        super().__init__(f"{self.kind}: {message}" if message else self.kind)


class InvalidInputError(OrgHubError):
    """The request failed a validation rule before any side effect."""

    kind = "invalid input"
    code = "INVALID_INPUT"
    status_code = 400

    def __init__(self, message: str = "", rule: str | None = None) -> None:
        self.rule = rule
        super().__init__(message)


class UnauthorizedError(OrgHubError):
    """The caller could not be authenticated."""

    kind = "unauthorized"
    code = "UNAUTHORIZED"
    status_code = 401


class InsufficientPrivilegeError(OrgHubError):
    """The acting user is not allowed to perform the requested action."""

    kind = "insufficient privilege"
    code = "INSUFFICIENT_PRIVILEGE"
    status_code = 403


class NotFoundError(OrgHubError):
    kind = "not found"
    code = "NOT_FOUND"
    status_code = 404


class DBInsufficientPrivilegeError(Exception):
    """Raised by the storage adapter when the database rejects a call (SQLSTATE 42501)."""

    def __init__(self, message: str = "insufficient privilege") -> None:
        super().__init__(message)


class MissingUserIDError(RuntimeError):
    """
    The acting user id was not supplied to an actor-scoped operation.

    Signals a defect in the calling layer (authentication not enforced
    upstream). Not an OrgHubError: it is never rendered as a client error.
    """

    def __init__(self) -> None:
        super().__init__("user id not found")


@contextmanager
def translate_db_errors() -> Iterator[None]:
    """Map the storage privilege sentinel to the domain error, pass the rest through."""
    try:
        yield
    except DBInsufficientPrivilegeError as exc:
        raise InsufficientPrivilegeError() from exc


def require_user_id(user_id: str | None) -> str:
    """Assert the acting user id is present."""
    if not user_id:
        raise MissingUserIDError()
    return user_id
