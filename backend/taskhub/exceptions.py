"""Domain exceptions.

Every service operation fails with exactly one of these classes. Each carries a
``kind`` from the error taxonomy, a machine-readable ``code`` and a human-readable
message; none of them carries store internals (SQL text, driver errors).
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Failure classification shared by services and the HTTP layer."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    INVALID_INPUT = "invalid_input"
    UNAUTHENTICATED = "unauthenticated"


class DomainError(Exception):
    """Base exception for classified service failures."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT
    status_code: int = 400
    default_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)


class NotFoundError(DomainError):
    """The entity, or a link in its ownership chain, does not exist."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(self, entity: str, message: str | None = None):
        self.entity = entity
        super().__init__(message or f"{entity} not found.")


class ForbiddenError(DomainError):
    """The actor is known but lacks the required membership, role or authorship."""

    kind = ErrorKind.FORBIDDEN
    status_code = 403
    default_code = "FORBIDDEN"


class ConflictError(DomainError):
    """A uniqueness rule or the last-owner invariant would be violated."""

    kind = ErrorKind.CONFLICT
    status_code = 409
    default_code = "CONFLICT"


class InvalidInputError(DomainError):
    """A value failed type-directed or membership validation."""

    kind = ErrorKind.INVALID_INPUT
    status_code = 400
    default_code = "INVALID_INPUT"


class AuthenticationError(DomainError):
    """Credentials or tokens were missing, wrong or expired."""

    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401
    default_code = "UNAUTHENTICATED"
