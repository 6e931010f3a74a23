"""
core/errors.py -- Typed failure taxonomy shared by every TourMarket layer.

Domain code (auth/, catalog/) raises these; only api/main.py knows how to turn
them into HTTP responses. Each class carries its HTTP status and a stable
machine-readable code so the boundary mapping is a lookup, not a string match
on messages.

Only InternalError (and anything unexpected) is logged with a traceback. All
4xx categories are expected outcomes of normal traffic.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for all expected TourMarket failures."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 401
# ---------------------------------------------------------------------------


class AuthenticationRequired(AppError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."


class InvalidCredentials(AuthenticationRequired):
    code = "bad_credentials"
    default_message = "Invalid email or password."


class TokenInvalid(AuthenticationRequired):
    code = "token_invalid"
    default_message = "Invalid token."


class TokenExpired(AuthenticationRequired):
    code = "token_expired"
    default_message = "Session expired, please log in again."


# ---------------------------------------------------------------------------
# 403
# ---------------------------------------------------------------------------


class AccessDenied(AppError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied."


class RoleNotGranted(AccessDenied):
    code = "role_not_granted"
    default_message = "User does not have this role."


# ---------------------------------------------------------------------------
# 404
# ---------------------------------------------------------------------------


class OwnershipViolationOrNotFound(AppError):
    """Missing, soft-deleted, or owned by somebody else.

    The three cases share one class on purpose: a supplier probing another
    supplier's product id must not learn that the product exists.
    """

    status_code = 404
    code = "not_found"
    default_message = "Not found."


NotFound = OwnershipViolationOrNotFound


# ---------------------------------------------------------------------------
# 400 / 409
# ---------------------------------------------------------------------------


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    default_message = "Request validation failed."


class InvalidTransition(ValidationError):
    code = "invalid_transition"
    default_message = "This status change is not allowed."


class Conflict(AppError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."


# ---------------------------------------------------------------------------
# 500
# ---------------------------------------------------------------------------


class InternalError(AppError):
    pass


class SchemaVersionError(InternalError):
    code = "schema_version"
    default_message = "Database schema is missing or at the wrong version."
