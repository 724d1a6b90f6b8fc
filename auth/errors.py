"""
auth/errors.py -- Error taxonomy for the identity core.

Every error raised across the auth/ boundary is an AuthError carrying a kind
tag (ErrorKind), a stable machine-readable code, a human message and optional
field-level detail. The transport layer maps kind -> HTTP status in exactly
one place (api/errors.py); nothing in auth/ knows about status codes.

Subclasses exist so callers can catch a specific failure with a plain
except clause; the kind tag is what the boundary dispatches on.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    USER_EXISTS = "user_exists"
    AUTHENTICATION = "authentication"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    SESSION_NOT_FOUND = "session_not_found"
    SESSION_EXPIRED = "session_expired"
    SERVICE = "service"


class AuthError(Exception):
    """Base class. Subclasses pin kind, code and a default message."""

    kind: ErrorKind = ErrorKind.SERVICE
    code: str = "SERVICE_ERROR"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, detail: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


class ValidationError(AuthError):
    kind = ErrorKind.VALIDATION
    code = "VALIDATION_ERROR"
    default_message = "Invalid input."


class UserExistsError(AuthError):
    kind = ErrorKind.USER_EXISTS
    code = "USER_EXISTS"
    default_message = "An account with this email already exists."


class AuthenticationError(AuthError):
    """Bad credentials or a missing/invalid session. Deliberately low-detail."""

    kind = ErrorKind.AUTHENTICATION
    code = "AUTHENTICATION_FAILED"
    default_message = "Authentication required."


class UnauthorizedError(AuthError):
    """Authenticated, but the role or permission set is insufficient."""

    kind = ErrorKind.UNAUTHORIZED
    code = "INSUFFICIENT_PERMISSIONS"
    default_message = "Access denied."


class NotFoundError(AuthError):
    kind = ErrorKind.NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found."


class SessionNotFoundError(NotFoundError):
    kind = ErrorKind.SESSION_NOT_FOUND
    code = "SESSION_NOT_FOUND"
    default_message = "Session not found."


class SessionExpiredError(AuthenticationError):
    kind = ErrorKind.SESSION_EXPIRED
    code = "SESSION_EXPIRED"
    default_message = "Session expired."


class ServiceError(AuthError):
    """Persistence or upstream failure. The message is always generic;
    the underlying exception is logged server-side and chained via __cause__."""

    kind = ErrorKind.SERVICE
    code = "SERVICE_ERROR"
    default_message = "The request could not be completed."
