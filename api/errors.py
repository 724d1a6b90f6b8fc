"""
api/errors.py -- The single mapping from identity-core error kinds to HTTP status.

auth/ raises AuthError subclasses tagged with an ErrorKind and knows nothing
about HTTP. This is the only place that decides which status each kind gets;
the exception handler in api/main.py calls status_for() and nothing else.
"""

from auth.errors import ErrorKind

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.USER_EXISTS: 409,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.SESSION_EXPIRED: 401,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.SESSION_NOT_FOUND: 404,
    ErrorKind.SERVICE: 500,
}


def status_for(kind: ErrorKind) -> int:
    """Return the HTTP status for kind. Unknown kinds are server errors."""
    return _STATUS_BY_KIND.get(kind, 500)
