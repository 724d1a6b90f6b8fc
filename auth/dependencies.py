"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and RBAC.

The session token travels in the Authorization header, either as
"Bearer <token>" or as the bare token. There is no cookie and no other
credential: the session is the sole proof of authentication.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises AuthenticationError (401) if
unauthenticated, or SessionExpiredError when the token has just expired.
require_access() builds a per-route gate from an AccessRequirement and raises
UnauthorizedError (403) when the caller's role or permissions fall short.

Errors are raised as AuthError subclasses, not HTTPException -- api/main.py
maps them to status codes in one place.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from fastapi import Depends, Request

from auth.errors import AuthenticationError, SessionExpiredError
from auth.models import Permission, PublicUser, Role
from auth.rbac import AccessRequirement, check_access
from auth.sessions import SESSION_EXPIRED


def get_session_token(request: Request) -> str | None:
    """Return the raw session token from the Authorization header, if any."""
    header = request.headers.get("Authorization", "").strip()
    if not header:
        return None
    if header[:7].lower() == "bearer ":
        return header[7:].strip() or None
    return header


def try_get_current_user(request: Request) -> PublicUser | None:
    """Resolve the request's session to its user. Never raises.

    The resolved user is cached on request.state so several dependencies on
    one route cost a single session lookup.
    """
    if hasattr(request.state, "user"):
        return request.state.user
    token = get_session_token(request)
    user = request.app.state.auth_service.get_current_user(token) if token else None
    request.state.user = user
    return user


def get_current_user(request: Request) -> PublicUser:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: PublicUser = Depends(get_current_user)): ...
    """
    if hasattr(request.state, "user") and request.state.user is not None:
        return request.state.user
    token = get_session_token(request)
    if not token:
        raise AuthenticationError()
    result = request.app.state.auth_service.validate_session(token)
    if not result.valid:
        if result.error == SESSION_EXPIRED:
            raise SessionExpiredError()
        raise AuthenticationError("Invalid or expired session.")
    request.state.user = result.user
    return result.user


def require_access(
    roles: Iterable[Role | str] | None = None,
    permissions: Iterable[Permission | str] | None = None,
    require_all: bool = True,
) -> Callable[..., PublicUser]:
    """Build a dependency enforcing an AccessRequirement.

    Use as a FastAPI dependency:
        @router.get("/admin/stats")
        def route(user: PublicUser = Depends(require_access(permissions=[Permission.ADMIN_SYSTEM]))): ...

    With require_all=False any one of the listed permissions is enough.
    """
    requirement = AccessRequirement(
        roles=tuple(Role(r) for r in roles) if roles else None,
        permissions=tuple(Permission(p) for p in permissions) if permissions else None,
        require_all=require_all,
    )

    def dependency(user: PublicUser = Depends(get_current_user)) -> PublicUser:
        check_access(user, requirement)
        return user

    return dependency


require_admin = require_access(roles=[Role.ADMIN])
