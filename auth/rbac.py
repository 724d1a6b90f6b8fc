"""
auth/rbac.py -- Role-based access control over a static permission table.

ROLE_PERMISSIONS is built once at import and exposed as a read-only mapping of
frozensets, so no request can mutate another request's view of it. Every
function here is pure: it reads the user's role, resolves the role's
permission set, and answers a yes/no question. An unknown role resolves to the
empty set -- it is denied, never an error.

Capability ordering: admin ⊇ organizer ⊇ user.

An AccessRequirement is the declarative gate a route attaches to itself
(see auth/dependencies.require_access). It has two independent conditions
combined with AND:
  roles        -- user's role must be one of these (absent => satisfied)
  permissions  -- all of them (require_all=True) or any of them
                  (require_all=False); absent => satisfied

Layer rule: no imports from api/.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Protocol

from auth.errors import UnauthorizedError
from auth.models import Permission, Role

# ---------------------------------------------------------------------------
# Permission table
# ---------------------------------------------------------------------------

_USER_PERMISSIONS = frozenset(
    {
        Permission.READ_PROFILE,
        Permission.WRITE_PROFILE,
        Permission.READ_EVENTS,
    }
)

_ORGANIZER_PERMISSIONS = _USER_PERMISSIONS | {
    Permission.WRITE_EVENTS,
    Permission.MANAGE_EVENTS,
}

_ADMIN_PERMISSIONS = frozenset(Permission)

ROLE_PERMISSIONS: Mapping[str, frozenset[Permission]] = MappingProxyType(
    {
        Role.USER.value: _USER_PERMISSIONS,
        Role.ORGANIZER.value: _ORGANIZER_PERMISSIONS,
        Role.ADMIN.value: _ADMIN_PERMISSIONS,
    }
)

_NO_PERMISSIONS: frozenset[Permission] = frozenset()


class HasRole(Protocol):
    """Anything with a role string: User, PublicUser, or a provider's user."""

    role: str


@dataclass(frozen=True)
class AccessRequirement:
    """What a protected operation demands. Never persisted."""

    roles: tuple[Role, ...] | None = None
    permissions: tuple[Permission, ...] | None = None
    require_all: bool = True


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _role_of(user: HasRole) -> str:
    role = getattr(user, "role", None)
    return role.value if isinstance(role, Role) else str(role)


def _as_values(items: Iterable) -> set[str]:
    return {i.value if isinstance(i, Role) else str(i) for i in items}


def get_permissions(user: HasRole) -> frozenset[Permission]:
    """Return the user's resolved permission set (empty for unknown roles)."""
    return ROLE_PERMISSIONS.get(_role_of(user), _NO_PERMISSIONS)


def has_role(user: HasRole, roles: Role | str | Iterable[Role | str]) -> bool:
    """True iff the user's role equals the given role or any of the given roles."""
    if isinstance(roles, (Role, str)):
        roles = (roles,)
    return _role_of(user) in _as_values(roles)


def has_permission(user: HasRole, permission: Permission | str) -> bool:
    return _permission_value(permission) in _permission_values(user)


def has_all_permissions(user: HasRole, permissions: Iterable[Permission | str]) -> bool:
    granted = _permission_values(user)
    return all(_permission_value(p) in granted for p in permissions)


def has_any_permission(user: HasRole, permissions: Iterable[Permission | str]) -> bool:
    granted = _permission_values(user)
    return any(_permission_value(p) in granted for p in permissions)


def can_access(user: HasRole, requirement: AccessRequirement) -> bool:
    """Evaluate both conditions of requirement against user (logical AND)."""
    if requirement.roles and not has_role(user, requirement.roles):
        return False
    if requirement.permissions:
        if requirement.require_all:
            return has_all_permissions(user, requirement.permissions)
        return has_any_permission(user, requirement.permissions)
    return True


def check_access(user: HasRole, requirement: AccessRequirement) -> None:
    """Raise UnauthorizedError describing what is missing, or return None.

    Same decision as can_access(); the message names the required roles or
    the missing permissions so a 403 response is actionable.
    """
    if requirement.roles and not has_role(user, requirement.roles):
        raise UnauthorizedError(
            f"Access denied. Required roles: {', '.join(sorted(_as_values(requirement.roles)))}",
            detail={"roles": sorted(_as_values(requirement.roles))},
        )
    if not requirement.permissions:
        return
    required = [_permission_value(p) for p in requirement.permissions]
    granted = _permission_values(user)
    if requirement.require_all:
        missing = [p for p in required if p not in granted]
        if missing:
            raise UnauthorizedError(
                f"Access denied. Missing permissions: {', '.join(missing)}",
                detail={"missing_permissions": missing},
            )
    elif not any(p in granted for p in required):
        raise UnauthorizedError(
            f"Access denied. Requires at least one of: {', '.join(required)}",
            detail={"any_of_permissions": required},
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _permission_value(permission: Permission | str) -> str:
    return permission.value if isinstance(permission, Permission) else str(permission)


def _permission_values(user: HasRole) -> set[str]:
    return {p.value for p in get_permissions(user)}
