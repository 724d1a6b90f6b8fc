"""
auth/users.py -- Account management: profile, role, deletion, listings.

Every mutating call takes the acting user (actor) explicitly and checks
ownership here, in addition to whatever permission gate the route declares.
Rules:
  - profile edits and account deletion: self or admin
  - role changes, listings, statistics: admin only
  - an admin cannot demote themselves
  - the last admin cannot delete their own account
  - deleting an account revokes all of its sessions first

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.errors import NotFoundError, UnauthorizedError, ValidationError
from auth.models import PublicUser, Role, Session, User, UserPage, UserStats
from auth.rbac import HasRole, has_role
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.validators import validate_identifier, validate_image_url, validate_name, validate_role

logger = logging.getLogger("eventhub.users")

MAX_PAGE_SIZE = 100


class Actor(HasRole, Protocol):
    """The authenticated caller: anything with an id and a role."""

    id: str


class UserService:
    """Usage:
    users = UserService(SQLUserStore(engine), session_manager)
    users.update_profile(user_id, actor=current_user, name="Ada")
    """

    def __init__(self, users: UserStore, sessions: SessionManager) -> None:
        self.users = users
        self.sessions = sessions

    def get_profile(self, user_id: str) -> PublicUser:
        return PublicUser.from_user(self._require_user(user_id))

    def update_profile(
        self,
        user_id: str,
        actor: Actor,
        name: str | None = None,
        image: str | None = None,
    ) -> PublicUser:
        validate_identifier(user_id, field="user_id")
        self._require_self_or_admin(user_id, actor, "You can only update your own profile")
        fields: dict[str, str] = {}
        if name is not None:
            fields["name"] = validate_name(name)
        if image is not None:
            fields["image"] = validate_image_url(image)
        if not fields:
            raise ValidationError("No profile fields to update")
        updated = self.users.update(user_id, **fields)
        if updated is None:
            raise NotFoundError("User not found")
        logger.info("Profile updated: user=%s by=%s", user_id, actor.id)
        return PublicUser.from_user(updated)

    def update_role(self, user_id: str, role: object, actor: Actor) -> PublicUser:
        validate_identifier(user_id, field="user_id")
        new_role = validate_role(role)
        if not has_role(actor, Role.ADMIN):
            raise UnauthorizedError("Only administrators can change user roles")
        if user_id == actor.id and new_role is not Role.ADMIN:
            raise UnauthorizedError("Administrators cannot demote themselves")
        updated = self.users.update(user_id, role=new_role.value)
        if updated is None:
            raise NotFoundError("User not found")
        logger.info("Role changed: user=%s role=%s by=%s", user_id, new_role.value, actor.id)
        return PublicUser.from_user(updated)

    def delete_user(self, user_id: str, actor: Actor) -> None:
        validate_identifier(user_id, field="user_id")
        self._require_self_or_admin(user_id, actor, "You can only delete your own account")
        if user_id == actor.id and has_role(actor, Role.ADMIN):
            if self.users.count_by_role().get(Role.ADMIN.value, 0) <= 1:
                raise UnauthorizedError("Cannot delete the last administrator account")
        self._require_user(user_id)
        revoked = self.sessions.revoke_all_for_user(user_id)
        if not self.users.delete(user_id):
            raise NotFoundError("User not found")
        logger.info("User deleted: user=%s by=%s sessions_revoked=%d", user_id, actor.id, revoked)

    def list_users(self, actor: Actor, page: int = 1, limit: int = 20) -> UserPage:
        if not has_role(actor, Role.ADMIN):
            raise UnauthorizedError("Only administrators can list users")
        page = max(1, int(page))
        limit = min(MAX_PAGE_SIZE, max(1, int(limit)))
        rows = self.users.list_users(limit=limit, offset=(page - 1) * limit)
        total = sum(self.users.count_by_role().values())
        return UserPage(users=[PublicUser.from_user(u) for u in rows], page=page, limit=limit, total=total)

    def user_stats(self, actor: Actor) -> UserStats:
        if not has_role(actor, Role.ADMIN):
            raise UnauthorizedError("Only administrators can view user statistics")
        counts = self.users.count_by_role()
        by_role = {r.value: counts.get(r.value, 0) for r in Role}
        return UserStats(total_users=sum(counts.values()), users_by_role=by_role)

    def list_sessions(self, user_id: str, actor: Actor) -> list[Session]:
        self._require_self_or_admin(user_id, actor, "You can only view your own sessions")
        return self.sessions.list_for_user(user_id)

    def revoke_sessions(self, user_id: str, actor: Actor) -> int:
        """Log out everywhere. Idempotent: returns 0 when nothing was active."""
        self._require_self_or_admin(user_id, actor, "You can only revoke your own sessions")
        return self.sessions.revoke_all_for_user(user_id)

    def _require_user(self, user_id: str) -> User:
        validate_identifier(user_id, field="user_id")
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def _require_self_or_admin(user_id: str, actor: Actor, message: str) -> None:
        if user_id != actor.id and not has_role(actor, Role.ADMIN):
            raise UnauthorizedError(message)
