"""
auth/models.py -- Domain dataclasses for identity and session entities.

Pattern: Data class (pure data containers). Stores and services do the work;
the only behaviour here is shape conversion (PublicUser.from_user, to_dict)
and the expiry predicate on Session.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Role(str, Enum):
    USER = "user"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class Permission(str, Enum):
    READ_PROFILE = "read:profile"
    WRITE_PROFILE = "write:profile"
    READ_EVENTS = "read:events"
    WRITE_EVENTS = "write:events"
    DELETE_EVENTS = "delete:events"
    MANAGE_EVENTS = "manage:events"
    READ_USERS = "read:users"
    WRITE_USERS = "write:users"
    DELETE_USERS = "delete:users"
    ADMIN_SYSTEM = "admin:system"


def _iso(value: datetime | None) -> str | None:
    return value.astimezone(timezone.utc).isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass
class User:
    """A registered account.

    email is stored normalized (trimmed, lower-case); the store's UNIQUE
    constraint on it is the authoritative duplicate check.

    password_hash is excluded from repr so it cannot leak through logging or
    tracebacks. Anything leaving the service layer goes through PublicUser.

    id is None before the record is written to the database.
    """

    email: str
    password_hash: str = field(repr=False)
    role: str = Role.USER.value
    id: str | None = None
    email_verified: bool = False
    name: str | None = None
    image: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class PublicUser:
    """Outward-facing user representation. Never carries the password hash."""

    id: str
    email: str
    role: str
    name: str | None = None
    image: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> PublicUser:
        return cls(
            id=user.id or "",
            email=user.email,
            role=user.role,
            name=user.name,
            image=user.image,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "image": self.image,
            "role": self.role,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class Session:
    """A login session. token is the bearer secret; it is hidden from repr.

    The session is Active while expires_at is in the future. Past that it is
    Expired until the next lookup or cleanup deletes it.
    """

    user_id: str
    token: str = field(repr=False)
    expires_at: datetime
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Session metadata for listings. Deliberately omits the token."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "expiresAt": _iso(self.expires_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


@dataclass
class AuthResult:
    """Outcome of a successful sign-up, sign-in or refresh."""

    user: PublicUser
    token: str = field(repr=False)
    expires_at: datetime
    session: Session | None = None

    def to_dict(self) -> dict:
        return {
            "user": self.user.to_dict(),
            "token": self.token,
            "expiresAt": _iso(self.expires_at),
        }


@dataclass
class SessionValidation:
    """Result of looking a token up. error is set only when valid is False."""

    valid: bool
    user: PublicUser | None = None
    session: Session | None = None
    error: str | None = None


@dataclass
class CleanupResult:
    deleted_count: int
    timestamp: datetime


@dataclass
class SessionStats:
    total: int
    active: int
    expired: int


@dataclass
class PasswordCheck:
    """Hard policy gate result. errors lists every violated rule."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class PasswordStrength:
    """Advisory strength estimate for UX feedback. score is 0-4."""

    is_valid: bool
    score: int
    feedback: list[str] = field(default_factory=list)


@dataclass
class UserPage:
    """One page of a user listing. page is 1-based."""

    users: list[PublicUser]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    def to_dict(self) -> dict:
        return {
            "users": [u.to_dict() for u in self.users],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
            },
        }


@dataclass
class UserStats:
    total_users: int
    users_by_role: dict[str, int]
