"""
API request and response models for EventHub Identity REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (createdAt, expiresAt, ...). Response models declare
snake_case fields with a camelCase alias generator; FastAPI serializes
response_model by alias.

Request bodies carry only loose size caps here. The domain validators in
auth/validators.py own the real rules so the same messages reach HTTP and
non-HTTP callers alike.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import AuthResult, PublicUser, Session, UserPage

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    organizer = "organizer"
    admin = "admin"


class _WireModel(BaseModel):
    """Frozen response model serialized with camelCase keys."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignUpRequest(BaseModel):
    """Request body for POST /api/v1/auth/sign-up."""

    email: str = Field(max_length=1024)
    password: str = Field(max_length=1024)
    name: Optional[str] = Field(default=None, max_length=1024)


class SignInRequest(BaseModel):
    """Request body for POST /api/v1/auth/sign-in."""

    email: str = Field(max_length=1024)
    password: str = Field(max_length=1024)


class PasswordStrengthRequest(BaseModel):
    password: str = Field(max_length=1024)


class ProfilePatch(BaseModel):
    """Request body for PATCH /api/v1/users/{id}. At least one field is required."""

    name: Optional[str] = Field(default=None, max_length=1024)
    image: Optional[str] = Field(default=None, max_length=2048)


class RolePatch(BaseModel):
    role: RoleEnum


class CleanupRequest(BaseModel):
    """Optional body for POST /api/v1/sessions/cleanup.

    Without older_than only expired sessions are removed. With it, every
    session created before that instant is removed as well.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    older_than: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(_WireModel):
    """Public user representation. Never includes the password hash."""

    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    role: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_public(cls, user: PublicUser) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            image=user.image,
            role=user.role,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class AuthResponse(_WireModel):
    """Success body for sign-up, sign-in and refresh."""

    user: UserResponse
    token: str
    expires_at: datetime

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(user=UserResponse.from_public(result.user), token=result.token, expires_at=result.expires_at)


class MeResponse(_WireModel):
    user: UserResponse


class SessionResponse(_WireModel):
    """Session metadata. The token itself is never listed."""

    id: str
    user_id: str
    expires_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id or "",
            user_id=session.user_id,
            expires_at=session.expires_at,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )


class SessionListResponse(_WireModel):
    sessions: list[SessionResponse]
    count: int


class SessionStatsResponse(_WireModel):
    total: int
    active: int
    expired: int


class CleanupResponse(_WireModel):
    deleted_count: int
    timestamp: datetime


class RevokeResponse(_WireModel):
    revoked: int


class PasswordStrengthResponse(_WireModel):
    is_valid: bool
    score: int
    feedback: list[str]


class Pagination(_WireModel):
    page: int
    limit: int
    total: int
    total_pages: int


class UserListResponse(_WireModel):
    users: list[UserResponse]
    pagination: Pagination

    @classmethod
    def from_page(cls, page: UserPage) -> "UserListResponse":
        return cls(
            users=[UserResponse.from_public(u) for u in page.users],
            pagination=Pagination(page=page.page, limit=page.limit, total=page.total, total_pages=page.total_pages),
        )


class UserStatsResponse(_WireModel):
    total_users: int
    users_by_role: dict[str, int]


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
