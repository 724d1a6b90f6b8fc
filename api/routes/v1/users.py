"""
api/routes/v1/users.py -- User profile and account management endpoints.

Routes:
  GET    /api/v1/users              -- paginated listing (read:users)
  GET    /api/v1/users/stats        -- counts per role (read:users)
  GET    /api/v1/users/{id}         -- public profile (read:profile)
  PATCH  /api/v1/users/{id}         -- update name/image (write:profile; self or admin)
  PATCH  /api/v1/users/{id}/role    -- change role (admin role)
  DELETE /api/v1/users/{id}         -- delete account (self or admin); revokes sessions

The route gate (require_access) checks role/permissions; UserService
additionally checks ownership, so a user holding write:profile still cannot
edit someone else's profile.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import MessageResponse, ProfilePatch, RolePatch, UserListResponse, UserResponse, UserStatsResponse
from auth.dependencies import get_current_user, require_access
from auth.models import Permission, PublicUser, Role
from auth.users import UserService

router = APIRouter()


def _user_service(request: Request) -> UserService:
    return request.app.state.user_service


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: PublicUser = Depends(require_access(permissions=[Permission.READ_USERS])),
) -> UserListResponse:
    return UserListResponse.from_page(_user_service(request).list_users(current_user, page=page, limit=limit))


@router.get("/users/stats", response_model=UserStatsResponse)
def user_stats(
    request: Request,
    current_user: PublicUser = Depends(require_access(permissions=[Permission.READ_USERS])),
) -> UserStatsResponse:
    stats = _user_service(request).user_stats(current_user)
    return UserStatsResponse(total_users=stats.total_users, users_by_role=stats.users_by_role)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: str,
    _: PublicUser = Depends(require_access(permissions=[Permission.READ_PROFILE])),
) -> UserResponse:
    return UserResponse.from_public(_user_service(request).get_profile(user_id))


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: ProfilePatch,
    current_user: PublicUser = Depends(require_access(permissions=[Permission.WRITE_PROFILE])),
) -> UserResponse:
    updated = _user_service(request).update_profile(user_id, current_user, name=body.name, image=body.image)
    return UserResponse.from_public(updated)


@router.patch("/users/{user_id}/role", response_model=UserResponse)
def update_user_role(
    request: Request,
    user_id: str,
    body: RolePatch,
    current_user: PublicUser = Depends(require_access(roles=[Role.ADMIN])),
) -> UserResponse:
    return UserResponse.from_public(_user_service(request).update_role(user_id, body.role.value, current_user))


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: str,
    current_user: PublicUser = Depends(get_current_user),
) -> MessageResponse:
    _user_service(request).delete_user(user_id, current_user)
    return MessageResponse(message="User deleted.")
