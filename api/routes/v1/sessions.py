"""
api/routes/v1/sessions.py -- Session listing, logout-everywhere and maintenance.

Routes:
  GET    /api/v1/sessions           -- caller's active sessions (requires auth)
  DELETE /api/v1/sessions           -- revoke all of the caller's sessions (requires auth)
  GET    /api/v1/sessions/stats     -- total/active/expired counts (admin:system)
  POST   /api/v1/sessions/cleanup   -- delete expired (and optionally old) sessions (admin:system)

Cleanup is meant for an external scheduler; it is idempotent and safe to run
concurrently with live traffic.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request

from api.models import (
    CleanupRequest,
    CleanupResponse,
    RevokeResponse,
    SessionListResponse,
    SessionResponse,
    SessionStatsResponse,
)
from auth.dependencies import get_current_user, require_access
from auth.models import Permission, PublicUser
from auth.sessions import SessionManager

router = APIRouter()

_require_system_admin = require_access(permissions=[Permission.ADMIN_SYSTEM])


def _session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(request: Request, current_user: PublicUser = Depends(get_current_user)) -> SessionListResponse:
    sessions = request.app.state.user_service.list_sessions(current_user.id, actor=current_user)
    return SessionListResponse(sessions=[SessionResponse.from_session(s) for s in sessions], count=len(sessions))


@router.delete("/sessions", response_model=RevokeResponse)
def revoke_all_sessions(request: Request, current_user: PublicUser = Depends(get_current_user)) -> RevokeResponse:
    """Log out everywhere, including the session used for this request."""
    revoked = request.app.state.user_service.revoke_sessions(current_user.id, actor=current_user)
    return RevokeResponse(revoked=revoked)


@router.get("/sessions/stats", response_model=SessionStatsResponse)
def session_stats(request: Request, _: PublicUser = Depends(_require_system_admin)) -> SessionStatsResponse:
    stats = _session_manager(request).stats()
    return SessionStatsResponse(total=stats.total, active=stats.active, expired=stats.expired)


@router.post("/sessions/cleanup", response_model=CleanupResponse)
def cleanup_sessions(
    request: Request,
    body: Optional[CleanupRequest] = None,
    _: PublicUser = Depends(_require_system_admin),
) -> CleanupResponse:
    manager = _session_manager(request)
    result = manager.cleanup_expired()
    deleted = result.deleted_count
    if body is not None and body.older_than is not None:
        older = manager.cleanup_older_than(body.older_than)
        deleted += older.deleted_count
        result = older
    return CleanupResponse(deleted_count=deleted, timestamp=result.timestamp)
