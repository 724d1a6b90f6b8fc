"""
api/routes/v1/auth.py -- Sign-up, sign-in, sign-out and session identity endpoints.

Routes:
  POST /api/v1/auth/sign-up            -- create account + first session; 201
  POST /api/v1/auth/sign-in            -- email/password login; new session
  POST /api/v1/auth/sign-out           -- revoke the presented session; always 200
  GET  /api/v1/auth/me                 -- current user (requires auth)
  POST /api/v1/auth/refresh            -- extend a session close to expiry (requires auth)
  POST /api/v1/auth/password-strength  -- advisory 0-4 score with feedback (public)

Security:
  Sign-up and sign-in are rate-limited per IP (Settings.auth_rate_limit).
  Sign-in failures share one message for unknown email and wrong password.
  Cache-Control: no-store on every response that carries a token.

Handlers are plain def: bcrypt work blocks, so FastAPI runs them in its
threadpool rather than on the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import auth_rate_limit, limiter
from api.models import (
    AuthResponse,
    MeResponse,
    MessageResponse,
    PasswordStrengthRequest,
    PasswordStrengthResponse,
    SignInRequest,
    SignUpRequest,
    UserResponse,
)
from auth.dependencies import get_current_user, get_session_token
from auth.errors import AuthenticationError
from auth.models import PublicUser
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/sign-up:            public, rate-limited
# - POST /api/v1/auth/sign-in:            public, rate-limited
# - POST /api/v1/auth/sign-out:           token optional -- idempotent
# - GET  /api/v1/auth/me:                 requires auth (get_current_user)
# - POST /api/v1/auth/refresh:            requires auth (get_current_user)
# - POST /api/v1/auth/password-strength:  public
router = APIRouter()


def _auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/sign-up", response_model=AuthResponse, status_code=201)
@limiter.limit(auth_rate_limit)  # below @router so the registered endpoint is the limited wrapper
def sign_up(request: Request, response: Response, body: SignUpRequest) -> AuthResponse:
    """Register an account and return its first session token."""
    result = _auth_service(request).sign_up(body.email, body.password, body.name)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse.from_result(result)


@router.post("/auth/sign-in", response_model=AuthResponse)
@limiter.limit(auth_rate_limit)
def sign_in(request: Request, response: Response, body: SignInRequest) -> AuthResponse:
    """Authenticate with email and password and start a new session."""
    result = _auth_service(request).sign_in(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse.from_result(result)


@router.post("/auth/sign-out", response_model=MessageResponse)
def sign_out(request: Request) -> MessageResponse:
    """Revoke the presented session. Succeeds with or without a live token."""
    token = get_session_token(request)
    if token:
        _auth_service(request).sign_out(token)
    return MessageResponse(message="Signed out.")


@router.post("/auth/password-strength", response_model=PasswordStrengthResponse)
def password_strength(request: Request, body: PasswordStrengthRequest) -> PasswordStrengthResponse:
    result = _auth_service(request).validate_password_strength(body.password)
    return PasswordStrengthResponse(is_valid=result.is_valid, score=result.score, feedback=result.feedback)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: PublicUser = Depends(get_current_user)) -> MeResponse:
    """Return the user behind the presented session."""
    return MeResponse(user=UserResponse.from_public(current_user))


@router.post("/auth/refresh", response_model=AuthResponse)
def refresh(
    request: Request,
    response: Response,
    current_user: PublicUser = Depends(get_current_user),
) -> AuthResponse:
    """Extend the session if less than the refresh threshold remains.

    Returns the same token; expiresAt moves forward only when a refresh
    actually happened.
    """
    result = _auth_service(request).refresh_session(get_session_token(request))
    if result is None:
        # Revoked between authentication and refresh.
        raise AuthenticationError("Invalid or expired session.")
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse.from_result(result)
