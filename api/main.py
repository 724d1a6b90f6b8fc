"""
api/main.py -- FastAPI application entry point for EventHub Identity.

Exposes the identity core (sign-up/sign-in, sessions, RBAC-guarded user
management) over HTTP.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the object graph once (engine -> stores -> hasher ->
SessionManager -> AuthService / UserService) and tears it down symmetrically.
There are no module-level service singletons; routes read them from
app.state.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from api.errors import status_for
from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.sessions import router as sessions_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthError, ServiceError
from auth.provider import RemoteCredentialProvider
from auth.service import AuthService
from auth.sessions import SessionManager
from auth.store import SQLSessionStore, SQLUserStore, close_engine, create_db_engine
from auth.tokens import PasswordHasher
from auth.users import UserService
from core.config import Settings, get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("eventhub.api")

# ---------------------------------------------------------------------------
# Service assembly
# ---------------------------------------------------------------------------


def build_services(app: FastAPI, settings: Settings) -> None:
    """Construct the identity object graph and attach it to app.state.

    Also used by tests with a Settings instance pointing at an in-memory DB.
    """
    engine = create_db_engine(settings.database_url)
    user_store = SQLUserStore(engine)
    session_store = SQLSessionStore(engine)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds, workers=settings.hash_workers)
    session_manager = SessionManager(
        session_store,
        ttl=timedelta(seconds=settings.session_ttl_seconds),
        refresh_threshold=timedelta(seconds=settings.session_refresh_threshold_seconds),
    )
    provider = None
    if settings.auth_provider == "remote":
        provider = RemoteCredentialProvider(
            settings.identity_provider_url,
            timeout=settings.identity_provider_timeout,
        )
    app.state.engine = engine
    app.state.hasher = hasher
    app.state.session_manager = session_manager
    app.state.provider = provider
    app.state.auth_service = AuthService(
        user_store,
        session_manager,
        hasher,
        provider=provider,
        require_symbol=settings.password_require_symbol,
    )
    app.state.user_service = UserService(user_store, session_manager)


def close_services(app: FastAPI) -> None:
    if app.state.provider is not None:
        app.state.provider.close()
    app.state.hasher.close()
    close_engine(app.state.engine)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build services on startup, close them on shutdown.

    Expired sessions are swept once at startup -- periodic sweeps
    belong to an external scheduler calling POST /api/v1/sessions/cleanup.
    """
    settings = get_settings()
    logger.info("EventHub Identity starting up (provider=%s)", settings.auth_provider)
    build_services(app, settings)
    try:
        swept = app.state.session_manager.cleanup_expired()
        logger.info("Startup sweep removed %d expired session(s)", swept.deleted_count)
    except ServiceError:
        logger.warning("Startup session sweep failed -- continuing")

    yield

    close_services(app)
    logger.info("EventHub Identity shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

_settings = get_settings()

app = FastAPI(
    title="EventHub Identity API",
    description="Authentication, session lifecycle and role-based access control for EventHub.",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if _settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Wall-clock latency on every response. Paths only: query strings and
# headers (which carry session tokens) are never logged.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(sessions_router, prefix="/api/v1", tags=["Sessions"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error leaves as {"error": {code, message, detail?}}.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map an identity-core error to its status via api.errors.status_for().

    ServiceError bodies are always generic; the cause was already logged
    where it was caught.
    """
    status = status_for(exc.kind)
    if status >= 500:
        logger.error("%s on %s %s", exc.code, request.method, request.url.path)
    response = JSONResponse(
        status_code=status,
        content=ErrorResponse(
            error=ErrorDetail(code=exc.code, message=exc.message, detail=exc.detail)
        ).model_dump(exclude_none=True),
    )
    if status == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 RATE_LIMITED in the shared envelope, with Retry-After in seconds."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="RATE_LIMITED",
                message="Too many requests.",
                detail=str(exc.detail),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema failures: 422 with one {field, message} entry per problem."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="VALIDATION_ERROR",
                message="Request validation failed.",
                detail=[
                    {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg", "")}
                    for err in exc.errors()
                ],
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured envelope for plain HTTP exceptions (404 on unknown routes, 405, ...)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=f"HTTP_{exc.status_code}", message=str(exc.detail))
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unmapped is a 500. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(code="INTERNAL_ERROR", message="An unexpected error occurred.")
        ).model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Outside the v1 routers and not rate-limited; load balancers poll it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness plus a one-query database probe."""
    database = "ok"
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable")
        database = "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=__version__,
        components={"app": "ok", "database": database},
    )
