"""
tests/conftest.py -- Shared test fixtures for EventHub Identity tests.

This module provides:
  - engine / stores: a fresh in-memory database per test for unit tests
  - hasher: one low-cost bcrypt hasher per session (rounds=4)
  - session_manager / auth_service / user_service: wired like the lifespan does
  - make_user(): insert a user with a known password and role
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - api_client: TestClient over the real app with an isolated database
  - _reset_rate_limits: clears slowapi counters before every test

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the API client because TestClient runs route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

Environment variables are set before any app import so the cached
get_settings() singleton sees test values.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# Set before any auth/core/api import so get_settings() caches test values.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, build_services, close_services
from auth.models import Role, User
from auth.service import AuthService
from auth.sessions import SessionManager
from auth.store import SQLSessionStore, SQLUserStore, create_db_engine
from auth.tokens import PasswordHasher
from auth.users import UserService
from core.config import Settings

TEST_PASSWORD = "Secure123!"

# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> Generator[PasswordHasher, None, None]:
    h = PasswordHasher(rounds=4, workers=2)
    yield h
    h.close()


@pytest.fixture()
def engine():
    eng = create_db_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture()
def user_store(engine) -> SQLUserStore:
    return SQLUserStore(engine)


@pytest.fixture()
def session_store(engine) -> SQLSessionStore:
    return SQLSessionStore(engine)


@pytest.fixture()
def session_manager(session_store) -> SessionManager:
    return SessionManager(session_store)


@pytest.fixture()
def auth_service(user_store, session_manager, hasher) -> AuthService:
    return AuthService(user_store, session_manager, hasher)


@pytest.fixture()
def user_service(user_store, session_manager) -> UserService:
    return UserService(user_store, session_manager)


@pytest.fixture()
def make_user(user_store, hasher) -> Callable[..., User]:
    """Factory: make_user("a@b.com", role=Role.ADMIN) -> stored User."""

    def _make(email: str | None = None, role: Role = Role.USER, password: str = TEST_PASSWORD) -> User:
        return user_store.create(
            User(
                email=email or f"{uuid.uuid4().hex[:10]}@example.com",
                password_hash=hasher.hash(password),
                role=role.value,
            )
        )

    return _make


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _test_settings(db_suffix: str) -> Settings:
    return Settings(
        debug=True,
        database_url=f"sqlite:///file:test_identity_{db_suffix}?mode=memory&cache=shared&uri=true",
        bcrypt_rounds=4,
        hash_workers=2,
    )


def _patch_lifespan(settings: Settings):
    """Return an async context manager that replaces the real lifespan.

    Builds the same object graph as production, but against the given test
    settings so routes see an isolated in-memory database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        build_services(app, settings)
        yield
        close_services(app)

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with a per-module database."""
    app.router.lifespan_context = _patch_lifespan(_test_settings(uuid.uuid4().hex[:8]))
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """Rate-limit counters are process-wide; start every test from zero."""
    limiter.reset()

