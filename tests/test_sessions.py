"""Unit tests for auth/sessions.py -- the session state machine.

Covers:
- create() issues a fresh token and a 7-day expiry by default
- validate(): not found, expired (deleted as a side effect), valid
- refresh_if_needed(): extends only below the 1-day threshold
- extend() is unconditional and raises for unknown ids
- revoke operations are idempotent and swallow store failures
- cleanup_expired() / cleanup_older_than() counts
- stats()
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from auth.errors import ServiceError, SessionNotFoundError, ValidationError
from auth.models import Session
from auth.sessions import SESSION_EXPIRED, SESSION_NOT_FOUND, SessionManager
from auth.tokens import issue_token
from core.config import get_settings


def _now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def user(make_user):
    return make_user("ada@example.com")


@pytest.fixture
def stored(session_store, user):
    """Factory: insert a session for user expiring at now + offset."""

    def _make(offset: timedelta, created_ago: timedelta = timedelta(0)) -> Session:
        now = _now()
        return session_store.create(
            Session(user_id=user.id, token=issue_token(), expires_at=now + offset, created_at=now - created_ago)
        )

    return _make


# ---------------------------------------------------------------------------
# create / validate
# ---------------------------------------------------------------------------


def test_create_defaults_to_seven_days(session_manager, user) -> None:
    before = _now()
    session = session_manager.create(user.id)
    assert len(session.token) == 64
    assert session.expires_at > session.created_at
    assert before + timedelta(days=7) <= session.expires_at <= _now() + timedelta(days=7)


def test_create_honours_custom_ttl(session_manager, user) -> None:
    session = session_manager.create(user.id, ttl=timedelta(hours=1))
    assert session.expires_at - session.created_at == timedelta(hours=1)


def test_create_rejects_non_positive_ttl(session_manager, session_store, user) -> None:
    for ttl in (timedelta(seconds=-60), timedelta(0)):
        with pytest.raises(ValidationError):
            session_manager.create(user.id, ttl=ttl)
    assert session_store.count_all() == 0


def test_defaults_come_from_settings(session_store) -> None:
    settings = get_settings()
    manager = SessionManager(session_store)
    assert manager.ttl == timedelta(seconds=settings.session_ttl_seconds)
    assert manager.refresh_threshold == timedelta(seconds=settings.session_refresh_threshold_seconds)


def test_create_rejects_malformed_user_id(session_manager) -> None:
    with pytest.raises(ValidationError):
        session_manager.create("not-a-ulid")


def test_each_session_gets_a_distinct_token(session_manager, user) -> None:
    tokens = {session_manager.create(user.id).token for _ in range(5)}
    assert len(tokens) == 5


class TestValidate:
    def test_unknown_token(self, session_manager) -> None:
        result = session_manager.validate("missing")
        assert result.valid is False
        assert result.error == SESSION_NOT_FOUND

    def test_valid_session_resolves_public_user(self, session_manager, user) -> None:
        session = session_manager.create(user.id)
        result = session_manager.validate(session.token)
        assert result.valid is True
        assert result.user.id == user.id
        assert result.session.id == session.id
        assert not hasattr(result.user, "password_hash")

    def test_expired_session_is_rejected_and_deleted(self, session_manager, session_store, stored) -> None:
        session = stored(timedelta(seconds=-1))
        result = session_manager.validate(session.token)
        assert result.valid is False
        assert result.error == SESSION_EXPIRED
        assert session_store.get_by_id(session.id) is None
        assert session_manager.validate(session.token).error == SESSION_NOT_FOUND

    def test_is_valid_and_get_with_user(self, session_manager, stored, user) -> None:
        live = stored(timedelta(hours=1))
        dead = stored(timedelta(seconds=-1))
        assert session_manager.is_valid(live.token) is True
        assert session_manager.is_valid(dead.token) is False
        session, owner = session_manager.get_with_user(live.token)
        assert owner.id == user.id
        assert session_manager.get_with_user(dead.token) is None


# ---------------------------------------------------------------------------
# refresh / extend
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_twelve_hours_left_is_extended_to_full_ttl(self, session_manager, stored) -> None:
        session = stored(timedelta(hours=12))
        before = _now()
        refreshed = session_manager.refresh_if_needed(session.token)
        assert refreshed.id == session.id
        assert refreshed.expires_at >= before + timedelta(days=7)

    def test_three_days_left_is_untouched(self, session_manager, stored) -> None:
        session = stored(timedelta(days=3))
        refreshed = session_manager.refresh_if_needed(session.token)
        assert refreshed.expires_at == session.expires_at

    def test_expired_session_returns_none_and_is_deleted(self, session_manager, session_store, stored) -> None:
        session = stored(timedelta(seconds=-5))
        assert session_manager.refresh_if_needed(session.token) is None
        assert session_store.get_by_id(session.id) is None

    def test_unknown_token_returns_none(self, session_manager) -> None:
        assert session_manager.refresh_if_needed("missing") is None


def test_extend_is_unconditional(session_manager, stored) -> None:
    session = stored(timedelta(days=6))
    extended = session_manager.extend(session.id, ttl=timedelta(days=30))
    assert extended.expires_at > session.expires_at + timedelta(days=20)


def test_extend_rejects_non_positive_ttl(session_manager, stored) -> None:
    session = stored(timedelta(hours=1))
    for ttl in (timedelta(seconds=-1), timedelta(0)):
        with pytest.raises(ValidationError):
            session_manager.extend(session.id, ttl=ttl)


def test_extend_unknown_session_raises(session_manager) -> None:
    with pytest.raises(SessionNotFoundError):
        session_manager.extend("01HZZZZZZZZZZZZZZZZZZZZZZZ")


# ---------------------------------------------------------------------------
# revoke
# ---------------------------------------------------------------------------


class TestRevoke:
    def test_revoke_by_token_is_idempotent(self, session_manager, user) -> None:
        session = session_manager.create(user.id)
        assert session_manager.revoke_by_token(session.token) is True
        assert session_manager.revoke_by_token(session.token) is False
        assert session_manager.validate(session.token).valid is False

    def test_revoke_by_id_is_idempotent(self, session_manager, user) -> None:
        session = session_manager.create(user.id)
        assert session_manager.revoke(session.id) is True
        assert session_manager.revoke(session.id) is False

    def test_revoke_all_for_user(self, session_manager, user) -> None:
        for _ in range(3):
            session_manager.create(user.id)
        assert session_manager.active_count_for_user(user.id) == 3
        assert session_manager.revoke_all_for_user(user.id) == 3
        assert session_manager.revoke_all_for_user(user.id) == 0
        assert session_manager.list_for_user(user.id) == []

    def test_store_failures_are_swallowed(self) -> None:
        store = MagicMock()
        store.delete.side_effect = ServiceError()
        store.delete_by_token.side_effect = ServiceError()
        store.delete_by_user.side_effect = ServiceError()
        manager = SessionManager(store)
        assert manager.revoke("x") is False
        assert manager.revoke_by_token("x") is False
        assert manager.revoke_all_for_user("x") == 0

    def test_cleanup_store_failures_are_swallowed(self) -> None:
        store = MagicMock()
        store.delete_expired_before.side_effect = ServiceError()
        store.delete_created_before.side_effect = ServiceError()
        manager = SessionManager(store)
        assert manager.cleanup_expired().deleted_count == 0
        assert manager.cleanup_older_than(_now() - timedelta(days=30)).deleted_count == 0


def test_list_for_user_skips_expired(session_manager, stored, user) -> None:
    live = stored(timedelta(hours=1))
    stored(timedelta(seconds=-1))
    assert [s.id for s in session_manager.list_for_user(user.id)] == [live.id]


# ---------------------------------------------------------------------------
# cleanup / stats
# ---------------------------------------------------------------------------


def test_cleanup_expired_removes_exactly_the_expired(session_manager, session_store, stored) -> None:
    stored(timedelta(seconds=-1))
    keep = stored(timedelta(seconds=1))
    stored(timedelta(seconds=-5))
    result = session_manager.cleanup_expired()
    assert result.deleted_count == 2
    assert result.timestamp.tzinfo is not None
    assert session_store.count_all() == 1
    assert session_store.get_by_id(keep.id) is not None


def test_cleanup_older_than(session_manager, session_store, stored) -> None:
    stored(timedelta(days=1), created_ago=timedelta(days=45))
    stored(timedelta(days=1), created_ago=timedelta(days=10))
    result = session_manager.cleanup_older_than(_now() - timedelta(days=30))
    assert result.deleted_count == 1
    assert session_store.count_all() == 1


def test_cleanup_when_nothing_to_do(session_manager) -> None:
    assert session_manager.cleanup_expired().deleted_count == 0


def test_stats(session_manager, stored) -> None:
    stored(timedelta(hours=1))
    stored(timedelta(hours=2))
    stored(timedelta(seconds=-1))
    stats = session_manager.stats()
    assert (stats.total, stats.active, stats.expired) == (3, 2, 1)


def test_threshold_must_be_below_ttl(session_store) -> None:
    with pytest.raises(ValueError):
        SessionManager(session_store, ttl=timedelta(hours=1), refresh_threshold=timedelta(hours=1))
