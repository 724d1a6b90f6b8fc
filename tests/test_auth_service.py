"""Unit tests for auth/service.py -- sign-up, sign-in, sign-out, current user.

Covers:
- sign-up then sign-in round-trip resolves to the same user id
- duplicate email (case-varied) fails with UserExistsError before any write
- a duplicate surfaced at write time (race) also maps to UserExistsError
- sign-in never distinguishes unknown email, malformed email, wrong password
- sign-out is idempotent and never raises
- get_current_user() returns the public user or None, never raises
- refresh_session(), is_email_available(), strict symbol policy
- validate_password_strength() scoring
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from auth.errors import AuthenticationError, ServiceError, UserExistsError, ValidationError
from auth.models import Session
from auth.service import INVALID_CREDENTIALS, AuthService
from auth.store import DuplicateEmailError
from auth.tokens import issue_token

PASSWORD = "Secure123!"

# ---------------------------------------------------------------------------
# Sign-up / sign-in
# ---------------------------------------------------------------------------


class TestSignUp:
    def test_round_trip_with_sign_in(self, auth_service) -> None:
        signed_up = auth_service.sign_up("a@b.com", PASSWORD)
        signed_in = auth_service.sign_in("a@b.com", PASSWORD)
        assert signed_in.user.id == signed_up.user.id
        assert signed_in.token != signed_up.token

    def test_result_shape_excludes_secrets(self, auth_service) -> None:
        result = auth_service.sign_up("A@B.com", PASSWORD, name="Ada")
        body = result.to_dict()
        assert set(body) == {"user", "token", "expiresAt"}
        assert set(body["user"]) == {"id", "email", "name", "image", "role", "createdAt", "updatedAt"}
        assert body["user"]["email"] == "a@b.com"
        assert body["user"]["role"] == "user"
        assert body["user"]["name"] == "Ada"

    def test_duplicate_email_case_insensitive(self, auth_service, user_store) -> None:
        auth_service.sign_up("A@B.com", PASSWORD)
        with pytest.raises(UserExistsError):
            auth_service.sign_up("a@b.com", PASSWORD)
        assert user_store.count_by_role() == {"user": 1}

    def test_write_time_duplicate_maps_to_user_exists(self, session_manager, hasher) -> None:
        users = MagicMock()
        users.exists_by_email.return_value = False
        users.create.side_effect = DuplicateEmailError("a@b.com")
        service = AuthService(users, session_manager, hasher)
        with pytest.raises(UserExistsError):
            service.sign_up("a@b.com", PASSWORD)

    def test_existing_email_checked_before_hashing(self, auth_service, hasher) -> None:
        auth_service.sign_up("a@b.com", PASSWORD)
        with patch.object(hasher, "hash", wraps=hasher.hash) as spy:
            with pytest.raises(UserExistsError):
                auth_service.sign_up("a@b.com", PASSWORD)
        spy.assert_not_called()

    def test_invalid_input_rejected(self, auth_service) -> None:
        with pytest.raises(ValidationError, match="Invalid email format"):
            auth_service.sign_up("nope", PASSWORD)
        with pytest.raises(ValidationError) as exc_info:
            auth_service.sign_up("a@b.com", "weak")
        assert exc_info.value.detail["field"] == "password"

    def test_strict_mode_requires_symbol(self, user_store, session_manager, hasher) -> None:
        strict = AuthService(user_store, session_manager, hasher, require_symbol=True)
        with pytest.raises(ValidationError):
            strict.sign_up("a@b.com", "Secure1234")
        assert strict.sign_up("a@b.com", "Secure123!").user.email == "a@b.com"


class TestSignIn:
    @pytest.fixture(autouse=True)
    def _account(self, auth_service) -> None:
        auth_service.sign_up("a@b.com", PASSWORD)

    @pytest.mark.parametrize(
        "email, password",
        [
            ("a@b.com", "Wrong123!"),
            ("nobody@b.com", PASSWORD),
            ("not-an-email", PASSWORD),
            ("a@b.com", ""),
        ],
    )
    def test_failures_are_indistinguishable(self, auth_service, email, password) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            auth_service.sign_in(email, password)
        assert exc_info.value.message == INVALID_CREDENTIALS
        assert exc_info.value.code == "AUTHENTICATION_FAILED"

    def test_unknown_email_still_spends_bcrypt(self, auth_service, hasher) -> None:
        with patch.object(hasher, "verify", wraps=hasher.verify) as spy:
            with pytest.raises(AuthenticationError):
                auth_service.sign_in("nobody@b.com", PASSWORD)
        spy.assert_called_once_with(PASSWORD, None)

    def test_email_case_is_ignored(self, auth_service) -> None:
        assert auth_service.sign_in("  A@B.COM ", PASSWORD).user.email == "a@b.com"


# ---------------------------------------------------------------------------
# Session-facing calls
# ---------------------------------------------------------------------------


def test_sign_out_twice_never_raises(auth_service) -> None:
    token = auth_service.sign_up("a@b.com", PASSWORD).token
    auth_service.sign_out(token)
    auth_service.sign_out(token)
    auth_service.sign_out("")
    auth_service.sign_out(None)
    assert auth_service.get_current_user(token) is None


def test_sign_out_swallows_provider_errors(user_store, session_manager, hasher) -> None:
    provider = MagicMock()
    provider.sign_out.side_effect = ServiceError()
    service = AuthService(user_store, session_manager, hasher, provider=provider)
    service.sign_out("token")  # no raise


def test_get_current_user(auth_service) -> None:
    result = auth_service.sign_up("a@b.com", PASSWORD)
    current = auth_service.get_current_user(result.token)
    assert current.id == result.user.id
    assert auth_service.get_current_user("bogus") is None
    assert auth_service.get_current_user(None) is None


def test_get_current_user_swallows_errors(user_store, session_manager, hasher) -> None:
    provider = MagicMock()
    provider.validate_session.side_effect = ServiceError()
    service = AuthService(user_store, session_manager, hasher, provider=provider)
    assert service.get_current_user("token") is None


def test_expired_session_is_not_current(auth_service, session_store) -> None:
    result = auth_service.sign_up("a@b.com", PASSWORD)
    stale = session_store.create(
        Session(
            user_id=result.user.id,
            token=issue_token(),
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )
    )
    assert auth_service.get_current_user(stale.token) is None
    assert session_store.get_by_id(stale.id) is None


def test_refresh_session(auth_service, session_store) -> None:
    result = auth_service.sign_up("a@b.com", PASSWORD)
    session_store.update(result.session.id, expires_at=datetime.now(timezone.utc) + timedelta(hours=2))
    refreshed = auth_service.refresh_session(result.token)
    assert refreshed.token == result.token
    assert refreshed.expires_at > datetime.now(timezone.utc) + timedelta(days=6)
    assert auth_service.refresh_session("bogus") is None
    assert auth_service.refresh_session("") is None


def test_is_email_available(auth_service) -> None:
    assert auth_service.is_email_available("a@b.com") is True
    auth_service.sign_up("a@b.com", PASSWORD)
    assert auth_service.is_email_available("A@B.COM") is False
    with pytest.raises(ValidationError):
        auth_service.is_email_available("nope")


# ---------------------------------------------------------------------------
# Password strength
# ---------------------------------------------------------------------------


class TestPasswordStrength:
    def test_strong_password(self, auth_service) -> None:
        result = auth_service.validate_password_strength("Tr0ub4dor&3xyz")
        assert result.is_valid is True
        assert result.score == 4
        assert result.feedback == []

    def test_missing_symbol_reported(self, auth_service) -> None:
        result = auth_service.validate_password_strength("Secure1234")
        assert result.is_valid is False
        assert "Password must contain at least one special character" in result.feedback

    def test_common_patterns_penalized(self, auth_service) -> None:
        result = auth_service.validate_password_strength("Password123!")
        assert result.is_valid is False
        assert "Password contains common patterns and may be easily guessed" in result.feedback

    def test_repeated_characters_penalized(self, auth_service) -> None:
        result = auth_service.validate_password_strength("Aaaa1!xyzw")
        assert "Password contains common patterns and may be easily guessed" in result.feedback

    def test_short_password(self, auth_service) -> None:
        result = auth_service.validate_password_strength("Ab1!")
        assert "Password must be at least 8 characters long" in result.feedback
        assert result.is_valid is False
        assert result.score == 4

    def test_empty(self, auth_service) -> None:
        result = auth_service.validate_password_strength("")
        assert (result.is_valid, result.score, result.feedback) == (False, 0, ["Password is required"])

    def test_score_is_capped(self, auth_service) -> None:
        assert auth_service.validate_password_strength("Vx9#kLm2$qRt7!").score == 4
