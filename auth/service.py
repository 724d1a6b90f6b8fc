"""
auth/service.py -- Sign-up, sign-in, sign-out and "who am I".

Pattern: Facade over a pluggable CredentialProvider (Strategy).
AuthService owns input validation and the public contract; the provider owns
how credentials are checked and where sessions live:

  LocalCredentialProvider   bcrypt hashes in UserStore, opaque tokens via
                            SessionManager (the self-hosted flow)
  RemoteCredentialProvider  an external identity service over HTTP
                            (auth/provider.py)

Both return the same AuthResult / SessionValidation types, so the RBAC engine
and the HTTP contract do not change with the provider.

Security:
  sign_in() raises one identical AuthenticationError for an unknown email,
  a malformed email and a wrong password. When the email is unknown the
  hasher still runs bcrypt against its dummy hash, so response time does not
  reveal whether an account exists.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from auth.errors import AuthenticationError, AuthError, UserExistsError, ValidationError
from auth.models import AuthResult, PasswordStrength, PublicUser, SessionValidation, User
from auth.sessions import SESSION_NOT_FOUND, SessionManager
from auth.store import DuplicateEmailError, UserStore
from auth.tokens import PasswordHasher, token_hint
from auth.validators import (
    MAX_PASSWORD_LENGTH,
    MIN_PASSWORD_LENGTH,
    has_symbol,
    validate_email,
    validate_name,
    validate_password,
    validate_session_token,
)

logger = logging.getLogger("eventhub.auth")

INVALID_CREDENTIALS = "Invalid email or password"

# Repeated characters, keyboard/number runs, and dictionary words.
_WEAK_PATTERNS = (
    re.compile(r"(.)\1{2,}"),
    re.compile(r"123456|654321|abcdef|qwerty", re.IGNORECASE),
    re.compile(r"password|admin|user|login", re.IGNORECASE),
)


class CredentialProvider(Protocol):
    """Where credentials are verified and sessions are kept.

    Inputs reaching a provider are already validated and normalized.
    """

    def sign_up(self, email: str, password: str, name: str | None) -> AuthResult: ...

    def sign_in(self, email: str, password: str) -> AuthResult: ...

    def validate_session(self, token: str) -> SessionValidation: ...

    def refresh(self, token: str) -> AuthResult | None: ...

    def sign_out(self, token: str) -> bool: ...


# ---------------------------------------------------------------------------
# Self-hosted provider
# ---------------------------------------------------------------------------


class LocalCredentialProvider:
    """bcrypt-verified users in a UserStore, sessions via SessionManager."""

    def __init__(self, users: UserStore, sessions: SessionManager, hasher: PasswordHasher) -> None:
        self.users = users
        self.sessions = sessions
        self.hasher = hasher

    def sign_up(self, email: str, password: str, name: str | None) -> AuthResult:
        if self.users.exists_by_email(email):
            raise UserExistsError(detail={"field": "email"})
        user = User(email=email, password_hash=self.hasher.hash(password), name=name)
        try:
            user = self.users.create(user)
        except DuplicateEmailError:
            # Lost the race with a concurrent sign-up for the same address.
            raise UserExistsError(detail={"field": "email"}) from None
        session = self.sessions.create(user.id)
        logger.info("User signed up: user=%s", user.id)
        return AuthResult(
            user=PublicUser.from_user(user),
            token=session.token,
            expires_at=session.expires_at,
            session=session,
        )

    def sign_in(self, email: str, password: str) -> AuthResult:
        user = self.users.get_by_email(email)
        if not self.hasher.verify(password, user.password_hash if user else None):
            logger.info("Sign-in rejected")
            raise AuthenticationError(INVALID_CREDENTIALS)
        session = self.sessions.create(user.id)
        logger.info("User signed in: user=%s", user.id)
        return AuthResult(
            user=PublicUser.from_user(user),
            token=session.token,
            expires_at=session.expires_at,
            session=session,
        )

    def validate_session(self, token: str) -> SessionValidation:
        return self.sessions.validate(token)

    def refresh(self, token: str) -> AuthResult | None:
        session = self.sessions.refresh_if_needed(token)
        if session is None:
            return None
        user = self.users.get_by_id(session.user_id)
        if user is None:
            return None
        return AuthResult(
            user=PublicUser.from_user(user),
            token=session.token,
            expires_at=session.expires_at,
            session=session,
        )

    def sign_out(self, token: str) -> bool:
        return self.sessions.revoke_by_token(token)


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


class AuthService:
    """Entry point for every authentication flow.

    Usage:
        service = AuthService(users, sessions, hasher)
        result = service.sign_up("a@b.com", "Secure123!")
        service.get_current_user(result.token)  # PublicUser
        service.sign_out(result.token)
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionManager,
        hasher: PasswordHasher,
        provider: CredentialProvider | None = None,
        require_symbol: bool = False,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.hasher = hasher
        self.provider = provider or LocalCredentialProvider(users, sessions, hasher)
        self.require_symbol = require_symbol

    def sign_up(self, email: object, password: object, name: object = None) -> AuthResult:
        """Register a new account and start its first session.

        Raises ValidationError for bad input and UserExistsError when the
        email (compared case-insensitively) is already registered. Nothing
        is written before both checks pass.
        """
        normalized = validate_email(email)
        validate_password(password, require_symbol=self.require_symbol)
        clean_name = validate_name(name) if name is not None else None
        return self.provider.sign_up(normalized, password, clean_name)  # type: ignore[arg-type]

    def sign_in(self, email: object, password: object) -> AuthResult:
        try:
            normalized = validate_email(email)
        except ValidationError:
            raise AuthenticationError(INVALID_CREDENTIALS) from None
        if not isinstance(password, str) or not password:
            raise AuthenticationError(INVALID_CREDENTIALS)
        return self.provider.sign_in(normalized, password)

    def sign_out(self, token: object) -> None:
        """Revoke the session behind token. Never raises; repeat calls are no-ops."""
        if not isinstance(token, str) or not token:
            return
        try:
            self.provider.sign_out(token)
        except AuthError:
            logger.warning("Sign-out failed for token=%s", token_hint(token), exc_info=True)

    def validate_session(self, token: object) -> SessionValidation:
        try:
            clean = validate_session_token(token)
        except ValidationError:
            return SessionValidation(valid=False, error=SESSION_NOT_FOUND)
        return self.provider.validate_session(clean)

    def get_current_user(self, token: object) -> PublicUser | None:
        """Public view of the token's owner, or None. Never raises."""
        try:
            result = self.validate_session(token)
        except AuthError:
            logger.warning("Session lookup failed", exc_info=True)
            return None
        return result.user if result.valid else None

    def refresh_session(self, token: object) -> AuthResult | None:
        """Extend the session when it is close to expiry. None if it is gone."""
        try:
            clean = validate_session_token(token)
        except ValidationError:
            return None
        return self.provider.refresh(clean)

    def is_email_available(self, email: object) -> bool:
        return not self.users.exists_by_email(validate_email(email))

    def validate_password_strength(self, password: object) -> PasswordStrength:
        """Advisory 0-4 score with feedback. Separate from the hard policy gate.

        A point each for: minimum length, lowercase, uppercase, digit, symbol,
        and 12+ characters. Weak patterns cost one point. is_valid requires a
        score of 4 and no feedback at all.
        """
        if not isinstance(password, str) or not password:
            return PasswordStrength(is_valid=False, score=0, feedback=["Password is required"])

        feedback: list[str] = []
        score = 0

        if len(password) < MIN_PASSWORD_LENGTH:
            feedback.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        else:
            score += 1
        if len(password) > MAX_PASSWORD_LENGTH:
            feedback.append(f"Password must not exceed {MAX_PASSWORD_LENGTH} characters")

        for ok, message in (
            (any(c.islower() and c.isascii() for c in password), "Password must contain at least one lowercase letter"),
            (any(c.isupper() and c.isascii() for c in password), "Password must contain at least one uppercase letter"),
            (any(c.isdigit() for c in password), "Password must contain at least one number"),
            (has_symbol(password), "Password must contain at least one special character"),
        ):
            if ok:
                score += 1
            else:
                feedback.append(message)

        if len(password) >= 12:
            score += 1

        if any(p.search(password) for p in _WEAK_PATTERNS):
            feedback.append("Password contains common patterns and may be easily guessed")
            score = max(0, score - 1)

        return PasswordStrength(is_valid=not feedback and score >= 4, score=min(score, 4), feedback=feedback)
