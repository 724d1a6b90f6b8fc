"""
auth/provider.py -- Delegating CredentialProvider backed by an external identity service.

Selected with AUTH_PROVIDER=remote. Sign-up, sign-in, session lookup and
sign-out are forwarded over HTTP; the responses are mapped onto the same
AuthResult / SessionValidation types the self-hosted flow returns, so RBAC and
the HTTP contract are unaffected.

Endpoints consumed (relative to IDENTITY_PROVIDER_URL):
  POST /sign-up/email   {email, password, name?}  -> {user, token}
  POST /sign-in/email   {email, password}         -> {user, token}
  GET  /get-session     Authorization: Bearer     -> {session, user} | null
  POST /sign-out        Authorization: Bearer     -> any

The upstream session record is authoritative for expiry; after sign-up and
sign-in the new token is resolved once through /get-session.

Network failures and 5xx responses become ServiceError. Details are logged
here, never returned to the caller.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import requests

from auth.errors import AuthenticationError, ServiceError, UserExistsError
from auth.models import AuthResult, PublicUser, Role, Session, SessionValidation
from auth.sessions import SESSION_EXPIRED, SESSION_NOT_FOUND
from auth.tokens import token_hint

logger = logging.getLogger("eventhub.provider")

_DUPLICATE_CODES = {"USER_ALREADY_EXISTS", "USER_EXISTS"}


def _parse_ts(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _to_public(data: dict[str, Any]) -> PublicUser:
    role = data.get("role") or Role.USER.value
    return PublicUser(
        id=str(data["id"]),
        email=str(data["email"]).lower(),
        role=role,
        name=data.get("name"),
        image=data.get("image"),
        created_at=_parse_ts(data.get("createdAt")),
        updated_at=_parse_ts(data.get("updatedAt")),
    )


def _to_session(data: dict[str, Any], token: str) -> Session:
    return Session(
        id=data.get("id"),
        user_id=str(data["userId"]),
        token=data.get("token") or token,
        expires_at=_parse_ts(data["expiresAt"]),  # type: ignore[arg-type]
        created_at=_parse_ts(data.get("createdAt")),
        updated_at=_parse_ts(data.get("updatedAt")),
    )


class RemoteCredentialProvider:
    """CredentialProvider that calls an external identity service.

    Usage:
        provider = RemoteCredentialProvider("https://id.example.com/api/auth")
        service = AuthService(users, sessions, hasher, provider=provider)
    """

    def __init__(self, base_url: str, timeout: float = 10.0, http: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        # One pooled session per provider. Redirects are capped: the upstream
        # is a known service, so a long redirect chain means misconfiguration.
        self.http = http or requests.Session()
        self.http.max_redirects = 3

    # ------------------------------------------------------------------
    # CredentialProvider
    # ------------------------------------------------------------------

    def sign_up(self, email: str, password: str, name: str | None) -> AuthResult:
        body: dict[str, Any] = {"email": email, "password": password}
        if name is not None:
            body["name"] = name
        resp = self._request("POST", "/sign-up/email", json=body)
        if resp.status_code == 409 or (resp.status_code in (400, 422) and self._error_code(resp) in _DUPLICATE_CODES):
            raise UserExistsError(detail={"field": "email"})
        self._raise_for_upstream(resp, "sign-up")
        return self._auth_result(resp.json())

    def sign_in(self, email: str, password: str) -> AuthResult:
        resp = self._request("POST", "/sign-in/email", json={"email": email, "password": password})
        if resp.status_code in (400, 401, 403):
            raise AuthenticationError("Invalid email or password")
        self._raise_for_upstream(resp, "sign-in")
        return self._auth_result(resp.json())

    def validate_session(self, token: str) -> SessionValidation:
        resp = self._request("GET", "/get-session", token=token)
        if resp.status_code in (401, 404):
            return SessionValidation(valid=False, error=SESSION_NOT_FOUND)
        self._raise_for_upstream(resp, "get-session")
        payload = resp.json()
        if not payload or not payload.get("session") or not payload.get("user"):
            return SessionValidation(valid=False, error=SESSION_NOT_FOUND)
        session = _to_session(payload["session"], token)
        if session.is_expired():
            return SessionValidation(valid=False, error=SESSION_EXPIRED)
        return SessionValidation(valid=True, user=_to_public(payload["user"]), session=session)

    def refresh(self, token: str) -> AuthResult | None:
        # The upstream extends sessions as a side effect of /get-session.
        result = self.validate_session(token)
        if not result.valid:
            return None
        return AuthResult(
            user=result.user,  # type: ignore[arg-type]
            token=result.session.token,  # type: ignore[union-attr]
            expires_at=result.session.expires_at,  # type: ignore[union-attr]
            session=result.session,
        )

    def sign_out(self, token: str) -> bool:
        try:
            resp = self._request("POST", "/sign-out", token=token)
        except ServiceError:
            return False
        if not resp.ok:
            logger.info("Upstream sign-out returned %d for token=%s", resp.status_code, token_hint(token))
        return resp.ok

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _auth_result(self, payload: dict[str, Any]) -> AuthResult:
        token = payload.get("token")
        if not token or not payload.get("user"):
            logger.error("Upstream auth response missing user or token")
            raise ServiceError()
        validation = self.validate_session(token)
        if not validation.valid:
            logger.error("Upstream issued token=%s that it cannot resolve", token_hint(token))
            raise ServiceError()
        return AuthResult(
            user=_to_public(payload["user"]),
            token=token,
            expires_at=validation.session.expires_at,  # type: ignore[union-attr]
            session=validation.session,
        )

    def _request(self, method: str, path: str, json: dict | None = None, token: str | None = None):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            return self.http.request(method, self.base_url + path, json=json, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Identity provider %s %s failed: %s", method, path, e)
            raise ServiceError() from e

    @staticmethod
    def _error_code(resp) -> str | None:
        try:
            body = resp.json()
        except ValueError:
            return None
        if not isinstance(body, dict):
            return None
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("code")
        return body.get("code")

    @staticmethod
    def _raise_for_upstream(resp, operation: str) -> None:
        if resp.ok:
            return
        logger.warning("Identity provider %s returned HTTP %d", operation, resp.status_code)
        raise ServiceError()

    def close(self) -> None:
        self.http.close()
