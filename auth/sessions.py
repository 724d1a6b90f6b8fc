"""
auth/sessions.py -- Session lifecycle: create, validate, refresh, revoke, clean up.

States:
  Active   expires_at in the future
  Expired  expires_at <= now, row still stored (until the next lookup or sweep)
  Gone     row deleted

Transitions:
  create              -> Active
  refresh / extend    Active -> Active (expires_at pushed to now + ttl)
  validate on Expired -> Gone (cleanup-on-read)
  revoke / sign-out   any -> Gone
  cleanup sweeps      Expired -> Gone

Error policy:
  Revocation and cleanup are idempotent. Revoking an absent session is logged
  and reported as False; a store failure during revocation or a cleanup sweep
  is logged and swallowed (False, 0 or deleted_count=0) so sign-out and
  scheduled sweeps never fail for the caller. Everything else propagates
  ServiceError from the store unchanged.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from auth.errors import ServiceError, SessionNotFoundError, ValidationError
from auth.models import CleanupResult, PublicUser, Session, SessionStats, SessionValidation, User
from auth.store import SessionStore
from auth.tokens import issue_token, token_hint
from auth.validators import validate_identifier
from core.config import get_settings

logger = logging.getLogger("eventhub.sessions")

SESSION_NOT_FOUND = "Session not found"
SESSION_EXPIRED = "Session expired"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Owns every session row. Constructed once per app in the lifespan.

    Usage:
        manager = SessionManager(SQLSessionStore(engine))
        session = manager.create(user.id)
        result = manager.validate(session.token)
        manager.revoke_by_token(session.token)
    """

    def __init__(
        self,
        store: SessionStore,
        ttl: timedelta | None = None,
        refresh_threshold: timedelta | None = None,
    ) -> None:
        settings = get_settings()
        if ttl is None:
            ttl = timedelta(seconds=settings.session_ttl_seconds)
        if refresh_threshold is None:
            refresh_threshold = timedelta(seconds=settings.session_refresh_threshold_seconds)
        if refresh_threshold >= ttl:
            raise ValueError("refresh_threshold must be smaller than ttl")
        self.store = store
        self.ttl = ttl
        self.refresh_threshold = refresh_threshold

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create(self, user_id: str, ttl: timedelta | None = None) -> Session:
        """Start a new session for user_id with a fresh opaque token."""
        validate_identifier(user_id, field="user_id")
        now = _utcnow()
        session = Session(
            user_id=user_id,
            token=issue_token(),
            expires_at=now + self._lifetime(ttl),
            created_at=now,
        )
        session = self.store.create(session)
        logger.info("Session created: user=%s session=%s", user_id, session.id)
        return session

    def validate(self, token: str) -> SessionValidation:
        """Resolve a token to its session and owner.

        An expired session is deleted here, so a token that has once been
        reported expired will afterwards be reported as not found.
        """
        found = self.store.get_with_user(token)
        if found is None:
            return SessionValidation(valid=False, error=SESSION_NOT_FOUND)
        session, user = found
        if session.is_expired(_utcnow()):
            self._discard_expired(session)
            return SessionValidation(valid=False, error=SESSION_EXPIRED)
        return SessionValidation(valid=True, user=PublicUser.from_user(user), session=session)

    def get_with_user(self, token: str) -> tuple[Session, User] | None:
        """Active session and its full User record, or None."""
        found = self.store.get_with_user(token)
        if found is None:
            return None
        session, user = found
        if session.is_expired(_utcnow()):
            self._discard_expired(session)
            return None
        return session, user

    def is_valid(self, token: str) -> bool:
        return self.validate(token).valid

    def list_for_user(self, user_id: str) -> list[Session]:
        """Active sessions for user_id, newest first. Expired rows are skipped."""
        now = _utcnow()
        return [s for s in self.store.list_by_user(user_id) if not s.is_expired(now)]

    def active_count_for_user(self, user_id: str) -> int:
        return len(self.list_for_user(user_id))

    # ------------------------------------------------------------------
    # Extend
    # ------------------------------------------------------------------

    def refresh_if_needed(self, token: str) -> Session | None:
        """Extend the session when less than refresh_threshold remains.

        Returns None when the token is unknown or expired (an expired row is
        deleted), the extended session when it was close to expiry, and the
        session unchanged otherwise.
        """
        session = self.store.get_by_token(token)
        if session is None:
            return None
        now = _utcnow()
        if session.is_expired(now):
            self._discard_expired(session)
            return None
        if session.expires_at - now >= self.refresh_threshold:
            return session
        updated = self.store.update(session.id, expires_at=now + self.ttl)
        if updated is None:
            # Revoked between the read and the write.
            return None
        logger.info("Session refreshed: session=%s", updated.id)
        return updated

    def extend(self, session_id: str, ttl: timedelta | None = None) -> Session:
        """Unconditionally push expires_at to now + ttl."""
        updated = self.store.update(session_id, expires_at=_utcnow() + self._lifetime(ttl))
        if updated is None:
            raise SessionNotFoundError(detail={"session_id": session_id})
        logger.info("Session extended: session=%s", session_id)
        return updated

    # ------------------------------------------------------------------
    # Revoke (idempotent)
    # ------------------------------------------------------------------

    def revoke(self, session_id: str) -> bool:
        try:
            deleted = self.store.delete(session_id)
        except ServiceError:
            logger.warning("Session revoke failed: session=%s", session_id)
            return False
        if not deleted:
            logger.info("Session revoke: no such session=%s", session_id)
        return deleted

    def revoke_by_token(self, token: str) -> bool:
        try:
            deleted = self.store.delete_by_token(token)
        except ServiceError:
            logger.warning("Session revoke failed: token=%s", token_hint(token))
            return False
        if not deleted:
            logger.info("Session revoke: no session for token=%s", token_hint(token))
        return deleted

    def revoke_all_for_user(self, user_id: str) -> int:
        try:
            count = self.store.delete_by_user(user_id)
        except ServiceError:
            logger.warning("Bulk session revoke failed: user=%s", user_id)
            return 0
        logger.info("Revoked %d session(s) for user=%s", count, user_id)
        return count

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup_expired(self) -> CleanupResult:
        """Delete every session with expires_at <= now."""
        now = _utcnow()
        try:
            count = self.store.delete_expired_before(now)
        except ServiceError:
            logger.warning("Expired session cleanup failed")
            return CleanupResult(deleted_count=0, timestamp=now)
        logger.info("Expired session cleanup removed %d row(s)", count)
        return CleanupResult(deleted_count=count, timestamp=now)

    def cleanup_older_than(self, cutoff: datetime) -> CleanupResult:
        """Delete every session created before cutoff, expired or not."""
        try:
            count = self.store.delete_created_before(cutoff)
        except ServiceError:
            logger.warning("Old session cleanup (before %s) failed", cutoff.isoformat())
            return CleanupResult(deleted_count=0, timestamp=_utcnow())
        logger.info("Old session cleanup (before %s) removed %d row(s)", cutoff.isoformat(), count)
        return CleanupResult(deleted_count=count, timestamp=_utcnow())

    def stats(self) -> SessionStats:
        total = self.store.count_all()
        active = self.store.count_active(_utcnow())
        return SessionStats(total=total, active=active, expired=max(total - active, 0))

    def _discard_expired(self, session: Session) -> None:
        try:
            self.store.delete(session.id)
        except ServiceError:
            logger.warning("Could not delete expired session=%s", session.id)

    def _lifetime(self, ttl: timedelta | None) -> timedelta:
        if ttl is None:
            return self.ttl
        if ttl <= timedelta(0):
            raise ValidationError("Session TTL must be positive", detail={"field": "ttl"})
        return ttl
