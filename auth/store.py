"""
auth/store.py -- Persistence contracts and SQLAlchemy Core implementations.

Pattern: Repository + Data Mapper. UserStore and SessionStore are the
contracts the services depend on (typing.Protocol, so any object with the
right methods qualifies -- tests and alternative backends need no base
class). SQLUserStore / SQLSessionStore are the repositories;
_row_to_user / _row_to_session are the mappers. Services never touch SQL.

Contract notes (all implementations):
  - Emails are compared in normalized form (trimmed, lower-case). The UNIQUE
    constraint on users.email is the authoritative duplicate check;
    a violation surfaces as DuplicateEmailError.
  - Deletes return how many rows went away. Zero is a normal outcome, not an
    error -- cleanup jobs run concurrently with sign-out and both may target
    the same row.
  - Any other persistence failure surfaces as ServiceError with a generic
    message; the original exception is logged and chained.

Security:
  All queries use bound parameters. No f-strings in SQL.

Timestamps are stored as fixed-width ISO 8601 UTC strings (microsecond
precision) so lexicographic comparison in SQL equals chronological order on
every backend.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import ServiceError
from auth.models import Session, User
from core.ids import new_id

logger = logging.getLogger("eventhub.store")


class DuplicateEmailError(Exception):
    """Raised by UserStore.create when the normalized email is already taken."""


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


class UserStore(Protocol):
    def create(self, user: User) -> User: ...

    def get_by_id(self, user_id: str) -> User | None: ...

    def get_by_email(self, email: str) -> User | None: ...

    def update(self, user_id: str, **fields) -> User | None: ...

    def delete(self, user_id: str) -> bool: ...

    def exists_by_email(self, email: str) -> bool: ...

    def list_users(self, limit: int = 20, offset: int = 0) -> list[User]: ...

    def count_by_role(self) -> dict[str, int]: ...


class SessionStore(Protocol):
    def create(self, session: Session) -> Session: ...

    def get_by_token(self, token: str) -> Session | None: ...

    def get_by_id(self, session_id: str) -> Session | None: ...

    def get_with_user(self, token: str) -> tuple[Session, User] | None: ...

    def list_by_user(self, user_id: str) -> list[Session]: ...

    def update(self, session_id: str, **fields) -> Session | None: ...

    def delete(self, session_id: str) -> bool: ...

    def delete_by_token(self, token: str) -> bool: ...

    def delete_by_user(self, user_id: str) -> int: ...

    def delete_expired_before(self, ts: datetime) -> int: ...

    def delete_created_before(self, ts: datetime) -> int: ...

    def count_all(self) -> int: ...

    def count_active(self, now: datetime) -> int: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", String(26), primary_key=True),
    Column("email", String(254), nullable=False, unique=True),  # normalized
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default="user"),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("name", String(100)),
    Column("image", String(500)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("users_role_idx", "role"),
)

_sessions = Table(
    "sessions",
    metadata,
    Column("id", String(26), primary_key=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("sessions_user_id_idx", "user_id"),
    Index("sessions_expires_at_idx", "expires_at"),
)

_USER_UPDATABLE = {"name", "image", "role", "email_verified", "password_hash"}
_SESSION_UPDATABLE = {"expires_at"}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys=ON makes the sessions.user_id
    ON DELETE CASCADE effective.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_db_engine(db_url: str) -> Engine:
    """Create an engine for db_url and make sure the schema exists.

    Both stores share one engine so get_with_user() can join across tables.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def _guard(operation: str) -> Iterator[None]:
    """Translate driver errors into ServiceError. The cause is logged in full."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Store operation failed: %s", operation)
        raise ServiceError() from exc


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class SQLUserStore:
    """UserStore backed by SQLAlchemy Core.

    Usage:
        engine = create_db_engine("sqlite:///:memory:")
        users = SQLUserStore(engine)
        user = users.create(User(email="a@b.com", password_hash=hashed))
        users.get_by_email("a@b.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, user: User) -> User:
        """Insert user and return it with id and timestamps filled in.

        Raises DuplicateEmailError if the normalized email already exists.
        Callers should treat that as the authoritative signal -- a preceding
        exists_by_email() check can race with a concurrent sign-up.
        """
        now = _now()
        user.id = user.id or new_id()
        user.email = user.email.strip().lower()
        user.created_at = user.created_at or now
        user.updated_at = now
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user.id,
                        email=user.email,
                        password_hash=user.password_hash,
                        role=user.role,
                        email_verified=1 if user.email_verified else 0,
                        name=user.name,
                        image=user.image,
                        created_at=_to_iso(user.created_at),
                        updated_at=_to_iso(user.updated_at),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateEmailError(user.email) from exc
        except SQLAlchemyError as exc:
            logger.exception("Store operation failed: create user")
            raise ServiceError() from exc
        return user

    def get_by_id(self, user_id: str) -> User | None:
        with _guard("get user by id"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by normalized email. Returns None if not found."""
        with _guard("get user by email"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def exists_by_email(self, email: str) -> bool:
        with _guard("check email"), self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.email == email.strip().lower())).fetchone()
        return row is not None

    def update(self, user_id: str, **fields) -> User | None:
        """Update mutable fields and return the fresh record, or None if absent.

        Accepted fields: name, image, role, email_verified, password_hash.
        Unknown keys raise ValueError rather than being silently ignored.
        """
        unknown = set(fields) - _USER_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "email_verified" in fields:
            fields["email_verified"] = 1 if fields["email_verified"] else 0
        fields["updated_at"] = _to_iso(_now())
        with _guard("update user"), self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_by_id(user_id)

    def delete(self, user_id: str) -> bool:
        """Delete a user. Returns False if no such user. Sessions cascade."""
        with _guard("delete user"), self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def list_users(self, limit: int = 20, offset: int = 0) -> list[User]:
        """Return users oldest first."""
        with _guard("list users"), self.engine.connect() as conn:
            rows = conn.execute(
                _users.select().order_by(_users.c.created_at, _users.c.id).limit(limit).offset(offset)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_by_role(self) -> dict[str, int]:
        with _guard("count users"), self.engine.connect() as conn:
            rows = conn.execute(select(_users.c.role, func.count()).group_by(_users.c.role)).fetchall()
        return {role: count for role, count in rows}


class SQLSessionStore:
    """SessionStore backed by SQLAlchemy Core. Shares the engine with SQLUserStore."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, session: Session) -> Session:
        now = _now()
        session.id = session.id or new_id()
        session.created_at = session.created_at or now
        session.updated_at = now
        with _guard("create session"), self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session.id,
                    token=session.token,
                    user_id=session.user_id,
                    expires_at=_to_iso(session.expires_at),
                    created_at=_to_iso(session.created_at),
                    updated_at=_to_iso(session.updated_at),
                )
            )
            conn.commit()
        return session

    def get_by_token(self, token: str) -> Session | None:
        with _guard("get session by token"), self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token == token)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_by_id(self, session_id: str) -> Session | None:
        with _guard("get session by id"), self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_with_user(self, token: str) -> tuple[Session, User] | None:
        """Session and owning user in one round-trip (inner join)."""
        stmt = (
            select(_sessions, _users)
            .select_from(_sessions.join(_users, _sessions.c.user_id == _users.c.id))
            .where(_sessions.c.token == token)
        )
        with _guard("get session with user"), self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        if row is None:
            return None
        mapping = row._mapping
        session = Session(
            id=mapping[_sessions.c.id],
            token=mapping[_sessions.c.token],
            user_id=mapping[_sessions.c.user_id],
            expires_at=_from_iso(mapping[_sessions.c.expires_at]),
            created_at=_from_iso(mapping[_sessions.c.created_at]),
            updated_at=_from_iso(mapping[_sessions.c.updated_at]),
        )
        user = User(
            id=mapping[_users.c.id],
            email=mapping[_users.c.email],
            password_hash=mapping[_users.c.password_hash],
            role=mapping[_users.c.role],
            email_verified=bool(mapping[_users.c.email_verified]),
            name=mapping[_users.c.name],
            image=mapping[_users.c.image],
            created_at=_from_iso(mapping[_users.c.created_at]),
            updated_at=_from_iso(mapping[_users.c.updated_at]),
        )
        return session, user

    def list_by_user(self, user_id: str) -> list[Session]:
        """All sessions for a user, newest first."""
        with _guard("list sessions"), self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select().where(_sessions.c.user_id == user_id).order_by(_sessions.c.created_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def update(self, session_id: str, **fields) -> Session | None:
        """Update mutable fields (expires_at). Returns None if the id is unknown."""
        unknown = set(fields) - _SESSION_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown session fields: {unknown!r}")
        values = {k: _to_iso(v) for k, v in fields.items()}
        values["updated_at"] = _to_iso(_now())
        with _guard("update session"), self.engine.connect() as conn:
            result = conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(**values))
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_by_id(session_id)

    def delete(self, session_id: str) -> bool:
        return self._delete(_sessions.c.id == session_id, "delete session") > 0

    def delete_by_token(self, token: str) -> bool:
        return self._delete(_sessions.c.token == token, "delete session by token") > 0

    def delete_by_user(self, user_id: str) -> int:
        return self._delete(_sessions.c.user_id == user_id, "delete user sessions")

    def delete_expired_before(self, ts: datetime) -> int:
        """Delete sessions whose expires_at <= ts. Returns the count removed."""
        return self._delete(_sessions.c.expires_at <= _to_iso(ts), "delete expired sessions")

    def delete_created_before(self, ts: datetime) -> int:
        """Delete sessions whose created_at < ts. Returns the count removed."""
        return self._delete(_sessions.c.created_at < _to_iso(ts), "delete old sessions")

    def count_all(self) -> int:
        with _guard("count sessions"), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_sessions)).scalar()
        return result or 0

    def count_active(self, now: datetime) -> int:
        with _guard("count active sessions"), self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_sessions).where(_sessions.c.expires_at > _to_iso(now))
            ).scalar()
        return result or 0

    def _delete(self, condition, operation: str) -> int:
        with _guard(operation), self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(condition))
            conn.commit()
        return result.rowcount


def close_engine(engine: Engine) -> None:
    engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        email_verified=bool(row.email_verified),
        name=row.name,
        image=row.image,
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        expires_at=_from_iso(row.expires_at),
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
    )
