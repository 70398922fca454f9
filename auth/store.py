"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
CredentialStore is the repository for users and remember tokens;
SqlSessionStore is the repository for server-side session records.
_row_to_user is the mapper. Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  remember_tokens.token_hash is UNIQUE -- a duplicate insert raises
  IntegrityError, which the Remember-Token Manager reports as StorageError.

  Emails are stored lowercased and compared via lower(), so "A@X.com" and
  "a@x.com" are the same account key.

DB URL: core.config.Settings.database_url (SQLite file next to the project by
default). Any SQLAlchemy URL works; WAL mode is enabled only for SQLite.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine

from auth.models import RememberToken, Role, User
from auth.sessions import SessionStore

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default="customer"),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("created_at", String(32), nullable=False),
)

_remember_tokens = Table(
    "remember_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("sid", String(64), primary_key=True),
    Column("data", Text, nullable=False),  # JSON payload
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so token lookups are not blocked by writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    """Serialize a datetime as fixed-width UTC ISO 8601.

    Fixed width (always microseconds, always +00:00) keeps string comparison
    in SQL equivalent to chronological comparison.
    """
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def _normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User and RememberToken entities.

    Usage:
        store = CredentialStore("sqlite:///fitzone_auth.db")
        uid = store.create_user(User(name="Ann", email="a@x.com", role=Role.customer,
                                     hashed_password=hash_password("hunter2")))
        users = store.find_by_email_and_role("a@x.com", Role.customer)
        store.close()

    Methods raise sqlalchemy.exc.SQLAlchemyError on database failure. The
    services in auth/ turn those into StorageError results.
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Account management lives outside the auth core; this exists for
        seeding and tests.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=_normalize_email(user.email),
                    hashed_password=user.hashed_password,
                    role=Role(user.role).value,
                    status=user.status,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_email_and_role(self, email: str, role: Role, limit: int = 2) -> list[User]:
        """Return users matching email (case-insensitive) AND role.

        At most `limit` rows are fetched. The verifier only needs to tell
        "exactly one" apart from "zero or several", so two is enough.
        """
        query = (
            _users.select()
            .where(func.lower(_users.c.email) == _normalize_email(email))
            .where(_users.c.role == Role(role).value)
            .limit(limit)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_status(self, user_id: int, status: str) -> bool:
        """Set a user's status. Returns True if a row was updated."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(status=status))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Remember token queries
    # ------------------------------------------------------------------

    def create_remember_token(self, user_id: int, token_hash: str, expires_at: str) -> int:
        """Insert a remember-token row and return its ID.

        Raises IntegrityError on a token_hash collision.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _remember_tokens.insert().values(
                    user_id=user_id,
                    token_hash=token_hash,
                    expires_at=expires_at,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_user_by_remember_token(self, token_hash: str, now_iso: str) -> User | None:
        """Return the owner of an unexpired token whose account is active.

        One joined query; every failure cause (unknown hash, expired row,
        inactive owner, dangling user_id) produces the same None.
        """
        query = (
            select(_users)
            .select_from(_remember_tokens.join(_users, _remember_tokens.c.user_id == _users.c.id))
            .where(_remember_tokens.c.token_hash == token_hash)
            .where(_remember_tokens.c.expires_at > now_iso)
            .where(_users.c.status == "active")
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_remember_tokens(self, user_id: int) -> list[RememberToken]:
        """Return all token rows for a user, newest first (expired included)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _remember_tokens.select()
                .where(_remember_tokens.c.user_id == user_id)
                .order_by(_remember_tokens.c.created_at.desc())
            ).fetchall()
        return [_row_to_token(r) for r in rows]

    def delete_remember_token(self, token_hash: str) -> int:
        """Delete a token row by hash. Returns the number of rows removed (0 or 1)."""
        with self.engine.connect() as conn:
            result = conn.execute(_remember_tokens.delete().where(_remember_tokens.c.token_hash == token_hash))
            conn.commit()
        return result.rowcount

    def purge_expired_remember_tokens(self, now_iso: str) -> int:
        """Delete all token rows whose expiry has passed. Returns rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_remember_tokens.delete().where(_remember_tokens.c.expires_at <= now_iso))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


class SqlSessionStore(SessionStore):
    """Server-side session records in the `sessions` table.

    Shares the CredentialStore engine so one database holds all auth state.
    Records idle for longer than ttl_seconds are treated as absent by load()
    and removed by purge_expired().
    """

    def __init__(self, engine: Engine, ttl_seconds: int) -> None:
        self.engine = engine
        self.ttl_seconds = ttl_seconds
        _metadata.create_all(self.engine, tables=[_sessions])

    def _cutoff_iso(self) -> str:
        return to_iso(datetime.now(timezone.utc) - timedelta(seconds=self.ttl_seconds))

    def load(self, sid: str) -> dict | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _sessions.select().where(_sessions.c.sid == sid).where(_sessions.c.updated_at > self._cutoff_iso())
            ).fetchone()
        return json.loads(row.data) if row is not None else None

    def save(self, sid: str, data: dict) -> None:
        payload = json.dumps(data)
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update().where(_sessions.c.sid == sid).values(data=payload, updated_at=_now_iso())
            )
            if result.rowcount == 0:
                conn.execute(_sessions.insert().values(sid=sid, data=payload, updated_at=_now_iso()))
            conn.commit()

    def delete(self, sid: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.sid == sid))
            conn.commit()

    def purge_expired(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.updated_at <= self._cutoff_iso()))
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        role=Role(row.role),
        hashed_password=row.hashed_password,
        status=row.status,
        created_at=row.created_at,
    )


def _row_to_token(row) -> RememberToken:
    return RememberToken(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
