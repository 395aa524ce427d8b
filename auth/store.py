"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
  UserStore    -- the Credential Store (users table).
  SessionStore -- the Session Store (sessions and password_reset_tokens).
  _row_to_*    -- the mappers from raw rows to auth/models.py dataclasses.
Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  users.email is UNIQUE. The service pre-checks for an existing email, but
  the constraint is the actual invariant: two concurrent registrations can
  both pass the pre-check, and the loser gets IntegrityError from
  create_user(), which the service maps to DuplicateEmail.

Session lifecycle:
  Rows are created at login/register, deleted one at a time on logout, and
  pruned lazily -- a user's expired rows are removed on their next login.
  There is no background sweeper. Validity checks always compare
  expires_at against the current time, so a stale row is never honored.

Connection discipline: every method opens a connection with a context
manager and releases it before returning, including on exceptions.

Layer rule: no imports from api/ or cv/.
"""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from auth.models import PasswordResetToken, Session, User
from core.database import DEFAULT_TIMEOUT_SECONDS, create_store_engine, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default="user"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("token_hash", Text, nullable=False),  # bearer token, stored verbatim
    Column("expires_at", String(32), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)

_reset_tokens = Table(
    "password_reset_tokens",
    metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Credential Store
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Owns the Engine for the auth tables; SessionStore shares it.

    Usage:
        store = UserStore("sqlite:///cvportal.db")
        store.create_user(User(id=..., email="a@x.com", name="A", hashed_password=...))
        user = store.get_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str, timeout: int = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.engine: Engine = create_store_engine(db_url, timeout)
        metadata.create_all(self.engine)

    def create_user(self, user: User) -> str:
        """Insert a new user and return its id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        now = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user.id,
                    email=user.email,
                    name=user.name,
                    hashed_password=user.hashed_password,
                    role=user.role,
                    is_active=1 if user.is_active else 0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return user.id

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users, newest first. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.created_at.desc())).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user and stamp updated_at.

        Accepted fields: name, role, is_active, hashed_password.
        Returns True if a row was updated, False if user_id was not found.
        """
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def count_active_admins(self) -> int:
        """Return the number of active admin users (last-admin guard)."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_users)
                .where((_users.c.role == "admin") & (_users.c.is_active == 1))
            ).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Session Store
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for issued-token sessions and password reset tokens."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create(self, session: Session) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    user_id=session.user_id,
                    token_hash=session.token_hash,
                    expires_at=session.expires_at,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def find_active(self, user_id: str, token: str) -> Session | None:
        """Return the session for (user_id, token) if it has not expired."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _sessions.select()
                .where(
                    (_sessions.c.user_id == user_id)
                    & (_sessions.c.token_hash == token)
                    & (_sessions.c.expires_at > now_iso())
                )
                .limit(1)
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def delete(self, user_id: str, token: str) -> int:
        """Delete the session for exactly (user_id, token). Returns rows deleted (0 is fine)."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.delete().where((_sessions.c.user_id == user_id) & (_sessions.c.token_hash == token))
            )
            conn.commit()
        return result.rowcount

    def delete_expired_for_user(self, user_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.delete().where((_sessions.c.user_id == user_id) & (_sessions.c.expires_at < now_iso()))
            )
            conn.commit()
        return result.rowcount

    def delete_all_for_user(self, user_id: str, keep_token: str | None = None) -> int:
        """Revoke every session of a user, optionally sparing the caller's own token."""
        condition = _sessions.c.user_id == user_id
        if keep_token is not None:
            condition = condition & (_sessions.c.token_hash != keep_token)
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(condition))
            conn.commit()
        return result.rowcount

    def list_for_user(self, user_id: str) -> list[Session]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select().where(_sessions.c.user_id == user_id).order_by(_sessions.c.id)
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    # ------------------------------------------------------------------
    # Password reset tokens
    # ------------------------------------------------------------------

    def save_reset_token(self, reset: PasswordResetToken) -> None:
        """Store a reset token, replacing any previous token for the same user.

        Delete + insert in one transaction; portable equivalent of
        INSERT ... ON CONFLICT (user_id) DO UPDATE.
        """
        with self.engine.begin() as conn:
            conn.execute(_reset_tokens.delete().where(_reset_tokens.c.user_id == reset.user_id))
            conn.execute(
                _reset_tokens.insert().values(
                    user_id=reset.user_id,
                    token=reset.token,
                    expires_at=reset.expires_at,
                    created_at=now_iso(),
                )
            )

    def get_active_reset_token(self, token: str) -> PasswordResetToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _reset_tokens.select().where(
                    (_reset_tokens.c.token == token) & (_reset_tokens.c.expires_at > now_iso())
                )
            ).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def consume_reset_token(self, token: str) -> bool:
        """Delete a reset token. Returns False if another request consumed it first."""
        with self.engine.connect() as conn:
            result = conn.execute(_reset_tokens.delete().where(_reset_tokens.c.token == token))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        role=row.role,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )


def _row_to_reset_token(row) -> PasswordResetToken:
    return PasswordResetToken(
        user_id=row.user_id,
        token=row.token,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
