"""
core/database.py -- SQLAlchemy engine construction shared by every store.

Each repository (auth/store.py, cv/store.py) owns its own Engine, built here
so connection options are applied identically:

  - SQLite: check_same_thread=False because FastAPI runs sync routes in a
    thread pool; "timeout" is the busy timeout, so a locked database surfaces
    as OperationalError after db_timeout_seconds instead of hanging.
  - Other drivers: connect_timeout plus pool_timeout bound how long a request
    waits for a connection. Pool exhaustion raises sqlalchemy.exc.TimeoutError.

Both failure modes are mapped to 503 service_unavailable by api/main.py.

Layer rule: core/ is the kernel -- no imports from api/, auth/, or cv/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

DEFAULT_TIMEOUT_SECONDS = 10


def _casefold(value):
    return value.casefold() if value is not None else None


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement, and register casefold().

    Set per-connection because SQLite PRAGMAs and user functions are not
    inherited by new connections from the pool. foreign_keys is off by
    default in SQLite, and the sessions table relies on ON DELETE CASCADE.

    SQLite's built-in lower() only folds ASCII, so case-insensitive search
    over non-ASCII text goes through casefold() instead.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")
    dbapi_conn.create_function("casefold", 1, _casefold, deterministic=True)


def create_store_engine(db_url: str, timeout: int = DEFAULT_TIMEOUT_SECONDS) -> Engine:
    """Return an Engine for db_url with timeouts bounded by `timeout` seconds."""
    if db_url.startswith("sqlite"):
        engine = create_engine(db_url, connect_args={"check_same_thread": False, "timeout": timeout})
        event.listen(engine, "connect", _set_sqlite_pragmas)
        return engine
    return create_engine(
        db_url,
        connect_args={"connect_timeout": timeout},
        pool_timeout=timeout,
        pool_pre_ping=True,
    )


def now_iso() -> str:
    """Current UTC time as ISO 8601 with fixed microsecond precision.

    Fixed precision keeps lexicographic order equal to chronological order,
    which the stores rely on for expires_at comparisons in SQL.
    """
    return to_iso(datetime.now(timezone.utc))


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")
