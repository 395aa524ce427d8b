"""
cv/store.py -- SQLAlchemy-backed persistence for CV documents.

Uses SQLAlchemy Core (not ORM) so cv/models.py stays the domain
representation. CV bodies are stored as JSON text; keyword search matches
case-insensitively against that serialized text, the same trade-off as a
`data::text ILIKE` query on PostgreSQL JSONB.

Pattern: Repository + Data Mapper. Route handlers never touch SQL directly.
Authorization is NOT enforced here -- routes apply the owner-or-admin and
admin policies before calling the store.

Security: all queries use bound parameters. Keywords are passed as LIKE
parameters, never interpolated into SQL text.

Usage:
    store = CVStore("sqlite:///cvportal.db")
    store.save("user-id", {"personalInfo": {...}})
    store.search(["python", "django"])
    store.close()
"""

import json
import logging
from typing import Any, Optional

from sqlalchemy import Column, MetaData, String, Table, Text, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.database import DEFAULT_TIMEOUT_SECONDS, create_store_engine, now_iso
from cv.models import CVRecord, empty_cv

logger = logging.getLogger("cvportal.cv")

metadata = MetaData()

_cvs = Table(
    "cvs",
    metadata,
    Column("user_id", String(36), primary_key=True),
    Column("data", Text, nullable=False),  # JSON document
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False, index=True),
)


class CVStore:
    def __init__(self, db_url: str, timeout: int = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.engine: Engine = create_store_engine(db_url, timeout)
        metadata.create_all(self.engine)

    def get(self, user_id: str) -> Optional[CVRecord]:
        with self.engine.connect() as conn:
            row = conn.execute(_cvs.select().where(_cvs.c.user_id == user_id)).fetchone()
        return _row_to_cv(row) if row is not None else None

    def exists(self, user_id: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_cvs.c.user_id).where(_cvs.c.user_id == user_id)).fetchone()
        return row is not None

    def save(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert or replace the CV for user_id and return the stored document.

        The stored document always carries userId and updatedAt, overriding
        whatever the client sent for those keys. When a concurrent first save
        inserts the row between our UPDATE and INSERT, the INSERT fails on the
        primary key and the UPDATE is repeated, so the last writer wins.
        """
        now = now_iso()
        document = {**data, "userId": user_id, "updatedAt": now}
        payload = json.dumps(document, ensure_ascii=False)
        replace = _cvs.update().where(_cvs.c.user_id == user_id).values(data=payload, updated_at=now)
        try:
            with self.engine.begin() as conn:
                if conn.execute(replace).rowcount == 0:
                    conn.execute(_cvs.insert().values(user_id=user_id, data=payload, created_at=now, updated_at=now))
        except IntegrityError:
            logger.info("Concurrent first save for user_id=%s; replacing the winner's CV", user_id)
            with self.engine.begin() as conn:
                conn.execute(replace)
        return document

    def initialize(self, user_id: str) -> Optional[dict[str, Any]]:
        """Create an empty CV. Returns None if the user already has one.

        Raises sqlalchemy.exc.IntegrityError if a concurrent request created
        the row between the check and the insert.
        """
        if self.exists(user_id):
            return None
        document = empty_cv(user_id)
        now = now_iso()
        payload = json.dumps(document, ensure_ascii=False)
        with self.engine.connect() as conn:
            conn.execute(_cvs.insert().values(user_id=user_id, data=payload, created_at=now, updated_at=now))
            conn.commit()
        return document

    def delete(self, user_id: str) -> bool:
        """Delete a CV. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_cvs.delete().where(_cvs.c.user_id == user_id))
            conn.commit()
        return result.rowcount > 0

    def list_all(self) -> list[dict[str, Any]]:
        """Return every CV document, most recently updated first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_cvs.select().order_by(_cvs.c.updated_at.desc())).fetchall()
        return [json.loads(r.data) for r in rows]

    def search(self, keywords: list[str]) -> list[dict[str, Any]]:
        """Return CVs whose serialized body contains ANY keyword (case-insensitive).

        An empty keyword list returns every CV. On SQLite the comparison goes
        through the casefold() function registered in core/database.py, since
        ILIKE there only folds ASCII letters.
        """
        if not keywords:
            return self.list_all()
        if self.engine.dialect.name == "sqlite":
            folded = func.casefold(_cvs.c.data)
            condition = or_(*[folded.like(f"%{_escape_like(k.casefold())}%", escape="\\") for k in keywords])
        else:
            condition = or_(*[_cvs.c.data.ilike(f"%{_escape_like(k)}%", escape="\\") for k in keywords])
        with self.engine.connect() as conn:
            rows = conn.execute(_cvs.select().where(condition).order_by(_cvs.c.updated_at.desc())).fetchall()
        return [json.loads(r.data) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


def parse_keywords(raw: Optional[str]) -> list[str]:
    """Split a comma-separated keywords query value, dropping blanks."""
    if not raw:
        return []
    return [k.strip() for k in raw.split(",") if k.strip()]


def _escape_like(value: str) -> str:
    # % and _ in a keyword are literal characters, not wildcards.
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_cv(row) -> CVRecord:
    return CVRecord(
        user_id=row.user_id,
        data=json.loads(row.data),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
