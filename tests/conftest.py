"""
tests/conftest.py -- Shared test fixtures for CV Portal.

This module provides:
  - make_stores(): isolated named shared-memory SQLite stores
  - make_service(): an AuthService wired to those stores with a test issuer
  - service fixture: fresh AuthService per test (unit tests)
  - api fixture: module-scoped TestClient + seeded admin (integration)

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

DEBUG, RATE_LIMIT_ENABLED and ALLOWED_HOSTS must be set before any app import
so get_settings() auto-generates SECRET_KEY instead of raising, repeated
logins in one module are not throttled, and TrustedHostMiddleware accepts
the TestClient host.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: set before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
# TestClient sends Host: testserver.
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import ROLE_ADMIN, User
from auth.service import AuthService
from auth.store import SessionStore, UserStore
from auth.tokens import TokenConfig, TokenIssuer, hash_password
from cv.store import CVStore

TEST_SECRET = "test-secret-key-with-at-least-32-characters!"

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"


class RecordingResetMailer:
    """Keep sent reset tokens in memory so tests can complete the reset flow."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_reset_email(self, address: str, token: str) -> None:
        self.sent.append((address, token))

    def last_token_for(self, address: str) -> str | None:
        for sent_address, token in reversed(self.sent):
            if sent_address == address:
                return token
        return None


# ---------------------------------------------------------------------------
# Store / service helpers
# ---------------------------------------------------------------------------


def make_stores(db_suffix: str) -> tuple[UserStore, SessionStore, CVStore]:
    """Create stores on one named shared-memory SQLite database.

    Args:
        db_suffix: Unique string appended to the DB name so tests and test
                   modules never share state.
    """
    url = f"sqlite:///file:test_cvportal_{db_suffix}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(url)
    return user_store, SessionStore(user_store.engine), CVStore(url)


def make_service(
    user_store: UserStore,
    session_store: SessionStore,
    mailer: RecordingResetMailer | None = None,
    expire_seconds: int = 3600,
) -> AuthService:
    return AuthService(
        users=user_store,
        sessions=session_store,
        issuer=TokenIssuer(TokenConfig(secret_key=TEST_SECRET, expire_seconds=expire_seconds)),
        mailer=mailer or RecordingResetMailer(),
    )


def seed_admin(user_store: UserStore, email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD) -> str:
    admin = User(
        id=str(uuid.uuid4()),
        email=email,
        name="System Admin",
        hashed_password=hash_password(password),
        role=ROLE_ADMIN,
    )
    return user_store.create_user(admin)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stores() -> Generator[tuple[UserStore, SessionStore, CVStore], None, None]:
    user_store, session_store, cv_store = make_stores(uuid.uuid4().hex)
    yield user_store, session_store, cv_store
    cv_store.close()
    user_store.close()


@pytest.fixture
def mailer() -> RecordingResetMailer:
    return RecordingResetMailer()


@pytest.fixture
def service(stores, mailer) -> AuthService:
    user_store, session_store, _cv_store = stores
    return make_service(user_store, session_store, mailer)


# ---------------------------------------------------------------------------
# Integration fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    service: AuthService
    mailer: RecordingResetMailer
    admin_id: str
    admin_token: str


def _patch_lifespan(user_store: UserStore, session_store: SessionStore, cv_store: CVStore, service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        limiter.enabled = False
        app.state.user_store = user_store
        app.state.session_store = session_store
        app.state.cv_store = cv_store
        app.state.auth = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan, so
    tests hit real route handlers, dependencies, and exception handlers.
    The admin token comes from a real login, so it has a live session row.
    """
    suffix = f"{request.module.__name__.replace('.', '_')}_{uuid.uuid4().hex[:8]}"
    user_store, session_store, cv_store = make_stores(suffix)
    mailer = RecordingResetMailer()
    service = make_service(user_store, session_store, mailer)
    admin_id = seed_admin(user_store)
    admin_token = service.login(ADMIN_EMAIL, ADMIN_PASSWORD).token

    app.router.lifespan_context = _patch_lifespan(user_store, session_store, cv_store, service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            service=service,
            mailer=mailer,
            admin_id=admin_id,
            admin_token=admin_token,
        )

    cv_store.close()
    user_store.close()
