"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only own the domain shape.

Layer rule: no imports from api/ or cv/.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass
class User:
    """A registered account.

    id is a uuid4 string generated at registration, not a database sequence,
    so it can appear in URLs (/api/cv/{user_id}) without being guessable.

    Users are never hard-deleted; is_active=False soft-deactivates the
    account and blocks both login and token verification.
    """

    email: str
    name: str
    hashed_password: str
    id: str = ""
    role: str = ROLE_USER  # "user" | "admin"
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Session:
    """A live grant for one issued bearer token.

    token_hash holds the bearer token verbatim (not a digest). The row is the
    authority for revocation: deleting it invalidates the token even though
    the signature stays valid until its own expiry.
    """

    user_id: str
    token_hash: str
    expires_at: str  # ISO 8601 UTC
    id: int | None = None
    created_at: str | None = None


@dataclass
class PasswordResetToken:
    """A single-use password reset grant. At most one per user."""

    user_id: str
    token: str
    expires_at: str  # ISO 8601 UTC
    created_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """The authenticated caller attached to a request after verification.

    Carries the raw bearer token so logout can delete exactly the session
    row that authorized this request.
    """

    id: str
    email: str
    name: str
    role: str
    is_active: bool
    token: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful register or login."""

    user: User
    token: str
    expires_at: str
