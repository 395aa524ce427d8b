"""
auth/tokens.py -- JWT issuing/decoding and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only identity and expiry
       (sub/user_id, jti, iat, exp). They are necessary but not sufficient:
       AuthService.verify() also requires a live row in the Session Store,
       which is what makes logout effective before the token's own expiry.

       The issuer is built from an explicit, immutable TokenConfig rather than
       reading a module-level secret, so tests can run several issuers with
       disposable keys side by side.

       jti is a random per-token id. Without it, two tokens issued for the
       same user within the same second would be byte-identical, and logging
       out one session would silently revoke the other.

  Passwords: bcrypt directly (no passlib wrapper). The DUMMY_HASH constant
       enables timing equalization in AuthService.login() so response time
       does not reveal whether an email is registered [C1].

Layer rule: no imports from api/ or cv/. Import from core/ is allowed.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import InvalidToken, TokenExpired
from core.database import to_iso

if TYPE_CHECKING:
    from core.config import Settings


DEFAULT_EXPIRE_SECONDS = 24 * 3600

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt rejects input beyond 72 bytes; AuthService checks the encoded
    length of every new password before it gets here.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
DUMMY_HASH: str = hash_password("cvportal_timing_dummy")


# ---------------------------------------------------------------------------
# JWT issuing / decoding
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenConfig:
    """Signing configuration. Read-only for the life of the process."""

    secret_key: str
    expire_seconds: int = DEFAULT_EXPIRE_SECONDS
    algorithm: str = "HS256"

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenConfig:
        return cls(secret_key=settings.secret_key, expire_seconds=settings.token_expire_seconds)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: str  # ISO 8601 UTC, identical to the session row's expiry


class TokenIssuer:
    """Creates and checks signed, time-limited bearer tokens.

    Usage:
        issuer = TokenIssuer(TokenConfig(secret_key=key))
        issued = issuer.issue(user.id)
        claims = issuer.decode(issued.token)   # raises InvalidToken / TokenExpired
    """

    def __init__(self, config: TokenConfig) -> None:
        self.config = config

    def issue(self, user_id: str, now: datetime | None = None) -> IssuedToken:
        """Sign a token for user_id valid for config.expire_seconds.

        `now` exists for tests that need tokens issued in the past. The
        expiry is truncated to whole seconds because the JWT exp claim is an
        integer timestamp; the session row then expires at the same instant.
        """
        issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        expire = issued_at + timedelta(seconds=self.config.expire_seconds)
        payload = {
            "sub": user_id,
            "user_id": user_id,
            "jti": secrets.token_hex(16),
            "iat": issued_at,
            "exp": expire,
        }
        token = jwt.encode(payload, self.config.secret_key, algorithm=self.config.algorithm)
        return IssuedToken(token=token, expires_at=to_iso(expire))

    def decode(self, token: str) -> dict:
        """Verify signature and intrinsic expiry; return the claims.

        Raises TokenExpired for an otherwise valid token past its exp claim,
        InvalidToken for every other failure (bad signature, malformed token,
        missing user_id claim).
        """
        try:
            payload = jwt.decode(token, self.config.secret_key, algorithms=[self.config.algorithm])
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise InvalidToken() from exc
        if not isinstance(payload.get("user_id"), str) or not payload["user_id"]:
            raise InvalidToken()
        return payload
