"""
auth/service.py -- Credential verification and session lifecycle.

AuthService is the only place where the Credential Store, the Session Store,
and the Token Issuer meet. Routes and dependencies call it; it never touches
HTTP objects, so every operation is unit-testable without a TestClient.

Session verification (verify) runs the checks in a fixed order, each with
its own error kind:

  1. MissingToken            -- no "Authorization: Bearer <token>" header
  2. InvalidToken/TokenExpired -- signature or intrinsic expiry failure
  3. UserNotFound            -- token names a user that no longer exists
  4. AccountDeactivated      -- user.is_active is False
  5. SessionExpiredOrRevoked -- no live (user_id, token) session row

Step 5 is the revocation authority: a logged-out token still has a valid
signature, but its session row is gone.

All methods are synchronous. bcrypt is CPU-bound and the stores block on
I/O; FastAPI runs the sync route handlers and dependencies that call this
service in its worker thread pool, keeping both off the event loop.

Layer rule: no imports from api/ or cv/.
"""

from __future__ import annotations

import logging
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    AccountDeactivated,
    DuplicateEmail,
    InvalidCredentials,
    InvalidResetToken,
    MissingToken,
    SessionExpiredOrRevoked,
    UserNotFound,
    ValidationError,
)
from auth.mailer import LoggingResetMailer, ResetMailer
from auth.models import ROLE_USER, AuthResult, Identity, PasswordResetToken, Session, User
from auth.store import SessionStore, UserStore
from auth.tokens import DUMMY_HASH, TokenIssuer, hash_password, verify_password
from core.database import to_iso

logger = logging.getLogger("cvportal.auth")

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 72  # bcrypt input limit
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
_EMAIL_RE = re.compile(EMAIL_PATTERN)
DEFAULT_RESET_EXPIRE_SECONDS = 3600
RESET_REQUESTED_MESSAGE = "If the email is registered, a password reset email has been sent."


def parse_bearer(authorization: str | None) -> str:
    """Extract the token from an "Authorization: Bearer <token>" header value.

    Raises MissingToken when the header is absent, uses another scheme, or
    carries an empty token.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise MissingToken()
    token = authorization[len("Bearer ") :].strip()
    if not token:
        raise MissingToken()
    return token


class AuthService:
    """Register, log in, verify, and revoke sessions.

    Usage:
        service = AuthService(user_store, session_store, TokenIssuer(TokenConfig(secret)))
        result = service.register("a@x.com", "secret1", "Alice")
        identity = service.verify(f"Bearer {result.token}")
        service.logout(identity)
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        issuer: TokenIssuer,
        mailer: ResetMailer | None = None,
        reset_expire_seconds: int = DEFAULT_RESET_EXPIRE_SECONDS,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.issuer = issuer
        self.mailer: ResetMailer = mailer or LoggingResetMailer()
        self.reset_expire_seconds = reset_expire_seconds

    # ------------------------------------------------------------------
    # Token + session pairing
    # ------------------------------------------------------------------

    def _open_session(self, user_id: str) -> tuple[str, str]:
        """Issue a token and persist its session with the same expiry."""
        issued = self.issuer.issue(user_id)
        self.sessions.create(Session(user_id=user_id, token_hash=issued.token, expires_at=issued.expires_at))
        return issued.token, issued.expires_at

    # ------------------------------------------------------------------
    # Register / login
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, name: str) -> AuthResult:
        """Create a user account and an initial session.

        The existence pre-check only gives a fast answer; the UNIQUE(email)
        constraint decides races, and IntegrityError maps to the same error.
        """
        if not _EMAIL_RE.match(email):
            raise ValidationError("A valid email address is required.")
        _check_new_password(password)
        if not name.strip():
            raise ValidationError("Name is required.")
        if self.users.get_by_email(email) is not None:
            raise DuplicateEmail()

        user = User(
            id=str(uuid.uuid4()),
            email=email,
            name=name.strip(),
            hashed_password=hash_password(password),
            role=ROLE_USER,
        )
        try:
            self.users.create_user(user)
        except IntegrityError as exc:
            raise DuplicateEmail() from exc

        token, expires_at = self._open_session(user.id)
        created = self.users.get_by_id(user.id) or user
        logger.info("User registered (user_id=%s)", user.id)
        return AuthResult(user=created, token=token, expires_at=expires_at)

    def login(self, email: str, password: str) -> AuthResult:
        """Authenticate with email and password and open a new session.

        Unknown email and wrong password raise the identical
        InvalidCredentials. bcrypt runs against DUMMY_HASH for unknown
        emails so timing does not reveal registration either [C1].

        A deactivated account is reported as AccountDeactivated before the
        password is checked, which does reveal that the email exists.
        """
        user = self.users.get_by_email(email)
        if user is None:
            verify_password(password, DUMMY_HASH)
            raise InvalidCredentials()
        if not user.is_active:
            raise AccountDeactivated()
        if not verify_password(password, user.hashed_password):
            raise InvalidCredentials()

        pruned = self.sessions.delete_expired_for_user(user.id)
        if pruned:
            logger.debug("Pruned %d expired session(s) for user_id=%s", pruned, user.id)
        token, expires_at = self._open_session(user.id)
        return AuthResult(user=user, token=token, expires_at=expires_at)

    # ------------------------------------------------------------------
    # Verification / logout
    # ------------------------------------------------------------------

    def verify(self, authorization: str | None) -> Identity:
        """Validate a bearer token against its signature and the Session Store."""
        token = parse_bearer(authorization)
        claims = self.issuer.decode(token)
        user_id = claims["user_id"]

        user = self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        if not user.is_active:
            raise AccountDeactivated()
        if self.sessions.find_active(user_id, token) is None:
            raise SessionExpiredOrRevoked()

        return Identity(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            is_active=user.is_active,
            token=token,
        )

    def logout(self, identity: Identity) -> None:
        """Delete the session that authorized this request. Idempotent."""
        self.sessions.delete(identity.id, identity.token)

    # ------------------------------------------------------------------
    # Password management
    # ------------------------------------------------------------------

    def change_password(self, identity: Identity, current_password: str, new_password: str) -> None:
        """Replace the caller's password and revoke their other sessions."""
        user = self.users.get_by_id(identity.id)
        if user is None:
            raise UserNotFound()
        if not verify_password(current_password, user.hashed_password):
            raise InvalidCredentials("Current password is incorrect.")
        _check_new_password(new_password)

        self.users.update_user(user.id, hashed_password=hash_password(new_password))
        revoked = self.sessions.delete_all_for_user(user.id, keep_token=identity.token)
        logger.info("Password changed (user_id=%s, other sessions revoked=%d)", user.id, revoked)

    def request_password_reset(self, email: str) -> str:
        """Generate and deliver a reset token if the email is registered.

        Returns the same message whether or not the account exists.
        """
        user = self.users.get_by_email(email)
        if user is not None:
            token = secrets.token_urlsafe(32)
            expires = datetime.now(timezone.utc) + timedelta(seconds=self.reset_expire_seconds)
            self.sessions.save_reset_token(
                PasswordResetToken(user_id=user.id, token=token, expires_at=to_iso(expires))
            )
            self.mailer.send_reset_email(user.email, token)
        return RESET_REQUESTED_MESSAGE

    def reset_password(self, token: str, new_password: str) -> None:
        """Consume a reset token, set the new password, and revoke all sessions."""
        _check_new_password(new_password)
        reset = self.sessions.get_active_reset_token(token)
        if reset is None or not self.sessions.consume_reset_token(token):
            raise InvalidResetToken()
        self.users.update_user(reset.user_id, hashed_password=hash_password(new_password))
        revoked = self.sessions.delete_all_for_user(reset.user_id)
        logger.info("Password reset completed (user_id=%s, sessions revoked=%d)", reset.user_id, revoked)


def _check_new_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_LENGTH} bytes.")
