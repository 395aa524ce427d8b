"""
auth/errors.py -- Error taxonomy for authentication and authorization.

Every failure the auth core can produce is an AuthError subclass carrying a
stable machine-readable code, the HTTP status the API layer should use, and a
human-readable message. The API layer renders all of them through one
exception handler (api/main.py), so routes and dependencies simply raise.

Enumeration safety:
  InvalidCredentials is used for both "no such email" and "wrong password",
  with the same code and message. AccountDeactivated has its own message and
  therefore reveals that the account exists. That difference is inherited
  behavior and is kept on purpose; see DESIGN.md before changing it.

Layer rule: no imports from api/ or cv/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class. Subclasses override code, status_code, and message."""

    code: str = "auth_error"
    status_code: int = 400
    message: str = "Authentication error."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        if message is not None:
            self.message = message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(AuthError):
    code = "validation_error"
    status_code = 400
    message = "Request validation failed."


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    status_code = 400
    message = "This email address is already registered."


class InvalidResetToken(AuthError):
    code = "invalid_reset_token"
    status_code = 400
    message = "Password reset token is invalid or has expired."


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = 401
    message = "Invalid email or password."


class AccountDeactivated(AuthError):
    code = "account_deactivated"
    status_code = 401
    message = "This account has been deactivated."


class MissingToken(AuthError):
    code = "missing_token"
    status_code = 401
    message = "Access token required."


class InvalidToken(AuthError):
    code = "invalid_token"
    status_code = 401
    message = "Invalid token."


class TokenExpired(AuthError):
    code = "token_expired"
    status_code = 401
    message = "Token has expired."


class UserNotFound(AuthError):
    code = "user_not_found"
    status_code = 401
    message = "Invalid token - user not found."


class SessionExpiredOrRevoked(AuthError):
    code = "session_expired_or_revoked"
    status_code = 401
    message = "Session has expired or was revoked."


class Forbidden(AuthError):
    code = "forbidden"
    status_code = 403
    message = "You do not have permission to perform this action."


class ServiceUnavailable(AuthError):
    code = "service_unavailable"
    status_code = 503
    message = "Service temporarily unavailable. Please try again."


class InternalError(AuthError):
    code = "internal_error"
    status_code = 500
    message = "An unexpected error occurred."
