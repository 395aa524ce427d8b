"""
auth/mailer.py -- Delivery of password reset tokens.

Email delivery is an external collaborator. AuthService depends only on the
ResetMailer protocol; LoggingResetMailer is the default and writes the token
to the application log, which is how the service behaves until an SMTP or
provider-backed mailer is plugged in.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("cvportal.auth.mailer")


class ResetMailer(Protocol):
    def send_reset_email(self, address: str, token: str) -> None: ...


class LoggingResetMailer:
    """Log reset tokens instead of emailing them. Not for production use."""

    def send_reset_email(self, address: str, token: str) -> None:
        logger.info("Password reset token generated for %s: %s", address, token)
