"""Email service — delivers one-time codes via async SMTP."""

from __future__ import annotations

import logging
from email.message import EmailMessage
from email.utils import formataddr
from typing import Protocol

import aiosmtplib

from otp_lifecycle.config import Settings, settings

logger = logging.getLogger(__name__)

OTP_EMAIL_SUBJECT = "Your One-Time Password (OTP)"


class Notifier(Protocol):
    """Delivers a freshly issued or resent code to its owner."""

    async def send_code(self, identity: str, code: str) -> bool:
        """Return ``True`` when the code was handed off successfully."""


class EmailNotifier:
    """Sends OTP emails using the configured SMTP server.

    With ``skip_email`` set, or no SMTP host configured, the code is logged
    instead of sent so local runs and tests never reach a mail server.
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._config = config or settings

    @property
    def enabled(self) -> bool:
        return bool(self._config.smtp_host) and not self._config.skip_email

    async def send_code(self, identity: str, code: str) -> bool:
        """Email *code* to *identity*.

        Parameters
        ----------
        identity:
            Normalized recipient email address.
        code:
            The 6-digit code, as issued.
        """
        if not self.enabled:
            logger.info("Email delivery disabled, not sending to %s | OTP: %s", identity, code)
            return True

        msg = self._build_message(identity, code)
        logger.info("Sending OTP email to %s", identity)

        try:
            await aiosmtplib.send(
                msg,
                hostname=self._config.smtp_host,
                port=self._config.smtp_port,
                username=self._config.smtp_username or None,
                password=self._config.smtp_password or None,
                start_tls=True,
            )
        except aiosmtplib.SMTPException as exc:
            logger.error("Failed to send OTP email to %s: %s", identity, exc)
            return False

        logger.info("OTP email sent to %s", identity)
        return True

    def _build_message(self, identity: str, code: str) -> EmailMessage:
        expiry = self._config.otp_expiry_seconds
        msg = EmailMessage()
        msg["Subject"] = OTP_EMAIL_SUBJECT
        msg["From"] = formataddr((self._config.email_from_name, self._config.email_from))
        msg["To"] = identity
        msg.set_content(
            "Your One-Time Password (OTP)\n\n"
            "Hello,\n\n"
            f"Your one-time password (OTP) is: {code}\n\n"
            f"This code will expire in {expiry} seconds.\n\n"
            "If you didn't request this code, please ignore this email.\n\n"
            "---\n"
            "This is an automated message. Please do not reply to this email."
        )
        msg.add_alternative(
            "<html><body style=\"font-family: sans-serif; color: #333;\">"
            "<p>Hello,</p>"
            "<p>Your one-time password (OTP) is:</p>"
            f"<p style=\"font-size: 32px; font-weight: bold; letter-spacing: 8px;\">{code}</p>"
            f"<p>This code will expire in <strong>{expiry} seconds</strong>.</p>"
            "<p>If you didn't request this code, please ignore this email.</p>"
            "</body></html>",
            subtype="html",
        )
        return msg
