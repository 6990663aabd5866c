"""
auth/notify.py -- Out-of-band delivery of one-time activation codes.

Three dispatchers share one interface, send_code(user, code):
  LogNotifier   -- writes the code to the application log. Dev only.
  EmailNotifier -- SMTP (STARTTLS or implicit TLS).
  SmsNotifier   -- HTTP SMS gateway, bearer-token authenticated.

Delivery is best effort: there is no retry and no outbox. A failure raises
DeliveryError and the caller decides what the user sees. During
registration the account row is already committed when the code is sent, so
a DeliveryError leaves an Inactive account whose code never arrived (see
AccountManager.register).

Recipient addresses are redacted in log lines.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

import requests

from auth.models import User
from core.config import Settings
from core.errors import ServerError

logger = logging.getLogger("storekeep.auth.notify")

_SUBJECT = "One-time password"


class DeliveryError(ServerError):
    error_code = "delivery_failed"


class Notifier(Protocol):
    def send_code(self, user: User, code: str) -> None: ...


def redact_email(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def _redact_phone(phone: str) -> str:
    return f"***{phone[-4:]}" if len(phone) > 4 else "***"


class LogNotifier:
    """Dev-mode dispatcher. Never select this in production."""

    def send_code(self, user: User, code: str) -> None:
        logger.warning("OTP for %s: %s (log channel, not delivered)", redact_email(user.email), code)


class EmailNotifier:
    def __init__(
        self,
        *,
        smtp_host: str,
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        from_email: str = "",
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def _build_message(self, to_email: str, code: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = _SUBJECT
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg.attach(MIMEText(f"This is an OTP to activate your account: {code}", "plain"))
        msg.attach(MIMEText(f"This is an OTP to activate your account: <h1>{code}</h1>", "html"))
        return msg

    def send_code(self, user: User, code: str) -> None:
        if not self.is_configured:
            raise DeliveryError("Email delivery is not configured.")
        msg = self._build_message(user.email, code)
        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, user.email, msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, user.email, msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("OTP email to %s failed: %s", redact_email(user.email), exc)
            raise DeliveryError("Could not send the activation code.") from exc
        logger.info("OTP email sent to %s", redact_email(user.email))


class SmsNotifier:
    """POST the code to an SMS gateway as form fields (mobile_phone, message, from)."""

    def __init__(self, *, gateway_url: str, token: str, sender: str, session: requests.Session | None = None) -> None:
        self.gateway_url = gateway_url
        self.token = token
        self.sender = sender
        self._session = session or requests.Session()
        # Gateway is a known endpoint; a long redirect chain is never legitimate.
        self._session.max_redirects = 3

    def send_code(self, user: User, code: str) -> None:
        if not self.gateway_url:
            raise DeliveryError("SMS delivery is not configured.")
        try:
            resp = self._session.post(
                self.gateway_url,
                data={
                    "mobile_phone": user.phone.lstrip("+"),
                    "message": f"This is an OTP to activate your account: {code}",
                    "from": self.sender,
                },
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=10,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.error("OTP SMS to %s failed: %s", _redact_phone(user.phone), exc)
            raise DeliveryError("Could not send the activation code.") from exc
        logger.info("OTP SMS sent to %s", _redact_phone(user.phone))


def build_notifier(settings: Settings) -> Notifier:
    """Return the dispatcher selected by OTP_CHANNEL."""
    if settings.otp_channel == "email":
        return EmailNotifier(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            smtp_use_tls=settings.smtp_use_tls,
            from_email=settings.mail_from,
        )
    if settings.otp_channel == "sms":
        return SmsNotifier(
            gateway_url=settings.sms_gateway_url,
            token=settings.sms_gateway_token,
            sender=settings.sms_sender,
        )
    if not settings.debug:
        logger.warning("OTP_CHANNEL=log outside debug mode: codes are written to the log, not delivered")
    return LogNotifier()
