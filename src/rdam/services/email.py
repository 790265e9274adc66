"""Email notifications to citizens.

Four messages are sent over the life of a request: the verification code,
payment confirmation, certificate availability (with the download link)
and expiry. Bodies are rendered from Jinja2 templates in
rdam/templates/email, in both HTML and plain text.

Email is best-effort: a failed delivery is logged and reported in the
returned NotificationResult, never raised to the lifecycle operation that
triggered it. Addresses are never logged in clear, only a SHA-256 prefix.

Usage:
    from rdam.services.email import EmailNotificationService

    email_service = EmailNotificationService(settings.smtp)
    result = await email_service.send_verification_code(
        recipient_email="ciudadano@example.com",
        tramite_number="RDAM-20261019-0001",
        code="482913",
    )
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import secrets
import smtplib
import ssl
from dataclasses import dataclass
from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, PackageLoader, select_autoescape

if TYPE_CHECKING:
    from rdam.core.config import SMTPSettings

logger = logging.getLogger(__name__)

ORGANIZATION_NAME = "Poder Judicial de Santa Fe"


class NotificationKind(str, Enum):
    """Citizen notifications; values are template base names."""

    VERIFICATION_CODE = "otp"
    PAYMENT_CONFIRMED = "payment_confirmed"
    CERTIFICATE_AVAILABLE = "certificate_available"
    REQUEST_EXPIRED = "request_expired"


_SUBJECTS = {
    NotificationKind.VERIFICATION_CODE: "RDAM - Código de verificación para trámite {tramite}",
    NotificationKind.PAYMENT_CONFIRMED: "RDAM - Pago confirmado para trámite {tramite}",
    NotificationKind.CERTIFICATE_AVAILABLE: "RDAM - Tu certificado está disponible - {tramite}",
    NotificationKind.REQUEST_EXPIRED: "RDAM - Trámite vencido - {tramite}",
}


@dataclass(frozen=True, slots=True)
class NotificationResult:
    """Result of a notification attempt.

    Attributes:
        success: Whether the message was accepted by the SMTP server.
        kind: Which notification was sent.
        message_id: SMTP Message-ID header, when sent.
        recipient_hash: SHA-256 of the lowercased recipient address.
        error: Error description if delivery failed.
        sent_at: When the message was accepted.
    """

    success: bool
    kind: NotificationKind
    message_id: str | None
    recipient_hash: str
    error: str | None
    sent_at: datetime | None


class EmailError(Exception):
    """Base exception for email operations."""


class EmailDeliveryError(EmailError):
    """Raised when email delivery fails."""


def hash_email(email: str) -> str:
    """SHA-256 hex digest of the lowercased address, for logs."""
    return hashlib.sha256(email.lower().strip().encode()).hexdigest()


class EmailNotificationService:
    """Renders and sends citizen notifications over SMTP.

    Attributes:
        smtp_settings: SMTP configuration for email delivery.
    """

    def __init__(self, smtp_settings: SMTPSettings) -> None:
        self.smtp_settings = smtp_settings
        self._env = Environment(
            loader=PackageLoader("rdam", "templates/email"),
            autoescape=select_autoescape(["html", "xml"]),
        )

    async def send_verification_code(
        self, recipient_email: str, tramite_number: str, code: str, *, ttl_minutes: int = 15
    ) -> NotificationResult:
        return await self.send(
            NotificationKind.VERIFICATION_CODE,
            recipient_email,
            tramite_number,
            code=code,
            ttl_minutes=ttl_minutes,
        )

    async def send_payment_confirmed(
        self, recipient_email: str, tramite_number: str
    ) -> NotificationResult:
        return await self.send(NotificationKind.PAYMENT_CONFIRMED, recipient_email, tramite_number)

    async def send_certificate_available(
        self,
        recipient_email: str,
        tramite_number: str,
        download_url: str,
        validity_days: int,
    ) -> NotificationResult:
        return await self.send(
            NotificationKind.CERTIFICATE_AVAILABLE,
            recipient_email,
            tramite_number,
            download_url=download_url,
            validity_days=validity_days,
        )

    async def send_request_expired(
        self, recipient_email: str, tramite_number: str
    ) -> NotificationResult:
        return await self.send(NotificationKind.REQUEST_EXPIRED, recipient_email, tramite_number)

    async def send(
        self,
        kind: NotificationKind,
        recipient_email: str,
        tramite_number: str,
        **context: Any,
    ) -> NotificationResult:
        """Render and send one notification.

        The blocking SMTP exchange runs in a worker thread.

        Returns:
            NotificationResult; failures are reported, not raised.
        """
        recipient_hash = hash_email(recipient_email)
        subject, html_body, text_body = self.render(kind, tramite_number, **context)

        try:
            message_id = await asyncio.to_thread(
                self._send_email, recipient_email, subject, html_body, text_body
            )
        except EmailDeliveryError as e:
            logger.error(
                "Failed to send %s notification",
                kind.value,
                extra={
                    "tramite_number": tramite_number,
                    "recipient_hash": recipient_hash[:16],
                    "error": str(e),
                },
            )
            return NotificationResult(
                success=False,
                kind=kind,
                message_id=None,
                recipient_hash=recipient_hash,
                error=str(e),
                sent_at=None,
            )

        logger.info(
            "Sent %s notification",
            kind.value,
            extra={
                "tramite_number": tramite_number,
                "recipient_hash": recipient_hash[:16],
                "message_id": message_id,
            },
        )
        return NotificationResult(
            success=True,
            kind=kind,
            message_id=message_id,
            recipient_hash=recipient_hash,
            error=None,
            sent_at=datetime.now(UTC),
        )

    def render(
        self, kind: NotificationKind, tramite_number: str, **context: Any
    ) -> tuple[str, str, str]:
        """Render a notification.

        Returns:
            Tuple of (subject, html_body, text_body).
        """
        context = {
            "tramite_number": tramite_number,
            "organization": ORGANIZATION_NAME,
            **context,
        }
        html_body = self._env.get_template(f"{kind.value}.html").render(**context)
        text_body = self._env.get_template(f"{kind.value}.txt").render(**context)
        subject = _SUBJECTS[kind].format(tramite=tramite_number)
        return subject, html_body, text_body

    def _send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> str:
        """Send an email via SMTP.

        Returns:
            SMTP message ID.

        Raises:
            EmailDeliveryError: If the email cannot be sent.
        """
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.smtp_settings.from_name} <{self.smtp_settings.from_address}>"
        msg["To"] = to_email

        message_id = f"<{secrets.token_hex(16)}@{self._get_domain()}>"
        msg["Message-ID"] = message_id

        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            with self._connect() as server:
                if self.smtp_settings.use_tls and not self.smtp_settings.use_ssl:
                    server.starttls(context=ssl.create_default_context())

                if self.smtp_settings.username and self.smtp_settings.password:
                    server.login(
                        self.smtp_settings.username,
                        self.smtp_settings.password.get_secret_value(),
                    )

                server.sendmail(
                    self.smtp_settings.from_address,
                    [to_email],
                    msg.as_string(),
                )
            return message_id

        except smtplib.SMTPException as e:
            error = f"SMTP error: {e}"
            raise EmailDeliveryError(error) from e
        except OSError as e:
            error = f"Connection error: {e}"
            raise EmailDeliveryError(error) from e

    def _connect(self) -> smtplib.SMTP:
        """Open the SMTP connection.

        Callers use the client as a context manager so the socket is closed
        when STARTTLS, login or delivery fails.
        """
        if self.smtp_settings.use_ssl:
            # Implicit TLS (port 465)
            return smtplib.SMTP_SSL(
                self.smtp_settings.host,
                self.smtp_settings.port,
                timeout=self.smtp_settings.timeout,
                context=ssl.create_default_context(),
            )

        return smtplib.SMTP(
            self.smtp_settings.host,
            self.smtp_settings.port,
            timeout=self.smtp_settings.timeout,
        )

    def _get_domain(self) -> str:
        return self.smtp_settings.from_address.split("@")[-1]
