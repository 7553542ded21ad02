"""Outbound notifications for the reconcilers.

The reconcilers depend on the ``Notifier`` protocol only:
``send(to_address, template_kind, payload) -> bool``. Idempotency is the
caller's concern (watermarks on the request row); a notifier just reports
whether the message left.

``EmailNotifier`` renders Jinja2 templates from ``filenest/templates/email``
and delivers over SMTP.

Usage:
    notifier = EmailNotifier(settings.smtp, app_name=settings.app_name)
    sent = await notifier.send(
        "recipient@example.com",
        TemplateKind.REMINDER,
        {"description": "Tax documents", "upload_link": link, "deadline": None},
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
from typing import TYPE_CHECKING, Any, Protocol

from jinja2 import Environment, PackageLoader, select_autoescape

if TYPE_CHECKING:
    from filenest.core.config import SMTPSettings

logger = logging.getLogger(__name__)

# Template version for delivery tracking
TEMPLATE_VERSION = "2026.1.0"


class TemplateKind(str, Enum):
    """Notification templates known to the service."""

    REMINDER = "reminder"
    EXPIRY_WARNING = "expiry_warning"


class NotificationStatus(str, Enum):
    """Status of a notification attempt."""

    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class NotificationResult:
    """Result of a notification attempt.

    Attributes:
        success: Whether the notification was handed to the relay.
        message_id: SMTP message ID.
        status: Status of the attempt.
        recipient_hash: SHA-256 hash of the recipient email (for logs).
        template_kind: Template used.
        error: Error message if the notification failed.
        sent_at: Timestamp when the notification was sent.
    """

    success: bool
    message_id: str | None
    status: NotificationStatus
    recipient_hash: str
    template_kind: TemplateKind
    error: str | None
    sent_at: datetime | None


class EmailError(Exception):
    """Base exception for email operations."""

    pass


class EmailDeliveryError(EmailError):
    """Raised when email delivery fails."""

    pass


class Notifier(Protocol):
    """Sends a templated message to an address."""

    async def send(
        self,
        to_address: str,
        template_kind: TemplateKind,
        payload: dict[str, Any],
    ) -> bool: ...


def hash_email(email: str) -> str:
    """Hash an email address for logging.

    Returns:
        SHA-256 hex digest of the lowercased, stripped email.
    """
    return hashlib.sha256(email.lower().strip().encode()).hexdigest()


class EmailNotifier:
    """SMTP notifier with Jinja2 templates.

    Each template kind has an HTML and a plain-text variant rendered with
    the same context; both are sent as a multipart/alternative message.
    """

    def __init__(
        self,
        smtp_settings: SMTPSettings,
        app_name: str = "FileNest",
    ) -> None:
        """Initialize the notifier.

        Args:
            smtp_settings: SMTP configuration settings.
            app_name: Product name shown in subjects and bodies.
        """
        self.smtp_settings = smtp_settings
        self.app_name = app_name

        self._env = Environment(
            loader=PackageLoader("filenest", "templates/email"),
            autoescape=select_autoescape(["html", "xml"]),
        )

    async def send(
        self,
        to_address: str,
        template_kind: TemplateKind,
        payload: dict[str, Any],
    ) -> bool:
        """Render and send a notification.

        Returns:
            True if the relay accepted the message.
        """
        result = await self.deliver(to_address, template_kind, payload)
        return result.success

    async def deliver(
        self,
        to_address: str,
        template_kind: TemplateKind,
        payload: dict[str, Any],
    ) -> NotificationResult:
        """Render and send a notification, reporting details.

        Rendering or transport failures are captured in the result rather
        than raised.
        """
        recipient_hash = hash_email(to_address)

        try:
            subject, html_body, text_body = self.render(template_kind, payload)

            # smtplib blocks; keep it off the event loop shared with the API
            message_id = await asyncio.to_thread(
                self._send_email,
                to_address,
                subject,
                html_body,
                text_body,
            )

            logger.info(
                "Notification sent: kind=%s, recipient_hash=%s, message_id=%s",
                template_kind.value,
                recipient_hash[:16],
                message_id,
            )

            return NotificationResult(
                success=True,
                message_id=message_id,
                status=NotificationStatus.SENT,
                recipient_hash=recipient_hash,
                template_kind=template_kind,
                error=None,
                sent_at=datetime.now(UTC),
            )

        except Exception as e:
            logger.error(
                "Failed to send notification: kind=%s, recipient_hash=%s, error=%s",
                template_kind.value,
                recipient_hash[:16],
                e,
            )
            return NotificationResult(
                success=False,
                message_id=None,
                status=NotificationStatus.FAILED,
                recipient_hash=recipient_hash,
                template_kind=template_kind,
                error=str(e),
                sent_at=None,
            )

    def render(
        self,
        template_kind: TemplateKind,
        payload: dict[str, Any],
    ) -> tuple[str, str, str]:
        """Render a template kind.

        Args:
            template_kind: Which template to render.
            payload: Template variables (description, upload_link, deadline,
                expires_at).

        Returns:
            Tuple of (subject, html_body, text_body).
        """
        context = {
            "app_name": self.app_name,
            "template_version": TEMPLATE_VERSION,
            **payload,
        }
        for key in ("deadline", "expires_at"):
            value = context.get(key)
            if isinstance(value, datetime):
                context[f"{key}_formatted"] = self._format_date(value)

        html_body = self._env.get_template(f"{template_kind.value}.html").render(**context)
        text_body = self._env.get_template(f"{template_kind.value}.txt").render(**context)
        subject = self._get_subject(template_kind, payload.get("description", ""))

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
            if self.smtp_settings.use_ssl:
                # Implicit TLS (port 465)
                context = ssl.create_default_context()
                server = smtplib.SMTP_SSL(
                    self.smtp_settings.host,
                    self.smtp_settings.port,
                    timeout=self.smtp_settings.timeout,
                    context=context,
                )
            else:
                server = smtplib.SMTP(
                    self.smtp_settings.host,
                    self.smtp_settings.port,
                    timeout=self.smtp_settings.timeout,
                )
                if self.smtp_settings.use_tls:
                    context = ssl.create_default_context()
                    server.starttls(context=context)

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
            server.quit()

            return message_id

        except smtplib.SMTPException as e:
            msg = f"SMTP error: {e}"
            raise EmailDeliveryError(msg) from e
        except OSError as e:
            msg = f"Connection error: {e}"
            raise EmailDeliveryError(msg) from e

    def _format_date(self, dt: datetime) -> str:
        return dt.astimezone(UTC).strftime("%Y-%m-%d %H:%M UTC")

    def _get_domain(self) -> str:
        return self.smtp_settings.from_address.split("@")[-1]

    def _get_subject(self, template_kind: TemplateKind, description: str) -> str:
        if template_kind == TemplateKind.REMINDER:
            return f"Reminder: File Request - {description}"
        return f"[{self.app_name}] Your file request expires soon - {description}"
