"""Mail transports used by the reminder notifier."""

from __future__ import annotations

import logging
import smtplib
from collections.abc import Mapping
from email.message import EmailMessage
from typing import Any, Protocol

from .infra.settings import Settings

LOG = logging.getLogger(__name__)

__all__ = [
    "LogMailTransport",
    "MailDeliveryError",
    "MailTransport",
    "SmtpMailTransport",
    "render_reminder_body",
    "transport_from_settings",
]


class MailDeliveryError(RuntimeError):
    """Raised when a message could not be handed to the mail server."""


class MailTransport(Protocol):
    def send(self, recipient: str, subject: str, template_data: Mapping[str, Any]) -> None:
        """Deliver one message or raise :class:`MailDeliveryError`."""


def render_reminder_body(template_data: Mapping[str, Any]) -> str:
    """Render the plain-text body of a reminder notification."""

    lines = [
        f"Reminder: {template_data['title']}",
        f"Type: {template_data.get('reminder_type') or '-'}",
        f"Due date: {template_data['due_date']}",
        f"Status: {template_data['status']}",
    ]
    description = template_data.get("description")
    if description:
        lines.extend(["", str(description)])
    interval = template_data.get("mileage_interval")
    if interval:
        current = template_data.get("current_mileage")
        suffix = f" (current mileage: {current})" if current is not None else ""
        lines.append(f"Mileage interval: {interval}{suffix}")
    return "\n".join(lines) + "\n"


class SmtpMailTransport:
    """Send plain-text messages through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        starttls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    def build_message(self, recipient: str, subject: str, template_data: Mapping[str, Any]) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(render_reminder_body(template_data))
        return message

    def send(self, recipient: str, subject: str, template_data: Mapping[str, Any]) -> None:
        try:
            # Header values with line breaks are rejected here with ValueError.
            message = self.build_message(recipient, subject, template_data)
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.starttls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError, ValueError) as exc:
            raise MailDeliveryError(f"SMTP delivery to {recipient} failed: {exc}") from exc


class LogMailTransport:
    """Write messages to the log instead of sending them."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or LOG

    def send(self, recipient: str, subject: str, template_data: Mapping[str, Any]) -> None:
        self.logger.info(
            "Mail to %s | %s\n%s",
            recipient,
            subject,
            render_reminder_body(template_data),
        )


def transport_from_settings(settings: Settings) -> MailTransport:
    """Pick SMTP delivery when a host is configured, log delivery otherwise."""

    if not settings.mail_enabled:
        LOG.info("No SMTP host configured; reminder emails will be written to the log")
        return LogMailTransport()
    return SmtpMailTransport(
        settings.smtp_host or "",
        settings.smtp_port,
        sender=settings.smtp_sender,
        username=settings.smtp_user,
        password=settings.smtp_password,
        starttls=settings.smtp_starttls,
    )
