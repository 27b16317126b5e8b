"""Outbound email delivery.

The notification dispatcher only depends on the EmailSender protocol;
SmtpEmailSender is the default implementation. Port 465 uses implicit
TLS, any other port upgrades with STARTTLS when the server offers it.
"""

import logging
import smtplib
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    """A multipart (text + HTML) email."""

    to: str
    subject: str
    html: str
    text: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class SendResult:
    """Outcome of a send attempt."""

    success: bool
    error: Optional[str] = None


class EmailSender(Protocol):
    """Protocol for email delivery backends."""

    def send(self, message: EmailMessage) -> SendResult: ...


class SmtpEmailSender:
    """Deliver email through an SMTP relay."""

    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_address: str = "Social Tracker <noreply@localhost>",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Any) -> "SmtpEmailSender":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            from_address=settings.smtp_from,
        )

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def build_mime(self, message: EmailMessage) -> MIMEMultipart:
        """Build the MIME document for a message."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.from_address
        msg["To"] = message.to
        for name, value in message.headers.items():
            msg[name] = value

        msg.attach(MIMEText(message.text, "plain"))
        msg.attach(MIMEText(message.html, "html"))
        return msg

    def send(self, message: EmailMessage) -> SendResult:
        """Send a message.

        Returns:
            SendResult; delivery errors are reported, not raised.
        """
        if not self.configured:
            return SendResult(success=False, error="SMTP is not configured")

        msg = self.build_mime(message)

        try:
            if self.port == 465:
                server: smtplib.SMTP = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)

            with server:
                if self.port != 465:
                    server.ehlo()
                    if server.has_extn("starttls"):
                        server.starttls()
                        server.ehlo()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {message.to}: {e}")
            return SendResult(success=False, error=str(e))

        logger.info(f"Sent email to {message.to}: {message.subject}")
        return SendResult(success=True)


__all__ = [
    "EmailMessage",
    "EmailSender",
    "SendResult",
    "SmtpEmailSender",
]
