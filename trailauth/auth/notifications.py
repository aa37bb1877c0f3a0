"""
Reset-code delivery.

The coordinator hands (destination, code) to a NotificationChannel after its
transaction commits. Delivery is fire-and-forget from the coordinator's side:
a channel failure is reported but never invalidates the stored code.

Provides:
- NotificationChannel: protocol every channel implements
- LogNotificationChannel: development channel, logs the masked address only
- SMTPNotificationChannel: plain-text mail over SMTP (STARTTLS or SSL)
- build_notification_channel: pick a channel from Settings
"""

import asyncio
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional, Protocol

from trailauth.core.config import Settings
from trailauth.core.logging import get_logger
from trailauth.core.utils import redact_email

logger = get_logger(__name__)


class NotificationError(Exception):
    """A channel could not deliver a message."""


class NotificationChannel(Protocol):
    async def send_reset_code(self, destination: str, code: str) -> None:
        """Deliver a reset code; raise NotificationError on failure."""
        ...


class LogNotificationChannel:
    """Used when no SMTP host is configured."""

    async def send_reset_code(self, destination: str, code: str) -> None:
        logger.info("reset_code_delivery_skipped", to=redact_email(destination))


class SMTPNotificationChannel:
    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_email: str,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email
        self.timeout = timeout

    def _build_message(self, destination: str, code: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = "Your password reset code"
        msg["From"] = self.from_email
        msg["To"] = destination
        msg.set_content(
            "Use the following code to reset your password:\n\n"
            f"    {code}\n\n"
            "The code expires in a few minutes. If you did not ask for a reset, "
            "you can ignore this message.\n"
        )
        return msg

    def _send(self, msg: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.use_tls:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls(context=context)
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
        else:
            with smtplib.SMTP_SSL(
                self.host, self.port, context=context, timeout=self.timeout
            ) as server:
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)

    async def send_reset_code(self, destination: str, code: str) -> None:
        msg = self._build_message(destination, code)
        try:
            # smtplib blocks; keep it off the event loop
            await asyncio.to_thread(self._send, msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"SMTP delivery failed: {exc.__class__.__name__}") from exc
        logger.info("reset_code_sent", to=redact_email(destination))


def build_notification_channel(settings: Settings) -> NotificationChannel:
    if not settings.smtp_host:
        return LogNotificationChannel()
    return SMTPNotificationChannel(
        host=settings.smtp_host,
        port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        from_email=settings.mail_from,
    )
