"""
Email service for sending magic-link login mails.

Supports real SMTP and mock mode for development.
"""

import asyncio
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from functools import lru_cache
from typing import Optional

import aiosmtplib
import structlog

from adops.config import get_settings
from adops.exceptions import MailDeliveryError
from adops.utils.masking import mask_email

logger = structlog.get_logger(__name__)


class EmailService:
    """
    SMTP mailer.

    When SMTP is not configured, uses mock implementation that logs the
    recipient and subject instead of sending. The body is never logged:
    login mails carry a live credential.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        from_addr: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.user = user or settings.smtp_user
        self.password = password or settings.smtp_password
        self.from_addr = from_addr or settings.smtp_from or self.user
        self.timeout = timeout or settings.smtp_timeout_seconds

        self.is_mock = not all([self.host, self.user, self.password])

    async def send(self, to_email: str, subject: str, html_body: str) -> dict:
        """
        Send an HTML email.

        Args:
            to_email: Recipient address
            subject: Subject line
            html_body: HTML body

        Returns:
            Dictionary with status and details

        Raises:
            MailDeliveryError: SMTP rejected the message, the connection
                failed, or the send timed out
        """
        if self.is_mock:
            return await self._mock_send(to_email=to_email, subject=subject)

        msg = MIMEMultipart("alternative")
        msg["From"] = self.from_addr
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            await aiosmtplib.send(
                msg,
                hostname=self.host,
                port=self.port,
                username=self.user,
                password=self.password,
                start_tls=True,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.error("email_send_failed", to=mask_email(to_email), error=str(e))
            raise MailDeliveryError() from e

        logger.info("email_sent", to=mask_email(to_email), subject=subject)
        return {
            "status": "sent",
            "to": to_email,
            "sent_at": datetime.utcnow().isoformat(),
        }

    async def _mock_send(self, to_email: str, subject: str) -> dict:
        """Mock send - logs the envelope instead of sending."""
        logger.info("email_mock_sent", to=mask_email(to_email), subject=subject)

        return {
            "status": "mock_sent",
            "to": to_email,
            "sent_at": datetime.utcnow().isoformat(),
        }


@lru_cache
def get_email_service() -> EmailService:
    """Shared mailer instance."""
    return EmailService()
