"""
Email provider implementations.
SMTP when SMTP_HOST is configured; otherwise the mock provider logs instead of sending.
"""
import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, List

from lead_qualifier.config import settings
from lead_qualifier.services.integrations.base import EmailProvider

logger = logging.getLogger(__name__)


class MockEmailProvider(EmailProvider):
    """
    Mock email provider for development/testing.
    Logs emails instead of sending them and keeps them in `sent_emails`.
    """

    def __init__(self):
        self.sent_emails: List[dict] = []

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None,
        from_email: Optional[str] = None
    ) -> bool:
        self.sent_emails.append({
            "to": to,
            "subject": subject,
            "body": body,
            "html": html,
            "from": from_email or settings.EMAIL_FROM,
        })
        logger.info(f"[MOCK EMAIL] To: {to}, Subject: {subject}")
        return True

    def get_last_email(self) -> Optional[dict]:
        return self.sent_emails[-1] if self.sent_emails else None


class SMTPEmailProvider(EmailProvider):
    """
    SMTP email provider. Configure with SMTP_HOST, SMTP_PORT, SMTP_USER,
    SMTP_PASSWORD and EMAIL_FROM.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        from_email: Optional[str] = None
    ):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.user = settings.SMTP_USER if user is None else user
        self.password = settings.SMTP_PASSWORD if password is None else password
        self.from_email = from_email or settings.EMAIL_FROM

    def _build_message(self, to: str, subject: str, body: str, html: Optional[str], from_email: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_email
        msg["To"] = to
        msg.attach(MIMEText(body, "plain"))
        if html:
            msg.attach(MIMEText(html, "html"))
        return msg

    def _deliver(self, from_email: str, to: str, msg: MIMEMultipart):
        with smtplib.SMTP(self.host, self.port) as server:
            server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(from_email, to, msg.as_string())

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None,
        from_email: Optional[str] = None
    ) -> bool:
        sender = from_email or self.from_email
        msg = self._build_message(to, subject, body, html, sender)
        try:
            # smtplib blocks; keep it off the event loop
            await asyncio.to_thread(self._deliver, sender, to, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

        logger.info(f"Email sent to {to}: {subject}")
        return True


# Provider factory
_current_provider: EmailProvider = None


def get_email_provider() -> EmailProvider:
    """Get the current email provider instance."""
    global _current_provider
    if _current_provider is None:
        if settings.SMTP_HOST:
            logger.info("Using SMTP email provider")
            _current_provider = SMTPEmailProvider()
        else:
            logger.info("Using mock email provider (emails are logged, not sent)")
            _current_provider = MockEmailProvider()
    return _current_provider


def set_email_provider(provider: Optional[EmailProvider]) -> None:
    """Set the email provider (for testing or switching providers)."""
    global _current_provider
    _current_provider = provider
