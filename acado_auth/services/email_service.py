"""
Email service - fire-and-forget notifier for templated emails.
Currently supports: Mock (development/tests) and SMTP (production ready).
"""
import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, Tuple
from abc import ABC, abstractmethod

from acado_auth.config import settings

logger = logging.getLogger(__name__)


def render_forgot_password(data: dict) -> Tuple[str, str, str]:
    """Render the forgot_password template to (subject, text, html)."""
    reset_link = data["resetLink"]
    recipient = data.get("recipientName") or "there"
    minutes = data.get("expiresInMinutes", 60)

    subject = "Reset your Acado password"
    body = f"""
Hello {recipient},

You requested to reset your password. Click the link below:

{reset_link}

This link expires in {minutes} minutes.

If you didn't request this, please ignore this email.

Best regards,
Acado Team
    """

    html = f"""
    <html>
    <body>
        <h2>Password Reset Request</h2>
        <p>Hello {recipient},</p>
        <p>Click the button below to reset your password:</p>
        <p>
            <a href="{reset_link}"
               style="background-color: #2196F3; color: white; padding: 14px 25px;
                      text-decoration: none; display: inline-block; border-radius: 4px;">
                Reset Password
            </a>
        </p>
        <p>Or copy this link: {reset_link}</p>
        <p><small>This link expires in {minutes} minutes.</small></p>
    </body>
    </html>
    """
    return subject, body, html


TEMPLATES = {
    "forgot_password": render_forgot_password,
}


class EmailService(ABC):
    """Base email service interface."""

    @abstractmethod
    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> bool:
        """Send an email."""
        pass

    async def send_templated_email(self, template: str, to: str, data: dict) -> bool:
        """Render a named template and send it."""
        renderer = TEMPLATES.get(template)
        if renderer is None:
            raise ValueError(f"Unknown email template '{template}'")
        subject, body, html = renderer(data)
        return await self.send_email(to, subject, body, html)


class MockEmailService(EmailService):
    """
    Mock email service for development.
    Logs emails instead of sending and keeps them for inspection.
    """

    def __init__(self):
        self.sent_emails: list = []

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> bool:
        """Mock send - logs and stores for debugging."""
        self.sent_emails.append({
            "to": to,
            "subject": subject,
            "body": body
        })
        logger.info(f"Mock email queued: {subject}")
        return True

    def get_last_email(self) -> Optional[dict]:
        """Get the last sent email (for testing)."""
        return self.sent_emails[-1] if self.sent_emails else None


class SMTPEmailService(EmailService):
    """
    SMTP email service for production.
    Configure with environment variables:
    - SMTP_HOST
    - SMTP_PORT
    - SMTP_USER
    - SMTP_PASSWORD
    - EMAIL_FROM
    """

    def __init__(self):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.user = settings.SMTP_USER
        self.password = settings.SMTP_PASSWORD
        self.from_email = settings.EMAIL_FROM

    def _deliver(self, to: str, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.from_email, to, msg.as_string())

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None
    ) -> bool:
        """Send email via SMTP without blocking the event loop."""
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.from_email
        msg['To'] = to

        msg.attach(MIMEText(body, 'plain'))
        if html:
            msg.attach(MIMEText(html, 'html'))

        try:
            await asyncio.to_thread(self._deliver, to, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email '{subject}': {e}")
            return False

        logger.info(f"Email sent: {subject}")
        return True


# =============================================================================
# EMAIL SERVICE SINGLETON
# =============================================================================

_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get the email service instance."""
    global _email_service

    if _email_service is None:
        if settings.SMTP_HOST:
            logger.info("Using SMTP email service")
            _email_service = SMTPEmailService()
        else:
            logger.info("Using mock email service (emails are logged, not sent)")
            _email_service = MockEmailService()

    return _email_service


def set_email_service(service: Optional[EmailService]) -> None:
    """Set custom email service (for testing)."""
    global _email_service
    _email_service = service
