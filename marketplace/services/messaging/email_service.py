"""
Email service for sending transactional emails.

Supports SMTP, Resend API, and console logging modes.
"""

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional

import aiosmtplib
import httpx

from config.messaging_config import RESEND_API_URL, DELIVERY_HTTP_TIMEOUT

logger = logging.getLogger(__name__)


class EmailService:
    """
    Email service with multi-mode support.

    Modes:
        - console: Log emails to console (development)
        - smtp: Send via SMTP
        - resend: Send via Resend HTTP API

    Every send returns a result dict with a ``success`` flag; delivery
    errors are logged and reported there instead of raised.
    """

    def __init__(
        self,
        mode: str = "console",
        from_email: str = "noreply@marketplace.local",
        from_name: str = "Marketplace",
        frontend_url: str = "http://localhost:3000",
        resend_api_key: Optional[str] = None,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
    ):
        """
        Initialize email service.

        Args:
            mode: "console", "smtp", or "resend"
            from_email: Sender email address
            from_name: Sender display name
            frontend_url: Base URL for links in emails
            resend_api_key: Resend API key
            smtp_host: SMTP server host
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
            smtp_use_tls: Encrypt the SMTP connection (implicit TLS on 465, STARTTLS otherwise)
        """
        self._mode = mode
        self._from_email = from_email
        self._from_name = from_name
        self._frontend_url = frontend_url.rstrip("/")
        self._resend_api_key = resend_api_key
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._smtp_use_tls = smtp_use_tls

        if self._mode == "resend" and not self._resend_api_key:
            logger.warning("Resend API key not configured, falling back to console mode")
            self._mode = "console"
        elif self._mode == "smtp" and not self._smtp_host:
            logger.warning("SMTP host not configured, falling back to console mode")
            self._mode = "console"

        logger.info(f"Email service initialized in {self._mode} mode")

    @property
    def mode(self) -> str:
        return self._mode

    async def send_welcome_email(self, to_email: str, name: str) -> dict:
        """Send the post-registration welcome email."""
        html = _wrap_html(
            "Welcome to Marketplace",
            f"<p>Hi {escape(name)},</p>"
            "<p>Your account is ready. You can now browse, favorite and post listings.</p>",
        )
        text = f"Hi {name},\n\nYour account is ready. You can now browse, favorite and post listings."
        return await self.send_email(to_email, "Welcome to Marketplace", html, text)

    async def send_password_reset_email(
        self,
        to_email: str,
        reset_token: str,
        name: Optional[str] = None,
    ) -> dict:
        """
        Send a password reset link.

        Args:
            to_email: Recipient email address
            reset_token: Raw single-use reset token
            name: User's display name (optional)
        """
        reset_link = f"{self._frontend_url}/reset-password?token={reset_token}"
        greeting = f"Hi {name}," if name else "Hi there,"
        html_greeting = f"Hi {escape(name)}," if name else "Hi there,"

        html = _wrap_html(
            "Reset your password",
            f"<p>{html_greeting}</p>"
            "<p>We received a request to reset your password. The link below is valid for one hour.</p>"
            f'<p><a href="{escape(reset_link)}">Reset password</a></p>'
            "<p>If you didn't request this, you can safely ignore this email.</p>",
        )
        text = (
            f"{greeting}\n\n"
            "We received a request to reset your password. The link below is valid for one hour.\n\n"
            f"{reset_link}\n\n"
            "If you didn't request this, you can safely ignore this email."
        )
        return await self.send_email(to_email, "Reset your password", html, text)

    async def send_otp_email(self, to_email: str, code: str, expiry_minutes: int) -> dict:
        """Send a one-time passcode for password-reset verification."""
        html = _wrap_html(
            "Your verification code",
            f'<p style="font-size: 28px; letter-spacing: 6px;"><strong>{code}</strong></p>'
            f"<p>This code expires in {expiry_minutes} minutes.</p>",
        )
        text = f"Your verification code is {code}. It expires in {expiry_minutes} minutes."
        return await self.send_email(to_email, "Your verification code", html, text)

    async def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
    ) -> dict:
        """
        Send email via configured provider.

        Args:
            to: Recipient email
            subject: Email subject
            html: HTML content
            text: Plain text content

        Returns:
            dict with success status and details
        """
        if self._mode == "console":
            return self._send_console(to, subject, text)
        elif self._mode == "smtp":
            return await self._send_smtp(to, subject, html, text)
        elif self._mode == "resend":
            return await self._send_resend(to, subject, html, text)
        else:
            logger.error(f"Unknown email mode: {self._mode}")
            return {"success": False, "error": f"Unknown email mode: {self._mode}"}

    def _send_console(self, to: str, subject: str, text: str) -> dict:
        """Log email to console (development mode)."""
        logger.info("=" * 60)
        logger.info("EMAIL (console mode)")
        logger.info(f"To: {to}")
        logger.info(f"Subject: {subject}")
        logger.info("-" * 60)
        logger.info(text)
        logger.info("=" * 60)

        return {
            "success": True,
            "mode": "console",
            "message": "Email logged to console",
        }

    async def _send_smtp(self, to: str, subject: str, html: str, text: str) -> dict:
        """Send email via SMTP."""
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = f"{self._from_name} <{self._from_email}>"
        message["To"] = to
        message.attach(MIMEText(text, "plain"))
        message.attach(MIMEText(html, "html"))

        # Port 465 is implicit TLS, anything else upgrades with STARTTLS
        use_tls = self._smtp_use_tls and self._smtp_port == 465
        start_tls = self._smtp_use_tls and not use_tls

        try:
            await aiosmtplib.send(
                message,
                hostname=self._smtp_host,
                port=self._smtp_port,
                username=self._smtp_user,
                password=self._smtp_password,
                use_tls=use_tls,
                start_tls=start_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email via SMTP: {e}")
            return {"success": False, "error": str(e)}

        logger.info("Email sent via SMTP")
        return {
            "success": True,
            "mode": "smtp",
            "message": "Email sent via SMTP",
        }

    async def _send_resend(self, to: str, subject: str, html: str, text: str) -> dict:
        """Send email via Resend API."""
        async with httpx.AsyncClient(timeout=DELIVERY_HTTP_TIMEOUT) as client:
            try:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self._resend_api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": f"{self._from_name} <{self._from_email}>",
                        "to": [to],
                        "subject": subject,
                        "html": html,
                        "text": text,
                    },
                )
            except httpx.HTTPError as e:
                logger.error(f"Failed to send email via Resend: {e}")
                return {"success": False, "error": str(e)}

        if response.status_code == 200:
            data = response.json()
            return {
                "success": True,
                "mode": "resend",
                "messageId": data.get("id"),
            }

        error_msg = response.json().get("message", "Unknown error")
        logger.error(f"Resend API error: {error_msg}")
        return {"success": False, "error": error_msg}


def _wrap_html(header: str, body: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="margin: 0; padding: 24px; background-color: #f5f5f5; font-family: Arial, Helvetica, sans-serif; color: #333333;">
    <div style="max-width: 600px; margin: 0 auto; background-color: #ffffff; padding: 32px;">
        <h1 style="margin: 0 0 24px 0; font-size: 24px;">{header}</h1>
        {body}
    </div>
</body>
</html>
"""
