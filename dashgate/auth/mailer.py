"""Email delivery channel for OTPs and invitation codes."""

import asyncio
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol

from dashgate.config import Settings
from dashgate.errors import DeliveryError
from dashgate.log import get_logger

logger = get_logger("mailer")


class Mailer(Protocol):
    async def send_otp(self, to_email: str, otp: str, ttl_minutes: int) -> None:
        ...

    async def send_invite_code(self, to_email: str, code: str, expires_at: datetime) -> None:
        ...


@dataclass
class SMTPConfig:
    """SMTP connection settings."""

    host: str
    port: int = 465
    user: Optional[str] = None
    password: Optional[str] = None
    from_email: str = ""
    from_name: str = "OTP Service"
    use_ssl: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "SMTPConfig":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            user=settings.SMTP_USER or None,
            password=settings.SMTP_PASSWORD or None,
            from_email=settings.EMAIL_FROM or settings.SMTP_USER,
            use_ssl=settings.SMTP_USE_SSL,
        )


class SMTPMailer:
    """Delivers auth mail via SMTP.

    Sending is synchronous smtplib work, so the async entry points run it in
    a worker thread. Every failure surfaces as DeliveryError.
    """

    def __init__(self, config: SMTPConfig):
        self.config = config

    async def send_otp(self, to_email: str, otp: str, ttl_minutes: int) -> None:
        await asyncio.to_thread(
            self._send,
            to_email,
            "Your One-Time Password (OTP)",
            f"<p>Your OTP is <strong>{otp}</strong>. It expires in {ttl_minutes} minutes.</p>",
            f"Your OTP is {otp}. It expires in {ttl_minutes} minutes.",
        )

    async def send_invite_code(self, to_email: str, code: str, expires_at: datetime) -> None:
        expiry = expires_at.strftime("%Y-%m-%d %H:%M UTC")
        await asyncio.to_thread(
            self._send,
            to_email,
            "Your invitation code",
            f"<p>Your invitation code is <strong>{code}</strong>. It expires at {expiry}.</p>",
            f"Your invitation code is {code}. It expires at {expiry}.",
        )

    def _send(self, to_email: str, subject: str, body_html: str, body_text: str) -> None:
        if not self.config.user or not self.config.password:
            logger.error("Email credentials are not configured")
            raise DeliveryError("Email delivery is not configured")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.config.from_name} <{self.config.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(body_text, "plain"))
        msg.attach(MIMEText(body_html, "html"))

        smtp_cls = smtplib.SMTP_SSL if self.config.use_ssl else smtplib.SMTP
        try:
            with smtp_cls(self.config.host, self.config.port, timeout=10) as server:
                if not self.config.use_ssl:
                    server.starttls()
                server.login(self.config.user, self.config.password)
                server.sendmail(self.config.from_email, [to_email], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send %r to %s: %s", subject, to_email, e)
            raise DeliveryError() from e

        logger.info("Sent %r to %s", subject, to_email)
