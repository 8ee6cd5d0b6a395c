"""
Dashgate - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and switches are loaded from environment variables.

Security: DEMO_MODE returns plaintext OTPs to the caller. Never enable it
where real user data is at stake.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        DEMO_MODE: Return OTPs in API responses and seed demo identities
        CORS_ORIGIN: Comma-separated list of allowed browser origins
        OTP_TTL_MINUTES: Lifetime of an issued OTP
        OTP_MAX_ATTEMPTS: Wrong submissions before permanent lockout
        OTP_HASH_ROUNDS: bcrypt work factor for stored OTP hashes
        INVITE_TTL_MINUTES: Lifetime of an approved invitation code
        ADMIN_EMAIL: Allow-listed operator identity
        ADMIN_SECRET: Shared secret for the admin API
        SEND_EMAIL: Deliver OTPs and invite codes over SMTP
        DATABASE_URL: Durable record store; empty keeps state in memory
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Service
    SERVICE_NAME: str = "dashgate-auth"
    HOST: str = "0.0.0.0"
    PORT: int = 3002
    LOG_LEVEL: str = "INFO"
    DEMO_MODE: bool = True

    # CORS
    CORS_ORIGIN: str = "http://localhost:5173"

    # OTP policy
    OTP_TTL_MINUTES: int = 10
    OTP_MAX_ATTEMPTS: int = 3
    OTP_HASH_ROUNDS: int = 10

    # Invitations
    INVITE_TTL_MINUTES: int = 60
    DEFAULT_INVITE_ROLE: str = "Viewer"
    MAX_PENDING_INVITE_REQUESTS: int = 0  # 0 = unlimited

    # Admin surface
    ADMIN_EMAIL: str = "admin@company.com"
    ADMIN_SECRET: str = ""  # Must be set via environment

    # Mail delivery
    SEND_EMAIL: bool = False
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 465
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_SSL: bool = True
    EMAIL_FROM: str = ""

    # CSRF double-submit
    CSRF_COOKIE_NAME: str = "XSRF-TOKEN"
    CSRF_HEADER_NAME: str = "X-CSRF-Token"

    # Record store (PostgreSQL/SQLite); empty = process memory
    DATABASE_URL: str = ""

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGIN.split(",") if o.strip()]


settings = Settings()
