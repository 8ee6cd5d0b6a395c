"""
Dashgate - Mailer and Audit Logging Tests

Run with: pytest tests/test_mailer.py -v
"""

import json
import logging
import smtplib
from datetime import datetime, timezone

import pytest

from dashgate.auth.mailer import SMTPConfig, SMTPMailer
from dashgate.errors import DeliveryError
from dashgate.log import log_auth_event
from tests.conftest import make_settings


class FakeSMTP:
    """Stands in for smtplib.SMTP_SSL; records what would be sent."""

    sent = []
    fail_login = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        if FakeSMTP.fail_login:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    def sendmail(self, from_addr, to_addrs, msg):
        FakeSMTP.sent.append((from_addr, to_addrs, msg))


@pytest.fixture(autouse=True)
def fake_smtp(monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail_login = False
    monkeypatch.setattr("dashgate.auth.mailer.smtplib.SMTP_SSL", FakeSMTP)
    monkeypatch.setattr("dashgate.auth.mailer.smtplib.SMTP", FakeSMTP)
    return FakeSMTP


def configured() -> SMTPConfig:
    return SMTPConfig(
        host="smtp.test",
        user="mailer@company.com",
        password="app-password",
        from_email="mailer@company.com",
    )


class TestSMTPMailer:

    @pytest.mark.asyncio
    async def test_send_otp(self):
        await SMTPMailer(configured()).send_otp("user@company.com", "123456", 10)

        from_addr, to_addrs, msg = FakeSMTP.sent[0]
        assert from_addr == "mailer@company.com"
        assert to_addrs == ["user@company.com"]
        assert "123456" in msg
        assert "10 minutes" in msg

    @pytest.mark.asyncio
    async def test_send_invite_code(self):
        expires = datetime(2024, 6, 1, 13, 0, tzinfo=timezone.utc)

        await SMTPMailer(configured()).send_invite_code("user@company.com", "INV-ABCD-EFGH", expires)

        msg = FakeSMTP.sent[0][2]
        assert "INV-ABCD-EFGH" in msg
        assert "2024-06-01 13:00 UTC" in msg

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        mailer = SMTPMailer(SMTPConfig(host="smtp.test"))

        with pytest.raises(DeliveryError):
            await mailer.send_otp("user@company.com", "123456", 10)
        assert FakeSMTP.sent == []

    @pytest.mark.asyncio
    async def test_smtp_failure_becomes_delivery_error(self):
        FakeSMTP.fail_login = True

        with pytest.raises(DeliveryError):
            await SMTPMailer(configured()).send_otp("user@company.com", "123456", 10)

    def test_config_from_settings(self):
        config = SMTPConfig.from_settings(make_settings(
            SMTP_USER="mailer@company.com", SMTP_PASSWORD="pw", EMAIL_FROM="",
        ))

        assert config.from_email == "mailer@company.com"
        assert config.use_ssl is True
        assert config.port == 465


class TestAuthEvents:

    def test_event_is_one_json_line(self, caplog):
        with caplog.at_level(logging.INFO, logger="dashgate.audit"):
            log_auth_event("auth.otp.failed", "user@company.com", details={"remaining": 2})

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["event_type"] == "auth.otp.failed"
        assert entry["email"] == "user@company.com"
        assert entry["details"] == {"remaining": 2}

    @pytest.mark.asyncio
    async def test_otp_is_not_logged_outside_demo_mode(self, caplog, store, users, mailer, clock):
        from dashgate.auth.otp import OTPService

        service = OTPService(
            store, users, make_settings(DEMO_MODE=False, SEND_EMAIL=True), mailer=mailer, clock=clock,
        )
        with caplog.at_level(logging.DEBUG, logger="dashgate"):
            await service.request_otp("user@company.com")

        otp = mailer.otps[-1][1]
        assert all(otp not in record.getMessage() for record in caplog.records)


class TestSettings:

    def test_allowed_origins(self):
        settings = make_settings(CORS_ORIGIN="http://a.test, http://b.test,")

        assert settings.allowed_origins == ["http://a.test", "http://b.test"]
