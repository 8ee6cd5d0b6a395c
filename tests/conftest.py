"""
Dashgate - Test Configuration

Pytest fixtures for service, HTTP and client SDK testing.
Provides settings, a controllable clock, a fake mailer, services and a
TestClient bound to a fresh in-memory store.
"""

from datetime import datetime, timedelta, timezone
from typing import Generator, List, Tuple

import pytest
from fastapi.testclient import TestClient

from dashgate.app import create_app
from dashgate.auth.crypto import generate_token
from dashgate.auth.invites import InviteService
from dashgate.auth.otp import OTPService
from dashgate.auth.store import KeyedLock, MemoryRecordStore
from dashgate.auth.users import UserDirectory
from dashgate.config import Settings
from dashgate.errors import DeliveryError


ADMIN_SECRET = "test-admin-secret"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMailer:
    """Records outgoing mail; raises DeliveryError when `fail` is set."""

    def __init__(self):
        self.fail = False
        self.otps: List[Tuple[str, str]] = []
        self.invites: List[Tuple[str, str]] = []

    async def send_otp(self, to_email: str, otp: str, ttl_minutes: int) -> None:
        if self.fail:
            raise DeliveryError()
        self.otps.append((to_email, otp))

    async def send_invite_code(self, to_email: str, code: str, expires_at: datetime) -> None:
        if self.fail:
            raise DeliveryError()
        self.invites.append((to_email, code))


def make_settings(**overrides) -> Settings:
    """Test settings: demo mode, cheap bcrypt, admin secret set."""
    values = dict(
        DEMO_MODE=True,
        SEND_EMAIL=False,
        OTP_HASH_ROUNDS=4,
        ADMIN_SECRET=ADMIN_SECRET,
        ADMIN_EMAIL="admin@company.com",
        DATABASE_URL="",
        LOG_LEVEL="WARNING",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(scope="function")
def settings() -> Settings:
    return make_settings()


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture(scope="function")
def store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture(scope="function")
def users(store, settings) -> UserDirectory:
    directory = UserDirectory(store)
    directory.seed(settings)
    return directory


@pytest.fixture(scope="function")
def locks() -> KeyedLock:
    return KeyedLock()


@pytest.fixture(scope="function")
def otp_service(store, users, settings, mailer, locks, clock) -> OTPService:
    return OTPService(store, users, settings, mailer=mailer, locks=locks, clock=clock)


@pytest.fixture(scope="function")
def invite_service(store, users, settings, mailer, locks, clock) -> InviteService:
    return InviteService(store, users, settings, mailer=mailer, locks=locks, clock=clock)


@pytest.fixture(scope="function")
def app(settings, store, mailer, clock):
    return create_app(settings=settings, store=store, mailer=mailer, clock=clock)


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


def csrf_headers(client: TestClient, cookie_name: str = "XSRF-TOKEN") -> dict:
    """Set a CSRF cookie on the client and return the matching header."""
    token = generate_token()
    client.cookies.set(cookie_name, token)
    return {"X-CSRF-Token": token}


def admin_headers() -> dict:
    return {"Authorization": f"Bearer {ADMIN_SECRET}"}


def wrong_code(otp: str) -> str:
    """A 6-digit code guaranteed to differ from otp."""
    return "000000" if otp != "000000" else "111111"
