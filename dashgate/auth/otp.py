"""
Dashgate - OTP Service

Issues and verifies one-time passwords with a permanent lockout policy.

Flow:
1. request_otp stores a bcrypt hash of a fresh 6-digit code (10 min TTL)
2. The code is mailed, or returned directly in demo mode
3. verify_otp checks the candidate in constant time
4. OTP_MAX_ATTEMPTS wrong submissions lock the email permanently

Security:
- The attempt counter survives re-requests, so asking for a new code
  never resets progress towards lockout
- Lockout is terminal until an administrator issues a new invitation
- Read-modify-write on a record runs under a per-email lock because
  hashing is moved off the event loop
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from dashgate.auth import store as ns
from dashgate.auth.crypto import (
    generate_otp,
    hash_otp,
    is_valid_email,
    normalize_email,
    verify_otp_hash,
)
from dashgate.auth.mailer import Mailer
from dashgate.auth.models import LockedAccount, OTPRecord, Role, User, utcnow
from dashgate.auth.store import KeyedLock, RecordStore
from dashgate.auth.users import DEMO_EMAIL, UserDirectory
from dashgate.config import Settings
from dashgate.errors import (
    AccountLocked,
    AccountPermanentlyLocked,
    DeliveryError,
    InvalidOTP,
    OTPExpired,
    OTPNotFound,
    RegistrationRequired,
    ValidationError,
)
from dashgate.log import get_logger, log_auth_event

logger = get_logger("otp")


@dataclass
class OTPIssue:
    """Outcome of an OTP request."""
    delivered: bool
    is_demo_mode: bool
    otp: Optional[str] = None


class LockoutRegistry:
    """
    The Permanently-Locked Set.

    Append-only from the OTP flow; only invitation redemption removes entries.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def is_locked(self, email: str) -> bool:
        return self.store.get(ns.LOCKED, email) is not None

    def lock(self, email: str, now: datetime) -> None:
        if not self.is_locked(email):
            record = LockedAccount(email=email, locked_at=now)
            self.store.set(ns.LOCKED, email, record.model_dump(mode="json"))

    def unlock(self, email: str) -> bool:
        return self.store.delete(ns.LOCKED, email)

    def all(self) -> List[LockedAccount]:
        records = [LockedAccount.model_validate(v) for v in self.store.values(ns.LOCKED)]
        return sorted(records, key=lambda r: r.locked_at)


def validated_email(email: str) -> str:
    normalized = normalize_email(email or "")
    if not is_valid_email(normalized):
        raise ValidationError("Valid email is required")
    return normalized


class OTPService:
    """
    OTP issuance and verification.

    Args:
        store: Record store holding OTP records and the locked set
        users: Directory used to resolve verified emails to users
        settings: Policy switches (TTL, attempts, demo mode, email)
        mailer: Delivery channel; required when SEND_EMAIL is on
        locks: Shared per-key lock registry
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        store: RecordStore,
        users: UserDirectory,
        settings: Settings,
        mailer: Optional[Mailer] = None,
        locks: Optional[KeyedLock] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.users = users
        self.settings = settings
        self.mailer = mailer
        self.locks = locks or KeyedLock()
        self.clock = clock
        self.lockouts = LockoutRegistry(store)

    async def request_otp(self, email: str) -> OTPIssue:
        """
        Issue a new OTP for an email, replacing any live one.

        Raises:
            ValidationError: Malformed email
            AccountLocked: Email is in the locked set
            DeliveryError: Mail channel failed (or none exists) outside demo mode
        """
        email = validated_email(email)
        demo = self.settings.DEMO_MODE

        async with self.locks.hold(ns.OTP, email):
            if self.lockouts.is_locked(email):
                log_auth_event("auth.otp.rejected_locked", email)
                raise AccountLocked()

            otp = generate_otp()
            otp_hash, salt = await asyncio.to_thread(
                hash_otp, otp, self.settings.OTP_HASH_ROUNDS
            )
            now = self.clock()

            previous_data = self.store.get(ns.OTP, email)
            attempts = 0
            if previous_data:
                previous = OTPRecord.model_validate(previous_data)
                if not previous.is_expired(now):
                    attempts = previous.attempts

            record = OTPRecord(
                email=email,
                otp_hash=otp_hash,
                salt=salt,
                expires_at=now + timedelta(minutes=self.settings.OTP_TTL_MINUTES),
                attempts=attempts,
            )
            self.store.set(ns.OTP, email, record.model_dump(mode="json"))

            try:
                issue = await self._deliver(email, otp)
            except DeliveryError:
                # Roll back so a failed send cannot replace a deliverable code
                if previous_data:
                    self.store.set(ns.OTP, email, previous_data)
                else:
                    self.store.delete(ns.OTP, email)
                raise

        if demo:
            logger.debug("Demo OTP for %s: %s", email, otp)
        log_auth_event(
            "auth.otp.requested", email,
            details={"delivered": issue.delivered, "demo": demo, "attempts": attempts},
        )
        return issue

    async def _deliver(self, email: str, otp: str) -> OTPIssue:
        demo = self.settings.DEMO_MODE

        if not self.settings.SEND_EMAIL:
            if not demo:
                logger.error("OTP requested but email delivery is disabled and demo mode is off")
                raise DeliveryError("No delivery channel is configured")
            return OTPIssue(otp=otp, delivered=False, is_demo_mode=True)

        try:
            if self.mailer is None:
                raise DeliveryError("Email delivery is not configured")
            await self.mailer.send_otp(email, otp, self.settings.OTP_TTL_MINUTES)
        except DeliveryError:
            if not demo:
                raise
            logger.warning("OTP email to %s failed; falling back to demo response", email)
            return OTPIssue(otp=otp, delivered=False, is_demo_mode=True)

        # In email mode, do not expose the OTP unless also in demo mode
        return OTPIssue(otp=otp if demo else None, delivered=True, is_demo_mode=demo)

    async def verify_otp(self, email: str, candidate: str) -> User:
        """
        Verify a candidate OTP and resolve the user.

        Returns:
            The verified User with last_login stamped

        Raises:
            AccountPermanentlyLocked: Email locked now or earlier (terminal)
            OTPNotFound: No live record (never issued, consumed or locked out)
            OTPExpired: Record expired; it is deleted by this check
            InvalidOTP: Wrong code, with attempts remaining
            RegistrationRequired: Unknown identity outside demo mode
        """
        email = validated_email(email)

        async with self.locks.hold(ns.OTP, email):
            if self.lockouts.is_locked(email):
                log_auth_event("auth.otp.rejected_locked", email)
                raise AccountPermanentlyLocked()

            data = self.store.get(ns.OTP, email)
            if data is None:
                raise OTPNotFound()

            record = OTPRecord.model_validate(data)
            now = self.clock()

            if record.is_expired(now):
                self.store.delete(ns.OTP, email)
                log_auth_event("auth.otp.expired", email)
                raise OTPExpired()

            matched = await asyncio.to_thread(
                verify_otp_hash, candidate or "", record.otp_hash, record.salt
            )

            if not matched:
                record.attempts += 1
                if record.attempts >= self.settings.OTP_MAX_ATTEMPTS:
                    self.lockouts.lock(email, now)
                    self.store.delete(ns.OTP, email)
                    log_auth_event(
                        "auth.account.locked", email,
                        details={"attempts": record.attempts},
                    )
                    raise AccountPermanentlyLocked()

                self.store.set(ns.OTP, email, record.model_dump(mode="json"))
                remaining = self.settings.OTP_MAX_ATTEMPTS - record.attempts
                log_auth_event(
                    "auth.otp.failed", email,
                    details={"attempts": record.attempts, "remaining": remaining},
                )
                raise InvalidOTP(remaining)

            self.store.delete(ns.OTP, email)
            user = self._resolve_user(email, now)

        log_auth_event("auth.otp.verified", email, details={"user_id": user.id})
        return user

    def _resolve_user(self, email: str, now: datetime) -> User:
        user = self.users.get(email)
        if user is None:
            if not self.settings.DEMO_MODE:
                raise RegistrationRequired()
            user = User(
                email=email,
                name="Demo User" if email == DEMO_EMAIL else email.split("@")[0],
                role=Role.DEMO,
                invited_by="system",
                invited_at=now,
            )
        user.last_login = now
        return self.users.save(user)
