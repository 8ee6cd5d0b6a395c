"""
Dashgate - Invitation Service

Invite requests, admin approval workflow, invitation codes and
registration by code redemption.

Invite request lifecycle:
    pending -> approved -> code_sent (resend allowed)
    pending -> denied (terminal)

Security:
- validate_invite never raises: not found, wrong email, used and expired
  all collapse to valid=False so clients cannot tell which one occurred
- Codes are single-use and bound to the email they were issued to
- Redemption of a fresh code clears a permanent OTP lockout
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from dashgate.auth import store as ns
from dashgate.auth.crypto import generate_invite_code, normalize_email
from dashgate.auth.mailer import Mailer
from dashgate.auth.models import (
    InviteCode,
    InviteRequest,
    InviteStatus,
    Role,
    User,
    utcnow,
)
from dashgate.auth.otp import LockoutRegistry, validated_email
from dashgate.auth.store import KeyedLock, RecordStore
from dashgate.auth.users import UserDirectory
from dashgate.config import Settings
from dashgate.errors import (
    DeliveryError,
    InvalidInvite,
    InvalidTransition,
    InviteRequestNotFound,
    RateLimited,
    ValidationError,
)
from dashgate.log import get_logger, log_auth_event

logger = get_logger("invites")


# Static codes available in demo mode (keep in sync with the dashboard demo)
DEMO_INVITES = (
    ("DEMO-ANALYST-2024", "analyst@company.com", Role.ANALYST),
    ("DEMO-VIEWER-2024", "viewer@company.com", Role.VIEWER),
)
DEMO_INVITER = "admin@company.com"
DEMO_INVITE_TTL = timedelta(days=30)


@dataclass
class InviteValidation:
    """Soft result of an invite check; `valid=False` never says why."""
    valid: bool
    role: Optional[Role] = None
    invited_by: Optional[str] = None


@dataclass
class InviteDelivery:
    delivered: bool
    invite_code: Optional[str] = None


class InviteService:
    """
    Invitation workflow.

    Args:
        store: Record store for requests, codes and users
        users: User directory that registration writes to
        settings: TTL, default role, inviter identity, email switches
        mailer: Delivery channel for send_invite_code
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

    # -------------------------------------------------------------------------
    # Invite requests
    # -------------------------------------------------------------------------

    async def request_invite(self, email: str) -> InviteRequest:
        """
        Record a visitor's request for access.

        Repeated requests from one email create independent pending entries.
        MAX_PENDING_INVITE_REQUESTS (when non-zero) caps pending entries per
        email.
        """
        email = validated_email(email)

        async with self.locks.hold(ns.INVITE_REQUESTS, email):
            cap = self.settings.MAX_PENDING_INVITE_REQUESTS
            if cap > 0:
                pending = [
                    r for r in self.list_requests(InviteStatus.PENDING)
                    if r.email == email
                ]
                if len(pending) >= cap:
                    log_auth_event("auth.invite.request_rate_limited", email)
                    raise RateLimited()

            request = InviteRequest(email=email, created_at=self.clock())
            self._save_request(request)

        log_auth_event("auth.invite.requested", email, details={"request_id": request.id})
        return request

    def list_requests(self, status: Optional[InviteStatus] = None) -> List[InviteRequest]:
        """All invite requests, newest first, optionally filtered by status."""
        requests = [
            InviteRequest.model_validate(v)
            for v in self.store.values(ns.INVITE_REQUESTS)
        ]
        if status is not None:
            requests = [r for r in requests if r.status == status]
        return sorted(requests, key=lambda r: r.created_at, reverse=True)

    def get_request(self, request_id: str) -> InviteRequest:
        data = self.store.get(ns.INVITE_REQUESTS, request_id)
        if data is None:
            raise InviteRequestNotFound()
        return InviteRequest.model_validate(data)

    async def approve_invite_request(self, request_id: str) -> InviteCode:
        """
        Approve a pending request and mint its invitation code.

        Raises:
            InviteRequestNotFound: Unknown id
            InvalidTransition: Request is not pending
        """
        async with self.locks.hold(ns.INVITE_REQUESTS, request_id):
            request = self.get_request(request_id)
            if request.status != InviteStatus.PENDING:
                raise InvalidTransition(f"Cannot approve a {request.status.value} request")

            now = self.clock()
            invite = InviteCode(
                code=self._unique_code(),
                email=request.email,
                role=Role(self.settings.DEFAULT_INVITE_ROLE),
                invited_by=self.settings.ADMIN_EMAIL,
                created_at=now,
                expires_at=now + timedelta(minutes=self.settings.INVITE_TTL_MINUTES),
            )
            self._save_code(invite)

            request.status = InviteStatus.APPROVED
            request.approved_at = now
            request.code = invite.code
            request.role = invite.role
            self._save_request(request)

        log_auth_event(
            "auth.invite.approved", request.email,
            details={"request_id": request_id, "role": invite.role.value},
        )
        return invite

    async def deny_invite_request(self, request_id: str) -> InviteRequest:
        async with self.locks.hold(ns.INVITE_REQUESTS, request_id):
            request = self.get_request(request_id)
            if request.status != InviteStatus.PENDING:
                raise InvalidTransition(f"Cannot deny a {request.status.value} request")

            request.status = InviteStatus.DENIED
            request.denied_at = self.clock()
            self._save_request(request)

        log_auth_event("auth.invite.denied", request.email, details={"request_id": request_id})
        return request

    async def send_invite_code(self, request_id: str) -> InviteDelivery:
        """
        Deliver an approved request's code to the requester.

        Without a working mail channel the code is returned so the operator
        can hand it over manually; the request then stays `approved`.
        """
        async with self.locks.hold(ns.INVITE_REQUESTS, request_id):
            request = self.get_request(request_id)
            if request.status not in (InviteStatus.APPROVED, InviteStatus.CODE_SENT):
                raise InvalidTransition(f"Cannot send a code for a {request.status.value} request")

            invite = self._get_code(request.code)
            if invite is None:
                raise InvalidTransition("Request has no invitation code")

            delivered = False
            if self.settings.SEND_EMAIL and self.mailer is not None:
                try:
                    await self.mailer.send_invite_code(request.email, invite.code, invite.expires_at)
                    delivered = True
                except DeliveryError:
                    logger.warning("Invite email for request %s failed; returning code", request_id)

            if delivered:
                request.status = InviteStatus.CODE_SENT
                request.code_sent_at = self.clock()
                self._save_request(request)

        log_auth_event(
            "auth.invite.code_sent" if delivered else "auth.invite.code_manual",
            request.email,
            details={"request_id": request_id},
        )
        return InviteDelivery(
            delivered=delivered,
            invite_code=None if delivered else invite.code,
        )

    # -------------------------------------------------------------------------
    # Codes and registration
    # -------------------------------------------------------------------------

    def validate_invite(self, code: str, email: str) -> InviteValidation:
        """Read-only check; never raises for an unusable code."""
        invite = self._get_code((code or "").strip())
        email = normalize_email(email or "")

        if invite is None or not invite.is_redeemable_by(email, self.clock()):
            return InviteValidation(valid=False)

        return InviteValidation(valid=True, role=invite.role, invited_by=invite.invited_by)

    async def register(self, email: str, name: str, code: str) -> User:
        """
        Redeem an invitation code and create the user.

        A locked-out user who already has an account redeems a re-issued
        code to recover it: the lock is cleared and the stored identity
        (id, role, inviter) is kept unchanged.

        Raises:
            ValidationError: Malformed email or empty name
            InvalidInvite: Code unusable for this email, or email already
                registered and not locked
        """
        email = validated_email(email)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")
        code = (code or "").strip()

        async with self.locks.hold(ns.INVITE_CODES, code):
            async with self.locks.hold(ns.USERS, email):
                validation = self.validate_invite(code, email)
                existing = self.users.get(email)
                recovering = existing is not None and self.lockouts.is_locked(email)
                if not validation.valid or (existing is not None and not recovering):
                    log_auth_event("auth.register.rejected", email)
                    raise InvalidInvite()

                now = self.clock()
                invite = self._get_code(code)
                invite.used = True
                invite.used_at = now
                self._save_code(invite)

                if recovering:
                    existing.last_login = now
                    user = self.users.save(existing)
                else:
                    user = self.users.save(User(
                        email=email,
                        name=name,
                        role=invite.role,
                        invited_by=invite.invited_by,
                        invited_at=now,
                        last_login=now,
                    ))

                if self.lockouts.unlock(email):
                    log_auth_event("auth.account.unlocked", email, details={"code": "redeemed"})

        log_auth_event(
            "auth.register.recovered" if recovering else "auth.register.success", email,
            details={"user_id": user.id, "role": user.role.value},
        )
        return user

    def seed_demo_invites(self) -> None:
        """Install the static demo codes if they are not present yet."""
        now = self.clock()
        for code, email, role in DEMO_INVITES:
            if self._get_code(code) is None:
                self._save_code(InviteCode(
                    code=code,
                    email=email,
                    role=role,
                    invited_by=DEMO_INVITER,
                    created_at=now,
                    expires_at=now + DEMO_INVITE_TTL,
                ))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _unique_code(self) -> str:
        code = generate_invite_code()
        while self._get_code(code) is not None:
            code = generate_invite_code()
        return code

    def _get_code(self, code: Optional[str]) -> Optional[InviteCode]:
        if not code:
            return None
        data = self.store.get(ns.INVITE_CODES, code)
        return InviteCode.model_validate(data) if data else None

    def _save_code(self, invite: InviteCode) -> None:
        self.store.set(ns.INVITE_CODES, invite.code, invite.model_dump(mode="json"))

    def _save_request(self, request: InviteRequest) -> None:
        self.store.set(ns.INVITE_REQUESTS, request.id, request.model_dump(mode="json"))
