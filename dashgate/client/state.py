"""
Dashgate - Auth State Machine

Client-side owner of "is this session authenticated". Replaces loose
boolean flags with one enumerated step and an explicit transition table.

Steps:
    hydrating -> authenticated | anonymous
    anonymous -> otp_requested -> authenticated
    anonymous -> register_pending -> authenticated
    any (except hydrating) --logout--> anonymous

Errors are an overlay: a failure records AuthFailure without changing the
step, so a wrong OTP keeps the user on the OTP-entry screen.

Concurrency:
- Single-threaded cooperative (asyncio)
- One action at a time; overlapping submits raise ActionInProgress
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, FrozenSet, Optional, Tuple, Union

from dashgate.auth.models import Role, User
from dashgate.client.api import AuthAPIClient, InviteCheck, OTPRequestResult
from dashgate.client.storage import PlainStorage, SecureStorage
from dashgate.errors import (
    AccountLocked,
    ActionInProgress,
    DashgateError,
    InvalidInvite,
    InvalidOTP,
    InvalidTransition,
)
from dashgate.log import get_logger

logger = get_logger("client.state")


USER_KEY = "user"
AUTH_MARKER_KEY = "authToken"


class AuthStep(str, Enum):
    HYDRATING = "hydrating"
    ANONYMOUS = "anonymous"
    OTP_REQUESTED = "otp_requested"
    REGISTER_PENDING = "register_pending"
    AUTHENTICATED = "authenticated"


class AuthEvent(str, Enum):
    HYDRATED = "hydrated"
    HYDRATE_FAILED = "hydrate_failed"
    OTP_REQUESTED = "otp_requested"
    OTP_VERIFIED = "otp_verified"
    RESET_OTP = "reset_otp"
    INVITE_VALIDATED = "invite_validated"
    REGISTERED = "registered"
    LOGOUT = "logout"


class ModalStep(str, Enum):
    CHOOSE = "choose"
    LOGIN = "login"
    OTP = "otp"
    REGISTER = "register"


_ANY_SETTLED: FrozenSet[AuthStep] = frozenset(AuthStep) - {AuthStep.HYDRATING}

# event -> (allowed source steps, target step)
TRANSITIONS: Dict[AuthEvent, Tuple[FrozenSet[AuthStep], AuthStep]] = {
    AuthEvent.HYDRATED: (frozenset({AuthStep.HYDRATING}), AuthStep.AUTHENTICATED),
    AuthEvent.HYDRATE_FAILED: (frozenset({AuthStep.HYDRATING}), AuthStep.ANONYMOUS),
    AuthEvent.OTP_REQUESTED: (
        frozenset({AuthStep.ANONYMOUS, AuthStep.OTP_REQUESTED}),
        AuthStep.OTP_REQUESTED,
    ),
    AuthEvent.OTP_VERIFIED: (frozenset({AuthStep.OTP_REQUESTED}), AuthStep.AUTHENTICATED),
    AuthEvent.RESET_OTP: (frozenset({AuthStep.OTP_REQUESTED}), AuthStep.ANONYMOUS),
    AuthEvent.INVITE_VALIDATED: (
        frozenset({AuthStep.ANONYMOUS, AuthStep.REGISTER_PENDING}),
        AuthStep.REGISTER_PENDING,
    ),
    AuthEvent.REGISTERED: (frozenset({AuthStep.REGISTER_PENDING}), AuthStep.AUTHENTICATED),
    AuthEvent.LOGOUT: (_ANY_SETTLED, AuthStep.ANONYMOUS),
}


@dataclass
class AuthFailure:
    """
    Error overlay shown next to the current step.

    Attributes:
        code: Machine code from dashgate.errors
        message: User-facing message
        retryable: False for permanent lockout (contact an administrator)
        attempts_remaining: Set for wrong-OTP failures
    """
    code: str
    message: str
    retryable: bool = True
    attempts_remaining: Optional[int] = None

    @classmethod
    def from_error(cls, error: DashgateError) -> "AuthFailure":
        return cls(
            code=error.code,
            message=error.message,
            retryable=not isinstance(error, AccountLocked),
            attempts_remaining=error.attempts_remaining if isinstance(error, InvalidOTP) else None,
        )


class AuthStateMachine:
    """
    Drives login and registration against the auth API.

    Args:
        api: Auth API client (its CSRF manager is rotated/cleared here)
        storage: Secure (or plain fallback) client storage
    """

    def __init__(self, api: AuthAPIClient, storage: Union[SecureStorage, PlainStorage]):
        self.api = api
        self.storage = storage

        self.step = AuthStep.HYDRATING
        self.user: Optional[User] = None
        self.error: Optional[AuthFailure] = None
        self.otp_email: Optional[str] = None
        self.pending_invite: Optional[Tuple[str, str]] = None  # (email, code)
        self.last_otp: Optional[OTPRequestResult] = None

        self.modal_open = False
        self.modal_step = ModalStep.CHOOSE

        self._busy = False

    # -------------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.step == AuthStep.AUTHENTICATED

    @property
    def is_loading(self) -> bool:
        return self.step == AuthStep.HYDRATING or self._busy

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def is_demo(self) -> bool:
        return self.user is not None and self.user.role == Role.DEMO

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def hydrate(self) -> AuthStep:
        """
        Restore an authenticated session from storage without credentials.

        The stored auth marker must reference the stored user's id; anything
        else wipes storage and settles on anonymous.
        """
        if self.step != AuthStep.HYDRATING:
            raise InvalidTransition("Session already hydrated")

        user = None
        data = self.storage.get(USER_KEY)
        marker = self.storage.get(AUTH_MARKER_KEY)
        if data is not None:
            try:
                user = User.model_validate(data)
            except ValueError:
                user = None

        if user is not None and marker == self._marker_for(user):
            self.user = user
            self._transition(AuthEvent.HYDRATED)
            logger.info("Session restored for %s", user.email)
        else:
            if data is not None or marker is not None:
                logger.warning("Stored session failed validation; wiping")
                self.storage.wipe_all()
            self._transition(AuthEvent.HYDRATE_FAILED)
        return self.step

    async def request_otp(self, email: str) -> OTPRequestResult:
        self._require(AuthEvent.OTP_REQUESTED)
        async with self._action():
            result = await self.api.request_otp(email)
            self.otp_email = email.strip().lower()
            self.last_otp = result
            self._transition(AuthEvent.OTP_REQUESTED)
            self.modal_step = ModalStep.OTP
            return result

    async def verify_otp(self, otp: str) -> User:
        self._require(AuthEvent.OTP_VERIFIED)
        async with self._action():
            user = await self.api.verify_otp(self.otp_email, otp)
            self._enter_authenticated(user, AuthEvent.OTP_VERIFIED)
            return user

    def reset_otp(self) -> None:
        """Back out of OTP entry (e.g. "use a different email")."""
        self._transition(AuthEvent.RESET_OTP)
        self.otp_email = None
        self.last_otp = None
        self.error = None
        self.modal_step = ModalStep.LOGIN

    async def request_invite(self, email: str) -> str:
        """Ask for an invitation. Side effect only; no step change."""
        async with self._action():
            return await self.api.request_invite(email)

    async def validate_invite(self, invite_code: str, email: str) -> InviteCheck:
        self._require(AuthEvent.INVITE_VALIDATED)
        async with self._action():
            return await self._validate_invite(invite_code, email)

    async def register(self, email: str, name: str, invite_code: str) -> User:
        """
        Validate the invite, then redeem it, as one action.

        Goes anonymous -> register_pending -> authenticated; an invalid code
        leaves the step unchanged with a generic error.
        """
        pending = (email.strip().lower(), invite_code.strip())
        needs_validation = self.step != AuthStep.REGISTER_PENDING or self.pending_invite != pending
        if needs_validation:
            self._require(AuthEvent.INVITE_VALIDATED)

        async with self._action():
            if needs_validation:
                await self._validate_invite(invite_code, email)
            user = await self.api.register(email, name, invite_code)
            self._enter_authenticated(user, AuthEvent.REGISTERED)
            return user

    def logout(self) -> None:
        self._transition(AuthEvent.LOGOUT)
        self.storage.wipe_all()
        self.api.csrf.clear()
        self.user = None
        self.error = None
        self.otp_email = None
        self.pending_invite = None
        self.last_otp = None
        logger.info("Logged out")

    def clear_error(self) -> None:
        self.error = None

    def open_auth_modal(self, step: ModalStep = ModalStep.CHOOSE) -> None:
        self.modal_open = True
        self.modal_step = ModalStep(step)

    def close_auth_modal(self) -> None:
        self.modal_open = False

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _marker_for(user: User) -> str:
        return f"token-{user.id}"

    def _enter_authenticated(self, user: User, event: AuthEvent) -> None:
        self._transition(event)
        self.user = user
        self.storage.put(USER_KEY, user.model_dump(mode="json"))
        self.storage.put(AUTH_MARKER_KEY, self._marker_for(user))
        self.api.csrf.rotate()
        self.otp_email = None
        self.pending_invite = None
        self.close_auth_modal()
        logger.info("Authenticated %s (%s)", user.email, user.role.value)

    async def _validate_invite(self, invite_code: str, email: str) -> InviteCheck:
        check = await self.api.validate_invite(invite_code, email)
        if not check.valid:
            raise InvalidInvite()
        self.pending_invite = (email.strip().lower(), invite_code.strip())
        self._transition(AuthEvent.INVITE_VALIDATED)
        self.modal_step = ModalStep.REGISTER
        return check

    def _require(self, event: AuthEvent) -> None:
        sources, _ = TRANSITIONS[event]
        if self.step not in sources:
            raise InvalidTransition(f"Cannot {event.value} from {self.step.value}")

    def _transition(self, event: AuthEvent) -> None:
        self._require(event)
        _, target = TRANSITIONS[event]
        logger.debug("%s: %s -> %s", event.value, self.step.value, target.value)
        self.step = target

    @asynccontextmanager
    async def _action(self) -> AsyncIterator[None]:
        """Serialize actions and record failures on the error overlay."""
        if self._busy:
            raise ActionInProgress()
        self._busy = True
        self.error = None
        try:
            yield
        except DashgateError as e:
            self.error = AuthFailure.from_error(e)
            raise
        finally:
            self._busy = False
