"""
Dashgate - Invitation Test Suite

Tests for:
- Invite request lifecycle (pending -> approved -> code_sent, denied)
- Code validation and single-use redemption
- Lockout clearance on registration

Run with: pytest tests/test_invites.py -v
"""

import asyncio

import pytest

from dashgate.auth import store as ns
from dashgate.auth.crypto import is_valid_invite_code_format
from dashgate.auth.invites import InviteService
from dashgate.auth.models import InviteCode, InviteStatus, Role, User
from dashgate.errors import (
    AccountPermanentlyLocked,
    InvalidInvite,
    InvalidOTP,
    InvalidTransition,
    InviteRequestNotFound,
    RateLimited,
    ValidationError,
)
from tests.conftest import make_settings, wrong_code


async def approved_code(invite_service, email="new.hire@company.com"):
    request = await invite_service.request_invite(email)
    invite = await invite_service.approve_invite_request(request.id)
    return request, invite


# =============================================================================
# REQUEST WORKFLOW TESTS
# =============================================================================

class TestInviteRequests:
    """Invite request lifecycle."""

    @pytest.mark.asyncio
    async def test_request_creates_pending_entry(self, invite_service):
        request = await invite_service.request_invite("New.Hire@Company.com")

        stored = invite_service.get_request(request.id)
        assert stored.email == "new.hire@company.com"
        assert stored.status == InviteStatus.PENDING

    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self, invite_service):
        with pytest.raises(ValidationError):
            await invite_service.request_invite("nope")

    @pytest.mark.asyncio
    async def test_duplicate_requests_allowed_by_default(self, invite_service):
        first = await invite_service.request_invite("dup@company.com")
        second = await invite_service.request_invite("dup@company.com")

        assert first.id != second.id
        assert len(invite_service.list_requests(InviteStatus.PENDING)) == 2

    @pytest.mark.asyncio
    async def test_pending_cap(self, store, users, clock):
        settings = make_settings(MAX_PENDING_INVITE_REQUESTS=2)
        service = InviteService(store, users, settings, clock=clock)

        await service.request_invite("dup@company.com")
        await service.request_invite("dup@company.com")
        with pytest.raises(RateLimited):
            await service.request_invite("dup@company.com")

        # Other emails are unaffected
        await service.request_invite("other@company.com")

    @pytest.mark.asyncio
    async def test_list_newest_first(self, invite_service, clock):
        older = await invite_service.request_invite("a@company.com")
        clock.advance(minutes=1)
        newer = await invite_service.request_invite("b@company.com")

        assert [r.id for r in invite_service.list_requests()] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_approve_issues_valid_code(self, invite_service, clock):
        """Approved code is well-formed and validates for the requester."""
        request, invite = await approved_code(invite_service)

        assert invite.code
        assert is_valid_invite_code_format(invite.code)
        assert invite.role == Role.VIEWER
        assert invite.invited_by == "admin@company.com"

        result = invite_service.validate_invite(invite.code, request.email)
        assert result.valid is True
        assert result.role == Role.VIEWER

        stored = invite_service.get_request(request.id)
        assert stored.status == InviteStatus.APPROVED
        assert stored.code == invite.code
        assert stored.approved_at == clock.now

    @pytest.mark.asyncio
    async def test_approve_unknown_request(self, invite_service):
        with pytest.raises(InviteRequestNotFound):
            await invite_service.approve_invite_request("missing")

    @pytest.mark.asyncio
    async def test_approve_twice_rejected(self, invite_service):
        request, _ = await approved_code(invite_service)

        with pytest.raises(InvalidTransition):
            await invite_service.approve_invite_request(request.id)

    @pytest.mark.asyncio
    async def test_deny_is_terminal(self, invite_service):
        request = await invite_service.request_invite("spam@company.com")
        await invite_service.deny_invite_request(request.id)

        assert invite_service.get_request(request.id).status == InviteStatus.DENIED
        with pytest.raises(InvalidTransition):
            await invite_service.approve_invite_request(request.id)
        with pytest.raises(InvalidTransition):
            await invite_service.deny_invite_request(request.id)

    @pytest.mark.asyncio
    async def test_cannot_deny_approved(self, invite_service):
        request, _ = await approved_code(invite_service)

        with pytest.raises(InvalidTransition):
            await invite_service.deny_invite_request(request.id)


class TestSendInviteCode:
    """Code delivery for approved requests."""

    @pytest.mark.asyncio
    async def test_without_email_returns_code(self, invite_service):
        request, invite = await approved_code(invite_service)

        delivery = await invite_service.send_invite_code(request.id)

        assert delivery.delivered is False
        assert delivery.invite_code == invite.code
        assert invite_service.get_request(request.id).status == InviteStatus.APPROVED

    @pytest.mark.asyncio
    async def test_with_email_marks_code_sent(self, store, users, mailer, clock):
        service = InviteService(store, users, make_settings(SEND_EMAIL=True), mailer=mailer, clock=clock)
        request, invite = await approved_code(service)

        delivery = await service.send_invite_code(request.id)

        assert delivery.delivered is True
        assert delivery.invite_code is None
        assert mailer.invites == [(request.email, invite.code)]
        assert service.get_request(request.id).status == InviteStatus.CODE_SENT

        # Resend is allowed
        await service.send_invite_code(request.id)
        assert len(mailer.invites) == 2

    @pytest.mark.asyncio
    async def test_mail_failure_returns_code(self, store, users, mailer, clock):
        service = InviteService(store, users, make_settings(SEND_EMAIL=True), mailer=mailer, clock=clock)
        request, invite = await approved_code(service)
        mailer.fail = True

        delivery = await service.send_invite_code(request.id)

        assert delivery.delivered is False
        assert delivery.invite_code == invite.code

    @pytest.mark.asyncio
    async def test_pending_request_has_no_code(self, invite_service):
        request = await invite_service.request_invite("early@company.com")

        with pytest.raises(InvalidTransition):
            await invite_service.send_invite_code(request.id)


# =============================================================================
# VALIDATION AND REGISTRATION TESTS
# =============================================================================

class TestValidateInvite:
    """Soft validation never raises."""

    @pytest.mark.asyncio
    async def test_wrong_email_is_invalid(self, invite_service):
        _, invite = await approved_code(invite_service)

        assert invite_service.validate_invite(invite.code, "someone.else@company.com").valid is False

    def test_unknown_code_is_invalid(self, invite_service):
        result = invite_service.validate_invite("INV-AAAA-BBBB", "a@company.com")

        assert result.valid is False
        assert result.role is None

    @pytest.mark.asyncio
    async def test_expired_code_is_invalid(self, invite_service, clock):
        request, invite = await approved_code(invite_service)
        clock.advance(minutes=61)

        assert invite_service.validate_invite(invite.code, request.email).valid is False

    @pytest.mark.asyncio
    async def test_email_case_is_ignored(self, invite_service):
        _, invite = await approved_code(invite_service, "case@company.com")

        assert invite_service.validate_invite(invite.code, "CASE@Company.com").valid is True

    def test_demo_codes_seeded(self, invite_service):
        invite_service.seed_demo_invites()

        result = invite_service.validate_invite("DEMO-ANALYST-2024", "analyst@company.com")
        assert result.valid is True
        assert result.role == Role.ANALYST


class TestRegister:
    """Invitation redemption."""

    @pytest.mark.asyncio
    async def test_register_creates_user(self, invite_service, users):
        request, invite = await approved_code(invite_service)

        user = await invite_service.register(request.email, "New Hire", invite.code)

        assert user.email == request.email
        assert user.name == "New Hire"
        assert user.role == invite.role
        assert user.invited_by == "admin@company.com"
        assert users.get(request.email).id == user.id

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, invite_service):
        request, invite = await approved_code(invite_service)
        await invite_service.register(request.email, "New Hire", invite.code)

        with pytest.raises(InvalidInvite):
            await invite_service.register(request.email, "New Hire", invite.code)

        assert invite_service.validate_invite(invite.code, request.email).valid is False

    @pytest.mark.asyncio
    async def test_wrong_email_cannot_redeem(self, invite_service):
        _, invite = await approved_code(invite_service)

        with pytest.raises(InvalidInvite):
            await invite_service.register("thief@company.com", "Thief", invite.code)

        # Rejection leaves the code usable by its owner
        assert invite_service.validate_invite(invite.code, "new.hire@company.com").valid is True

    @pytest.mark.asyncio
    async def test_existing_user_cannot_register_again(self, invite_service):
        request = await invite_service.request_invite("admin@company.com")
        invite = await invite_service.approve_invite_request(request.id)

        with pytest.raises(InvalidInvite):
            await invite_service.register("admin@company.com", "Admin Again", invite.code)

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, invite_service):
        request, invite = await approved_code(invite_service)

        with pytest.raises(ValidationError):
            await invite_service.register(request.email, "   ", invite.code)

    @pytest.mark.asyncio
    async def test_registration_clears_lockout(self, otp_service, invite_service):
        """A fresh invitation is the way back from a permanent lockout."""
        email = "locked.out@company.com"
        issue = await otp_service.request_otp(email)
        for _ in range(2):
            with pytest.raises(InvalidOTP):
                await otp_service.verify_otp(email, wrong_code(issue.otp))
        with pytest.raises(AccountPermanentlyLocked):
            await otp_service.verify_otp(email, wrong_code(issue.otp))

        _, invite = await approved_code(invite_service, email)
        await invite_service.register(email, "Locked Out", invite.code)

        assert not otp_service.lockouts.is_locked(email)
        retry = await otp_service.request_otp(email)
        user = await otp_service.verify_otp(email, retry.otp)
        assert user.name == "Locked Out"

    @pytest.mark.asyncio
    async def test_locked_registered_user_recovers_with_new_invite(self, otp_service, invite_service, users):
        """Re-issuing an invite to a locked account unlocks it and keeps the identity."""
        email = "analyst@company.com"
        invite_service.seed_demo_invites()
        original = await invite_service.register(email, "Ann Analyst", "DEMO-ANALYST-2024")

        issue = await otp_service.request_otp(email)
        for _ in range(2):
            with pytest.raises(InvalidOTP):
                await otp_service.verify_otp(email, wrong_code(issue.otp))
        with pytest.raises(AccountPermanentlyLocked):
            await otp_service.verify_otp(email, wrong_code(issue.otp))

        _, invite = await approved_code(invite_service, email)
        recovered = await invite_service.register(email, "Someone Else", invite.code)

        assert recovered.id == original.id
        assert recovered.role == Role.ANALYST
        assert recovered.name == "Ann Analyst"
        assert not otp_service.lockouts.is_locked(email)
        assert invite_service.validate_invite(invite.code, email).valid is False
        assert users.get(email).role == Role.ANALYST

        retry = await otp_service.request_otp(email)
        user = await otp_service.verify_otp(email, retry.otp)
        assert user.id == original.id

    @pytest.mark.asyncio
    async def test_unlocked_registered_user_cannot_redeem(self, invite_service):
        invite_service.seed_demo_invites()
        await invite_service.register("analyst@company.com", "Ann Analyst", "DEMO-ANALYST-2024")
        _, invite = await approved_code(invite_service, "analyst@company.com")

        with pytest.raises(InvalidInvite):
            await invite_service.register("analyst@company.com", "Ann Analyst", invite.code)

        assert invite_service.validate_invite(invite.code, "analyst@company.com").valid is True


# =============================================================================
# CONCURRENCY TESTS
# =============================================================================

class TestConcurrentInvites:
    """Same-key operations are serialized."""

    @pytest.mark.asyncio
    async def test_parallel_approvals_issue_one_code(self, invite_service, store):
        request = await invite_service.request_invite("race@company.com")

        results = await asyncio.gather(
            invite_service.approve_invite_request(request.id),
            invite_service.approve_invite_request(request.id),
            return_exceptions=True,
        )

        codes = [r for r in results if isinstance(r, InviteCode)]
        conflicts = [r for r in results if isinstance(r, InvalidTransition)]
        assert len(codes) == 1
        assert len(conflicts) == 1
        assert len(store.values(ns.INVITE_CODES)) == 1
        assert invite_service.get_request(request.id).code == codes[0].code

    @pytest.mark.asyncio
    async def test_parallel_redemptions_create_one_user(self, invite_service):
        request, invite = await approved_code(invite_service)

        results = await asyncio.gather(
            invite_service.register(request.email, "New Hire", invite.code),
            invite_service.register(request.email, "New Hire", invite.code),
            return_exceptions=True,
        )

        assert len([r for r in results if isinstance(r, User)]) == 1
        assert len([r for r in results if isinstance(r, InvalidInvite)]) == 1
