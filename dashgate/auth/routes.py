"""
Dashgate - Authentication Routes

Public endpoints for passwordless login and invitation-gated registration:
- POST /auth/request-otp      - Issue a one-time password
- POST /auth/verify-otp       - Exchange an OTP for the user
- POST /auth/validate-invite  - Soft check of an invitation code
- POST /auth/register         - Redeem an invitation code
- POST /auth/request-invite   - Ask an administrator for access

All state-changing calls pass the CSRF double-submit check first.
Failures are raised as DashgateError and rendered by the app's handlers.
"""

from fastapi import APIRouter, Depends

from dashgate.auth.dependencies import get_invite_service, get_otp_service
from dashgate.auth.invites import InviteService
from dashgate.auth.otp import OTPService
from dashgate.auth.schemas import (
    ErrorResponse,
    RegisterRequest,
    RequestInviteRequest,
    RequestInviteResponse,
    RequestOTPRequest,
    RequestOTPResponse,
    UserOut,
    UserResponse,
    ValidateInviteRequest,
    ValidateInviteResponse,
    VerifyOTPRequest,
)


router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post(
    "/request-otp",
    response_model=RequestOTPResponse,
    response_model_exclude_none=True,
    responses={423: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Issue a one-time password",
)
async def request_otp(
    body: RequestOTPRequest,
    otp_service: OTPService = Depends(get_otp_service),
):
    """
    Generate a 6-digit OTP for the email.

    In demo mode the code is returned in the response; otherwise it is only
    emailed.
    """
    issue = await otp_service.request_otp(body.email)
    return RequestOTPResponse(
        otp=issue.otp,
        is_demo_mode=issue.is_demo_mode,
        delivered=issue.delivered,
    )


@router.post(
    "/verify-otp",
    response_model=UserResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
    },
    summary="Verify a one-time password",
)
async def verify_otp(
    body: VerifyOTPRequest,
    otp_service: OTPService = Depends(get_otp_service),
):
    """
    Verify the OTP and return the authenticated user.

    Raises:
        401: Wrong code (with attemptsRemaining) or expired code
        423: Account permanently locked
    """
    user = await otp_service.verify_otp(body.email, body.otp)
    return UserResponse(user=UserOut(**user.model_dump()))


@router.post(
    "/validate-invite",
    response_model=ValidateInviteResponse,
    response_model_exclude_none=True,
    summary="Check an invitation code",
)
async def validate_invite(
    body: ValidateInviteRequest,
    invite_service: InviteService = Depends(get_invite_service),
):
    result = invite_service.validate_invite(body.invite_code, body.email)
    return ValidateInviteResponse(
        valid=result.valid,
        role=result.role,
        invited_by=result.invited_by,
    )


@router.post(
    "/register",
    response_model=UserResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Register with an invitation code",
)
async def register(
    body: RegisterRequest,
    invite_service: InviteService = Depends(get_invite_service),
):
    """
    Redeem the invitation code and create the user.

    Every unusable code yields the same 400 "Invalid invitation code".
    """
    user = await invite_service.register(body.email, body.name, body.invite_code)
    return UserResponse(user=UserOut(**user.model_dump()))


@router.post(
    "/request-invite",
    response_model=RequestInviteResponse,
    summary="Request an invitation",
)
async def request_invite(
    body: RequestInviteRequest,
    invite_service: InviteService = Depends(get_invite_service),
):
    request = await invite_service.request_invite(body.email)
    return RequestInviteResponse(request_id=request.id)
