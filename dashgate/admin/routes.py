"""
Dashgate - Admin API Routes

Operator endpoints for the invitation workflow:
- Invite request listing, approval, denial and code delivery
- Locked account visibility

All routes require the admin credential (see require_admin).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from dashgate.auth.dependencies import get_invite_service, get_otp_service, require_admin
from dashgate.auth.invites import InviteService
from dashgate.auth.models import InviteStatus
from dashgate.auth.otp import OTPService
from dashgate.auth.schemas import (
    ApproveResponse,
    ErrorResponse,
    InviteRequestListResponse,
    InviteRequestOut,
    LockedAccountListResponse,
    LockedAccountOut,
    SendCodeResponse,
    SuccessResponse,
)


router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Invite Request Endpoints
# =============================================================================

@router.get(
    "/invite-requests",
    response_model=InviteRequestListResponse,
    summary="List invite requests",
)
async def list_invite_requests(
    status: Optional[InviteStatus] = Query(None, description="Filter by status"),
    invite_service: InviteService = Depends(get_invite_service),
    admin: str = Depends(require_admin),
):
    requests = invite_service.list_requests(status)
    return InviteRequestListResponse(
        requests=[InviteRequestOut(**r.model_dump()) for r in requests]
    )


@router.post(
    "/invite-requests/{request_id}/approve",
    response_model=ApproveResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Approve an invite request",
)
async def approve_invite_request(
    request_id: str = Path(..., description="Invite request ID"),
    invite_service: InviteService = Depends(get_invite_service),
    admin: str = Depends(require_admin),
):
    """
    Approve a pending request.

    Returns the generated invitation code for the admin to distribute.
    """
    invite = await invite_service.approve_invite_request(request_id)
    return ApproveResponse(code=invite.code)


@router.post(
    "/invite-requests/{request_id}/deny",
    response_model=SuccessResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Deny an invite request",
)
async def deny_invite_request(
    request_id: str = Path(..., description="Invite request ID"),
    invite_service: InviteService = Depends(get_invite_service),
    admin: str = Depends(require_admin),
):
    await invite_service.deny_invite_request(request_id)
    return SuccessResponse()


@router.post(
    "/invite-requests/{request_id}/send-code",
    response_model=SendCodeResponse,
    response_model_exclude_none=True,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Send the invitation code to the requester",
)
async def send_invite_code(
    request_id: str = Path(..., description="Invite request ID"),
    invite_service: InviteService = Depends(get_invite_service),
    admin: str = Depends(require_admin),
):
    """
    Email the code for an approved request.

    If email is not configured, the code is returned for manual delivery.
    """
    delivery = await invite_service.send_invite_code(request_id)
    return SendCodeResponse(
        delivered=delivery.delivered,
        invite_code=delivery.invite_code,
    )


# =============================================================================
# Lockout Endpoints
# =============================================================================

@router.get(
    "/locked-accounts",
    response_model=LockedAccountListResponse,
    summary="List permanently locked accounts",
)
async def list_locked_accounts(
    otp_service: OTPService = Depends(get_otp_service),
    admin: str = Depends(require_admin),
):
    accounts = otp_service.lockouts.all()
    return LockedAccountListResponse(
        accounts=[LockedAccountOut(**a.model_dump()) for a in accounts]
    )
