"""
Dashgate - Request Dependencies

FastAPI dependencies resolving the services attached to the application
and guarding the operator-facing admin surface.

Usage:
    @router.post("/approve")
    async def approve(
        invites: InviteService = Depends(get_invite_service),
        admin: str = Depends(require_admin),
    ):
        ...

Security:
- Admin access uses a shared secret, not session cookies
- The secret comparison is constant-time
- The allow-listed identity header is honored only in demo mode
"""

from typing import Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from dashgate.auth.crypto import constant_time_equals, normalize_email
from dashgate.auth.invites import InviteService
from dashgate.auth.otp import OTPService
from dashgate.config import Settings
from dashgate.errors import AdminAuthError, AdminNotConfigured
from dashgate.log import log_auth_event


# HTTP Bearer scheme for the admin secret
security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_otp_service(request: Request) -> OTPService:
    return request.app.state.otp_service


def get_invite_service(request: Request) -> InviteService:
    return request.app.state.invite_service


async def require_admin(
    settings: Settings = Depends(get_settings),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    admin_secret: Optional[str] = Header(None, alias="X-Admin-Secret"),
    admin_email: Optional[str] = Header(None, alias="X-Admin-Email"),
) -> str:
    """
    Authorize an admin API call.

    Accepts, in order:
    1. Authorization: Bearer <ADMIN_SECRET>
    2. X-Admin-Secret: <ADMIN_SECRET>
    3. X-Admin-Email: <ADMIN_EMAIL> (demo mode only)

    Returns:
        The operator identity the call is attributed to

    Raises:
        AdminNotConfigured: No secret set and demo identity unavailable
        AdminAuthError: Credential missing or wrong
    """
    presented = credentials.credentials if credentials else admin_secret
    demo_identity_allowed = settings.DEMO_MODE and bool(settings.ADMIN_EMAIL)

    if not settings.ADMIN_SECRET and not demo_identity_allowed:
        raise AdminNotConfigured()

    if presented and settings.ADMIN_SECRET:
        if constant_time_equals(presented, settings.ADMIN_SECRET):
            return settings.ADMIN_EMAIL
        log_auth_event("auth.admin.denied", details={"reason": "bad_secret"})
        raise AdminAuthError()

    if admin_email and demo_identity_allowed:
        if normalize_email(admin_email) == normalize_email(settings.ADMIN_EMAIL):
            return settings.ADMIN_EMAIL

    log_auth_event("auth.admin.denied", details={"reason": "missing_credential"})
    raise AdminAuthError()
