"""
Dashgate - Authentication Package

Passwordless authentication with:
- bcrypt-hashed one-time passwords with attempt counting
- Permanent lockout after repeated failures
- Single-use, email-bound invitation codes
- Structured audit events for every decision
"""

from dashgate.auth.models import User, Role, InviteCode, InviteRequest, InviteStatus
from dashgate.auth.otp import OTPService, LockoutRegistry
from dashgate.auth.invites import InviteService

__all__ = [
    "User",
    "Role",
    "InviteCode",
    "InviteRequest",
    "InviteStatus",
    "OTPService",
    "LockoutRegistry",
    "InviteService",
]
