"""
Dashgate - Authentication Request/Response Schemas

Pydantic models for API request validation and response serialization.
One explicit model per endpoint; bodies are validated here before any
business logic sees them. Wire names are camelCase.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from dashgate.auth.crypto import is_valid_email, normalize_email
from dashgate.auth.models import InviteStatus, Role


class Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmailBody(Schema):
    email: str = Field(..., max_length=254, description="User email address")

    @field_validator("email")
    @classmethod
    def email_format(cls, v):
        """Basic email format validation; normalizes to lowercase."""
        v = normalize_email(v)
        if not is_valid_email(v):
            raise ValueError("Invalid email format")
        return v


# =============================================================================
# Requests
# =============================================================================

class RequestOTPRequest(EmailBody):
    """Request body for POST /api/auth/request-otp."""


class VerifyOTPRequest(EmailBody):
    """Request body for POST /api/auth/verify-otp."""
    otp: str = Field(..., pattern=r"^\d{6}$", description="6-digit code")


class ValidateInviteRequest(EmailBody):
    """Request body for POST /api/auth/validate-invite."""
    invite_code: str = Field(..., min_length=1, max_length=64)


class RegisterRequest(EmailBody):
    """Request body for POST /api/auth/register."""
    invite_code: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=120)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class RequestInviteRequest(EmailBody):
    """Request body for POST /api/auth/request-invite."""


# =============================================================================
# Responses
# =============================================================================

class UserOut(Schema):
    id: str
    email: str
    name: str
    role: Role
    invited_by: str
    invited_at: datetime
    last_login: Optional[datetime] = None


class RequestOTPResponse(Schema):
    success: bool = True
    otp: Optional[str] = None
    is_demo_mode: bool
    delivered: bool


class UserResponse(Schema):
    """Response body for verify-otp and register."""
    success: bool = True
    user: UserOut


class ValidateInviteResponse(Schema):
    success: bool = True
    valid: bool
    role: Optional[Role] = None
    invited_by: Optional[str] = None


class RequestInviteResponse(Schema):
    success: bool = True
    request_id: str


class InviteRequestOut(Schema):
    id: str
    email: str
    status: InviteStatus
    created_at: datetime
    approved_at: Optional[datetime] = None
    denied_at: Optional[datetime] = None
    code_sent_at: Optional[datetime] = None
    code: Optional[str] = None
    role: Optional[Role] = None


class InviteRequestListResponse(Schema):
    success: bool = True
    requests: List[InviteRequestOut]


class ApproveResponse(Schema):
    success: bool = True
    code: str


class SuccessResponse(Schema):
    success: bool = True


class SendCodeResponse(Schema):
    success: bool = True
    delivered: bool
    invite_code: Optional[str] = None


class LockedAccountOut(Schema):
    email: str
    locked_at: datetime


class LockedAccountListResponse(Schema):
    success: bool = True
    accounts: List[LockedAccountOut]


class HealthResponse(Schema):
    ok: bool = True
    service: str
    demo_mode: bool


class ErrorResponse(Schema):
    """Standard error response."""
    success: bool = False
    error: str
    code: Optional[str] = None
    attempts_remaining: Optional[int] = None
