"""
Dashgate - Authentication Data Models

Pydantic records for identities, OTPs and invitations, plus the SQLModel
table backing the durable record store.

Security:
- OTPs are stored as bcrypt hashes only, never in plaintext
- Invite codes are single-use and bound to one email
- All timestamps in UTC
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlmodel import SQLModel, Field as SQLField
from sqlalchemy import Column, String, Text, DateTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """
    User roles.

    Fixed at invitation time; a user's role never changes afterwards.
    """
    ADMIN = "Admin"
    ANALYST = "Analyst"
    VIEWER = "Viewer"
    DEMO = "Demo"


class InviteStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    CODE_SENT = "code_sent"


class Record(BaseModel):
    """Base for stored records: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(Record):
    """
    Authenticated identity.

    Attributes:
        id: Random UUIDv4 string
        email: Normalized (lowercase) email address
        name: Display name
        role: Role granted by the redeemed invitation
        invited_by: Email of the inviting administrator
        invited_at: When the identity was created
        last_login: Last successful OTP verification
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    email: str
    name: str
    role: Role
    invited_by: str
    invited_at: datetime = Field(default_factory=utcnow)
    last_login: Optional[datetime] = None


class OTPRecord(Record):
    """
    Live one-time password for one email.

    Attributes:
        email: Owner of the code (store key)
        otp_hash: bcrypt hash of the 6-digit code
        salt: bcrypt salt used to produce otp_hash
        expires_at: Code is rejected after this instant
        attempts: Failed verifications, carried across re-requests
    """
    email: str
    otp_hash: str
    salt: str
    expires_at: datetime
    attempts: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class LockedAccount(Record):
    email: str
    locked_at: datetime = Field(default_factory=utcnow)


class InviteCode(Record):
    """
    Single-use registration credential bound to one email and role.
    """
    code: str
    email: str
    role: Role
    invited_by: str
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    used: bool = False
    used_at: Optional[datetime] = None

    def is_redeemable_by(self, email: str, now: datetime) -> bool:
        return not self.used and self.email == email and now <= self.expires_at


class InviteRequest(Record):
    """
    Visitor request for access, moved through the admin approval workflow.

    pending -> approved -> code_sent, or pending -> denied (terminal).
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    email: str
    status: InviteStatus = InviteStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    approved_at: Optional[datetime] = None
    denied_at: Optional[datetime] = None
    code_sent_at: Optional[datetime] = None
    code: Optional[str] = None
    role: Optional[Role] = None


class StoredRecord(SQLModel, table=True):
    """
    Durable row behind SQLRecordStore.

    Attributes:
        namespace: Record family ("otp", "invite_codes", ...)
        key: Record key within the namespace (email, code or request id)
        value: JSON-serialized record
        updated_at: Last write timestamp (UTC)
    """
    __tablename__ = "stored_records"

    namespace: str = SQLField(
        sa_column=Column(String(64), primary_key=True),
        description="Record family"
    )
    key: str = SQLField(
        sa_column=Column(String(255), primary_key=True),
        description="Record key"
    )
    value: str = SQLField(
        sa_column=Column(Text, nullable=False),
        description="JSON-serialized record"
    )
    updated_at: datetime = SQLField(
        sa_column=Column(DateTime(timezone=True), nullable=False, default=utcnow),
        description="Last write timestamp"
    )
