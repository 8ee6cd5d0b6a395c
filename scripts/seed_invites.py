"""
Dashgate - Invitation Seed Script

Pre-issues an invitation code into the durable record store so a first
analyst can register without going through the request/approve flow, or
so a permanently locked user can recover their account.

Usage:
    DATABASE_URL=sqlite:///dashgate.db python -m scripts.seed_invites analyst@company.com [Analyst]
"""

import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dashgate.config import settings
from dashgate.auth import store as ns
from dashgate.auth.crypto import generate_invite_code, normalize_email
from dashgate.auth.database import build_record_store
from dashgate.auth.models import InviteCode, Role, utcnow
from dashgate.auth.otp import LockoutRegistry
from dashgate.auth.users import UserDirectory


def seed_invite(email: str, role: Role) -> None:
    """Issue one invitation code for email with the given role."""
    if not settings.DATABASE_URL:
        print("DATABASE_URL is not set; codes in a memory store would be lost.")
        sys.exit(1)

    store, engine = build_record_store(settings.DATABASE_URL)
    try:
        users = UserDirectory(store)
        users.seed(settings)

        email = normalize_email(email)
        existing = users.get(email)
        if existing is not None:
            if not LockoutRegistry(store).is_locked(email):
                print(f"User {email} already exists.")
                return
            # Recovery code: redeeming it unlocks the account and keeps its role
            role = existing.role
            print(f"User {email} is locked; issuing a recovery code.")

        now = utcnow()
        invite = InviteCode(
            code=generate_invite_code(),
            email=email,
            role=role,
            invited_by=settings.ADMIN_EMAIL,
            created_at=now,
            expires_at=now + timedelta(minutes=settings.INVITE_TTL_MINUTES),
        )
        store.set(ns.INVITE_CODES, invite.code, invite.model_dump(mode="json"))

        print("Invitation code created successfully!")
        print(f"  Email: {invite.email}")
        print(f"  Code: {invite.code}")
        print(f"  Role: {invite.role.value}")
        print(f"  Expires: {invite.expires_at:%Y-%m-%d %H:%M} UTC")
    finally:
        if engine is not None:
            engine.dispose()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    role = Role(sys.argv[2]) if len(sys.argv) > 2 else Role(settings.DEFAULT_INVITE_ROLE)
    seed_invite(sys.argv[1], role)
