"""
Dashgate - User Directory

Known identities keyed by normalized email. Seeded with the operator
identity (and the demo identity in demo mode); grows on registration.
"""

from typing import List, Optional

from dashgate.auth import store as ns
from dashgate.auth.models import Role, User
from dashgate.auth.store import RecordStore
from dashgate.config import Settings


DEMO_EMAIL = "demo@example.com"


class UserDirectory:
    def __init__(self, store: RecordStore):
        self.store = store

    def get(self, email: str) -> Optional[User]:
        data = self.store.get(ns.USERS, email)
        return User.model_validate(data) if data else None

    def exists(self, email: str) -> bool:
        return self.store.get(ns.USERS, email) is not None

    def save(self, user: User) -> User:
        self.store.set(ns.USERS, user.email, user.model_dump(mode="json"))
        return user

    def all(self) -> List[User]:
        return [User.model_validate(v) for v in self.store.values(ns.USERS)]

    def seed(self, settings: Settings) -> None:
        """Create the admin identity, and the demo identity in demo mode, if missing."""
        admin_email = settings.ADMIN_EMAIL.strip().lower()
        if admin_email and not self.exists(admin_email):
            self.save(User(
                email=admin_email,
                name="Administrator",
                role=Role.ADMIN,
                invited_by="system",
            ))

        if settings.DEMO_MODE and not self.exists(DEMO_EMAIL):
            self.save(User(
                id="demo-user",
                email=DEMO_EMAIL,
                name="Demo User",
                role=Role.DEMO,
                invited_by="system",
            ))
