"""
Dashgate - Record Store

Keyed record storage behind the OTP and invitation services.

Business logic only sees the RecordStore protocol (get/set/delete/values over
namespaced JSON-able dicts), so the in-memory default can be swapped for a
durable backend without touching call sites.

Concurrency:
- Each store call is one synchronous operation
- Read-modify-write sequences are serialized by KeyedLock at the service level
"""

import asyncio
import json
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from sqlmodel import Session, select

from dashgate.auth.models import StoredRecord


# Namespaces
OTP = "otp"
LOCKED = "locked_accounts"
USERS = "users"
INVITE_CODES = "invite_codes"
INVITE_REQUESTS = "invite_requests"


class RecordStore(Protocol):
    """Minimal keyed store contract."""

    def get(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        ...

    def set(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        ...

    def delete(self, namespace: str, key: str) -> bool:
        ...

    def values(self, namespace: str) -> List[Dict[str, Any]]:
        ...


class MemoryRecordStore:
    """
    Process-memory store.

    State is lost on restart; this is the reference non-durable behavior.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)

    def get(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        value = self._data[namespace].get(key)
        return dict(value) if value is not None else None

    def set(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        self._data[namespace][key] = dict(value)

    def delete(self, namespace: str, key: str) -> bool:
        return self._data[namespace].pop(key, None) is not None

    def values(self, namespace: str) -> List[Dict[str, Any]]:
        return [dict(v) for v in self._data[namespace].values()]


class SQLRecordStore:
    """
    SQLModel-backed store (PostgreSQL in production, SQLite locally).

    Args:
        session_factory: Callable returning a new sqlmodel Session
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def get(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as db:
            row = db.get(StoredRecord, (namespace, key))
            return json.loads(row.value) if row else None

    def set(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        with self._session_factory() as db:
            row = db.get(StoredRecord, (namespace, key))
            if row is None:
                row = StoredRecord(namespace=namespace, key=key, value="")
            row.value = json.dumps(value, default=str)
            row.updated_at = datetime.now(timezone.utc)
            db.add(row)
            db.commit()

    def delete(self, namespace: str, key: str) -> bool:
        with self._session_factory() as db:
            row = db.get(StoredRecord, (namespace, key))
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True

    def values(self, namespace: str) -> List[Dict[str, Any]]:
        with self._session_factory() as db:
            statement = select(StoredRecord).where(StoredRecord.namespace == namespace)
            return [json.loads(row.value) for row in db.exec(statement).all()]


class KeyedLock:
    """
    Per-key asyncio mutual exclusion.

    Usage:
        async with locks.hold("otp", email):
            record = store.get(...)
            ...
            store.set(...)
    """

    def __init__(self):
        self._locks: Dict[tuple, asyncio.Lock] = {}
        self._waiters: Dict[tuple, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, namespace: str, key: str) -> AsyncIterator[None]:
        lock_key = (namespace, key)
        lock = self._locks.setdefault(lock_key, asyncio.Lock())
        self._waiters[lock_key] += 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[lock_key] -= 1
            if self._waiters[lock_key] == 0:
                # No one else queued on this key; drop it to bound memory
                del self._waiters[lock_key]
                self._locks.pop(lock_key, None)

    def __len__(self) -> int:
        return len(self._locks)
