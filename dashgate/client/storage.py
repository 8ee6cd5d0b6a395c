"""
Dashgate - Secure Client Storage

Encrypts session payloads at rest on the client.

Envelope format (base64):
    salt (16 bytes) | iv (12 bytes) | AES-256-GCM ciphertext+tag

The AES key is derived with PBKDF2-HMAC-SHA256 (100 000 iterations) from a
random per-session secret kept in session-scoped storage, so a copied
ciphertext is expensive to brute-force without that secret.

Security:
- Fresh salt and IV for every write
- Undecryptable entries are wiped and read as missing (forces re-login)
- PlainStorage is a fallback with NO confidentiality; check is_encrypted
"""

import base64
import json
import os
import secrets
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Protocol, Union

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from dashgate.errors import StorageCorruption
from dashgate.log import get_logger

logger = get_logger("client.storage")


STORAGE_KEY_PREFIX = "secure_"
SESSION_KEY_NAME = "session_key"
SALT_LENGTH = 16
IV_LENGTH = 12
KEY_LENGTH = 32  # AES-256
PBKDF2_ITERATIONS = 100_000


# =============================================================================
# Backends
# =============================================================================

class KeyValueStorage(Protocol):
    """String-to-string storage (the browser's localStorage/sessionStorage)."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

    def keys(self) -> Iterator[str]:
        ...


class MemoryStorage:
    """Process-lifetime storage; the default for the per-session secret."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._items))


class FileStorage:
    """
    JSON file persisted per client profile.

    Single writer, last write wins; concurrent processes do not merge.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Storage file %s unreadable; starting empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, items: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(items), encoding="utf-8")
        os.replace(tmp, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if items.pop(key, None) is not None:
            self._save(items)

    def keys(self) -> Iterator[str]:
        return iter(list(self._load()))


# =============================================================================
# Secure storage
# =============================================================================

def is_secure_storage_available() -> bool:
    """True when the crypto backend supports AES-GCM and PBKDF2-SHA256."""
    try:
        AESGCM(bytes(KEY_LENGTH))
        PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_LENGTH, salt=bytes(SALT_LENGTH), iterations=1)
    except UnsupportedAlgorithm:
        return False
    return True


class SecureStorage:
    """
    Encrypted JSON values over a KeyValueStorage.

    Args:
        local: Persistent storage holding the envelopes
        session: Session-scoped storage holding the derivation secret
        iterations: PBKDF2 iteration count
    """

    is_encrypted = True

    def __init__(
        self,
        local: KeyValueStorage,
        session: Optional[KeyValueStorage] = None,
        iterations: int = PBKDF2_ITERATIONS,
    ):
        self.local = local
        self.session = session if session is not None else MemoryStorage()
        self.iterations = iterations

    def put(self, key: str, value: Any) -> None:
        serialized = json.dumps(value, default=str)
        self.local.set_item(STORAGE_KEY_PREFIX + key, self._encrypt(serialized))

    def get(self, key: str) -> Optional[Any]:
        envelope = self.local.get_item(STORAGE_KEY_PREFIX + key)
        if not envelope:
            return None
        try:
            return json.loads(self._decrypt(envelope))
        except (StorageCorruption, ValueError) as e:
            logger.warning("Removing corrupted secure entry %r: %s", key, e)
            self.remove(key)
            return None

    def remove(self, key: str) -> None:
        self.local.remove_item(STORAGE_KEY_PREFIX + key)

    def wipe_all(self) -> None:
        """Remove every secure entry and the session secret."""
        for key in self.local.keys():
            if key.startswith(STORAGE_KEY_PREFIX):
                self.local.remove_item(key)
        self.session.remove_item(SESSION_KEY_NAME)

    def _session_secret(self) -> str:
        secret = self.session.get_item(SESSION_KEY_NAME)
        if not secret:
            secret = secrets.token_hex(32)
            self.session.set_item(SESSION_KEY_NAME, secret)
        return secret

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self.iterations,
        )
        return kdf.derive(self._session_secret().encode("utf-8"))

    def _encrypt(self, plaintext: str) -> str:
        salt = secrets.token_bytes(SALT_LENGTH)
        iv = secrets.token_bytes(IV_LENGTH)
        ciphertext = AESGCM(self._derive_key(salt)).encrypt(iv, plaintext.encode("utf-8"), None)
        return base64.b64encode(salt + iv + ciphertext).decode("ascii")

    def _decrypt(self, envelope: str) -> str:
        try:
            combined = base64.b64decode(envelope, validate=True)
        except ValueError as e:
            raise StorageCorruption("Envelope is not valid base64") from e

        if len(combined) <= SALT_LENGTH + IV_LENGTH:
            raise StorageCorruption("Envelope is truncated")

        salt = combined[:SALT_LENGTH]
        iv = combined[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
        ciphertext = combined[SALT_LENGTH + IV_LENGTH:]
        try:
            plaintext = AESGCM(self._derive_key(salt)).decrypt(iv, ciphertext, None)
        except InvalidTag as e:
            raise StorageCorruption("Authentication tag mismatch") from e
        return plaintext.decode("utf-8")


class PlainStorage:
    """
    Unencrypted fallback with the SecureStorage interface.

    Callers must not assume confidentiality when this is active.
    """

    is_encrypted = False

    def __init__(self, local: KeyValueStorage):
        self.local = local

    def put(self, key: str, value: Any) -> None:
        self.local.set_item(key, json.dumps(value, default=str))

    def get(self, key: str) -> Optional[Any]:
        raw = self.local.get_item(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            self.remove(key)
            return None

    def remove(self, key: str) -> None:
        self.local.remove_item(key)

    def wipe_all(self) -> None:
        for key in ("user", "authToken"):
            self.local.remove_item(key)


def open_storage(
    local: KeyValueStorage,
    session: Optional[KeyValueStorage] = None,
    iterations: int = PBKDF2_ITERATIONS,
) -> Union[SecureStorage, PlainStorage]:
    """Encrypted storage when the crypto backend allows it, plain otherwise."""
    if is_secure_storage_available():
        return SecureStorage(local, session, iterations=iterations)
    logger.warning("Secure storage unavailable; falling back to unencrypted storage")
    return PlainStorage(local)
