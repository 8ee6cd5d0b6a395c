"""Client side of the CSRF double-submit pattern."""

from datetime import datetime, timedelta
from typing import Callable, MutableMapping, Optional

import httpx

from dashgate.auth.crypto import generate_token
from dashgate.auth.models import utcnow
from dashgate.gateway.csrf import CSRF_TOKEN_TTL_SECONDS, requires_csrf_protection
from dashgate.log import get_logger

logger = get_logger("client.csrf")


class CSRFTokenManager:
    """Keeps the CSRF token in a readable cookie and mirrors it into headers.

    Args:
        cookies: Cookie jar shared with the HTTP client
        cookie_name: Cookie the server compares against
        header_name: Header carrying the mirrored value
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        cookies: httpx.Cookies,
        cookie_name: str = "XSRF-TOKEN",
        header_name: str = "X-CSRF-Token",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cookies = cookies
        self.cookie_name = cookie_name
        self.header_name = header_name
        self.clock = clock
        self._expires_at: Optional[datetime] = None

    @staticmethod
    def requires_protection(method: str) -> bool:
        return requires_csrf_protection(method)

    def current_token(self) -> Optional[str]:
        token = self.cookies.get(self.cookie_name)
        if not token:
            return None
        if self._expires_at is not None and self.clock() >= self._expires_at:
            return None
        return token

    def ensure_token(self) -> str:
        """Return the live cookie token, minting one if absent or expired."""
        token = self.current_token()
        if token is None:
            token = self._store(generate_token())
            logger.debug("CSRF token initialized")
        return token

    def attach_if_required(self, method: str, headers: MutableMapping[str, str]) -> MutableMapping[str, str]:
        if self.requires_protection(method):
            headers[self.header_name] = self.ensure_token()
        return headers

    def rotate(self) -> str:
        """Mint and persist a new token (called after login)."""
        token = self._store(generate_token())
        logger.debug("CSRF token rotated")
        return token

    def clear(self) -> None:
        """Drop the token (called on logout)."""
        self._delete_cookie()
        self._expires_at = None
        logger.debug("CSRF token cleared")

    def _store(self, token: str) -> str:
        self._delete_cookie()
        self.cookies.set(self.cookie_name, token, path="/")
        self._expires_at = self.clock() + timedelta(seconds=CSRF_TOKEN_TTL_SECONDS)
        return token

    def _delete_cookie(self) -> None:
        # Remove every copy regardless of the domain it was stored under
        for cookie in list(self.cookies.jar):
            if cookie.name == self.cookie_name:
                self.cookies.jar.clear(cookie.domain, cookie.path, cookie.name)
