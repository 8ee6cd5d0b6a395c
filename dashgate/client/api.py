"""
Dashgate - Auth API Client

Thin async wrapper over the authentication endpoints. Attaches the CSRF
header to unsafe requests and turns error bodies back into the typed
exceptions from dashgate.errors.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from dashgate.auth.models import Role, User
from dashgate.client.csrf import CSRFTokenManager
from dashgate.errors import DashgateError, DeliveryError, error_from_payload
from dashgate.log import get_logger

logger = get_logger("client.api")


DEFAULT_TIMEOUT = 10.0


@dataclass
class OTPRequestResult:
    is_demo_mode: bool
    delivered: bool
    otp: Optional[str] = None


@dataclass
class InviteCheck:
    valid: bool
    role: Optional[Role] = None
    invited_by: Optional[str] = None


class AuthAPIClient:
    """
    Client for /api/auth/*.

    Args:
        http: Configured httpx.AsyncClient (base_url pointing at the service)
        csrf: Token manager sharing http's cookie jar; created if omitted
    """

    def __init__(self, http: httpx.AsyncClient, csrf: Optional[CSRFTokenManager] = None):
        self.http = http
        self.csrf = csrf or CSRFTokenManager(http.cookies)

    @classmethod
    def connect(cls, base_url: str, timeout: float = DEFAULT_TIMEOUT) -> "AuthAPIClient":
        return cls(httpx.AsyncClient(base_url=base_url, timeout=timeout))

    async def aclose(self) -> None:
        await self.http.aclose()

    async def request_otp(self, email: str) -> OTPRequestResult:
        data = await self._call("POST", "/api/auth/request-otp", {"email": email})
        return OTPRequestResult(
            otp=data.get("otp"),
            is_demo_mode=bool(data.get("isDemoMode")),
            delivered=bool(data.get("delivered")),
        )

    async def verify_otp(self, email: str, otp: str) -> User:
        data = await self._call("POST", "/api/auth/verify-otp", {"email": email, "otp": otp})
        return User.model_validate(data["user"])

    async def validate_invite(self, invite_code: str, email: str) -> InviteCheck:
        data = await self._call(
            "POST", "/api/auth/validate-invite",
            {"inviteCode": invite_code, "email": email},
        )
        role = data.get("role")
        return InviteCheck(
            valid=bool(data.get("valid")),
            role=Role(role) if role else None,
            invited_by=data.get("invitedBy"),
        )

    async def register(self, email: str, name: str, invite_code: str) -> User:
        data = await self._call(
            "POST", "/api/auth/register",
            {"email": email, "name": name, "inviteCode": invite_code},
        )
        return User.model_validate(data["user"])

    async def request_invite(self, email: str) -> str:
        data = await self._call("POST", "/api/auth/request-invite", {"email": email})
        return data["requestId"]

    async def _call(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers: Dict[str, str] = {}
        self.csrf.attach_if_required(method, headers)

        try:
            response = await self.http.request(method, path, json=body, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out", method, path)
            raise DashgateError("The server did not respond in time") from e
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise DashgateError("Could not reach the authentication server") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.is_success and payload.get("success", True):
            return payload

        error = error_from_payload(response.status_code, payload)
        if response.status_code >= 500 and not isinstance(error, DeliveryError):
            error.message = "Server error. Please try again later."
        raise error
