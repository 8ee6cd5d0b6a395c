"""
Dashgate - Error Taxonomy

Every failure the service and the client SDK distinguish has one class here.
Each carries a stable machine code, an HTTP status and a client-safe message.

Security:
- Messages never include stack traces or internal identifiers
- Invite failures collapse to one generic InvalidInvite
- Lockout stays distinct from a wrong code because remediation differs
"""

from typing import Any, Dict, Optional


class DashgateError(Exception):
    """Base class for all expected, client-reportable failures."""

    code = "ERROR"
    status_code = 400
    message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the JSON error body returned to clients."""
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(DashgateError):
    code = "VALIDATION_ERROR"
    message = "Invalid request"


class InvalidOTP(DashgateError):
    """Wrong code; the caller may retry while attempts remain."""

    code = "INVALID_OTP"
    status_code = 401

    def __init__(self, attempts_remaining: int):
        self.attempts_remaining = attempts_remaining
        plural = "attempt" if attempts_remaining == 1 else "attempts"
        super().__init__(f"Invalid OTP. {attempts_remaining} {plural} remaining")

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["attemptsRemaining"] = self.attempts_remaining
        return payload


class OTPExpired(DashgateError):
    code = "OTP_EXPIRED"
    status_code = 401
    message = "OTP has expired. Please request a new one"


class OTPNotFound(DashgateError):
    code = "OTP_NOT_FOUND"
    message = "No OTP found for this email. Please request a new one"


class AccountLocked(DashgateError):
    code = "ACCOUNT_LOCKED"
    status_code = 423
    message = "This account has been locked. Contact an administrator for a new invitation code"


class AccountPermanentlyLocked(AccountLocked):
    """Terminal lockout raised when the attempt limit is reached."""

    code = "ACCOUNT_PERMANENTLY_LOCKED"


class InvalidInvite(DashgateError):
    code = "INVALID_INVITE"
    message = "Invalid invitation code"


class RegistrationRequired(DashgateError):
    code = "REGISTRATION_REQUIRED"
    status_code = 403
    message = "Registration with an invitation code is required"


class DeliveryError(DashgateError):
    code = "DELIVERY_ERROR"
    status_code = 502
    message = "Failed to deliver email"


class CSRFMismatch(DashgateError):
    code = "CSRF_MISMATCH"
    status_code = 403
    message = "CSRF token missing or invalid"


class StorageCorruption(DashgateError):
    """Raised internally by secure storage; never reaches a caller."""

    code = "STORAGE_CORRUPTION"
    message = "Stored data could not be decrypted"


class InviteRequestNotFound(DashgateError):
    code = "INVITE_REQUEST_NOT_FOUND"
    status_code = 404
    message = "Invite request not found"


class InvalidTransition(DashgateError):
    code = "INVALID_TRANSITION"
    status_code = 409
    message = "Operation not allowed in the current state"


class RateLimited(DashgateError):
    code = "RATE_LIMITED"
    status_code = 429
    message = "Too many pending requests"


class AdminAuthError(DashgateError):
    code = "ADMIN_AUTH_REQUIRED"
    status_code = 403
    message = "Admin access required"


class AdminNotConfigured(AdminAuthError):
    code = "ADMIN_NOT_CONFIGURED"
    status_code = 503
    message = "Admin access is not configured"


class ActionInProgress(DashgateError):
    """Client-side: an auth action is already awaiting the server."""

    code = "ACTION_IN_PROGRESS"
    status_code = 409
    message = "Another authentication request is in progress"


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        ValidationError,
        OTPExpired,
        OTPNotFound,
        AccountLocked,
        AccountPermanentlyLocked,
        InvalidInvite,
        RegistrationRequired,
        DeliveryError,
        CSRFMismatch,
        InviteRequestNotFound,
        InvalidTransition,
        RateLimited,
        AdminAuthError,
        AdminNotConfigured,
    )
}


def error_from_payload(status_code: int, payload: Dict[str, Any]) -> DashgateError:
    """
    Rebuild the typed error from a server error body.

    Unknown codes become a plain DashgateError with the server's message.
    """
    code = payload.get("code")
    if code == InvalidOTP.code:
        return InvalidOTP(int(payload.get("attemptsRemaining", 0)))

    cls = ERRORS_BY_CODE.get(code)
    if cls is not None:
        return cls(payload.get("error"))

    error = DashgateError(payload.get("error") or f"Request failed ({status_code})")
    error.status_code = status_code
    return error
