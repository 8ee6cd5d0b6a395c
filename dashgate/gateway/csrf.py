"""
Dashgate - CSRF Double-Submit Check

The client keeps a random token in a readable cookie and mirrors it in a
request header for every state-changing request. Cross-site pages can make
the browser send the cookie, but cannot read it to forge the header.

Security:
- A request is accepted only if cookie and header are present and equal
- Comparison is constant-time
"""

from typing import Optional

from dashgate.auth.crypto import constant_time_equals


SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})

CSRF_TOKEN_TTL_SECONDS = 24 * 60 * 60


def requires_csrf_protection(method: Optional[str]) -> bool:
    """True for every method that can change state."""
    return (method or "").upper() not in SAFE_METHODS


def tokens_match(cookie_token: Optional[str], header_token: Optional[str]) -> bool:
    if not cookie_token or not header_token:
        return False
    return constant_time_equals(cookie_token, header_token)
