"""
Dashgate - Security Middleware

Request/response middleware for:
- Request ID injection for tracing
- CSRF double-submit enforcement before any route runs
- Security headers
"""

import time
import uuid
from typing import Callable, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from dashgate.errors import CSRFMismatch
from dashgate.gateway.csrf import requires_csrf_protection, tokens_match
from dashgate.log import get_logger, log_auth_event

logger = get_logger("gateway")


class SecurityMiddleware(BaseHTTPMiddleware):
    """
    Security-focused middleware for all incoming requests.

    Responsibilities:
    1. Inject X-Request-ID header for tracing
    2. Add security headers to response
    3. Log request timing
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process each request through security pipeline."""

        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"

        logger.info(
            "%s %s -> %d (%.1f ms) [%s]",
            request.method, request.url.path, response.status_code, duration_ms, request_id,
        )
        return response


class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Reject unsafe requests whose CSRF header does not match the cookie.

    Runs before routing, so a rejected request never reaches business logic.

    Args:
        app: Wrapped ASGI app
        cookie_name: Name of the readable CSRF cookie
        header_name: Name of the mirrored request header
        protected_prefixes: Path prefixes the check applies to
    """

    def __init__(
        self,
        app: ASGIApp,
        cookie_name: str = "XSRF-TOKEN",
        header_name: str = "X-CSRF-Token",
        protected_prefixes: Iterable[str] = ("/api/",),
    ):
        super().__init__(app)
        self.cookie_name = cookie_name
        self.header_name = header_name
        self.protected_prefixes = tuple(protected_prefixes)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if (
            requires_csrf_protection(request.method)
            and request.url.path.startswith(self.protected_prefixes)
        ):
            cookie_token = request.cookies.get(self.cookie_name)
            header_token = request.headers.get(self.header_name)
            if not tokens_match(cookie_token, header_token):
                log_auth_event(
                    "auth.csrf.rejected",
                    details={
                        "path": request.url.path,
                        "cookie_present": bool(cookie_token),
                        "header_present": bool(header_token),
                    },
                )
                error = CSRFMismatch()
                return JSONResponse(status_code=error.status_code, content=error.to_payload())

        return await call_next(request)
