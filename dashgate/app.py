"""
Dashgate - FastAPI Application Entrypoint

This module builds the FastAPI application with:
- CORS, CSRF and security middleware
- Authentication and admin routes
- Record store, OTP and invitation services
- Uniform error payloads (no stack traces reach clients)

Usage:
    uvicorn dashgate.app:app --port 3002
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dashgate.admin.routes import router as admin_router
from dashgate.auth.database import build_record_store
from dashgate.auth.invites import InviteService
from dashgate.auth.mailer import Mailer, SMTPConfig, SMTPMailer
from dashgate.auth.models import utcnow
from dashgate.auth.otp import OTPService
from dashgate.auth.routes import router as auth_router
from dashgate.auth.schemas import HealthResponse
from dashgate.auth.store import KeyedLock, RecordStore
from dashgate.auth.users import UserDirectory
from dashgate.config import Settings, settings as default_settings
from dashgate.errors import DashgateError
from dashgate.gateway.middleware import CSRFMiddleware, SecurityMiddleware
from dashgate.log import configure_logging, get_logger

logger = get_logger("app")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RecordStore] = None,
    mailer: Optional[Mailer] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """
    Build a configured application.

    Args:
        settings: Overrides the environment-loaded settings
        store: Overrides the store chosen from DATABASE_URL
        mailer: Overrides the SMTP mailer built from settings
        clock: Time source shared by the services
    """
    settings = settings or default_settings
    engine = None
    if store is None:
        store, engine = build_record_store(settings.DATABASE_URL)
    if mailer is None and settings.SEND_EMAIL:
        mailer = SMTPMailer(SMTPConfig.from_settings(settings))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup: configure logging, announce mode.
        Shutdown: dispose the database engine if one was created.
        """
        configure_logging(settings.LOG_LEVEL)
        if settings.DEMO_MODE:
            logger.warning("DEMO_MODE is on: OTPs are returned in API responses")
        logger.info(
            "%s ready (demoMode=%s, store=%s)",
            settings.SERVICE_NAME, settings.DEMO_MODE, type(store).__name__,
        )

        yield

        if engine is not None:
            engine.dispose()

    app = FastAPI(
        title="Dashgate",
        description="Passwordless authentication and invitations for the chart dashboard",
        version="0.1.0",
        lifespan=lifespan,
    )

    locks = KeyedLock()
    users = UserDirectory(store)
    users.seed(settings)

    invite_service = InviteService(store, users, settings, mailer=mailer, locks=locks, clock=clock)
    if settings.DEMO_MODE:
        invite_service.seed_demo_invites()

    app.state.settings = settings
    app.state.store = store
    app.state.db_engine = engine
    app.state.users = users
    app.state.otp_service = OTPService(store, users, settings, mailer=mailer, locks=locks, clock=clock)
    app.state.invite_service = invite_service

    # Outermost last: CORS answers preflights before the CSRF check
    app.add_middleware(
        CSRFMiddleware,
        cookie_name=settings.CSRF_COOKIE_NAME,
        header_name=settings.CSRF_HEADER_NAME,
    )
    app.add_middleware(SecurityMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Requested-With", settings.CSRF_HEADER_NAME, "Authorization"],
        max_age=86400,
    )

    register_error_handlers(app)

    app.include_router(auth_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")

    @app.get("/healthz", response_model=HealthResponse)
    async def health_check():
        """Liveness check with the active mode."""
        return HealthResponse(service=settings.SERVICE_NAME, demo_mode=settings.DEMO_MODE)

    return app


def register_error_handlers(app: FastAPI) -> None:
    """Render every failure as {success: false, error, ...} without internals."""

    @app.exception_handler(DashgateError)
    async def dashgate_error_handler(request: Request, exc: DashgateError):
        logger.info(
            "%s %s failed: %s (%s)",
            request.method, request.url.path, exc.code, exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("%s %s rejected: %d validation errors", request.method, request.url.path, len(exc.errors()))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Invalid request", "code": "VALIDATION_ERROR"},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Server error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Internal Server Error"},
        )


app = create_app()
