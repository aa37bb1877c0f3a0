"""
trailauth - authentication and session lifecycle API.

Application factory with explicit startup/shutdown and a single error
contract: every failure leaves the API as {"error": {...}, "timestamp"}.
"""

import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from trailauth import __version__
from trailauth.api.api import api_router
from trailauth.auth.dependencies import get_client_ip
from trailauth.auth.notifications import NotificationChannel
from trailauth.auth.service import AuthService
from trailauth.core.config import Settings, get_settings
from trailauth.core.database import Database
from trailauth.core.errors import AuthError, UnexpectedError, ValidationFailed
from trailauth.core.logging import (
    bind_request_id,
    clear_request_context,
    configure_logging,
    get_logger,
)
from trailauth.core.utils import Clock, utcnow

logger = get_logger(__name__)


# =============================================================================
# Application Lifespan (startup/shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the component graph once; dispose of it on shutdown."""
    settings: Settings = app.state.settings
    configure_logging(settings.log_level, settings.log_json)

    # Refuse to start rather than serve unsigned or unverifiable tokens
    settings.require_signing_secret()

    database = Database(settings)
    await database.startup()
    app.state.database = database
    app.state.auth_service = AuthService.create(
        settings,
        database,
        notifier=app.state.notifier,
        clock=app.state.clock,
    )
    logger.info("trailauth_started", version=__version__)

    yield

    logger.info("trailauth_stopping")
    await database.shutdown()


# =============================================================================
# Middleware
# =============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every request (and its log lines) with a request ID."""

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-ID") or secrets.token_urlsafe(8)
        request.state.request_id = request_id
        bind_request_id(request_id, client_ip=get_client_ip(request))
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response


# =============================================================================
# Error Handlers
# =============================================================================

async def auth_error_handler(request: Request, exc: AuthError):
    """Taxonomy errors go to the client verbatim."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=exc.headers or None,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    error = ValidationFailed(details={"errors": errors})
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def unexpected_error_handler(request: Request, exc: Exception):
    """Anything else: log it, return a sanitized 500."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.exception("unhandled_exception", request_id=request_id, path=request.url.path)
    error = UnexpectedError(details={"requestId": request_id})
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error.to_dict())


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    notifier: Optional[NotificationChannel] = None,
    clock: Clock = utcnow,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration; read from the environment when omitted
        notifier: Reset-code channel; chosen from settings when omitted
        clock: Time source shared by every component
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="trailauth",
        version=__version__,
        description="Authentication and session lifecycle for the trail mobile backend",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.notifier = notifier
    app.state.clock = clock

    # Order matters - first added = last executed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials="*" not in settings.cors_allow_origins,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        """Health check for load balancers."""
        database: Database = request.app.state.database
        db_status = "healthy"
        try:
            async with database.session() as session:
                await session.execute(text("SELECT 1"))
        except Exception:
            logger.exception("health_check_failed")
            db_status = "unhealthy"
        return {
            "status": "healthy" if db_status == "healthy" else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "database": db_status,
        }

    app.include_router(api_router)
    return app


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "trailauth.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
