"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- Log level for stdlib logging and structlog
- Exception handlers for API errors and authentication redirects
- Session cookie cleanup for requests carrying an invalid session
- API v1 router mounting
- Health check endpoint
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlencode

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from notekeep.api.v1.router import router as v1_router
from notekeep.core.config import settings
from notekeep.core.cookies import (
    clear_redirect_cookie,
    clear_session_cookie,
)
from notekeep.core.database import database
from notekeep.core.errors import (
    AlreadyAuthenticatedError,
    APIError,
    AuthProviderError,
    UnauthenticatedError,
)
from notekeep.core.oauth import build_provider_registry
from notekeep.core.redirects import LOGIN_PATH, frontend_url
from notekeep.core.responses import ErrorDetail, ErrorResponse

logger = structlog.get_logger()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses.

    Headers added:
    - X-Frame-Options / frame-ancestors: clickjacking protection
    - X-Content-Type-Options: no MIME sniffing
    - Referrer-Policy: limit referrer leakage
    - Cache-Control: no caching of API responses
    - Strict-Transport-Security: production only
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"

        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )

        # HSTS only in production (assumes HTTPS via reverse proxy)
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


class InvalidSessionCookieMiddleware(BaseHTTPMiddleware):
    """Delete the session cookie when the request's cookie was invalid.

    The auth context dependency flags the request; responses that already
    set a fresh session cookie (e.g. a login) are left alone.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Clear a tampered, unknown or expired session cookie."""
        response = await call_next(request)
        if not getattr(request.state, "clear_session_cookie", False):
            return response

        cookie_prefix = f"{settings.session_cookie_name}="
        already_set = any(
            value.startswith(cookie_prefix)
            for value in response.headers.getlist("set-cookie")
        )
        if not already_set:
            logger.info("Clearing invalid session cookie", path=request.url.path)
            clear_session_cookie(response)
        return response


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Return the error envelope for an APIError."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
            )
        ).model_dump(),
    )


def unauthenticated_handler(
    _request: Request, exc: UnauthenticatedError
) -> RedirectResponse:
    """Redirect to the login page, keeping the return destination.

    Deletes the session cookie when the request carried an invalid one.
    """
    response = RedirectResponse(url=frontend_url(exc.login_url), status_code=303)
    if exc.clear_session:
        clear_session_cookie(response)
    return response


def already_authenticated_handler(
    _request: Request, exc: AlreadyAuthenticatedError
) -> RedirectResponse:
    """Send signed-in users away from anonymous-only endpoints."""
    return RedirectResponse(url=frontend_url(exc.location), status_code=303)


def auth_provider_error_handler(
    _request: Request, exc: AuthProviderError
) -> RedirectResponse:
    """Back to the login page with a generic notice.

    The underlying failure has already been logged by the provider; only
    the provider label is exposed. The pending redirect is discarded.
    """
    response = RedirectResponse(
        url=frontend_url(f"{LOGIN_PATH}?{urlencode({'error': exc.message})}"),
        status_code=303,
    )
    clear_redirect_cookie(response)
    return response


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert FastAPI's validation errors to the standard error envelope."""
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details=[
                    {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                    for e in exc.errors()
                ],
            )
        ).model_dump(),
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    Returns 500 INTERNAL_ERROR without exposing stack traces; the
    exception is logged.
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="INTERNAL_ERROR",
                message="An unexpected error occurred",
            )
        ).model_dump(),
    )


def configure_logging(level_name: str) -> None:
    """Apply the configured log level to stdlib logging and structlog."""
    level = logging.getLevelName(level_name)
    logging.basicConfig(level=level)
    logging.getLogger("notekeep").setLevel(level)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Dispose the database engine on shutdown."""
    yield
    await database.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Notekeep API",
        version="1.0.0",
        description="Notes with password and identity-provider sign-in",
        lifespan=lifespan,
    )

    app.state.providers = build_provider_registry(settings)

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # CORS must run first to handle preflight requests, so add it last.
    app.add_middleware(InvalidSessionCookieMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept"],
    )

    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(UnauthenticatedError, unauthenticated_handler)
    app.add_exception_handler(AlreadyAuthenticatedError, already_authenticated_handler)
    app.add_exception_handler(AuthProviderError, auth_provider_error_handler)
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.include_router(v1_router, prefix="/api/v1")

    # Health check endpoint (outside versioned API)
    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring."""
        return {"status": "healthy"}

    return app


# Used by uvicorn: uvicorn notekeep.main:app
app = create_app()
