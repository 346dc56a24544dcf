"""Magic link service application.

create_app() wires:
- structlog/stdlib logging at LOG_LEVEL
- security headers and CORS (HX-Trigger exposed for the email validation route)
- the {"error": {...}} envelope for every failure path
- the /api/v1 router and /health
- startup purge of expired replay records, engine disposal on shutdown
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from magic_link.api.deps import get_replay_guard
from magic_link.api.v1.router import router as v1_router
from magic_link.core.config import settings
from magic_link.core.database import engine
from magic_link.core.errors import APIError, InternalError, ValidationError
from magic_link.core.rate_limiting import limiter, rate_limit_exceeded_handler
from magic_link.core.replay_guard import ReplayStoreUnavailableError
from magic_link.core.responses import ErrorResponse

logger = structlog.get_logger()

# Applied to every response. Referrer-Policy is only a default: redemption
# redirects set no-referrer so the token never leaks to the destination.
_SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}
_DEFAULT_REFERRER_POLICY = "strict-origin-when-cross-origin"
_HSTS = "max-age=31536000; includeSubDomains"


def configure_logging() -> None:
    """Apply LOG_LEVEL to stdlib logging and structlog."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers to every response.

    API responses carry tokens and session cookies, so they are also marked
    uncacheable. HSTS is only sent in production (HTTPS via reverse proxy).
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)

        response.headers.update(_SECURITY_HEADERS)
        response.headers.setdefault("Referrer-Policy", _DEFAULT_REFERRER_POLICY)
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = _HSTS

        return response


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Render an APIError with its own code, message and status."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse.build(exc.code, exc.message, exc.details),
    )


def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render malformed query or body parameters as 400 VALIDATION_ERROR.

    Only reachable from the redemption routes; the link request endpoint
    parses its own body so that it can stay neutral.
    """
    details = [
        {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
        for e in exc.errors()
    ]
    return api_error_handler(
        request, ValidationError("Request validation failed", details=details)
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log the exception, return a generic 500 with no details."""
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))
    return api_error_handler(request, InternalError())


async def purge_replay_store() -> int:
    """Drop expired consumed-signature records from the configured store.

    Returns:
        Number of records removed. 0 if the store is unreachable.
    """
    guard = get_replay_guard()
    try:
        removed = await guard.purge_expired()
    except ReplayStoreUnavailableError:
        logger.warning("Replay store unavailable; skipping purge")
        return 0
    logger.info("Purged expired replay records", removed=removed)
    return removed


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    await purge_replay_store()
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Magic Link Auth API",
        version="1.0.0",
        description="Passwordless sign-in with one-time email links",
        lifespan=lifespan,
    )

    # Starlette runs the last-added middleware first; CORS must see
    # preflight requests before anything else.
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "HX-Request", "X-Request-ID"],
        expose_headers=["HX-Trigger"],
    )

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.state.limiter = limiter
    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/health")
    def health_check() -> dict:
        return {"status": "healthy"}

    return app


# uvicorn magic_link.main:app
app = create_app()
