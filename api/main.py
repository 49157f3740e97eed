"""
api/main.py -- FastAPI application factory for gatekey.

Demonstrates the add-on end to end: registration and login routes, a route
guarded by require_identity, and one AuthError handler that turns every
authentication failure into a structured response.

Run with:      python main.py serve
               uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. log_requests      -- one access-log line per request
  2. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter

Lifespan builds the user database and the Auth facade on startup and closes
the database on shutdown, but only when it created the database itself.
An embedding application passes its own UserDatabase to create_app() and
keeps ownership of it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.users import router as users_router
from auth.errors import AuthError, TokenExpired, TokenInvalid
from auth.service import Auth, AuthConfig
from auth.store import UserDatabase, UserStore
from auth.tokens import Clock
from core.config import Settings, get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gatekey.api")


def create_app(
    settings: Settings | None = None,
    database: UserDatabase | None = None,
    clock: Clock = time.time,
) -> FastAPI:
    """Build the gatekey FastAPI application.

    Args:
        settings: Explicit settings; defaults to get_settings() at startup.
        database: The embedding application's UserDatabase. When omitted a
                  UserStore is opened on settings.database_url and closed on
                  shutdown.
        clock:    Time source for token issue/expiry. Tests inject a fake.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        cfg = settings or get_settings()
        owned = database is None
        db = UserStore(cfg.database_url) if owned else database
        app.state.database = db
        app.state.auth = Auth(AuthConfig.from_settings(cfg), database=db, clock=clock)
        logger.info(
            "gatekey API starting up (issuer=%s, token_lifetime=%ds)",
            cfg.token_issuer,
            cfg.token_expire_seconds,
        )

        yield

        if owned:
            db.close()
        logger.info("gatekey API shutdown complete")

    app = FastAPI(
        title="gatekey API",
        description="Password login, JWT issuance and bearer-token route guards.",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(SlowAPIMiddleware)
    # SlowAPI looks for app.state.limiter by convention.
    app.state.limiter = limiter

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    app.include_router(users_router, prefix="/api/v1", tags=["Users"])
    _register_exception_handlers(app)

    @app.get("/api/v1/health", tags=["Health"])
    def health(request: Request) -> HealthResponse:
        """Return API liveness, version and database reachability. No auth, no rate limit."""
        db = request.app.state.database
        ping = getattr(db, "ping", None)
        database_status = "ok" if ping is None or ping() else "error"
        return HealthResponse(
            status="ok" if database_status == "ok" else "degraded",
            version=VERSION,
            components={"app": "ok", "database": database_status},
        )

    return app


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        """Render authentication failures.

        5xx variants (SigningFailure, StoreError) are logged with traceback and
        answered with the class default message only; the chained cause never
        reaches the client.
        """
        if exc.status_code >= 500:
            logger.error("Auth failure on %s %s", request.method, request.url.path, exc_info=exc)
            response = _error_response(exc.status_code, exc.code, type(exc).message)
        else:
            response = _error_response(exc.status_code, exc.code, str(exc))
        if isinstance(exc, (TokenInvalid, TokenExpired)):
            response.headers["WWW-Authenticate"] = f'Bearer error="invalid_token", error_description="{exc.code}"'
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429 with a structured error when a rate limit is exceeded.

        Sync on purpose: SlowAPIMiddleware calls this handler directly and
        returns its result without awaiting.
        """
        retry_after = int(getattr(exc, "retry_after", 60))
        response = _error_response(429, "rate_limited", "Too many requests.", str(exc.detail))
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return 422 with structured error when request body or query params fail validation."""
        return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
        return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all handler for unexpected server errors.

        The raw exception is written to the log only, never to the response body.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error_response(500, "internal_error", "An unexpected error occurred.")


app = create_app()
