"""
api/main.py -- FastAPI application factory for the SecureAuth gateway.

create_app(settings) assembles one gateway instance. asgi.py calls it with
the environment-derived settings; tests call it with explicit Settings and a
list-backed telemetry sink.

Run with:  uvicorn asgi:app --port 3000

Middleware stack (outermost to innermost):
  1. telemetry_middleware  -- opens the per-request TelemetryContext,
                              resolves the session cookie, emits exactly one
                              TelemetryEvent once the status is final
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  3. SlowAPIMiddleware     -- enforces the login rate limit from api.limiter

Starlette makes the LAST registered middleware the outermost, so the
telemetry middleware is registered last. That way a request rejected by
TrustedHost or the rate limiter still produces its event.

Lifespan builds the volatile stores on startup and disposes of them on
shutdown. Nothing survives a restart.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import configure_limiter, limiter
from api.models import ErrorResponse, OkResponse
from api.routes.auth import router as auth_router
from api.routes.internal import build_route_table, build_router
from auth.dependencies import GatePolicy, resolve_session
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import CredentialStore
from core.config import Settings, get_settings
from core.errors import GatewayError
from core.telemetry import JsonlFileSink, TelemetryContext, TelemetryEmitter, TelemetrySink, client_ip

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("secureauth.api")

VERSION = "0.1.0"


def _error(status_code: int, message: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())
    response.headers["Cache-Control"] = "no-store"
    return response


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def _make_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Create the credential and session stores; dispose of them on shutdown."""
        logger.info("SecureAuth gateway starting up")
        app.state.credentials = CredentialStore(bcrypt_rounds=settings.bcrypt_rounds)
        app.state.sessions = SessionStore()
        app.state.auth = AuthService(app.state.credentials, app.state.sessions)
        bypassed = [r.path for r in app.state.route_table if r.policy is GatePolicy.BYPASS]
        logger.info(
            "Gateway ready (vuln_mode=%s, bypassed=%s, rate_limit=%s)",
            settings.vuln_mode,
            bypassed or "none",
            settings.login_rate_limit if settings.rate_limit_enabled else "off",
        )

        yield

        app.state.credentials.close()
        logger.info("SecureAuth gateway shutdown complete")

    return lifespan


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None, telemetry_sinks: list[TelemetrySink] | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="SecureAuth Gateway",
        description="Session-authenticated backend with per-request security telemetry.",
        version=VERSION,
        lifespan=_make_lifespan(settings),
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = settings

    emitter = TelemetryEmitter(telemetry_sinks)
    if settings.telemetry_log_path:
        emitter.add_sink(JsonlFileSink(settings.telemetry_log_path))
    app.state.telemetry_emitter = emitter

    app.state.route_table = build_route_table(settings)

    # ------------------------------------------------------------------
    # Middleware (innermost first -- see module docstring)
    # ------------------------------------------------------------------

    configure_limiter(settings.rate_limit_enabled, settings.login_rate_limit)
    # SlowAPI looks for app.state.limiter by convention.
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    @app.middleware("http")
    async def telemetry_middleware(request: Request, call_next):
        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        telemetry = TelemetryContext(
            request_id=str(uuid.uuid4()),
            ip=client_ip(
                request.headers.get("x-forwarded-for"),
                request.client.host if request.client else None,
            ),
            method=request.method,
            path=path,
        )
        session = resolve_session(request)
        telemetry.attribute(session)
        request.state.telemetry = telemetry
        request.state.session = session

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            # The catch-all handler renders the 500 outside this middleware;
            # the event must still be emitted, with the status it will carry.
            if telemetry.result is None:
                telemetry.fail("server_error")
            emitter.emit(telemetry.finalize(500))
            raise

        emitter.emit(telemetry.finalize(response.status_code))
        response.headers["X-Request-ID"] = telemetry.request_id
        logger.debug(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
            telemetry.ip or "unknown",
        )
        return response

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    app.include_router(auth_router, tags=["Auth"])
    app.include_router(build_router(app.state.route_table), tags=["Internal"])

    @app.get("/health", tags=["Health"])
    async def health() -> OkResponse:
        """Liveness probe. No auth, no rate limit."""
        return OkResponse()

    # ------------------------------------------------------------------
    # Exception handlers
    #
    # All handlers return the same {"ok": false, "error": ...} envelope.
    # ------------------------------------------------------------------

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        """Map the error taxonomy to HTTP and record the failure reason."""
        telemetry: TelemetryContext | None = getattr(request.state, "telemetry", None)
        if telemetry is not None and not telemetry.finalized:
            telemetry.fail(exc.reason)
        if exc.status_code >= 500:
            logger.error("Request %s failed: %s", request.url.path, exc.reason)
        return _error(exc.status_code, exc.message)

    # Must stay sync: SlowAPIMiddleware calls this handler without awaiting it.
    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429; Retry-After tells the client how long to back off."""
        telemetry: TelemetryContext | None = getattr(request.state, "telemetry", None)
        if telemetry is not None and not telemetry.finalized:
            # Only /login carries a limit, and the decorator rejects before the handler runs.
            telemetry.begin("login_attempt")
            telemetry.fail("rate_limited")
        response = _error(429, "too many requests")
        response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60) or 60))
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """A body that is not a JSON object is a 400, same as any other bad input."""
        return _error(400, "invalid request")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail).lower())

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected faults.

        The raw exception goes to the log only, never to the response body.
        Telemetry for this request was already emitted by the middleware.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error(500, "internal error")

    return app
