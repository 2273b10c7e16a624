"""
api/routes/auth.py -- Signup, login, and logout endpoints.

Routes:
  POST /signup  -- create a user; 201
  POST /login   -- verify credentials, open a session, set the cookie; 200
  POST /logout  -- destroy the session, clear the cookie; 200

Failures are raised as GatewayError subclasses from the service layer; the
handler in api/main.py renders {"ok": false, "error": ...} and records the
telemetry failure reason. Handlers here only record the event type and the
success outcome.

Security:
  Login returns one body for an unknown username and for a wrong password
  ("invalid credentials"). The distinction exists only in telemetry.
  Login is rate-limited per client IP when Settings.rate_limit_enabled is on.
  Cache-Control: no-store on login responses.
  A successful login replaces any session the caller already held, so a
  pre-set cookie cannot be carried into the authenticated state.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import CredentialsRequest, OkResponse, UserResponse
from auth.dependencies import get_request_session, get_telemetry
from auth.service import AuthService
from auth.tokens import clear_session_cookie, set_session_cookie
from core.errors import ServerError
from core.telemetry import TelemetryContext

# Auth policy: all three routes are public. Logout without a session is a
# no-op success.
router = APIRouter()


@router.post("/signup", response_model=UserResponse, status_code=201)
def signup(
    request: Request,
    body: Optional[CredentialsRequest] = None,
    telemetry: TelemetryContext = Depends(get_telemetry),
) -> UserResponse:
    """Register a user. 400 on short username/password, 409 on a taken name."""
    telemetry.begin("signup_attempt")
    service: AuthService = request.app.state.auth
    creds = body or CredentialsRequest()
    user = service.signup(creds.username, creds.password)
    telemetry.succeed("created")
    return UserResponse(user_id=user.id, username=user.username)


@router.post("/login", response_model=UserResponse)
@limiter.limit(login_limit)
def login(
    request: Request,
    body: Optional[CredentialsRequest] = None,
    telemetry: TelemetryContext = Depends(get_telemetry),
) -> JSONResponse:
    """Authenticate and set the session cookie."""
    telemetry.begin("login_attempt")
    service: AuthService = request.app.state.auth
    settings = request.app.state.settings
    creds = body or CredentialsRequest()

    user, session = service.login(creds.username, creds.password, previous=get_request_session(request))
    telemetry.succeed("authenticated")
    telemetry.attribute(session)

    resp = JSONResponse(
        status_code=200,
        content=UserResponse(user_id=user.id, username=user.username).model_dump(),
    )
    set_session_cookie(resp, settings.session_cookie_name, session.session_id, secure=settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/logout", response_model=OkResponse)
def logout(
    request: Request,
    telemetry: TelemetryContext = Depends(get_telemetry),
) -> JSONResponse:
    """Destroy the caller's session. The response waits for the destroy result."""
    telemetry.begin("logout")
    service: AuthService = request.app.state.auth
    result = service.logout(get_request_session(request))
    if not result.ok:
        raise ServerError(result.reason, "logout failed")

    telemetry.succeed(result.reason)
    telemetry.attribute(None)
    resp = JSONResponse(content=OkResponse().model_dump())
    clear_session_cookie(resp, request.app.state.settings.session_cookie_name)
    return resp
