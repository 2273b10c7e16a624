"""
auth/dependencies.py -- FastAPI Depends() helpers: session resolution and the gate.

The telemetry middleware resolves the session cookie once per request and
stores the result on request.state; everything below reads it from there so
identity is resolved exactly once.

Authorization gate:
  Each protected route carries a GatePolicy chosen when the route table is
  built (see api/routes/internal.py):

    SESSION -- Unchecked -> Authorized iff a Session with a user_id resolved,
               otherwise Denied with a uniform 401.
    BYPASS  -- fault-injection mode. Always Authorized, classified with the
               distinct reason "bypass" so the condition shows up in telemetry.

  A route has exactly one policy, so the bypass can never be silently layered
  on top of the normal gate. Every decision classifies the request's
  telemetry exactly once: success here, failure through the GatewayError
  handler when AuthorizationError propagates.

Layer rule: no imports from api/ or scanner/. Importing fastapi is allowed
because this module is part of the dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from fastapi import Request

from auth.models import Session
from auth.sessions import SessionStore
from core.errors import AuthorizationError
from core.telemetry import TelemetryContext


class GatePolicy(str, Enum):
    SESSION = "session"
    BYPASS = "bypass"


def session_cookie_name(request: Request) -> str:
    return request.app.state.settings.session_cookie_name


def resolve_session(request: Request) -> Session | None:
    """Reconstruct identity from the session cookie. None if absent or unknown."""
    sessions: SessionStore = request.app.state.sessions
    return sessions.resolve(request.cookies.get(session_cookie_name(request)))


def get_telemetry(request: Request) -> TelemetryContext:
    """The per-request telemetry context opened by the telemetry middleware."""
    return request.state.telemetry


def get_request_session(request: Request) -> Session | None:
    return getattr(request.state, "session", None)


def authorize(request: Request, policy: GatePolicy) -> Session | None:
    """Run the single-pass gate for one request.

    Returns the Session on Authorized (None is possible only under BYPASS).
    Raises AuthorizationError on Denied. The cause -- no cookie vs. a cookie
    that does not resolve -- is recorded as the telemetry reason only.
    """
    telemetry = get_telemetry(request)
    telemetry.begin("internal_route_access")
    session = get_request_session(request)

    if policy is GatePolicy.BYPASS:
        telemetry.succeed("bypass")
        return session

    if session is None or not session.user_id:
        has_cookie = bool(request.cookies.get(session_cookie_name(request)))
        raise AuthorizationError("invalid_session" if has_cookie else "no_session")

    telemetry.succeed("authorized")
    return session


def session_gate(policy: GatePolicy) -> Callable[[Request], Session | None]:
    """Build the dependency enforcing policy on one route.

    Use as a FastAPI dependency:
        router.add_api_route(path, handler, dependencies=[Depends(session_gate(policy))])
    """

    def gate(request: Request) -> Session | None:
        return authorize(request, policy)

    gate.__name__ = f"gate_{policy.value}"
    return gate
