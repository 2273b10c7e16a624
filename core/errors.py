"""
core/errors.py -- Gateway error taxonomy.

Every foreseeable failure is raised as a GatewayError subclass. The API layer
registers one exception handler that turns any of them into

    {"ok": false, "error": <message>}

with the matching status code, and records `reason` on the request's
telemetry context. `message` goes on the wire; `reason` never does.

Harness-side transport failures are not exceptions at all -- scanner/client.py
returns them as {"ok": False, "error": ...} values so a probe sequence can
always continue.
"""

from __future__ import annotations


class GatewayError(Exception):
    status_code: int = 500
    message: str = "internal error"

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        if message is not None:
            self.message = message
        super().__init__(f"{reason}: {self.message}")


class ValidationError(GatewayError):
    """Malformed or too-short input."""

    status_code = 400
    message = "invalid request"


class ConflictError(GatewayError):
    status_code = 409
    message = "username already exists"


class AuthenticationError(GatewayError):
    """Bad credentials.

    The message is fixed on the class so an unknown username and a wrong
    password cannot produce different bodies. Only `reason` differs.
    """

    status_code = 401
    message = "invalid credentials"

    def __init__(self, reason: str = "invalid_credentials") -> None:
        super().__init__(reason)


class AuthorizationError(GatewayError):
    """Missing or unusable session on a protected route. Uniform body for every cause."""

    status_code = 401
    message = "unauthorized"

    def __init__(self, reason: str = "no_session") -> None:
        super().__init__(reason)


class ServerError(GatewayError):
    status_code = 500
    message = "internal error"

    def __init__(self, reason: str = "server_error", message: str | None = None) -> None:
        super().__init__(reason, message)
