"""
auth/service.py -- Signup / login / logout orchestration.

AuthService is the only caller of CredentialStore and SessionStore writes.
Routes translate its return values and GatewayError exceptions into HTTP;
nothing here knows about requests, cookies, or telemetry.
"""

from __future__ import annotations

import logging

from auth.models import Session, User
from auth.sessions import SessionStore, TerminateResult
from auth.store import CredentialStore

logger = logging.getLogger("secureauth.auth")


class AuthService:
    def __init__(self, credentials: CredentialStore, sessions: SessionStore) -> None:
        self.credentials = credentials
        self.sessions = sessions

    def signup(self, username: object, password: object) -> User:
        """Register a new user. Raises ValidationError or ConflictError."""
        user = self.credentials.create(username, password)
        logger.info("User created id=%s", user.id)
        return user

    def login(self, username: object, password: object, previous: Session | None = None) -> tuple[User, Session]:
        """Check credentials and open a fresh session. Raises AuthenticationError.

        `previous` is the session the caller already held, if any. It is
        dropped only after the credential check succeeds, so a failed login
        leaves an existing session untouched.
        """
        user = self.credentials.verify(username, password)
        if previous is not None:
            self.sessions.terminate(previous)
        return user, self.sessions.establish(user)

    def logout(self, session: Session | None) -> TerminateResult:
        return self.sessions.terminate(session)
