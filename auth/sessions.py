"""
auth/sessions.py -- Server-side session lifecycle.

The client holds only an opaque id in an httpOnly cookie; SessionStore maps
that id to the user it was issued for. Because the mapping lives here and not
in the cookie, terminate() truly revokes access: replaying the old cookie
after logout resolves to nothing.

Sessions are volatile: a restart logs everyone out.

Layer rule: no imports from api/ or scanner/.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone

from auth.models import Session, User
from auth.tokens import new_session_id

logger = logging.getLogger("secureauth.auth")


@dataclass(frozen=True)
class TerminateResult:
    """Outcome of terminate(). ok=False carries reason "destroy_failed"."""

    ok: bool
    reason: str


class SessionStore:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def establish(self, user: User) -> Session:
        """Create a fresh session bound to user and return it."""
        session = Session(
            session_id=new_session_id(),
            user_id=user.id,
            username=user.username,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def resolve(self, session_id: str | None) -> Session | None:
        """Look up the session for a cookie value. Missing or unknown ids yield None."""
        if not session_id:
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def terminate(self, session: Session | None) -> TerminateResult:
        """Destroy the server-side state for session.

        No session at all is a no-op success. A session that was already
        removed (e.g. a concurrent logout) is also treated as success: the
        postcondition -- the id no longer resolves -- holds.
        """
        if session is None:
            return TerminateResult(ok=True, reason="no_session")
        try:
            with self._lock:
                self._sessions.pop(session.session_id, None)
        except Exception:
            logger.exception("Session destroy failed for user_id=%s", session.user_id)
            return TerminateResult(ok=False, reason="destroy_failed")
        return TerminateResult(ok=True, reason="destroyed")

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
