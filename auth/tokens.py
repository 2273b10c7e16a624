"""
auth/tokens.py -- Password hashing, session identifiers, and the cookie helper.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). The cost factor comes from
       Settings.bcrypt_rounds. Each credential store builds a dummy hash at
       its own cost with dummy_hash(), so verify() runs a bcrypt check of
       the same cost for unknown usernames and response time does not
       reveal whether a username exists.

  Session ids: secrets.token_urlsafe(32) -- 256 bits of entropy, opaque to the
       client. The id carries no identity; the server-side SessionStore maps
       it to a user. Destroying the record therefore revokes the cookie, which
       a signed client-side session could not do.

Layer rule: no imports from api/ or scanner/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets

import bcrypt

logger = logging.getLogger("secureauth.auth")

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 10) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only uses the first 72 bytes of input and newer releases reject
    anything longer, so hashing and verification both truncate to that prefix.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def dummy_hash(rounds: int = 10) -> str:
    """Return a throwaway hash for timing equalization at the given cost.

    Must use the same cost as the real hashes it stands in for.
    """
    return hash_password("secureauth_timing_dummy", rounds=rounds)


def burn_password_check(plain: str, hashed: str) -> None:
    """Run a bcrypt comparison against hashed and throw the result away."""
    verify_password(plain, hashed)


# ---------------------------------------------------------------------------
# Session identifiers
# ---------------------------------------------------------------------------


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, name: str, session_id: str, secure: bool = False) -> None:
    """Write the session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST.
    No max_age: a browser-session cookie. Server-side state ends on logout or
    process restart either way.
    """
    response.set_cookie(
        name,
        value=session_id,
        httponly=True,
        samesite="lax",
        secure=secure,
        path="/",
    )


def clear_session_cookie(response, name: str) -> None:
    response.delete_cookie(name, path="/")
