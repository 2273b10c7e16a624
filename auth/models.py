"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only own the shape.

Layer rule: no imports from api/ or scanner/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class User:
    """A registered identity.

    id is the store-assigned sequential key rendered as a string on the wire
    ("1", "2", ...). password_hash is a bcrypt hash; plaintext is never kept.
    """

    id: str
    username: str
    password_hash: str
    created_at: str | None = None


@dataclass(frozen=True)
class Session:
    """Server-side record behind an opaque session cookie.

    session_id is the only thing the client ever holds. Absence of a Session
    means the request is unauthenticated.
    """

    session_id: str
    user_id: str
    username: str
    created_at: str
