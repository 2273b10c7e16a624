"""
auth/store.py -- SQLAlchemy Core credential store.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_user is the mapper. Route and service code never touches SQL directly.

Volatility: the default URL is an in-memory SQLite database held on a single
StaticPool connection, so every thread in the server sees the same table and
all users vanish on restart.

Atomic insert-if-absent:
  Uniqueness is enforced by the UNIQUE constraint on users.username, and the
  INSERT is the only write. There is no separate "does it exist?" query that a
  concurrent signup could slip between -- a duplicate surfaces as
  IntegrityError from the INSERT itself. Because all threads share one DBAPI
  connection, statements are additionally serialized with a lock.

  bcrypt hashing runs before the lock is taken so a slow hash never blocks
  other signups or logins.

Ids: sqlite_autoincrement=True makes SQLite use AUTOINCREMENT, which never
hands out an id twice even if rows were removed.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or scanner/.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from auth.models import User
from auth.tokens import burn_password_check, dummy_hash, hash_password, verify_password
from core.errors import AuthenticationError, ConflictError, ValidationError

_DEFAULT_DB_URL = "sqlite://"

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    sqlite_autoincrement=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_username(value: object) -> str:
    """Trim a username; anything that is not a string becomes ""."""
    return value.strip() if isinstance(value, str) else ""


def normalize_password(value: object) -> str:
    return value if isinstance(value, str) else ""


def _row_to_user(row) -> User:
    return User(
        id=str(row.id),
        username=row.username,
        password_hash=row.password_hash,
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User records.

    Usage:
        store = CredentialStore()
        user = store.create("alice", "secret1")
        same = store.verify("alice", "secret1")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, bcrypt_rounds: int = 10) -> None:
        connect_args: dict = {}
        engine_kwargs: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        _metadata.create_all(self.engine)
        self._bcrypt_rounds = bcrypt_rounds
        # Computed once so the first unknown-user login is not slower than later ones.
        self._dummy_hash = dummy_hash(bcrypt_rounds)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, username: object, password: object) -> User:
        """Validate input, hash the password, and insert the user atomically.

        Raises:
            ValidationError: username shorter than 3 chars after trimming, or
                password shorter than 6 chars. Checked in that order, before
                any uniqueness check.
            ConflictError: the username is already registered.
        """
        name = normalize_username(username)
        secret = normalize_password(password)
        if len(name) < MIN_USERNAME_LENGTH:
            raise ValidationError(
                "username_too_short",
                f"username must be at least {MIN_USERNAME_LENGTH} characters",
            )
        if len(secret) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                "password_too_short",
                f"password must be at least {MIN_PASSWORD_LENGTH} characters",
            )

        password_hash = hash_password(secret, rounds=self._bcrypt_rounds)
        created_at = _now_iso()
        with self._lock, self.engine.connect() as conn:
            try:
                result = conn.execute(
                    _users.insert().values(
                        username=name,
                        password_hash=password_hash,
                        created_at=created_at,
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise ConflictError("username_taken") from exc
        return User(
            id=str(result.inserted_primary_key[0]),
            username=name,
            password_hash=password_hash,
            created_at=created_at,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_username(self, username: str) -> User | None:
        with self._lock, self.engine.connect() as conn:
            row = conn.execute(select(_users).where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row else None

    def count(self) -> int:
        with self._lock, self.engine.connect() as conn:
            rows = conn.execute(select(_users.c.id)).fetchall()
        return len(rows)

    def verify(self, username: object, password: object) -> User:
        """Return the User whose credentials match, else raise AuthenticationError.

        Unknown username and wrong password raise the same error class with
        the same public message; only the internal reason differs
        ("unknown_user" vs "bad_password"). bcrypt runs in both branches so
        timing does not separate them either.
        """
        name = normalize_username(username)
        secret = normalize_password(password)
        user = self.get_by_username(name) if name else None
        if user is None:
            burn_password_check(secret, self._dummy_hash)
            raise AuthenticationError("unknown_user")
        if not verify_password(secret, user.password_hash):
            raise AuthenticationError("bad_password")
        return user

    def close(self) -> None:
        self.engine.dispose()
