"""
API request and response models for SecureAuth HTTP endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Every body carries an `ok` flag; failures are `{"ok": false, "error": msg}`.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CredentialsRequest(BaseModel):
    """Request body for POST /signup and POST /login.

    Length rules are enforced by the credential store, not here, so that
    signup can report username_too_short / password_too_short with the exact
    public messages. A missing or non-string field becomes "" and then fails
    those checks like any other short value.
    """

    model_config = ConfigDict(extra="ignore")

    username: str = ""
    password: str = ""

    @field_validator("username", "password", mode="before")
    @classmethod
    def coerce_non_string(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class OkResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True


class UserResponse(BaseModel):
    """Returned by POST /signup (201) and POST /login (200)."""

    model_config = ConfigDict(frozen=True)

    ok: bool = True
    user_id: str
    username: str


class PageResponse(BaseModel):
    """Returned by the protected /internal/* pages.

    user and user_id are null only when the page was served through the
    fault-injection bypass to a caller without a session.
    """

    model_config = ConfigDict(frozen=True)

    ok: bool = True
    page: str
    user: Optional[str]
    user_id: Optional[str]


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    ok: bool = False
    error: str
