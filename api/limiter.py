"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/auth.py (to apply the login limit with @limiter.limit()).

A single shared instance means every route shares one in-memory counter
store. If this were instantiated per module, each module would get its own
isolated counter and limits would never trigger.

The limiter starts disabled. create_app() calls configure_limiter() with the
values from Settings; the login limit string is read at request time through
login_limit(), so one process can be reconfigured (tests do this).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://", enabled=False)

_login_limit = "5/minute"


def configure_limiter(enabled: bool, login_rate_limit: str) -> None:
    """Switch limiting on/off, set the login limit, and clear all counters."""
    global _login_limit
    _login_limit = login_rate_limit
    limiter.enabled = enabled
    limiter.reset()


def login_limit() -> str:
    return _login_limit
