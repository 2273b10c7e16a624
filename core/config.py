"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for SecureAuth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() or
get_scanner_settings() instead.

Two settings classes live side by side:

  Settings         -- the gateway (fault-injection toggle, cookie flags,
                      bcrypt cost, optional login rate limit, telemetry sink).
  ScannerSettings  -- the verification harness (target URL, evidence
                      directory, timeouts). The harness is a separate process
                      and never reads gateway settings.

Singleton via lru_cache: each getter instantiates its class once at first call
and returns the cached instance afterwards. Tests build Settings(...) directly
and pass it to api.main.create_app() rather than patching the environment.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or scanner/.
"""

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("secureauth.config")

# Routes guarded by the authorization gate. vuln_route must name one of these.
PROTECTED_ROUTES: tuple[str, ...] = (
    "/internal/dashboard",
    "/internal/settings",
    "/internal/reports",
)


class Settings(BaseSettings):
    """Gateway settings loaded from environment variables and .env file.

    All fields have defaults so Settings() works in tests without a .env file.
    Field names map to upper-cased env vars (vuln_mode -> VULN_MODE).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Fault injection (security-training only)
    # ------------------------------------------------------------------

    vuln_mode: bool = False
    vuln_route: str = "/internal/reports"

    # ------------------------------------------------------------------
    # Sessions and passwords
    # ------------------------------------------------------------------

    session_cookie_name: str = "sid"
    secure_cookies: bool = False
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # ------------------------------------------------------------------
    # Rate limiting (login only; off unless explicitly enabled)
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = False
    login_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Telemetry / hosting
    # ------------------------------------------------------------------

    # Empty string disables the JSONL file sink; events still go to the log stream.
    telemetry_log_path: str = ""
    # Host header allow-list for TrustedHostMiddleware; env value is a JSON array.
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "testserver", "*.localhost"]

    @model_validator(mode="after")
    def validate_vuln_route(self) -> "Settings":
        """Reject a bypass target that is not a gated route.

        A typo here would otherwise leave every route gated while the operator
        believes the training fault is active. When vuln_mode is on the gate is
        disabled for one route, which is logged as a warning at startup.
        """
        if self.vuln_route not in PROTECTED_ROUTES:
            raise ValueError(f"VULN_ROUTE must be one of {', '.join(PROTECTED_ROUTES)}; got {self.vuln_route!r}")
        if self.vuln_mode:
            logger.warning("VULN_MODE enabled: authorization gate bypassed for %s", self.vuln_route)
        return self


class ScannerSettings(BaseSettings):
    """Harness settings. TARGET and OUT_DIR are the two an operator usually sets."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    target: str = "http://localhost:3000"
    out_dir: str = "evidence/scanner-results"
    user_agent: str = "SecureAuthScanner/1.0"

    # The transport timeout is the first line of defence; the hard timeout
    # bounds the probe even if the transport never fires its own.
    request_timeout_seconds: float = Field(default=8.0, gt=0)
    hard_timeout_seconds: float = Field(default=10.0, gt=0)

    rate_probe_attempts: int = Field(default=8, ge=1)


@lru_cache
def get_settings() -> Settings:
    """Return the gateway Settings singleton.

    In tests: call get_settings.cache_clear() if you need to inject different
    environment variables.
    """
    return Settings()


@lru_cache
def get_scanner_settings() -> ScannerSettings:
    """Return the harness ScannerSettings singleton."""
    return ScannerSettings()
