"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AreaGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The app
      lifespan reads it once and hands the values to each component
      constructor, so auth/ and workspace/ never look configuration up on
      their own.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_secret -> SESSION_SECRET).

  @model_validator(mode="after"): Cross-field validation of the two signing
      secrets. Dev mode generates them with a warning, production mode refuses
      to start without them.

Security notes:
  [M6] Secrets shorter than 32 chars are rejected outright. HMAC-SHA256 token
       signing relies on key entropy.

  [M7] In production mode (DEBUG not set or false), a missing secret is a
       hard startup failure.

  [S1] SESSION_SECRET and TOKEN_SECRET must differ. A magic-link token must
       never verify as a session token and vice versa; identical secrets would
       silently collapse the two token kinds into one.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/, or workspace/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("areagate.config")

_FIVE_YEARS = 60 * 60 * 24 * 365 * 5


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev secret or raises, so callers never see "".
    session_secret: str = ""
    token_secret: str = ""

    # ------------------------------------------------------------------
    # Tokens and cookies
    # ------------------------------------------------------------------

    session_lifetime_seconds: int = _FIVE_YEARS
    magic_link_lifetime_seconds: int = _FIVE_YEARS
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    frontend_url: str = "http://localhost:3000"
    backend_url: str = "http://localhost:8080"
    # Comma-separated allowlist. Empty means "frontend_url only".
    cors_origins: str = ""

    # ------------------------------------------------------------------
    # Storage (empty = sqlite file next to the store module)
    # ------------------------------------------------------------------

    auth_db_url: str = ""
    workspace_db_url: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing secret policy [M6][M7][S1]."""
        for name in ("session_secret", "token_secret"):
            value = getattr(self, name)
            if not value:
                if self.debug:
                    setattr(self, name, secrets.token_hex(32))
                    logger.warning(
                        "WARNING: Using auto-generated %s. Tokens will not verify across restarts.",
                        name.upper(),
                    )
                else:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
            elif len(value) < 32:
                raise ValueError(f"{name.upper()} must be at least 32 characters.")
        if self.session_secret == self.token_secret:
            raise ValueError("SESSION_SECRET and TOKEN_SECRET must be different.")
        if self.session_lifetime_seconds <= 0 or self.magic_link_lifetime_seconds <= 0:
            raise ValueError("Token lifetimes must be positive.")
        return self

    def allowed_origins(self) -> list[str]:
        """Return the CORS allowlist, falling back to the frontend URL."""
        if self.cors_origins.strip():
            return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return [self.frontend_url]


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
