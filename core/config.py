"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for EventHub Identity happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_ttl_seconds -> SESSION_TTL_SECONDS). Type coercion and
      validation are built in.

  @model_validator(mode="after"): Cross-field checks that only make sense
      once every field is resolved (refresh threshold vs TTL, remote provider
      URL presence).

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("eventhub.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'eventhub_auth.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # 7 days. Every new session and every refresh gets this much life.
    session_ttl_seconds: int = Field(default=7 * 24 * 3600, gt=0)
    # Sessions with less than this remaining are extended on refresh.
    session_refresh_threshold_seconds: int = Field(default=24 * 3600, gt=0)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    # bcrypt accepts 4..31. 12 is the production cost; tests drop to 4.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    # Upper bound on concurrent bcrypt computations per process.
    hash_workers: int = Field(default=4, ge=1)
    # Stricter policy variant: also require one symbol.
    password_require_symbol: bool = False

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    auth_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Credential provider
    # ------------------------------------------------------------------

    # "local": in-house bcrypt + opaque session tokens.
    # "remote": delegate to an external identity service over HTTP.
    auth_provider: Literal["local", "remote"] = "local"
    identity_provider_url: str = ""
    identity_provider_timeout: float = 10.0

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_session_and_provider(self) -> "Settings":
        """Reject combinations that would silently break auth.

        A refresh threshold at or above the TTL would extend every session on
        every request. A remote provider without a URL cannot authenticate
        anyone.
        """
        if self.session_refresh_threshold_seconds >= self.session_ttl_seconds:
            raise ValueError("SESSION_REFRESH_THRESHOLD_SECONDS must be smaller than SESSION_TTL_SECONDS.")
        if self.auth_provider == "remote" and not self.identity_provider_url:
            raise ValueError("IDENTITY_PROVIDER_URL is required when AUTH_PROVIDER=remote.")
        if not self.debug and self.bcrypt_rounds < 10:
            logger.warning("WARNING: bcrypt cost %d is below the production default of 12.", self.bcrypt_rounds)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
