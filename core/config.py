"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for FitZone happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, remember_token_days -> REMEMBER_TOKEN_DAYS).

  @model_validator(mode="after"): cross-field validation. Dev mode generates a
      SECRET_KEY with a warning; production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Remember tokens are
  stored as HMAC-SHA256(SECRET_KEY, token), so a short key weakens the lookup
  hash. A missing key outside DEBUG is a hard startup failure: a random key
  would silently invalidate every outstanding remember token on restart.

  secure_cookies defaults to True. Session and remember cookies are only ever
  sent over HTTPS unless a developer explicitly turns this off.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("fitzone.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'fitzone_auth.db'}"


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
    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    # ------------------------------------------------------------------
    # Cookies
    # ------------------------------------------------------------------

    secure_cookies: bool = True
    session_cookie_name: str = "fitzone_session"
    remember_cookie_name: str = "remember_token"

    # ------------------------------------------------------------------
    # Lifetimes
    # ------------------------------------------------------------------

    # Server-side session records idle longer than this are dropped by the store.
    session_ttl_seconds: int = 24 * 3600
    # Absolute window, no sliding renewal.
    remember_token_days: int = 30
    purge_interval_seconds: int = 6 * 3600

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Remember tokens will not survive a restart.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Remember-me tokens will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.remember_token_days < 1:
            raise ValueError("REMEMBER_TOKEN_DAYS must be at least 1.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
