"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Clubhouse happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead,
or better, accept a Settings instance from the app factory.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation for the two server
      secrets. Dev mode generates them with a warning, production mode refuses
      to start without them.

Security notes:
  [S1] SECRET_KEY signs the JWT and keys the cookie encryption. CSRF_SECRET keys
       the per-session CSRF secret derivation. They are separate so a leak of
       one does not forge the other.

  [S2] Keys shorter than 32 chars are rejected outright.

  [S3] ENVIRONMENT=production switches cookies to Secure + SameSite=Strict.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Optional

from limits import parse_many
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("clubhouse.config")

_MIN_SECRET_LENGTH = 32


class DatabaseSettings(BaseSettings):
    """Storage settings only. No secret policy applies.

    The admin CLI (main.py) reads these, so it runs on a host that has a
    DATABASE_URL but none of the web secrets.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Empty string means "use the default SQLite file next to auth/store.py".
    database_url: str = ""


class Settings(DatabaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    environment: str = "development"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    csrf_secret: str = ""

    # ------------------------------------------------------------------
    # Cookies and tokens
    # ------------------------------------------------------------------

    cookie_domain: Optional[str] = None
    # Every path prefix cookies were ever issued under. Logout and invalid
    # token cleanup clear the auth cookies on each of them.
    cookie_paths: list[str] = ["/", "/api"]
    token_expire_seconds: int = 24 * 60 * 60
    session_expire_seconds: int = 24 * 60 * 60

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    # database_url comes from DatabaseSettings.
    admin_username: str = ""
    admin_password: str = ""

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["http://localhost:3001", "http://127.0.0.1:3001"]

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("login_rate_limit")
    @classmethod
    def validate_rate_limit(cls, value: str) -> str:
        """slowapi logs and skips a limit it cannot parse, leaving login unthrottled."""
        try:
            parse_many(value)
        except ValueError:
            raise ValueError(f"LOGIN_RATE_LIMIT is not a valid rate limit: {value!r}") from None
        return value

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the SECRET_KEY / CSRF_SECRET policy [S1][S2].

        Dev mode (DEBUG=true): auto-generate missing secrets with a warning.
            Logins and CSRF sessions will not survive a restart.

        Production mode (DEBUG=false or not set): refuse to start if either
            secret is missing.

        Both modes: reject secrets shorter than 32 characters.
        """
        for field in ("secret_key", "csrf_secret"):
            value = getattr(self, field)
            if not value:
                if self.debug:
                    setattr(self, field, secrets.token_hex(32))
                    logger.warning(
                        "Using auto-generated %s. Sessions will not persist across restarts.", field.upper()
                    )
                    continue
                raise ValueError(
                    f"{field.upper()} is required in production mode. "
                    f"Set {field.upper()} in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            if len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{field.upper()} must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.secret_key == self.csrf_secret:
            logger.warning("SECRET_KEY and CSRF_SECRET are identical; use independent values.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
