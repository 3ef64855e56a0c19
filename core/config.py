"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the admin auth service happen here. No
module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, login_failure_threshold ->
      LOGIN_FAILURE_THRESHOLD).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Used for the DEBUG-conditional SECRET_KEY policy and for the
      lockout schedule sanity checks.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. Session token
       signing relies on key entropy -- a short key weakens every session.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure. A random per-process key would silently log every
       admin out on restart.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or audit/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("adminauth.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validators enforce
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
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_cookie_name: str = "admin_session"
    # Fixed lifetime from issue time; sessions do not slide.
    session_lifetime_seconds: int = 86400

    # ------------------------------------------------------------------
    # Brute-force limiter (per email)
    # ------------------------------------------------------------------

    login_failure_threshold: int = 3
    lockout_base_seconds: float = 8.0
    lockout_max_seconds: float = 60.0
    rate_limit_inactivity_seconds: float = 15 * 60
    rate_limit_purge_interval_seconds: float = 5 * 60

    # ------------------------------------------------------------------
    # Outer per-IP throttle (slowapi)
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    ip_rate_limit_enabled: bool = True

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = "sqlite:///adminauth.db"
    # Audit-store endpoint. Empty string means "same database as admins".
    audit_database_url: str = ""
    db_timeout_seconds: float = 5.0
    audit_write_timeout_seconds: float = 2.0
    # Cap on outstanding audit writes; further events are dropped while full.
    audit_max_pending_writes: int = 100

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_lockout_schedule(self) -> "Settings":
        """Reject lockout settings that would disable or invert the backoff."""
        if self.login_failure_threshold < 1:
            raise ValueError("LOGIN_FAILURE_THRESHOLD must be at least 1.")
        if self.lockout_base_seconds <= 0 or self.lockout_max_seconds < self.lockout_base_seconds:
            raise ValueError("LOCKOUT_BASE_SECONDS must be positive and not exceed LOCKOUT_MAX_SECONDS.")
        if self.rate_limit_inactivity_seconds < self.lockout_max_seconds:
            raise ValueError("RATE_LIMIT_INACTIVITY_SECONDS must be at least LOCKOUT_MAX_SECONDS.")
        if self.audit_max_pending_writes < 1:
            raise ValueError("AUDIT_MAX_PENDING_WRITES must be at least 1.")
        if self.session_lifetime_seconds <= 0:
            raise ValueError("SESSION_LIFETIME_SECONDS must be positive.")
        return self

    @property
    def audit_store_url(self) -> str:
        return self.audit_database_url or self.database_url


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
