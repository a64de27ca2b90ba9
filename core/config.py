"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for FieldPass happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, public_base_url -> PUBLIC_BASE_URL).

  @model_validator(mode="after"): Cross-field validation once all fields are
      resolved. Dev mode generates a SECRET_KEY with a warning, production
      mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
  relies on key entropy.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a
  hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, grants/, directory/, or client/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("fieldpass.config")


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 8 * 3600

    # ------------------------------------------------------------------
    # Access grants
    # ------------------------------------------------------------------

    # Prefix for the scannable URL handed to the auditor: {base}/verify/{token}
    public_base_url: str = "http://localhost:8000"
    # Used when an issue request carries neither valid_to nor ttl_minutes.
    default_grant_ttl_minutes: int = Field(default=8 * 60, gt=0)
    verify_code_length: int = Field(default=6, ge=4, le=10)
    # allow     -- overlapping grants for one (audit, auditor, dept) coexist;
    #              the newest is authoritative for callers.
    # supersede -- issuing revokes every other non-revoked grant for the triple.
    grant_overlap_policy: Literal["allow", "supersede"] = "allow"

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    scan_rate_limit: str = "60/minute"
    # Verify codes are short numeric secrets; this limit is the brute-force
    # guard (there is no per-grant lockout).
    verify_code_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # CLI / HTTP client
    # ------------------------------------------------------------------

    api_base_url: str = "http://localhost:8000/api/v1"
    api_token: str = ""
    client_timeout_seconds: float = 10.0
    client_max_retries: int = Field(default=3, ge=0)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start if SECRET_KEY is missing.
        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        self.public_base_url = self.public_base_url.rstrip("/")
        self.api_base_url = self.api_base_url.rstrip("/")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
