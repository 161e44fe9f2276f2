"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for JobHub happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. backend_base_url -> BACKEND_BASE_URL). List fields are read as JSON.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. The edge server's SECRET_KEY only signs the short-lived OAuth
      state cookie, so a missing key is fatal only when Google OAuth is
      configured outside of dev mode.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("jobhub.config")

_DEFAULT_STORAGE_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'jobhub_storage.db'}"


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
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Backend
    # ------------------------------------------------------------------

    backend_base_url: str = "http://localhost:8080/api"
    backend_timeout: float = 10.0

    # ------------------------------------------------------------------
    # Client storage -- key names are shared by every tab of the origin
    # ------------------------------------------------------------------

    storage_db_url: str = _DEFAULT_STORAGE_URL
    account_storage_key: str = "jobhub_account"
    access_token_storage_key: str = "jobhub_access_token"
    reset_flow_storage_key: str = "jobhub_reset_password_state"

    # ------------------------------------------------------------------
    # Edge route guard
    # ------------------------------------------------------------------

    refresh_cookie_name: str = "jobhub_refresh_token"
    login_path: str = "/login"
    protected_prefixes: list[str] = ["/job-seeker/dashboard", "/recruiter/dashboard", "/admin"]

    # ------------------------------------------------------------------
    # OTP -- length is owned by the backend; None means "any non-empty code"
    # ------------------------------------------------------------------

    otp_length: Optional[int] = None

    # ------------------------------------------------------------------
    # Google federated login (empty string means disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""

    # ------------------------------------------------------------------
    # Edge HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Resolve SECRET_KEY for the edge server's session middleware.

        Missing key: generated with a warning, unless Google OAuth is configured
        in production mode, where OAuth state must survive a restart.
        Keys shorter than 32 characters are always rejected.
        """
        if not self.secret_key:
            if self.google_client_id and not self.debug:
                raise ValueError(
                    "SECRET_KEY is required when Google OAuth is configured in production mode. "
                    "Set SECRET_KEY in your environment or .env file, or set DEBUG=true."
                )
            self.secret_key = secrets.token_hex(32)
            if self.debug:
                logger.warning("Using auto-generated SECRET_KEY. OAuth state will not survive restarts.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.otp_length is not None and self.otp_length < 1:
            raise ValueError("OTP_LENGTH must be a positive integer when set.")
        return self

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
