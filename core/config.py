"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Signon happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. public_url -> PUBLIC_URL). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Used for the DEBUG-conditional SECRET_KEY policy: dev mode
      generates a key with a warning, production mode refuses to start without one.

Google credentials:
  GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET are the current names. The legacy
  GOOGLE_CLIENT_ID_D / GOOGLE_CLIENT_SECRET_D names are still honoured as
  fallbacks. Use google_client_id_value() / google_client_secret_value() to
  read the effective credential -- never the raw fields.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("signon.config")

_DEFAULT_DB_URL = "sqlite:///signon.db"


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
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    # Path prefix the app is mounted under, e.g. "/signon". "" = site root.
    base_url: str = ""
    # Scheme + host the browser sees, e.g. "https://app.example.com".
    public_url: str = ""
    # Host headers TrustedHostMiddleware accepts. JSON list in the env var,
    # e.g. ALLOWED_HOSTS='["app.example.com"]'.
    allowed_hosts: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 3600
    login_rate_limit: str = "10/minute"

    # Whitespace- or comma-separated list of email domains that may
    # auto-provision an editor account on first Google sign-in.
    allowed_domains: str = ""

    # ------------------------------------------------------------------
    # Google OAuth (optional -- empty string means provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    google_client_id_d: str = ""  # legacy name
    google_client_secret_d: str = ""  # legacy name

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def google_client_id_value(self) -> str:
        return self.google_client_id or self.google_client_id_d

    def google_client_secret_value(self) -> str:
        return self.google_client_secret or self.google_client_secret_d

    def google_auth_configured(self) -> bool:
        """Return True when both a Google client ID and secret are available."""
        return bool(self.google_client_id_value() and self.google_client_secret_value())

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

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
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables, or construct Settings(...)
    directly and pass it to the function under test.
    """
    return Settings()
