"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for CodeStandoff happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, github_client_id -> GITHUB_CLIENT_ID).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a signing key with a
      warning, production mode refuses to start without one.

Security notes:
  [S1] The JWT signing secret is never embedded in source. SECRET_KEY shorter
       than 32 chars is rejected outright.

  [S2] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure, and cookies default to Secure.

Layer rule: core/ is the kernel. This module may not import from api/, graph/,
auth/, or training/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("codestandoff.config")

_LOCAL_FRONTENDS = [
    "http://localhost:3000",  # host-ui
    "http://localhost:3001",  # dashboard-ui
    "http://localhost:3002",  # training-ui
    "http://localhost:3003",  # 1v1-ui
    "http://localhost:3004",  # playground-ui
    "http://localhost:3005",  # signup-builder-ui
    "http://localhost:3006",  # marketing-ui
]


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
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    port: int = 8080

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # None means "derive from debug": Secure in production, plain in dev.
    secure_cookies: Optional[bool] = None
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Database -- DATABASE_URL wins over the individual DB_* parts
    # ------------------------------------------------------------------

    database_url: str = ""
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "thunderbird"
    db_password: str = ""
    db_name: str = "codestandoff"
    db_sslmode: str = "disable"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    frontend_url: str = "http://localhost:3000"
    cors_origins: list[str] = _LOCAL_FRONTENDS
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    # Empty list means "CORS origins plus FRONTEND_URL".
    allowed_redirect_origins: list[str] = []
    oauth_rate_limit: str = "20/minute"

    # ------------------------------------------------------------------
    # OAuth providers (optional -- empty client id means provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_url: str = "http://localhost:8080/auth/google/callback"
    github_client_id: str = ""
    github_client_secret: str = ""
    github_redirect_url: str = "http://localhost:8080/auth/github/callback"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy [S1] [S2].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
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
        if self.secure_cookies is None:
            self.secure_cookies = not self.debug
        return self

    @property
    def redirect_origins(self) -> set[str]:
        """Origins accepted as post-login redirect targets."""
        if self.allowed_redirect_origins:
            return set(self.allowed_redirect_origins)
        return {*self.cors_origins, self.frontend_url.rstrip("/")}


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
