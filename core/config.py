"""
core/config.py -- CV Portal settings, read once from the environment.

Every environment variable the service understands is a field on Settings
(SECRET_KEY, DATABASE_URL, TOKEN_EXPIRE_SECONDS, ...); pydantic-settings maps
names case-insensitively and also reads an optional .env file. Nothing else
in the tree touches os.environ.

get_settings() is cached, so the first call fixes the configuration for the
process. Only the assembly points read it: the lifespan in api/main.py and
the create-admin command in main.py. TokenIssuer and AuthService take their
values as constructor arguments instead.

Startup checks:
  [M6] SECRET_KEY must be at least 32 characters; the HS256 signature is only
       as strong as the key.
  [M7] Without DEBUG=true a missing SECRET_KEY aborts startup. With DEBUG=true
       a throwaway key is generated and every session dies on restart.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or cv/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("cvportal.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'cvportal.db'}"


class Settings(BaseSettings):
    """Environment-backed configuration for the API and the CLI.

    Only SECRET_KEY lacks a usable default, and only outside debug mode.
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

    token_expire_seconds: int = 24 * 3600
    reset_token_expire_seconds: int = 3600

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    # Applied as pool checkout timeout and driver connect/busy timeout.
    db_timeout_seconds: int = 10

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    auth_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def check_security(self) -> "Settings":
        """Resolve SECRET_KEY and reject unsafe values [M6][M7]."""
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
        if self.token_expire_seconds <= 0:
            raise ValueError("TOKEN_EXPIRE_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
