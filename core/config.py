"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for ProxyVault happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a SECRET_KEY with a
      warning; production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and the
  derived credential-encryption key both rely on its entropy.

  CREDENTIAL_KEY, when set, must be base64 for exactly 32 bytes. When unset,
  inventory/crypto.py derives the proxy-password key from SECRET_KEY, which
  means rotating SECRET_KEY makes stored proxy passwords unreadable.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, inventory/, audit/, or services/.
"""

import base64
import binascii
import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("proxyvault.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'proxyvault.db'}"


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
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_expire_seconds: int = 24 * 3600
    login_rate_limit: str = "10/minute"

    # First-run bootstrap. A SuperAdmin with these credentials (and the
    # default "IT Department") is created when no SuperAdmin exists yet.
    # Empty admin_password disables the bootstrap.
    admin_username: str = "admin"
    admin_password: str = ""

    # ------------------------------------------------------------------
    # Proxy credential encryption
    # ------------------------------------------------------------------

    credential_key: str = ""  # base64, 32 bytes; derived from SECRET_KEY when empty

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    # ------------------------------------------------------------------
    # Inventory / audit
    # ------------------------------------------------------------------

    expiring_window_days: int = 7
    audit_workers: int = 2

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens and derived credential keys will not survive restart.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. "
                    "Tokens and stored proxy passwords will not survive a restart."
                )
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
    def validate_credential_key(self) -> "Settings":
        """Reject a CREDENTIAL_KEY that is not base64 for a 256-bit key."""
        if not self.credential_key:
            return self
        try:
            raw = base64.b64decode(self.credential_key, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("CREDENTIAL_KEY must be valid base64.") from exc
        if len(raw) != 32:
            raise ValueError(f"CREDENTIAL_KEY must decode to 32 bytes, got {len(raw)}.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
