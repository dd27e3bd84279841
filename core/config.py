"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the account service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY).

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Implements the DEBUG-conditional SECRET_KEY rule and the
      rotation-key checks.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. HS256 token signing
  relies on key entropy.

  In production mode (DEBUG not set or false) a missing SECRET_KEY is a hard
  startup failure.

  PREVIOUS_SECRET_KEY is accepted for verification only. Tokens are always
  issued with SECRET_KEY / SECRET_KEY_ID. Remove the previous key once the
  longest-lived token signed with it has expired.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or accounts/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("accountsvc.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'accounts' / 'accounts.db'}"

_MIN_SECRET_LEN = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (with DEBUG=true).
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
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    secret_key_id: str = "primary"
    previous_secret_key: str = ""
    previous_secret_key_id: str = ""
    token_expire_seconds: int = 3600

    # ------------------------------------------------------------------
    # Password hashing
    # ------------------------------------------------------------------

    # 10 rounds is roughly 50-100ms per hash on commodity hardware.
    bcrypt_rounds: int = 10
    hash_workers: int = 4

    # ------------------------------------------------------------------
    # Profile images
    # ------------------------------------------------------------------

    upload_dir: str = "uploads/profileimages"
    max_image_bytes: int = 5 * 1024 * 1024

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("token_expire_seconds")
    @classmethod
    def validate_token_expire_seconds(cls, v: int) -> int:
        if v < 1 or v > 604800:
            raise ValueError("TOKEN_EXPIRE_SECONDS must be between 1 and 604800 (7 days)")
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        if v < 4 or v > 16:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 16")
        return v

    @field_validator("hash_workers")
    @classmethod
    def validate_hash_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("HASH_WORKERS must be at least 1")
        return v

    @field_validator("secret_key_id")
    @classmethod
    def validate_secret_key_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("SECRET_KEY_ID must be non-empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters, and validate the
            optional previous key used during rotation.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < _MIN_SECRET_LEN:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        if self.previous_secret_key:
            if len(self.previous_secret_key) < _MIN_SECRET_LEN:
                raise ValueError("PREVIOUS_SECRET_KEY must be at least 32 characters.")
            if not self.previous_secret_key_id:
                raise ValueError("PREVIOUS_SECRET_KEY_ID is required when PREVIOUS_SECRET_KEY is set.")
            if self.previous_secret_key_id == self.secret_key_id:
                raise ValueError("PREVIOUS_SECRET_KEY_ID must differ from SECRET_KEY_ID.")
        return self

    def verification_keys(self) -> dict[str, str]:
        """Return the {key id: secret} map accepted when verifying tokens."""
        keys = {self.secret_key_id: self.secret_key}
        if self.previous_secret_key:
            keys[self.previous_secret_key_id] = self.previous_secret_key
        return keys


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
