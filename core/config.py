"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AccountGuard happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  AuthPolicy: the lockout and token constants are copied out of Settings into a
      frozen dataclass that services receive through their constructors. Tests
      build their own AuthPolicy with short durations instead of patching env.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and
       the derived token encryption key both rely on its entropy.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("accountguard.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'accountguard.db'}"

DEFAULT_BCRYPT_ROUNDS = 12


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
    # "production" hides verification codes from API responses.
    environment: str = "development"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    # Host headers accepted by TrustedHostMiddleware. "testserver" is the
    # host Starlette's TestClient sends.
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "testserver"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Optional Fernet key (urlsafe base64, 32 bytes). Derived from
    # secret_key when empty.
    token_encryption_key: str = ""
    jwt_expiration_minutes: int = Field(default=4320, gt=0)

    # ------------------------------------------------------------------
    # Lockout and password hashing
    # ------------------------------------------------------------------

    login_attempt_limit: int = Field(default=5, ge=1)
    block_duration_minutes: int = Field(default=120, gt=0)
    bcrypt_rounds: int = Field(default=DEFAULT_BCRYPT_ROUNDS, ge=4, le=31)

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@dataclass(frozen=True)
class AuthPolicy:
    """Lockout, token and hashing constants injected into every auth service.

    attempt_limit:        failed logins allowed before the account is blocked.
    block_duration:       how long a block lasts once the limit is crossed.
    token_lifetime:       validity window of an issued token.
    expose_verification:  include verification codes in responses (never in production).
    bcrypt_rounds:        cost factor for new password hashes and the timing dummy.
    """

    attempt_limit: int = 5
    block_duration: timedelta = timedelta(hours=2)
    token_lifetime: timedelta = timedelta(minutes=4320)
    expose_verification: bool = True
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthPolicy":
        return cls(
            attempt_limit=settings.login_attempt_limit,
            block_duration=timedelta(minutes=settings.block_duration_minutes),
            token_lifetime=timedelta(minutes=settings.jwt_expiration_minutes),
            expose_verification=not settings.is_production,
            bcrypt_rounds=settings.bcrypt_rounds,
        )


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
