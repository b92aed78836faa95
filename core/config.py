"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the remember-me service happen here. No
module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a key with a warning,
      production mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. Cookie
       encryption keys and session signing both derive from it.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure. A random key would silently invalidate every
       remember-me cookie on restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("rememberme.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'rememberme_users.db'}"


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
    # Salt for legacy digest password hashes (WeakPasswordHasher). Empty means
    # legacy hashes are unsalted.
    security_salt: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Remember-me cookie
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    remember_me_cookie: str = "RememberMe"
    remember_me_expires: str = "+2 weeks"
    # Token freshness tolerance. Empty means "same as remember_me_expires".
    remember_me_token_max_age: str = ""
    remember_me_crypt: str = "aes"
    remember_me_user_model: str = "users"
    remember_me_username_field: str = "user_name"
    remember_me_password_field: str = "password"
    remember_me_token_created_field: str = ""

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    resume_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Remember-me cookies will not survive restart -- acceptable for
            local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Remember-me cookies will not persist across restarts."
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

    def remember_me_options(self) -> dict:
        """Return the authenticator options described by these settings.

        The dict uses the same keys CookieAuthenticator.from_options() accepts,
        so deployments configure the adapter through the environment alone.
        """
        options: dict = {
            "cookie": {
                "name": self.remember_me_cookie,
                "expires": self.remember_me_expires,
                "secure": self.secure_cookies,
            },
            "fields": {
                "username": self.remember_me_username_field,
                "password": self.remember_me_password_field,
            },
            "userModel": self.remember_me_user_model,
            "crypt": self.remember_me_crypt,
        }
        if self.remember_me_token_created_field:
            options["tokenCreated"] = self.remember_me_token_created_field
        if self.remember_me_token_max_age:
            options["tokenMaxAge"] = self.remember_me_token_max_age
        return options


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
