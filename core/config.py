"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Storekeep happen here. No module should
call os.getenv() or os.environ.get() directly.

Design:
  BaseSettings (pydantic-settings): reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. access_secret_key -> ACCESS_SECRET_KEY).

  Explicit wiring: components (TokenIssuer, TotpCodeService, notifiers,
      stores) receive the Settings instance in their constructor. Only the
      application assembly (api/main.py lifespan) calls get_settings(). Tests
      build Settings(...) directly and pass it in, so no component reads a
      module-level secret.

  @model_validator(mode="after"): DEBUG-conditional secret handling. Dev mode
      generates missing secrets with a warning; production mode refuses to
      start without them.

Security notes:
  Signing keys and the OTP secret shorter than 32 chars are rejected. The
  access and refresh keys must differ: a refresh token must never verify as
  an access token.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/ or catalog/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("storekeep.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'storekeep.db'}"

_SECRET_FIELDS = ("access_secret_key", "refresh_secret_key", "otp_secret")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings(debug=True) can be instantiated in
    test environments without a real .env file.
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
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The validator either
    # generates a dev value or raises, so callers never see "".
    access_secret_key: str = ""
    refresh_secret_key: str = ""
    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 3600

    # ------------------------------------------------------------------
    # One-time codes
    # ------------------------------------------------------------------

    otp_secret: str = ""
    otp_step_seconds: int = 1800
    otp_digits: int = 6
    # Adjacent time steps accepted on either side of the current one.
    otp_window: int = 1
    # "log" writes the code to the application log (dev only),
    # "email" sends it over SMTP, "sms" posts it to the SMS gateway.
    otp_channel: str = "log"

    # ------------------------------------------------------------------
    # Email (SMTP)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from: str = ""

    # ------------------------------------------------------------------
    # SMS gateway
    # ------------------------------------------------------------------

    sms_gateway_url: str = ""
    sms_gateway_token: str = ""
    sms_sender: str = "4546"

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    upload_dir: str = "uploads"
    public_base_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Account policy switches (defaults keep the historical behaviour)
    # ------------------------------------------------------------------

    block_inactive_login: bool = False
    refresh_requires_active: bool = False
    promote_requires_superadmin: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the secret policy for signing keys and the OTP secret.

        Dev mode (DEBUG=true): auto-generate any missing secret with a warning.
            Tokens and pending codes will not survive a restart.

        Production mode: refuse to start if any secret is missing.

        Both modes: reject secrets shorter than 32 characters, and reject an
            access key equal to the refresh key.
        """
        for name in _SECRET_FIELDS:
            value = getattr(self, name)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                setattr(self, name, secrets.token_hex(32))
                logger.warning("Using auto-generated %s. Values will not persist across restarts.", name.upper())
            elif len(value) < 32:
                raise ValueError(f"{name.upper()} must be at least 32 characters.")
        if self.access_secret_key == self.refresh_secret_key:
            raise ValueError("ACCESS_SECRET_KEY and REFRESH_SECRET_KEY must differ.")
        if self.otp_channel not in ("log", "email", "sms"):
            raise ValueError("OTP_CHANNEL must be one of: log, email, sms.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings instance.

    Called once by the application assembly. Components never call this;
    they receive the instance through their constructor.

    In tests: call get_settings.cache_clear() if you need to inject different
    environment variables.
    """
    return Settings()
