"""Portalbot application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  The field name is the
**lowercase** version of the env-var name (e.g. ``PORTAL_LOGIN_URL`` →
``portal_login_url``).

Typical usage::

    from portalbot.core.settings import Settings

    settings = Settings()
    print(settings.portal_login_url, settings.poll_interval_s)
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).

    The portal endpoints default to the campus gateway the wire format was
    written against; override them for any other deployment.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Portal endpoints
    # ------------------------------------------------------------------
    portal_login_url: str = Field(
        default="http://172.16.68.6:8090/httpclient.html",
        description="Login form endpoint (mode=191).",
    )
    portal_logout_url: str = Field(
        default="http://172.16.68.6:8090/logout.xml",
        description="Logout endpoint (mode=193).",
    )
    probe_url: str = Field(
        default="http://www.google.com/generate_204",
        description="Well-known 204 endpoint used as the connectivity probe.",
    )
    speed_test_url: str = Field(
        default="https://sabnzbd.org/tests/internetspeed/10MB.bin",
        description="Fixed-size reference object downloaded by the speed test.",
    )
    speed_test_size_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        description="Size of the speed-test reference object in bytes.",
    )

    # ------------------------------------------------------------------
    # Timeouts
    # ------------------------------------------------------------------
    login_timeout_s: float = Field(
        default=5.0,
        gt=0,
        description="Deadline for one login or logout request.",
    )
    probe_timeout_s: float = Field(
        default=3.0,
        gt=0,
        description="Deadline for the connectivity probe.",
    )
    speed_test_timeout_s: float = Field(
        default=30.0,
        gt=0,
        description="Deadline for the speed-test download.",
    )

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    poll_interval_s: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between scheduler ticks.",
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    database_path: str = Field(
        default="data/portalbot.db",
        description="Path to the SQLite state store.",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("portal_login_url", "portal_logout_url", "probe_url", "speed_test_url")
    @classmethod
    def _validate_http_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"expected an http(s) URL, got {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def database_path_resolved(self) -> Path:
        """Return the database path as a resolved :class:`~pathlib.Path`."""
        return Path(self.database_path).resolve()
