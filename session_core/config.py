"""
Application Configuration.

Pydantic Settings model for the session core.  All configuration is
loaded from environment variables and ``.env`` files.  Inject an
``AppConfig`` instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # --- Session lifecycle ---
    # Fallback used when the ``system_settings`` row is missing or unreadable.
    DEFAULT_AUTO_LOGOUT_MINUTES: int = 30

    # --- First-login provisioning ---
    DEFAULT_JOB_TITLE: str = "Senior Loan Officer"
    STARTER_BADGE_NAME: str = "Rookie of the Year"
    DISPLAY_NAME_OVERRIDES: dict[str, str] = Field(default_factory=dict)

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""  # empty -> console only
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @field_validator("DEFAULT_AUTO_LOGOUT_MINUTES")
    @classmethod
    def _positive_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("DEFAULT_AUTO_LOGOUT_MINUTES must be positive")
        return value

    @field_validator("DISPLAY_NAME_OVERRIDES")
    @classmethod
    def _normalise_override_keys(cls, value: dict[str, str]) -> dict[str, str]:
        return {email.strip().lower(): name for email, name in value.items()}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when the identity backend is not configured.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so operators would otherwise only find out at the first sign-in.
        """
        _log = logging.getLogger("session_core.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL or not self.SUPABASE_ANON_KEY.get_secret_value():
            _log.warning(
                "SUPABASE_URL / SUPABASE_ANON_KEY are empty; identity and "
                "profile calls will fail and every session resolves to "
                "signed-out."
            )

        return self

    @property
    def log_level(self) -> int:
        """Numeric logging level for ``LOG_LEVEL`` (INFO when unknown)."""
        level = logging.getLevelName(self.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path skips the lock.
    Prefer constructor injection of ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance


def reset_config() -> None:
    """Drop the cached singleton so the next ``get_config()`` re-reads the env."""
    global _config_instance
    with _config_lock:
        _config_instance = None
