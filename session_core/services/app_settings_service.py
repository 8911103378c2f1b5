"""
Application Settings Service.

Read/write access to the ``system_settings`` key-value table managed
from the admin console.  Provides typed accessors for the settings the
session core consumes and a generic get/set for the rest.

Like the identity client, this service talks to the table directly
instead of going through a repository: the table stores operational
configuration, not domain records::

    system_settings (
        id            uuid primary key,
        setting_key   text unique not null,
        setting_value text not null,
        setting_type  text,
        updated_at    timestamptz
    )
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from session_core.database import DatabaseManager
from session_core.logger import StructuredLogger
from session_core.services.base_service import BaseService

_KEY_AUTO_LOGOUT_TIMEOUT: str = "auto_logout_timeout_minutes"


class AppSettingsService(BaseService):
    """Reads and writes ``system_settings`` rows.

    Parameters
    ----------
    db:
        ``DatabaseManager`` providing the Supabase client.
    logger:
        Structured logger instance.
    default_auto_logout_minutes:
        Returned by :meth:`get_auto_logout_timeout_minutes` whenever the
        stored value is missing, unreadable or not a positive integer.
    """

    TABLE: str = "system_settings"

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        default_auto_logout_minutes: int = 30,
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._default_auto_logout_minutes = default_auto_logout_minutes

    # ------------------------------------------------------------------
    # Generic key-value access
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        """Read a setting value by key.  Returns ``None`` if not found or on error."""
        try:
            response = await (
                self._db.supabase.table(self.TABLE)
                .select("setting_value")
                .eq("setting_key", key)
                .maybe_single()
                .execute()
            )
        except Exception as exc:
            self._logger.warning("Failed to read system_settings[%s]: %s", key, exc)
            return None
        row = getattr(response, "data", None) if response is not None else None
        if not row:
            return None
        value = row.get("setting_value")
        return None if value is None else str(value)

    async def set(self, key: str, value: str, setting_type: str = "string") -> bool:
        """Upsert a setting value.  Returns ``True`` on success."""
        try:
            await (
                self._db.supabase.table(self.TABLE)
                .upsert(
                    {
                        "setting_key": key,
                        "setting_value": value,
                        "setting_type": setting_type,
                        "updated_at": datetime.now(timezone.utc).isoformat(),
                    },
                    on_conflict="setting_key",
                )
                .execute()
            )
        except Exception as exc:
            self._logger.error("Failed to write system_settings[%s]: %s", key, exc)
            return False
        self._logger.info("system_settings[%s] updated.", key)
        return True

    # ------------------------------------------------------------------
    # Typed accessors: auto-logout timeout
    # ------------------------------------------------------------------

    async def get_auto_logout_timeout_minutes(self) -> int:
        """Return the inactivity timeout in minutes.  Never raises."""
        raw = await self.get(_KEY_AUTO_LOGOUT_TIMEOUT)
        if raw is None:
            return self._default_auto_logout_minutes
        try:
            minutes = int(raw.strip())
        except ValueError:
            self._logger.warning(
                "Ignoring non-numeric %s=%r; using %d minutes.",
                _KEY_AUTO_LOGOUT_TIMEOUT,
                raw,
                self._default_auto_logout_minutes,
            )
            return self._default_auto_logout_minutes
        if minutes <= 0:
            self._logger.warning(
                "Ignoring non-positive %s=%d; using %d minutes.",
                _KEY_AUTO_LOGOUT_TIMEOUT,
                minutes,
                self._default_auto_logout_minutes,
            )
            return self._default_auto_logout_minutes
        return minutes

    async def set_auto_logout_timeout_minutes(self, minutes: int) -> bool:
        """Persist a new inactivity timeout.

        Raises
        ------
        ValueError
            If *minutes* is not a positive integer.
        """
        if minutes <= 0:
            raise ValueError("Auto-logout timeout must be a positive number of minutes.")
        return await self.set(_KEY_AUTO_LOGOUT_TIMEOUT, str(minutes), setting_type="number")
