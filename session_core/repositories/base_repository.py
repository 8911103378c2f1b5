"""
Base Repository.

Shared infrastructure for the Supabase-backed repositories:
- DatabaseManager reference
- Logger reference
- ``maybe_single`` response unwrapping
"""

from __future__ import annotations

from typing import Any, Optional

from supabase import AsyncClient

from session_core.database import DatabaseManager
from session_core.logger import StructuredLogger


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> AsyncClient:
        """Returns the Supabase client.  Raises ``RuntimeError`` when offline."""
        return self._db.supabase

    @staticmethod
    def _single_row(response: Any) -> Optional[dict[str, Any]]:
        """Unwrap a ``maybe_single()`` response.

        Depending on the postgrest version a missing row comes back either
        as ``None`` or as a response whose ``data`` is ``None``.
        """
        if response is None:
            return None
        data = getattr(response, "data", None)
        return data or None

    @staticmethod
    def _rows(response: Any) -> list[dict[str, Any]]:
        data = getattr(response, "data", None) if response is not None else None
        return list(data or [])
