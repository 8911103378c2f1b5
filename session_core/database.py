"""
Database Connection Layer.

Owns the single ``supabase.AsyncClient`` shared by the identity client,
the profile/bootstrap repositories and the settings service.  The hosted
backend is the only store the session core talks to; this module holds
the connection and contains no query logic.

Usage (dependency injection at app startup)::

    from session_core.database import DatabaseManager
    from session_core.logger import StructuredLogger

    db = await DatabaseManager.connect(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        logger=StructuredLogger(name="database"),
    )
"""

from __future__ import annotations

from typing import Optional

from supabase import AsyncClient, acreate_client

from session_core.logger import StructuredLogger


class DatabaseManager:
    """Holds the Supabase async client.

    When credentials are missing (or client creation fails) the manager
    is still constructed and ``supabase`` raises ``RuntimeError`` on
    access.  Every caller already treats a raised error as an I/O failure,
    so an unconfigured backend simply behaves like an unreachable one:
    ``initialize()`` resolves to signed-out and ``login()`` returns
    ``False``.

    Parameters
    ----------
    client:
        An initialised ``AsyncClient`` or ``None`` for offline mode.
    logger:
        A ``StructuredLogger`` instance.
    """

    def __init__(
        self,
        client: Optional[AsyncClient],
        logger: StructuredLogger,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._supabase: Optional[AsyncClient] = client

    @classmethod
    async def connect(
        cls,
        supabase_url: str,
        supabase_key: str,
        logger: StructuredLogger,
    ) -> "DatabaseManager":
        """Create the async client and wrap it in a ``DatabaseManager``."""
        client: Optional[AsyncClient] = None
        if supabase_url and supabase_key:
            try:
                client = await acreate_client(supabase_url, supabase_key)
                logger.info("Supabase client initialized.")
            except (ValueError, TypeError) as exc:
                logger.warning(
                    "Supabase credential format error: %s. Running in offline mode.",
                    exc,
                )
            except Exception as exc:
                logger.error(
                    "Unexpected Supabase initialization failure: %s. "
                    "Running in offline mode.",
                    exc,
                    exc_info=True,
                )
        else:
            logger.warning(
                "Supabase credentials not configured; running in offline mode."
            )
        return cls(client, logger)

    @property
    def supabase(self) -> AsyncClient:
        """Return the initialised Supabase client.

        Raises
        ------
        RuntimeError
            If the client was not initialised (offline mode).
        """
        if self._supabase is None:
            raise RuntimeError(
                "Supabase client is not initialised. "
                "The application is running in offline mode."
            )
        return self._supabase

    @property
    def is_online(self) -> bool:
        """``True`` when the Supabase client is available."""
        return self._supabase is not None

    def close(self) -> None:
        """Drop the client reference.  Safe to call multiple times."""
        if self._supabase is not None:
            self._supabase = None
            self._logger.info("Supabase client released.")
