"""
Base Service Class.

Every service gets an injected ``StructuredLogger`` plus a helper for
lifecycle events, which are logged with a machine-readable ``event``
field (``LOGIN``, ``LOGOUT``, ``SESSION_WARNING`` ...).
"""

from __future__ import annotations

import logging

from session_core.logger import StructuredLogger


class BaseService:
    """Base class for all service classes. Provides a logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger

    def _log_event(
        self,
        event: str,
        msg: str,
        *args: object,
        level: int = logging.INFO,
        exc_info: bool = False,
        **fields: object,
    ) -> None:
        """Log *msg* tagged with ``extra={"event": event, **fields}``."""
        self._logger.logger.log(
            level, msg, *args, exc_info=exc_info, extra={"event": event, **fields},
        )
