"""
Structured JSON Logging Module.

Every lifecycle transition of the session core (bootstrap, login,
warning, expiry, logout) is emitted as one JSON object per line so the
dashboard's log shipper can index the ``event`` field directly.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO, Union


class JSONFormatter(logging.Formatter):
    """Formats log records as structured JSON objects.

    Each entry carries ``timestamp`` (ISO-8601, UTC), ``level``,
    ``logger_name`` and ``message``; caller-supplied ``extra`` fields are
    nested under ``extra`` and tracebacks under ``exception``.
    """

    _STANDARD_ATTRS: frozenset[str] = frozenset(
        logging.LogRecord(
            name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
        ).__dict__.keys()
    ) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Union[str, dict[str, str]]] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, str] = {
            key: str(value)
            for key, value in record.__dict__.items()
            if key not in self._STANDARD_ATTRS
        }
        if extra_fields:
            entry["extra"] = extra_fields

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False)


class StructuredLogger:
    """Injectable logger wrapper.

    Services receive an instance through their constructor instead of
    calling ``logging.getLogger`` at module level::

        class ProfileLoader(BaseService):
            def __init__(self, ..., logger: StructuredLogger) -> None:
                super().__init__(logger)

    ``level``, ``log_file``, ``max_bytes`` and ``backup_count`` default to
    the values in :class:`~session_core.config.AppConfig`.  A file handler
    is only attached when a log file is configured.
    """

    def __init__(
        self,
        name: str = "session_core",
        level: Optional[int] = None,
        stream: Union[TextIO, None] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        # Lazy import to avoid circular dependency at module level
        from session_core.config import get_config
        _cfg = get_config()

        resolved_level: int = level if level is not None else _cfg.log_level
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(resolved_level)

        # Prevent duplicate handlers when the same name is reused.
        if not self._logger.handlers:
            formatter = JSONFormatter()

            stream_handler = logging.StreamHandler(stream or sys.stdout)
            stream_handler.setLevel(resolved_level)
            stream_handler.setFormatter(formatter)
            self._logger.addHandler(stream_handler)

            resolved_log_file: str = log_file if log_file is not None else _cfg.LOG_FILE
            if resolved_log_file:
                self._attach_file_handler(
                    resolved_log_file,
                    level=resolved_level,
                    formatter=formatter,
                    max_bytes=max_bytes if max_bytes is not None else _cfg.LOG_MAX_BYTES,
                    backup_count=(
                        backup_count if backup_count is not None else _cfg.LOG_BACKUP_COUNT
                    ),
                )

    def _attach_file_handler(
        self,
        log_file: str,
        *,
        level: int,
        formatter: logging.Formatter,
        max_bytes: int,
        backup_count: int,
    ) -> None:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(log_path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Could not create log file '%s': %s. "
                "Continuing with console logging only.",
                log_file,
                exc,
            )
            return
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        self._logger.addHandler(file_handler)

    @property
    def logger(self) -> logging.Logger:
        """Access the underlying ``logging.Logger`` directly."""
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "session_core") -> StructuredLogger:
    """Create and return a ``StructuredLogger`` named *name*."""
    return StructuredLogger(name=name)
