"""
Structured logger used by change trackers.

Wraps a stdlib ``logging.Logger`` with handlers, formatters and filters
built from a LoggingConfig, and masks credentials in every field.
"""

import logging
import sys
from typing import Optional, Any

from .config import LoggingConfig, LogLevel, LogStream
from .formatters import get_formatter
from .filters import TrackerIdFilter, ExtraFieldsFilter
from .handlers import create_console_handler, create_file_handler
from ...utils.sanitizer import mask_sensitive_data


class TrackerLogger:
    """
    Logger for one change tracker.

    Example:
        >>> config = LoggingConfig.create(level="DEBUG", format="json")
        >>> logger = TrackerLogger(config, name="change_tracker.db.example.com")
        >>> logger.info("Started", url="https://db.example.com/inbox/_changes")
    """

    def __init__(
        self,
        config: Optional[LoggingConfig] = None,
        name: str = "change_tracker",
        tracker_id: Optional[str] = None
    ):
        """
        Initialize logger.

        Args:
            config: Logging configuration (uses defaults if None)
            name: Logger name
            tracker_id: Id stamped on every record (when enabled in config)
        """
        self.config = config or LoggingConfig()
        self.name = name
        self._closed = False

        self._logger = logging.getLogger(name)
        self._logger.setLevel(self._get_level(self.config.level))
        self._logger.propagate = False

        # Remove existing handlers (if reinitializing)
        for handler in self._logger.handlers[:]:
            self._logger.removeHandler(handler)

        filters = []
        if self.config.enable_tracker_id and tracker_id:
            filters.append(TrackerIdFilter(tracker_id))
        if self.config.extra_fields:
            filters.append(ExtraFieldsFilter(self.config.extra_fields))

        formatter = get_formatter(self.config.format.value)
        level = self._get_level(self.config.level)

        if self.config.enable_console:
            stream = sys.stdout if self.config.console_stream == LogStream.STDOUT else sys.stderr
            self._logger.addHandler(
                create_console_handler(level=level, formatter=formatter, filters=filters, stream=stream)
            )

        if self.config.enable_file and self.config.file_path:
            self._logger.addHandler(
                create_file_handler(
                    file_path=self.config.file_path,
                    level=level,
                    formatter=formatter,
                    max_bytes=self.config.max_bytes,
                    backup_count=self.config.backup_count,
                    filters=filters
                )
            )

    def _get_level(self, level: LogLevel) -> int:
        """Convert LogLevel enum to logging level int."""
        return getattr(logging, level.value)

    def _sanitize(self, fields: dict) -> dict:
        return mask_sensitive_data(fields)

    def is_enabled_for(self, level: int) -> bool:
        """True if a record of this level would be emitted."""
        return self._logger.isEnabledFor(level)

    def log(self, level: int, message: str, **kwargs: Any) -> None:
        """Log message at an explicit numeric level."""
        self._logger.log(level, message, extra=self._sanitize(kwargs))

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message with extra fields."""
        self._logger.debug(message, extra=self._sanitize(kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message with extra fields."""
        self._logger.info(message, extra=self._sanitize(kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message with extra fields."""
        self._logger.warning(message, extra=self._sanitize(kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error message with extra fields."""
        self._logger.error(message, extra=self._sanitize(kwargs))

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback. Call from an exception handler."""
        self._logger.exception(message, extra=self._sanitize(kwargs))

    def close(self) -> None:
        """
        Flush and close all handlers.

        Idempotent - it can be safely called multiple times.
        """
        if self._closed:
            return

        for handler in self._logger.handlers[:]:
            try:
                handler.flush()
                handler.close()
            except (OSError, ValueError):
                pass
            self._logger.removeHandler(handler)

        self._closed = True

    def __enter__(self):
        """Context manager support."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Close logger on context exit."""
        self.close()
        return False
