"""
Logging system for the change tracker.

Provides structured logging with multiple formats, handlers, and filters.

Example:
    >>> from change_tracker.core.logging import LoggingConfig, TrackerLogger
    >>>
    >>> config = LoggingConfig.create(level="DEBUG", format="colored")
    >>> logger = TrackerLogger(config, tracker_id="pull-inbox")
    >>> logger.info("Started", url="https://db.example.com/inbox/_changes")
"""

from .config import LoggingConfig, LogLevel, LogFormat, LogStream
from .logger import TrackerLogger
from .formatters import JSONFormatter, TextFormatter, ColoredFormatter, get_formatter
from .filters import TrackerIdFilter, ExtraFieldsFilter
from .handlers import create_console_handler, create_file_handler

__all__ = [
    # Config
    "LoggingConfig",
    "LogLevel",
    "LogFormat",
    "LogStream",
    # Logger
    "TrackerLogger",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    "ColoredFormatter",
    "get_formatter",
    # Filters
    "TrackerIdFilter",
    "ExtraFieldsFilter",
    # Handlers
    "create_console_handler",
    "create_file_handler",
]
