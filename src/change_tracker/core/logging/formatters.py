"""
Log formatters for different output formats.

Provides JSON, text, and colored formatters. All three append the
structured fields passed to TrackerLogger (``url``, ``status_code``,
``tracker_id`` ...) to the message.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

# Standard LogRecord attributes that are never treated as extra fields
_RECORD_FIELDS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
    'asctime', 'taskName',
})


def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the non-standard attributes of a record, in insertion order."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_FIELDS and not key.startswith('_')
    }


def _render_extra(record: logging.LogRecord) -> str:
    parts: List[str] = [f"{key}={value}" for key, value in extra_fields(record).items()]
    return " ".join(parts)


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Example output:
        {"timestamp": "2024-01-15T10:30:45.123000+00:00", "level": "INFO",
         "logger": "change_tracker", "message": "Started",
         "url": "https://db.example.com/inbox/_changes?feed=longpoll&heartbeat=300000"}
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(extra_fields(record))

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """
    Plain text formatter.

    Format: [timestamp] [level] [logger] message [extra_fields]
    """

    def __init__(self):
        """Initialize text formatter."""
        super().__init__(
            fmt='[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as text."""
        base_msg = super().format(record)
        rendered = _render_extra(record)
        if rendered:
            base_msg += " " + rendered
        return base_msg


class ColoredFormatter(TextFormatter):
    """
    Colored text formatter for terminal output.

    Uses ANSI color codes to colorize log levels.
    """

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[1;31m', # Bold Red
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def get_formatter(format_type: str) -> logging.Formatter:
    """
    Get formatter by type.

    Raises:
        ValueError: If format_type is unknown
    """
    formatters = {
        "json": JSONFormatter,
        "text": TextFormatter,
        "colored": ColoredFormatter,
    }

    formatter_class = formatters.get(format_type.lower())
    if not formatter_class:
        raise ValueError(
            f"Unknown format type: {format_type}. "
            f"Available: {', '.join(formatters.keys())}"
        )

    return formatter_class()
