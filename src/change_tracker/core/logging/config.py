"""
Logging configuration for the change tracker.

Provides configuration classes for structured logging.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any


class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""
    JSON = "json"
    TEXT = "text"
    COLORED = "colored"


class LogStream(str, Enum):
    """Console stream for log output."""
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class LoggingConfig:
    """
    Configuration for change tracker logging.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format (json, text, colored)
        enable_console: Enable console logging
        console_stream: Console stream; stderr by default so stdout stays
            free for the changes themselves
        enable_file: Enable file logging
        file_path: Path to log file (required if enable_file=True)
        max_bytes: Max log file size before rotation (default: 10MB)
        backup_count: Number of backup log files to keep (default: 5)
        enable_tracker_id: Stamp every record with the tracker id
        extra_fields: Additional fields to add to every log entry

    Example:
        >>> config = LoggingConfig.create(
        ...     level="DEBUG",
        ...     format="json",
        ...     enable_file=True,
        ...     file_path="/var/log/tracker.log"
        ... )
    """

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.TEXT
    enable_console: bool = True
    console_stream: LogStream = LogStream.STDERR
    enable_file: bool = False
    file_path: Optional[str] = None
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    enable_tracker_id: bool = True
    extra_fields: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration."""
        if self.enable_file and not self.file_path:
            raise ValueError("file_path is required when enable_file=True")
        if self.max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        if self.backup_count < 0:
            raise ValueError("backup_count must be non-negative")

    @classmethod
    def create(
        cls,
        level: str = "INFO",
        format: str = "text",
        enable_console: bool = True,
        console_stream: str = "stderr",
        enable_file: bool = False,
        file_path: Optional[str] = None,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        enable_tracker_id: bool = True,
        extra_fields: Optional[Dict[str, Any]] = None
    ) -> "LoggingConfig":
        """
        Create LoggingConfig with string values.

        Example:
            >>> config = LoggingConfig.create(level="debug", format="colored")
        """
        return cls(
            level=LogLevel(level.upper()),
            format=LogFormat(format.lower()),
            enable_console=enable_console,
            console_stream=LogStream(console_stream.lower()),
            enable_file=enable_file,
            file_path=file_path,
            max_bytes=max_bytes,
            backup_count=backup_count,
            enable_tracker_id=enable_tracker_id,
            extra_fields=extra_fields or {}
        )
