"""
Log handlers for file and console output.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, List, TextIO


def _attach(
    handler: logging.Handler,
    level: int,
    formatter: logging.Formatter,
    filters: Optional[List[logging.Filter]]
) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    for f in filters or ():
        handler.addFilter(f)


def create_console_handler(
    level: int,
    formatter: logging.Formatter,
    filters: Optional[List[logging.Filter]] = None,
    stream: Optional[TextIO] = None
) -> logging.StreamHandler:
    """
    Create console handler.

    Args:
        level: Log level (e.g. logging.INFO)
        formatter: Formatter instance
        filters: List of filters to add
        stream: Output stream (default: sys.stderr)

    Returns:
        StreamHandler configured for console
    """
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    _attach(handler, level, formatter, filters)
    return handler


def create_file_handler(
    file_path: str,
    level: int,
    formatter: logging.Formatter,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    filters: Optional[List[logging.Filter]] = None
) -> RotatingFileHandler:
    """
    Create rotating file handler.

    Automatically rotates log file when it reaches max_bytes and keeps
    backup_count old files. The parent directory is created if missing.
    """
    log_dir = Path(file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        filename=file_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    _attach(handler, level, formatter, filters)
    return handler
