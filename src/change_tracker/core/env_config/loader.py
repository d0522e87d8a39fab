"""
Configuration loader from environment variables and .env files.

Main entry point for loading configuration.
"""

from typing import Optional

from pydantic import ValidationError

from ..config import RetryConfig, TrackerConfig
from ..exceptions import ConfigurationError
from ..logging.config import LoggingConfig
from .settings import TrackerSettings


def load_from_env(env_file: Optional[str] = None, **overrides) -> TrackerConfig:
    """
    Load TrackerConfig from environment variables.

    Priority (highest to lowest):
    1. **overrides - explicit parameters
    2. Environment variables (CHANGE_TRACKER_*)
    3. .env file
    4. Defaults

    Args:
        env_file: Custom .env file path
        **overrides: Explicit config overrides (settings field names)

    Returns:
        TrackerConfig instance

    Raises:
        ConfigurationError: Invalid or missing values

    Example:
        >>> config = load_from_env()
        >>> config = load_from_env(database_url="https://db.example.com/inbox", mode="longpoll")
    """
    try:
        if env_file is None:
            settings = TrackerSettings()
        else:
            settings = TrackerSettings(_env_file=env_file)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid CHANGE_TRACKER_* environment: {e}") from e

    def value(name: str):
        return overrides.get(name, getattr(settings, name))

    database_url = value('database_url')
    if not database_url:
        raise ConfigurationError("CHANGE_TRACKER_DATABASE_URL is required")

    retry = RetryConfig(
        max_attempts=value('retry_max_attempts'),
        backoff_base=value('retry_backoff_base'),
        backoff_factor=value('retry_backoff_factor'),
        backoff_max=value('retry_backoff_max'),
        backoff_jitter=value('retry_backoff_jitter'),
    )

    # Build logging config (if enabled)
    logging_config = None
    if value('log_enabled') or value('log_file_path'):
        file_path = value('log_file_path')
        logging_config = LoggingConfig.create(
            level=value('log_level'),
            format=value('log_format'),
            enable_file=bool(file_path),
            file_path=file_path,
            max_bytes=value('log_max_bytes'),
            backup_count=value('log_backup_count'),
        )

    headers = overrides.get('headers') or {}

    return TrackerConfig.create(
        database_url,
        mode=value('mode'),
        limit=value('limit'),
        heartbeat=value('heartbeat'),
        headers=headers,
        logging=logging_config,
        retry=retry,
        since=value('since'),
        include_conflicts=value('include_conflicts'),
        filter_name=value('filter_name'),
        verify_ssl=value('verify_ssl'),
    )
