"""
Pydantic settings for environment configuration.

Flat ``CHANGE_TRACKER_*`` variables, validated and converted to the frozen
config dataclasses by the loader.
"""

from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..config import DEFAULT_HEARTBEAT


class TrackerSettings(BaseSettings):
    """
    Change tracker configuration from environment variables.

    Reads from:
    1. Environment variables (CHANGE_TRACKER_*)
    2. .env file
    3. Defaults

    Example .env file:
        CHANGE_TRACKER_DATABASE_URL=https://db.example.com/inbox
        CHANGE_TRACKER_MODE=longpoll
        CHANGE_TRACKER_LIMIT=100
        CHANGE_TRACKER_HEARTBEAT=300
        CHANGE_TRACKER_RETRY_MAX_ATTEMPTS=10
        CHANGE_TRACKER_LOG_LEVEL=DEBUG

    Usage:
        >>> settings = TrackerSettings()
        >>> print(settings.mode)
        'longpoll'
    """

    model_config = SettingsConfigDict(
        env_prefix='CHANGE_TRACKER_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    # Feed
    database_url: str = Field(default="", description="Database URL (https://host/db)")
    mode: Literal["normal", "longpoll", "continuous"] = Field(default="normal")
    limit: Optional[int] = Field(default=None, gt=0)
    heartbeat: float = Field(default=DEFAULT_HEARTBEAT, gt=0, description="Heartbeat in seconds")
    since: Optional[str] = None
    include_conflicts: bool = Field(default=False)
    filter_name: Optional[str] = None
    verify_ssl: bool = Field(default=True)

    # Retry
    retry_max_attempts: Optional[int] = Field(default=None, ge=0)
    retry_backoff_base: float = Field(default=2.0, ge=0)
    retry_backoff_factor: float = Field(default=2.0, ge=1.0)
    retry_backoff_max: float = Field(default=600.0, ge=0)
    retry_backoff_jitter: bool = Field(default=False)

    # Logging
    log_enabled: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    log_format: Literal["json", "text", "colored"] = Field(default="text")
    log_file_path: Optional[str] = None
    log_max_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    log_backup_count: int = Field(default=5, ge=0)

    @field_validator('mode', mode='before')
    @classmethod
    def normalize_mode(cls, v):
        """Accept enum names ("LONG_POLL", "one_shot") as well as wire names."""
        if isinstance(v, str):
            aliases = {"one_shot": "normal", "long_poll": "longpoll"}
            text = v.strip().lower()
            return aliases.get(text, text)
        return v

    @field_validator('log_level', mode='before')
    @classmethod
    def normalize_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator('since', mode='before')
    @classmethod
    def since_as_text(cls, v):
        return str(v) if isinstance(v, int) else v
