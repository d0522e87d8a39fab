"""
Environment and file configuration for the change tracker.

Example:
    >>> from src.change_tracker.core.env_config import load_from_env, ConfigFileLoader
    >>>
    >>> # CHANGE_TRACKER_* variables / .env
    >>> config = load_from_env()
    >>>
    >>> # YAML or JSON file
    >>> config = ConfigFileLoader.from_file("tracker.yaml")
"""

from .loader import load_from_env
from .settings import TrackerSettings
from .file_loader import CONFIG_FILE_ENV_VAR, ConfigFileLoader, ConfigValidationError

__all__ = [
    "load_from_env",
    "TrackerSettings",
    "ConfigFileLoader",
    "ConfigValidationError",
    "CONFIG_FILE_ENV_VAR",
]
