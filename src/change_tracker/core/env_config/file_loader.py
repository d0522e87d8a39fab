"""
Загрузка TrackerConfig из YAML/JSON файла.

Example tracker.yaml:

    change_tracker:
      database_url: https://db.example.com/inbox
      mode: longpoll
      limit: 100
      heartbeat: 300
      headers:
        X-Replication-Id: pull-inbox
      retry:
        max_attempts: 10
        backoff_max: 120
      logging:
        level: DEBUG
        format: json
"""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Type, Union

import yaml

from ..config import DEFAULT_HEARTBEAT, RetryConfig, TrackerConfig
from ..exceptions import ConfigurationError
from ..logging import LoggingConfig

CONFIG_FILE_ENV_VAR = "CHANGE_TRACKER_CONFIG_FILE"

# Корневой ключ (необязательный) - позволяет держать трекер в общем конфиге приложения
ROOT_KEY = "change_tracker"

_RETRY_KEYS = ("max_attempts", "backoff_base", "backoff_factor", "backoff_max", "backoff_jitter")


class ConfigValidationError(ConfigurationError):
    """Файл конфигурации не читается или содержит невалидные значения."""


def _load_yaml(stream) -> Any:
    return yaml.safe_load(stream)


def _load_json(stream) -> Any:
    return json.load(stream)


# suffix -> (название формата, парсер, исключение синтаксиса)
_FORMATS: Dict[str, Tuple[str, Callable[[Any], Any], Type[Exception]]] = {
    ".yaml": ("YAML", _load_yaml, yaml.YAMLError),
    ".yml": ("YAML", _load_yaml, yaml.YAMLError),
    ".json": ("JSON", _load_json, json.JSONDecodeError),
}


class ConfigFileLoader:
    """
    Загрузчик конфигурации трекера из файлов.

    Examples:
        >>> config = ConfigFileLoader.from_yaml("tracker.yaml")
        >>> config = ConfigFileLoader.from_file("tracker.json")   # формат по расширению
        >>> config = ConfigFileLoader.from_env_path()             # путь из CHANGE_TRACKER_CONFIG_FILE
    """

    @staticmethod
    def from_yaml(path: Union[str, Path]) -> TrackerConfig:
        """
        Raises:
            FileNotFoundError: Файла нет
            ConfigValidationError: Синтаксис или значения невалидны
        """
        return ConfigFileLoader._load(Path(path), ".yaml")

    @staticmethod
    def from_json(path: Union[str, Path]) -> TrackerConfig:
        """
        Raises:
            FileNotFoundError: Файла нет
            ConfigValidationError: Синтаксис или значения невалидны
        """
        return ConfigFileLoader._load(Path(path), ".json")

    @staticmethod
    def from_file(path: Union[str, Path]) -> TrackerConfig:
        """Формат определяется по расширению: .yaml, .yml или .json."""
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix not in _FORMATS:
            raise ConfigValidationError(
                f"Unsupported config file format: {suffix or '(none)'} "
                f"(expected one of {', '.join(_FORMATS)})"
            )
        return ConfigFileLoader._load(path, suffix)

    @staticmethod
    def from_env_path() -> Optional[TrackerConfig]:
        """Файл из CHANGE_TRACKER_CONFIG_FILE, или None если переменная не задана."""
        config_path = os.environ.get(CONFIG_FILE_ENV_VAR)
        return ConfigFileLoader.from_file(config_path) if config_path else None

    @staticmethod
    def _load(path: Path, suffix: str) -> TrackerConfig:
        name, parse, syntax_error = _FORMATS[suffix]
        if not path.is_file():
            raise FileNotFoundError(f"Tracker config file not found: {path}")

        with path.open(encoding="utf-8") as stream:
            try:
                data = parse(stream)
            except syntax_error as e:
                raise ConfigValidationError(f"Invalid {name} in {path}: {e}") from e

        if not data:
            raise ConfigValidationError(f"Empty config file: {path}")
        return ConfigFileLoader._build_config(data, str(path))

    @staticmethod
    def _section(config_data: Dict[str, Any], name: str, source: str) -> Dict[str, Any]:
        section = config_data.get(name)
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise ConfigValidationError(f"{name} must be a dictionary in {source}")
        return section

    @staticmethod
    def _logging_config(section: Dict[str, Any]) -> LoggingConfig:
        return LoggingConfig.create(
            level=section.get("level", "INFO"),
            format=section.get("format", "text"),
            enable_console=section.get("enable_console", True),
            console_stream=section.get("console_stream", "stderr"),
            enable_file=section.get("enable_file", bool(section.get("file_path"))),
            file_path=section.get("file_path"),
            enable_tracker_id=section.get("enable_tracker_id", True),
        )

    @staticmethod
    def _build_config(data: Any, source: str) -> TrackerConfig:
        """
        Собрать TrackerConfig из разобранного файла.

        Raises:
            ConfigValidationError: Структура или значения невалидны
        """
        if isinstance(data, dict) and ROOT_KEY in data:
            data = data[ROOT_KEY]
        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"Tracker config must be a dictionary in {source}, got {type(data).__name__}"
            )
        if not data.get("database_url"):
            raise ConfigValidationError(f"database_url is required in {source}")

        section = ConfigFileLoader._section
        try:
            retry_data = section(data, "retry", source)
            retry = RetryConfig(**{key: retry_data[key] for key in _RETRY_KEYS if key in retry_data})

            logging_config = None
            if "logging" in data:
                logging_config = ConfigFileLoader._logging_config(section(data, "logging", source))

            headers = section(data, "headers", source)
            doc_ids = data.get("doc_ids")
            if doc_ids is not None and not isinstance(doc_ids, list):
                raise ConfigValidationError(f"doc_ids must be a list in {source}")

            return TrackerConfig.create(
                data["database_url"],
                mode=data.get("mode", "normal"),
                limit=data.get("limit"),
                heartbeat=data.get("heartbeat", DEFAULT_HEARTBEAT),
                headers={str(name): str(value) for name, value in headers.items()},
                logging=logging_config,
                retry=retry,
                since=data.get("since"),
                include_conflicts=data.get("include_conflicts", False),
                filter_name=data.get("filter"),
                filter_params=section(data, "filter_params", source),
                doc_ids=doc_ids,
                verify_ssl=data.get("verify_ssl", True),
            )
        except ConfigValidationError:
            raise
        except (ValueError, TypeError) as e:
            raise ConfigValidationError(f"Invalid tracker config in {source}: {e}") from e
