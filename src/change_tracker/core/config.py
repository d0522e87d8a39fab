"""
Система конфигурации для change tracker.

Все конфиги immutable (frozen dataclasses). Единственное значение, которое
трекер меняет во время работы - heartbeat - хранится в самом трекере,
а не в конфиге.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, TYPE_CHECKING, Union
from urllib.parse import urlsplit

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .logging import LoggingConfig

DEFAULT_HEARTBEAT = 5 * 60.0

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# FEED MODE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class FeedMode(str, Enum):
    """
    Режим changes feed.

    Значение enum - имя режима в параметре ``feed=`` запроса.
    """
    ONE_SHOT = "normal"
    LONG_POLL = "longpoll"
    CONTINUOUS = "continuous"

    @classmethod
    def parse(cls, value: Union[str, "FeedMode"]) -> "FeedMode":
        """
        Разобрать режим из строки.

        Принимает wire-имя ("longpoll") или имя enum ("LONG_POLL", "one_shot").

        Raises:
            ConfigurationError: Неизвестный режим
        """
        if isinstance(value, FeedMode):
            return value
        text = str(value).strip()
        for mode in cls:
            if text.lower() == mode.value or text.upper() == mode.name:
                return mode
        raise ConfigurationError(f"Unknown feed mode: {value!r}")

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RETRY CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class RetryConfig:
    """
    Конфигурация повторов после временных ошибок соединения.

    Args:
        max_attempts: Максимум повторов подряд (None - без ограничения)
        backoff_base: Задержка перед первым повтором (сек)
        backoff_factor: Множитель для exponential backoff
        backoff_max: Максимальная задержка (сек)
        backoff_jitter: Добавлять случайность (против thundering herd)

    Examples:
        >>> RetryConfig()                      # 2s, 4s, 8s ... до 10 минут
        >>> RetryConfig(max_attempts=5, backoff_base=0.5)
    """
    max_attempts: Optional[int] = None
    backoff_base: float = 2.0
    backoff_factor: float = 2.0
    backoff_max: float = 10 * 60.0
    backoff_jitter: bool = False

    def __post_init__(self):
        """Валидация."""
        if self.max_attempts is not None and self.max_attempts < 0:
            raise ConfigurationError("max_attempts must be non-negative")
        if self.backoff_base < 0:
            raise ConfigurationError("backoff_base must be non-negative")
        if self.backoff_factor < 1:
            raise ConfigurationError("backoff_factor must be >= 1")
        if self.backoff_max < 0:
            raise ConfigurationError("backoff_max must be non-negative")

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MAIN CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _freeze_dict(d: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    """Convert mapping to immutable MappingProxyType."""
    if d is None:
        return MappingProxyType({})
    return MappingProxyType(dict(d))


@dataclass(frozen=True)
class TrackerConfig:
    """
    Главная конфигурация change tracker.

    Args:
        database_url: URL базы данных (``https://host:port/dbname``)
        mode: Режим feed (one-shot, long-poll, continuous)
        limit: Максимум изменений за один запрос (None - без лимита)
        heartbeat: Начальный heartbeat (сек)
        request_headers: Дополнительные заголовки каждого запроса
        since: Начальная последовательность (параметр ``since``)
        include_conflicts: Запрашивать все ревизии (``style=all_docs``)
        filter_name: Имя серверного фильтра
        filter_params: Параметры фильтра
        doc_ids: Отслеживать только эти документы (фильтр ``_doc_ids``)
        verify_ssl: Проверять TLS сертификаты
        retry: Конфигурация повторов
        logging: Конфигурация логирования (None - только NullHandler)

    Examples:
        >>> TrackerConfig(database_url="https://db.example.com/inbox")
        >>> TrackerConfig.create("https://db.example.com/inbox", mode="longpoll", limit=100)
    """
    database_url: str
    mode: FeedMode = FeedMode.ONE_SHOT
    limit: Optional[int] = None
    heartbeat: float = DEFAULT_HEARTBEAT
    request_headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    since: Optional[Any] = None
    include_conflicts: bool = False
    filter_name: Optional[str] = None
    filter_params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    doc_ids: Optional[Tuple[str, ...]] = None
    verify_ssl: bool = True
    retry: RetryConfig = field(default_factory=RetryConfig)
    logging: Optional['LoggingConfig'] = None

    def __post_init__(self):
        """Нормализация и валидация."""
        if isinstance(self.request_headers, dict):
            object.__setattr__(self, 'request_headers', _freeze_dict(self.request_headers))
        if isinstance(self.filter_params, dict):
            object.__setattr__(self, 'filter_params', _freeze_dict(self.filter_params))
        if self.doc_ids is not None and not isinstance(self.doc_ids, tuple):
            object.__setattr__(self, 'doc_ids', tuple(self.doc_ids))
        if not isinstance(self.mode, FeedMode):
            object.__setattr__(self, 'mode', FeedMode.parse(self.mode))

        if not self.database_url:
            raise ConfigurationError("database_url is required")
        parts = urlsplit(self.database_url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ConfigurationError(
                f"database_url must be an absolute http(s) URL: {self.database_url!r}"
            )
        try:
            parts.port
        except ValueError:
            raise ConfigurationError(f"database_url has an invalid port: {self.database_url!r}")

        if self.limit is not None and self.limit <= 0:
            raise ConfigurationError("limit must be positive")
        if self.heartbeat <= 0:
            raise ConfigurationError("heartbeat must be positive")

    @classmethod
    def create(
        cls,
        database_url: str,
        mode: Union[str, FeedMode] = FeedMode.ONE_SHOT,
        limit: Optional[int] = None,
        heartbeat: float = DEFAULT_HEARTBEAT,
        headers: Optional[Dict[str, str]] = None,
        max_retries: Optional[int] = None,
        logging: Optional['LoggingConfig'] = None,
        **kwargs
    ) -> 'TrackerConfig':
        """
        Удобный конструктор конфигурации.

        Args:
            database_url: URL базы данных
            mode: Режим (строка или FeedMode)
            limit: Лимит изменений за запрос
            heartbeat: Heartbeat (сек)
            headers: Дополнительные заголовки
            max_retries: Максимум повторов подряд (None - без ограничения)
            logging: Конфигурация логирования

        Examples:
            >>> config = TrackerConfig.create("https://db.example.com/inbox", mode="longpoll")
        """
        retry_cfg = kwargs.pop('retry', None) or RetryConfig(max_attempts=max_retries)
        return cls(
            database_url=database_url,
            mode=FeedMode.parse(mode),
            limit=limit,
            heartbeat=heartbeat,
            request_headers=headers or {},
            retry=retry_cfg,
            logging=logging,
            **kwargs
        )

    def with_headers(self, headers: Dict[str, str]) -> 'TrackerConfig':
        """
        Создать новый конфиг с дополнительными заголовками.

        Example:
            >>> new_config = config.with_headers({"X-Replication-Id": "r1"})
        """
        merged = dict(self.request_headers)
        merged.update(headers)
        return self.replace(request_headers=merged)

    def replace(self, **changes) -> 'TrackerConfig':
        """Создать копию конфига с изменёнными полями."""
        from dataclasses import replace
        return replace(self, **changes)
