# src/change_tracker/core/tracker.py
"""
Базовый change tracker.

Хранит настройки feed, строит URL запроса, разбирает ответы в события
изменений для клиента и решает, повторять ли подключение после ошибок.
Как именно выполняется HTTP запрос - дело подкласса
(см. ConnectionChangeTracker).
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union
from urllib.parse import quote, urlsplit

from .config import FeedMode, TrackerConfig
from .credentials import CredentialStorage
from .exceptions import UpstreamError
from .logging import TrackerLogger
from .retry_engine import RetryEngine
from ..utils.sanitizer import mask_sensitive_data, mask_url_credentials

logger = logging.getLogger(__name__)


class ChangeTrackerClient(ABC):
    """
    Получатель изменений (обычно - replicator).

    Методы вызываются на контексте транспорта.
    """

    @abstractmethod
    def change_tracker_received_change(self, change: Dict[str, Any]) -> None:
        """Вызывается для каждого изменения из feed, по порядку"""

    def change_tracker_stopped(self, tracker: "ChangeTracker") -> None:
        """Вызывается один раз, когда трекер остановился (tracker.error - причина, если была)"""


def _encode_param(value: Any) -> str:
    """Значение query параметра: строки как есть, остальное - JSON."""
    text = value if isinstance(value, str) else json.dumps(value, separators=(",", ":"))
    return quote(text, safe="")


class ChangeTracker:
    """
    Базовый класс трекера изменений.

    Args:
        config: Конфигурация трекера (или просто URL базы)
        client: Получатель изменений
        transport: Транспорт (по умолчанию AsyncTransport на httpx)
        credential_storage: Хранилище credentials (по умолчанию - транспорта)
        tracker_id: Идентификатор для логов (по умолчанию ``host/db``)
    """

    def __init__(
        self,
        config: Union[TrackerConfig, str],
        client: Optional[ChangeTrackerClient] = None,
        transport=None,
        *,
        credential_storage: Optional[CredentialStorage] = None,
        tracker_id: Optional[str] = None,
    ):
        if isinstance(config, str):
            config = TrackerConfig(database_url=config)
        if transport is None:
            from ..transport.async_transport import AsyncTransport
            transport = AsyncTransport(
                verify_ssl=config.verify_ssl,
                credential_storage=credential_storage,
            )

        self.config = config
        self.client = client
        self.transport = transport
        self.credential_storage = (
            transport.credential_storage if credential_storage is None else credential_storage
        )

        self.database_url = config.database_url.rstrip('/')
        self.mode = config.mode
        self.limit = config.limit
        self.heartbeat = config.heartbeat
        self.request_headers: Dict[str, str] = dict(config.request_headers)
        self.last_sequence = config.since
        self.include_conflicts = config.include_conflicts
        self.filter_name = config.filter_name
        self.filter_params: Dict[str, Any] = dict(config.filter_params)
        self.doc_ids = list(config.doc_ids) if config.doc_ids is not None else None

        self.retry_count = 0
        self.error: Optional[Exception] = None

        self._retry_engine = RetryEngine(config.retry)
        self._retry_handle = None
        self._session_open = False
        self._lock = threading.RLock()

        parts = urlsplit(self.database_url)
        self.tracker_id = tracker_id or f"{parts.hostname}{parts.path}"

        self._logger: Optional[TrackerLogger] = None
        if config.logging:
            self._logger = TrackerLogger(
                config=config.logging,
                name=f"change_tracker.{parts.hostname}",
                tracker_id=self.tracker_id,
            )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {mask_url_credentials(self.database_url)}>"

    # ==================== Feed URL ====================

    @property
    def target_host(self) -> str:
        """Host базы данных (без порта)."""
        return urlsplit(self.database_url).hostname or ""

    @property
    def changes_feed_path(self) -> str:
        """
        Путь и query запроса к ``_changes``.

        Example:
            ``_changes?feed=longpoll&heartbeat=300000&since=42&limit=100``
        """
        mode = FeedMode.parse(self.mode)
        params = [
            ("feed", mode.value),
            ("heartbeat", f"{self.heartbeat * 1000.0:.0f}"),
        ]
        if self.include_conflicts:
            params.append(("style", "all_docs"))
        if self.last_sequence is not None:
            params.append(("since", _encode_param(self.last_sequence)))
        if self.limit:
            params.append(("limit", str(self.limit)))

        if self.doc_ids is not None:
            params.append(("filter", "_doc_ids"))
            params.append(("doc_ids", _encode_param(list(self.doc_ids))))
        elif self.filter_name:
            params.append(("filter", _encode_param(self.filter_name)))
            for key, value in self.filter_params.items():
                params.append((quote(str(key), safe=""), _encode_param(value)))

        return "_changes?" + "&".join(f"{key}={value}" for key, value in params)

    @property
    def changes_feed_url(self) -> str:
        return f"{self.database_url}/{self.changes_feed_path}"

    # ==================== Poll responses ====================

    def received_poll_response(self, body: Optional[bytes]) -> int:
        """
        Разобрать тело ответа и передать изменения клиенту.

        Returns:
            Количество изменений, или -1 если ответ не разбирается
        """
        if body is None:
            return -1
        try:
            document = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            return -1
        if not isinstance(document, dict):
            return -1

        changes = document.get("results")
        if not isinstance(changes, list):
            return -1

        for change in changes:
            if not self.received_change(change):
                return -1
        return len(changes)

    def received_change(self, change: Any) -> bool:
        """
        Обработать одно изменение.

        Строка без ``seq``, но с ``last_seq`` - нормальное завершение feed,
        она пропускается.
        """
        if not isinstance(change, dict):
            return False
        seq = change.get("seq")
        if seq is None:
            return "last_seq" in change

        if self.client is not None:
            self.client.change_tracker_received_change(change)
        self.last_sequence = seq
        return True

    # ==================== Lifecycle ====================

    @property
    def running(self) -> bool:
        """True между start() и stopped(), включая ожидание повтора."""
        return self._session_open

    def start(self) -> bool:
        """
        Начать сессию отслеживания.

        Подклассы открывают соединение и вызывают super().start().
        """
        with self._lock:
            self.error = None
            self._cancel_retry()
            self._session_open = True
            return True

    def stop(self) -> None:
        """Остановить трекер: отменить запланированный повтор и завершить сессию."""
        with self._lock:
            self._cancel_retry()
            self.stopped()

    def stopped(self) -> None:
        """Завершение сессии; клиент уведомляется один раз."""
        with self._lock:
            if not self._session_open:
                return
            self._session_open = False
            self._log(logging.INFO, "Stopped", error=str(self.error) if self.error else None)
            client = self.client
        if client is not None:
            client.change_tracker_stopped(self)

    def retry(self) -> None:
        """Повторное подключение после backoff."""
        with self._lock:
            self._retry_handle = None
            if self._session_open:
                self.start()

    def failed_with_error(self, error: Exception) -> None:
        """
        Соединение завершилось ошибкой.

        Временные ошибки повторяются с exponential backoff, остальные
        останавливают трекер и сохраняются в ``error``.
        """
        with self._lock:
            if self._session_open and self._retry_engine.should_retry(error, self.retry_count):
                delay = self._retry_engine.get_wait_time(
                    self.retry_count, getattr(error, 'headers', None)
                )
                self.retry_count += 1
                self._log(
                    logging.INFO,
                    "Connection error, retrying",
                    attempt=self.retry_count,
                    delay_s=round(delay, 2),
                    error=str(error),
                    error_type=type(error).__name__,
                )
                self._retry_handle = self.transport.call_later(delay, self.retry)
            else:
                self._log(
                    logging.WARNING,
                    "Can't connect, giving up",
                    error=str(error),
                    error_type=type(error).__name__,
                )
                self.error = error
                self.stop()

    def set_upstream_error(self, message: str) -> None:
        """Сервер ответил чем-то непонятным."""
        with self._lock:
            url = self.changes_feed_url
            self._log(logging.WARNING, "Server error", reason=message, url=url)
            self.error = UpstreamError(message, url=url)

    def close(self) -> None:
        """Остановить трекер и закрыть его логгер."""
        self.stop()
        if self._logger is not None:
            self._logger.close()

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    # ==================== Logging ====================

    def _log_enabled(self, level: int) -> bool:
        if self._logger is not None:
            return self._logger.is_enabled_for(level)
        return logger.isEnabledFor(level)

    def _log(self, level: int, message: str, **fields: Any) -> None:
        if self._logger is not None:
            self._logger.log(level, message, **fields)
        elif logger.isEnabledFor(level):
            logger.log(level, "%r: %s", self, message, extra=mask_sensitive_data(fields))
