# src/change_tracker/core/connection_tracker.py
"""
Change tracker поверх одного HTTP запроса за цикл.

Каждый цикл: открыть соединение к ``_changes``, накопить тело ответа,
разобрать его и решить - перезапустить запрос, остановиться или
повторить после ошибки. Используется для one-shot и long-poll режимов.

Состояния цикла::

    IDLE -> REQUESTING -> COMPLETED -> REQUESTING (рестарт) | IDLE
                       -> FAILED    -> REQUESTING (повтор)  | IDLE

Соединение и буфер тела живут в одном объекте цикла (_ActiveCycle);
clear_connection() освобождает их вместе. События от соединения, которое
уже не текущее (отменено или заменено), игнорируются.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlsplit

from .config import FeedMode, TrackerConfig
from .credentials import AuthenticationChallenge
from .exceptions import http_status_error, is_error_status
from .tracker import ChangeTracker, ChangeTrackerClient
from ..transport.base import ConnectionDelegate, FeedConnection, FeedRequest, FeedResponse

# Тело, которое присылает прокси, закрывший долгий long-poll запрос
PROXY_CLOSED_BODY = b'{"results":[\n'

# Закрытия раньше этого (сек) не считаются таймаутом прокси
MIN_PROXY_TIMEOUT = 30.0

HEARTBEAT_SHRINK_FACTOR = 0.75


class ConnectionState(str, Enum):
    """Состояние текущего цикла запроса."""
    IDLE = "idle"
    REQUESTING = "requesting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class _ActiveCycle:
    """Соединение текущего цикла и накопленное тело ответа."""
    connection: FeedConnection
    started_at: float
    buffer: bytearray = field(default_factory=bytearray)


class ConnectionChangeTracker(ChangeTracker, ConnectionDelegate):
    """
    Трекер one-shot / long-poll feed.

    Рестарт после ответа выполняется через transport.open(), то есть в
    новой задаче или потоке; глубина стека не растёт при длинной серии
    запросов.

    Example:
        >>> config = TrackerConfig.create("https://db.example.com/inbox", mode="longpoll")
        >>> async with AsyncTransport() as transport:
        ...     tracker = ConnectionChangeTracker(config, client=consumer, transport=transport)
        ...     tracker.start()

    Args:
        config: Конфигурация трекера
        client: Получатель изменений
        transport: AsyncTransport или ThreadedTransport
        clock: Монотонные часы (секунды), для измерения длительности запроса
    """

    def __init__(
        self,
        config: TrackerConfig,
        client: Optional[ChangeTrackerClient] = None,
        transport=None,
        *,
        clock: Callable[[], float] = time.monotonic,
        **kwargs,
    ):
        super().__init__(config, client, transport, **kwargs)
        self._clock = clock
        self._cycle: Optional[_ActiveCycle] = None
        self.state = ConnectionState.IDLE
        self.start_time: Optional[float] = None

    # ==================== Request ====================

    @property
    def connected(self) -> bool:
        return self._cycle is not None

    @property
    def connection(self) -> Optional[FeedConnection]:
        cycle = self._cycle
        return cycle.connection if cycle is not None else None

    @property
    def host_header(self) -> str:
        """
        Значение Host для запроса.

        Host берётся из URL базы как есть, включая завершающую точку.
        """
        parts = urlsplit(self.database_url)
        host = parts.hostname or ""
        if ":" in host:
            host = f"[{host}]"
        if parts.port is not None:
            host = f"{host}:{parts.port}"
        return host

    def _build_request(self) -> FeedRequest:
        headers = {
            "Cache-Control": "no-cache",
            "Host": self.host_header,
        }
        headers.update(self.request_headers)
        return FeedRequest(url=self.changes_feed_url, headers=headers, timeout=None)

    def start(self) -> bool:
        """
        Открыть соединение к feed.

        Returns:
            False если соединение уже открыто
        """
        with self._lock:
            if self._cycle is not None:
                return False

            request = self._build_request()
            connection = self.transport.open(request, self)
            super().start()

            self.start_time = self._clock()
            self._cycle = _ActiveCycle(connection=connection, started_at=self.start_time)
            self.state = ConnectionState.REQUESTING
            self._log(logging.INFO, "Started", url=request.url)
            return True

    def stop(self) -> None:
        """Отменить текущий запрос и остановиться. Рестарта и повтора не будет."""
        with self._lock:
            cycle = self._cycle
            if cycle is not None:
                self._log(logging.DEBUG, "Cancelling connection")
                cycle.connection.cancel()
            super().stop()

    def stopped(self) -> None:
        with self._lock:
            self.clear_connection()
            self.state = ConnectionState.IDLE
            super().stopped()

    def clear_connection(self) -> None:
        """Освободить соединение и буфер текущего цикла."""
        with self._lock:
            self._cycle = None

    def _is_current(self, connection: FeedConnection) -> bool:
        cycle = self._cycle
        return cycle is not None and cycle.connection is connection

    def _fail(self, error: Exception) -> None:
        self.state = ConnectionState.FAILED
        self.clear_connection()
        self.failed_with_error(error)

    # ==================== ConnectionDelegate ====================

    def on_auth_challenge(self, connection: FeedConnection, challenge: AuthenticationChallenge) -> None:
        """
        Выбрать credential для challenge.

        Если URL базы задан с завершающей точкой (``db.example.com.``),
        credential в хранилище обычно записан для имени без точки. Для
        первой попытки ищем его по имени без точки.
        """
        with self._lock:
            if not self._is_current(connection):
                challenge.continue_without_credential()
                return

            if challenge.proposed_credential is not None:
                challenge.perform_default_handling()
                return

            space = challenge.protection_space
            if (
                challenge.previous_failure_count == 0
                and not space.is_proxy
                and space.host.endswith(".")
            ):
                host = space.host[:-1]
                if host.lower() == self.target_host.rstrip(".").lower():
                    space = space.with_host(host)
                    credential = self.credential_storage.default_credential(space)
                    if credential is not None:
                        self._log(
                            logging.INFO,
                            "Using credential for protection space",
                            space=space.describe(),
                        )
                        challenge.use_credential(credential)
                        return

            self._log(
                logging.WARNING,
                "Continuing without credential for protection space",
                space=space.describe(),
            )
            challenge.continue_without_credential()

    def on_response(self, connection: FeedConnection, response: FeedResponse) -> None:
        with self._lock:
            if not self._is_current(connection):
                return

            status = response.status_code
            self._log(logging.DEBUG, "Got response", status=status)
            if is_error_status(status):
                self._log(logging.WARNING, "Got error status", status=status, url=connection.request.url)
                connection.cancel()
                self._fail(http_status_error(status, connection.request.url, response.headers))
            else:
                self.retry_count = 0

    def on_data(self, connection: FeedConnection, data: bytes) -> None:
        with self._lock:
            if not self._is_current(connection):
                return
            if self._log_enabled(logging.DEBUG):
                self._log(logging.DEBUG, "Got bytes", size=len(data))
            self._cycle.buffer.extend(data)

    def on_error(self, connection: FeedConnection, error: Exception) -> None:
        with self._lock:
            if not self._is_current(connection):
                return
            self._fail(error)

    def on_finish(self, connection: FeedConnection) -> None:
        with self._lock:
            if not self._is_current(connection):
                return

            cycle = self._cycle
            body = bytes(cycle.buffer)
            self.state = ConnectionState.COMPLETED
            self._log(logging.DEBUG, "Got entire body", size=len(body))

            try:
                restart = self._interpret_body(body, cycle.started_at)
            except Exception as e:
                if not self._is_current(connection):
                    raise
                self._log(
                    logging.ERROR,
                    "Client failed while handling changes",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self._fail(e)
                return

            # Клиент мог вызвать stop() (или stop() + start()) из callback
            if not self._is_current(connection):
                return

            self.clear_connection()
            if restart:
                self.start()
            else:
                self.stopped()

    def _interpret_body(self, body: bytes, started_at: float) -> bool:
        """Разобрать ответ; True если нужно сразу открыть следующий запрос."""
        count = self.received_poll_response(body)
        if count >= 0:
            return count > 0 and (self.mode == FeedMode.LONG_POLL or count == self.limit)

        restart = False
        if self.mode == FeedMode.LONG_POLL and body == PROXY_CLOSED_BODY:
            restart = self._shrink_heartbeat(self._clock() - started_at)
        if not restart:
            self.set_upstream_error("Unparseable server response")
        return restart

    def _shrink_heartbeat(self, elapsed: float) -> bool:
        """
        Прокси закрыл long-poll запрос через ``elapsed`` секунд.

        Если это похоже на таймаут прокси (не слишком быстро и раньше
        heartbeat), heartbeat уменьшается, чтобы сервер писал данные раньше.

        Returns:
            True если нужно перезапустить запрос
        """
        self._log(logging.WARNING, "Longpoll connection closed (by proxy?)", elapsed_s=round(elapsed, 1))
        if MIN_PROXY_TIMEOUT <= elapsed < self.heartbeat:
            self.heartbeat = elapsed * HEARTBEAT_SHRINK_FACTOR
            self._log(logging.INFO, "Heartbeat reduced", heartbeat_s=round(self.heartbeat, 1))
            return True
        return False
