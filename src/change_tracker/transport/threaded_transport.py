# src/change_tracker/transport/threaded_transport.py
"""
Синхронный транспорт на базе requests.

Для приложений без asyncio: каждое соединение читается отдельным
daemon-потоком, события делегату доставляются на этом потоке. Рестарт
из on_finish запускает новый поток, текущий завершается.
"""

import itertools
import logging
import threading
from typing import Any, Callable, Optional

import requests
from requests.auth import HTTPBasicAuth, HTTPDigestAuth, HTTPProxyAuth

from ..core.credentials import Credential, CredentialStorage, credential_from_url
from ..core.exceptions import classify_requests_exception
from .base import MAX_AUTH_ROUNDS, ConnectionDelegate, FeedConnection, FeedRequest, Transport

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 8192

_thread_ids = itertools.count(1)


class ThreadedFeedConnection(FeedConnection):
    """Соединение, читаемое собственным потоком."""

    def __init__(self, transport: "ThreadedTransport", request: FeedRequest, delegate: ConnectionDelegate):
        super().__init__(transport, request, delegate)
        self._thread: Optional[threading.Thread] = None
        self._response: Optional[requests.Response] = None
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Отменить запрос; закрытие ответа прерывает блокирующее чтение."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            response = self._response
        if response is not None and threading.current_thread() is not self._thread:
            response.close()

    def join(self, timeout: Optional[float] = None) -> None:
        """Дождаться завершения потока соединения."""
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _auth_for(self, credential: Optional[Credential], proxy: bool, digest: bool):
        if credential is None:
            return None
        if proxy:
            return HTTPProxyAuth(credential.user, credential.password)
        if digest:
            return HTTPDigestAuth(credential.user, credential.password)
        return HTTPBasicAuth(credential.user, credential.password)

    def _send(self, session: requests.Session) -> requests.Response:
        url = self.request.url
        credential: Optional[Credential] = None
        proxy = digest = False
        failures = 0

        while True:
            response = session.request(
                self.request.method,
                url,
                headers=dict(self.request.headers),
                auth=self._auth_for(credential, proxy, digest),
                timeout=self.request.timeout,
                stream=True,
                verify=self.transport.verify_ssl,
            )
            with self._lock:
                self._response = response

            attempted = credential or credential_from_url(url)
            challenge = self._challenge_for(
                url, response.status_code, response.headers, failures, attempted
            )
            if challenge is None or failures >= MAX_AUTH_ROUNDS or self._cancelled:
                return response

            next_credential = self._resolve_challenge(challenge, attempted)
            if next_credential is None or self._cancelled:
                return response

            response.close()
            credential = next_credential
            proxy = challenge.protection_space.is_proxy
            digest = challenge.protection_space.authentication_method == "digest"
            failures += 1

    def _run(self) -> None:
        url = self.request.url
        session = self.transport.session
        response = None
        try:
            response = self._send(session)
            if not self._deliver_response(response.status_code, response.headers, response.url or url):
                return
            for chunk in response.iter_content(chunk_size=self.transport.chunk_size):
                if not self._deliver_data(chunk):
                    return
        except requests.exceptions.RequestException as exc:
            error = classify_requests_exception(exc, url)
            logger.debug("Connection failed: %s", error)
            self._deliver_error(error)
            return
        except (OSError, ValueError, AttributeError):
            # Closing the response from cancel() surfaces as a low-level error
            if self._cancelled:
                return
            raise
        finally:
            if response is not None:
                response.close()

        self._deliver_finish()


class _ThreadTimer:
    """Обёртка над threading.Timer с cancel()."""

    def __init__(self, delay: float, callback: Callable[[], Any]):
        self._timer = threading.Timer(delay, callback)
        self._timer.daemon = True
        self._timer.start()

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadedTransport(Transport):
    """
    Транспорт на requests.Session.

    Example:
        >>> with ThreadedTransport() as transport:
        ...     tracker = ConnectionChangeTracker(config, client=consumer, transport=transport)
        ...     tracker.start()
        ...     stopped.wait()

    Args:
        session: Готовая сессия (тогда транспорт её не закрывает)
        verify_ssl: Проверять TLS сертификаты
        chunk_size: Размер блока чтения тела ответа
        credential_storage: Хранилище credentials
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        verify_ssl: bool = True,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        credential_storage: Optional[CredentialStorage] = None,
    ):
        super().__init__(credential_storage)
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.verify_ssl = verify_ssl
        self.chunk_size = chunk_size

    def open(self, request: FeedRequest, delegate: ConnectionDelegate) -> ThreadedFeedConnection:
        connection = ThreadedFeedConnection(self, request, delegate)
        connection._thread = threading.Thread(
            target=connection._run,
            name=f"change-tracker-connection-{next(_thread_ids)}",
            daemon=True,
        )
        connection._thread.start()
        return connection

    def call_later(self, delay: float, callback: Callable[[], Any]) -> _ThreadTimer:
        return _ThreadTimer(delay, callback)

    def close(self) -> None:
        """Закрыть собственную сессию."""
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "ThreadedTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
