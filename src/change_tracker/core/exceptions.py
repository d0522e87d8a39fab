"""
Иерархия исключений change tracker.

Классификация:
- TemporaryError (retryable=True) - трекер повторит запрос после backoff
- FatalError (fatal=True) - трекер останавливается и сохраняет ошибку
"""

from typing import Mapping, Optional

import httpx
import requests

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BASE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ChangeTrackerException(Exception):
    """Базовое исключение change tracker."""

    retryable: bool = False
    fatal: bool = False

    def __init__(self, message: str, **kwargs):
        self.message = message
        super().__init__(message)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ВРЕМЕННЫЕ ОШИБКИ (retryable=True)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TemporaryError(ChangeTrackerException):
    """
    Временная ошибка - можно повторить.

    Примеры: обрыв соединения, DNS, 5xx ответы сервера.
    """
    retryable = True

class NetworkError(TemporaryError):
    """Сетевая ошибка на уровне транспорта."""

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        full_message = f"{message}"
        if url:
            full_message += f" (url: {url})"
        super().__init__(full_message)

class TimeoutError(NetworkError):
    """Таймаут (соединения или пула - чтение у трекера не ограничено)."""
    pass

class ConnectionError(NetworkError):
    """
    Ошибка подключения.

    Примеры:
    - Connection refused
    - Connection reset
    - Сервер закрыл соединение посреди ответа
    """
    pass

class ProxyError(NetworkError):
    """Ошибка прокси."""
    pass

class DNSError(NetworkError):
    """DNS resolution failed."""
    pass

class RequestCancelledError(NetworkError):
    """Запрос отменён не через FeedConnection.cancel() (например, остановка event loop)."""
    pass

class ServerError(TemporaryError):
    """
    5xx ответ сервера.

    Args:
        status_code: HTTP статус код
        url: URL changes feed
        message: Дополнительное сообщение
        headers: Заголовки ответа (для Retry-After)
    """

    def __init__(
        self,
        status_code: int,
        url: str,
        message: str = "",
        headers: Optional[Mapping[str, str]] = None
    ):
        self.status_code = status_code
        self.url = url
        self.headers = dict(headers) if headers else {}

        msg = f"HTTP {status_code} error for {url}"
        if message:
            msg += f": {message}"

        super().__init__(msg)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ФАТАЛЬНЫЕ ОШИБКИ (fatal=True)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class FatalError(ChangeTrackerException):
    """
    Фатальная ошибка - НЕ повторять.

    Примеры: 4xx ответы, непарсящийся ответ, ошибки TLS.
    """
    fatal = True

class HTTPStatusError(FatalError):
    """
    HTTP ответ с кодом ошибки.

    Args:
        status_code: HTTP статус
        url: URL changes feed
        message: Сообщение
    """

    def __init__(self, status_code: int, url: str, message: str = ""):
        self.status_code = status_code
        self.url = url

        msg = f"HTTP {status_code} error for {url}"
        if message:
            msg += f": {message}"

        super().__init__(msg)

class UnauthorizedError(HTTPStatusError):
    """401 Unauthorized."""

    def __init__(self, url: str, message: str = ""):
        super().__init__(401, url, message)

class ForbiddenError(HTTPStatusError):
    """403 Forbidden."""

    def __init__(self, url: str, message: str = ""):
        super().__init__(403, url, message)

class NotFoundError(HTTPStatusError):
    """404 Not Found (обычно - базы данных не существует)."""

    def __init__(self, url: str, message: str = ""):
        super().__init__(404, url, message)

class TLSError(FatalError):
    """Ошибка TLS handshake или проверки сертификата."""

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        if url:
            message += f" (url: {url})"
        super().__init__(message)

class UpstreamError(FatalError):
    """
    Сервер вернул ответ, который не удалось разобрать.

    Args:
        message: Описание проблемы
        url: URL changes feed
    """

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        msg = message
        if url:
            msg += f" (url: {url})"
        super().__init__(msg)

class ConfigurationError(ChangeTrackerException, ValueError):
    """Ошибка конфигурации (невалидный URL, режим, лимит и т.п.)."""
    fatal = True

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# УТИЛИТЫ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def is_error_status(status_code: int) -> bool:
    """True для 4xx/5xx (и любых кодов >= 400)."""
    return status_code >= 400


def http_status_error(
    status_code: int,
    url: str,
    headers: Optional[Mapping[str, str]] = None
) -> ChangeTrackerException:
    """
    Построить исключение для HTTP статуса ошибки.

    Examples:
        >>> exc = http_status_error(503, "https://db.example.com/db/_changes")
        >>> assert isinstance(exc, ServerError)
        >>> assert exc.retryable
    """
    if status_code == 401:
        return UnauthorizedError(url)
    elif status_code == 403:
        return ForbiddenError(url)
    elif status_code == 404:
        return NotFoundError(url)
    elif 500 <= status_code < 600:
        return ServerError(status_code, url, headers=headers)
    return HTTPStatusError(status_code, url)


_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated",
)

_TLS_MARKERS = ("certificate_verify_failed", "ssl:", "sslerror", "tlsv1")


def _looks_like(exc: Exception, markers) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in markers)


def classify_httpx_exception(exc: Exception, url: str) -> ChangeTrackerException:
    """
    Конвертировать httpx исключения в наши.

    Args:
        exc: Исключение из httpx
        url: URL запроса

    Returns:
        Наше исключение с правильной классификацией
    """
    if isinstance(exc, ChangeTrackerException):
        return exc

    if isinstance(exc, httpx.TimeoutException):
        return TimeoutError("Request timeout", url)

    elif isinstance(exc, httpx.ProxyError):
        return ProxyError("Proxy error", url)

    elif isinstance(exc, httpx.ConnectError):
        if _looks_like(exc, _DNS_MARKERS):
            return DNSError(f"DNS lookup failed: {exc}", url)
        if _looks_like(exc, _TLS_MARKERS):
            return TLSError(f"TLS error: {exc}", url)
        return ConnectionError(f"Connection error: {exc}", url)

    elif isinstance(exc, (httpx.ReadError, httpx.RemoteProtocolError, httpx.WriteError)):
        return ConnectionError(f"Connection lost: {exc}", url)

    elif isinstance(exc, httpx.TransportError):
        return NetworkError(f"Transport error: {exc}", url)

    # Неизвестная ошибка - оборачиваем
    return ChangeTrackerException(str(exc))


def classify_requests_exception(exc: Exception, url: str) -> ChangeTrackerException:
    """
    Конвертировать requests.exceptions в наши исключения.

    Examples:
        >>> exc = requests.exceptions.ConnectionError("reset")
        >>> our_exc = classify_requests_exception(exc, "https://db.example.com")
        >>> assert isinstance(our_exc, ConnectionError)
        >>> assert our_exc.retryable == True
    """
    if isinstance(exc, ChangeTrackerException):
        return exc

    if isinstance(exc, requests.exceptions.Timeout):
        return TimeoutError("Request timeout", url)

    elif isinstance(exc, requests.exceptions.ProxyError):
        return ProxyError("Proxy error", url)

    elif isinstance(exc, requests.exceptions.SSLError):
        return TLSError(f"TLS error: {exc}", url)

    elif isinstance(exc, requests.exceptions.ConnectionError):
        if _looks_like(exc, _DNS_MARKERS):
            return DNSError(f"DNS lookup failed: {exc}", url)
        return ConnectionError(f"Connection error: {exc}", url)

    elif isinstance(exc, requests.exceptions.ChunkedEncodingError):
        return ConnectionError(f"Connection lost: {exc}", url)

    elif isinstance(exc, requests.exceptions.RequestException):
        return NetworkError(f"Request error: {exc}", url)

    return ChangeTrackerException(str(exc))
