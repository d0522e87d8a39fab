# src/change_tracker/transport/base.py
"""
Transport abstraction: one HTTP request, delivered as a sequence of events.

A transport issues the request without blocking the caller and reports
progress to a ConnectionDelegate, in order:

    on_auth_challenge*  ->  on_response  ->  on_data*  ->  on_finish
                                        or  on_error (at any point)

After FeedConnection.cancel() no further events are delivered.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from ..core.credentials import (
    AuthenticationChallenge,
    ChallengeDisposition,
    Credential,
    CredentialStorage,
    parse_authenticate_header,
    protection_space_for_url,
    shared_credential_storage,
)

logger = logging.getLogger(__name__)

# Authentication rounds per connection before the challenge response is
# delivered as-is
MAX_AUTH_ROUNDS = 3


@dataclass(frozen=True)
class FeedRequest:
    """
    Request description handed to a transport.

    Args:
        url: Absolute changes feed URL
        headers: Request headers (Host included when overridden)
        timeout: Seconds, or None for "never times out"
        method: HTTP method
    """
    url: str
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    timeout: Optional[float] = None
    method: str = "GET"


@dataclass(frozen=True)
class FeedResponse:
    """Status line and headers of a response (body arrives via on_data)."""
    status_code: int
    headers: Mapping[str, str]
    url: str


class ConnectionDelegate(ABC):
    """
    Receiver of connection events.

    All methods are called on the transport's execution context (the event
    loop for AsyncTransport, a worker thread for ThreadedTransport).
    """

    def on_auth_challenge(self, connection: "FeedConnection", challenge: AuthenticationChallenge) -> None:
        """Вызывается при 401/407 с заголовком challenge."""
        challenge.perform_default_handling()

    @abstractmethod
    def on_response(self, connection: "FeedConnection", response: FeedResponse) -> None:
        """Вызывается после получения статуса и заголовков"""

    @abstractmethod
    def on_data(self, connection: "FeedConnection", data: bytes) -> None:
        """Вызывается для каждого полученного фрагмента тела"""

    @abstractmethod
    def on_finish(self, connection: "FeedConnection") -> None:
        """Вызывается после получения всего тела"""

    @abstractmethod
    def on_error(self, connection: "FeedConnection", error: Exception) -> None:
        """Вызывается при ошибке транспорта (уже классифицированной)"""


class FeedConnection:
    """
    One in-flight request.

    Subclasses implement the I/O; this class holds the request, the
    cancellation flag, and the authentication challenge round logic shared by
    all transports.
    """

    def __init__(self, transport: "Transport", request: FeedRequest, delegate: ConnectionDelegate):
        self.transport = transport
        self.request = request
        self._delegate = delegate
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Отменить запрос. Идемпотентно; после отмены событий больше не будет."""
        self._cancelled = True

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "open"
        return f"<{self.__class__.__name__} {self.request.method} {self.request.url} ({state})>"

    # ==================== Authentication rounds ====================

    def _challenge_for(
        self,
        url: str,
        status_code: int,
        headers: Mapping[str, str],
        failures: int,
        attempted: Optional[Credential]
    ) -> Optional[AuthenticationChallenge]:
        """Построить challenge для 401/407 ответа, или None если это не challenge."""
        if status_code == 401:
            header_name, is_proxy = "WWW-Authenticate", False
        elif status_code == 407:
            header_name, is_proxy = "Proxy-Authenticate", True
        else:
            return None

        header = headers.get(header_name)
        if not header:
            return None

        method, realm = parse_authenticate_header(header)
        space = protection_space_for_url(
            url, realm=realm, authentication_method=method, is_proxy=is_proxy
        )
        proposed = attempted or self.transport.credential_storage.default_credential(space)
        return AuthenticationChallenge(space, proposed_credential=proposed, previous_failure_count=failures)

    def _resolve_challenge(
        self,
        challenge: AuthenticationChallenge,
        attempted: Optional[Credential]
    ) -> Optional[Credential]:
        """
        Спросить делегата и вернуть credential для следующей попытки.

        None означает "продолжить без credential": ответ с challenge будет
        доставлен делегату как обычный ответ.
        """
        self._delegate.on_auth_challenge(self, challenge)

        if challenge.disposition is ChallengeDisposition.USE_CREDENTIAL:
            return challenge.credential

        if challenge.disposition is ChallengeDisposition.PERFORM_DEFAULT_HANDLING:
            proposed = challenge.proposed_credential
            # The proposed credential is retried once, never the one that just failed
            if proposed is not None and proposed != attempted:
                return proposed

        logger.debug(
            "Continuing without credential for %s", challenge.protection_space.describe()
        )
        return None

    # ==================== Event delivery ====================

    def _deliver_response(self, status_code: int, headers: Mapping[str, str], url: str) -> bool:
        """Доставить on_response. False если соединение отменено (до или во время)."""
        if self._cancelled:
            return False
        self._delegate.on_response(self, FeedResponse(status_code=status_code, headers=headers, url=url))
        return not self._cancelled

    def _deliver_data(self, data: bytes) -> bool:
        if self._cancelled:
            return False
        if data:
            self._delegate.on_data(self, data)
        return not self._cancelled

    def _deliver_finish(self) -> None:
        if not self._cancelled:
            self._delegate.on_finish(self)

    def _deliver_error(self, error: Exception) -> None:
        if not self._cancelled:
            self._delegate.on_error(self, error)


class Transport(ABC):
    """
    Source of connections and timers for a change tracker.

    Args:
        credential_storage: Storage consulted for proposed credentials
            (default: the process-wide shared storage)
    """

    def __init__(self, credential_storage: Optional[CredentialStorage] = None):
        if credential_storage is None:
            credential_storage = shared_credential_storage()
        self.credential_storage = credential_storage

    @abstractmethod
    def open(self, request: FeedRequest, delegate: ConnectionDelegate) -> FeedConnection:
        """Issue the request. Must return without waiting for the network."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], Any]) -> Any:
        """Run callback after delay seconds on the transport's context. Returns a handle with cancel()."""
