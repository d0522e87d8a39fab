# src/change_tracker/transport/async_transport.py
"""
Асинхронный транспорт на базе httpx.

Каждое соединение - отдельная asyncio задача; события делегату
доставляются на event loop. Рестарт трекера из on_finish создаёт новую
задачу, а текущая завершается - стек не растёт.
"""

import asyncio
import base64
import logging
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from ..core.credentials import Credential, CredentialStorage, credential_from_url
from ..core.exceptions import RequestCancelledError, classify_httpx_exception
from .base import MAX_AUTH_ROUNDS, ConnectionDelegate, FeedConnection, FeedRequest, Transport

logger = logging.getLogger(__name__)


def _basic_auth_header(credential: Credential) -> str:
    token = f"{credential.user}:{credential.password}".encode("utf-8")
    return "Basic " + base64.b64encode(token).decode("ascii")


class AsyncFeedConnection(FeedConnection):
    """Соединение, выполняемое asyncio задачей."""

    def __init__(self, transport: "AsyncTransport", request: FeedRequest, delegate: ConnectionDelegate):
        super().__init__(transport, request, delegate)
        self._task: Optional[asyncio.Task] = None

    def cancel(self) -> None:
        """
        Отменить запрос.

        Из собственной задачи (например, из on_response) только ставится
        флаг - цикл чтения завершится сам и закроет ответ.
        """
        if self._cancelled:
            return
        self._cancelled = True
        task = self._task
        if task is not None and not task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if current is not task:
                task.cancel()

    async def wait(self) -> None:
        """Дождаться завершения задачи соединения (для тестов и shutdown)."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def _auth_for(self, credential: Optional[Credential], proxy: bool, digest: bool) -> Tuple[Any, Dict[str, str]]:
        if credential is None:
            return httpx.USE_CLIENT_DEFAULT, {}
        if proxy:
            return httpx.USE_CLIENT_DEFAULT, {"Proxy-Authorization": _basic_auth_header(credential)}
        if digest:
            return httpx.DigestAuth(credential.user, credential.password), {}
        return httpx.BasicAuth(credential.user, credential.password), {}

    async def _send(self, client: httpx.AsyncClient) -> httpx.Response:
        url = self.request.url
        credential: Optional[Credential] = None
        proxy = digest = False
        failures = 0

        while True:
            auth, extra_headers = self._auth_for(credential, proxy, digest)
            headers = dict(self.request.headers)
            headers.update(extra_headers)
            request = client.build_request(
                self.request.method,
                url,
                headers=headers,
                timeout=httpx.Timeout(self.request.timeout),
            )
            response = await client.send(request, auth=auth, stream=True)

            attempted = credential or credential_from_url(url)
            challenge = self._challenge_for(
                url, response.status_code, response.headers, failures, attempted
            )
            if challenge is None or failures >= MAX_AUTH_ROUNDS or self._cancelled:
                return response

            next_credential = self._resolve_challenge(challenge, attempted)
            if next_credential is None or self._cancelled:
                return response

            await response.aclose()
            credential = next_credential
            proxy = challenge.protection_space.is_proxy
            digest = challenge.protection_space.authentication_method == "digest"
            failures += 1

    async def _run(self) -> None:
        url = self.request.url
        client = self.transport._get_client()
        try:
            response = await self._send(client)
            try:
                if not self._deliver_response(response.status_code, response.headers, str(response.url)):
                    return
                async for chunk in response.aiter_bytes():
                    if not self._deliver_data(chunk):
                        return
            finally:
                await response.aclose()
        except asyncio.CancelledError:
            if not self._cancelled:
                self._deliver_error(RequestCancelledError("Request cancelled", url))
                self._cancelled = True
            raise
        except httpx.HTTPError as exc:
            error = classify_httpx_exception(exc, url)
            logger.debug("Connection failed: %s", error)
            self._deliver_error(error)
            return

        self._deliver_finish()


def _report_task_exception(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Change feed connection task crashed", exc_info=exc)


class AsyncTransport(Transport):
    """
    Транспорт на httpx.AsyncClient.

    ``open`` и ``call_later`` нужно вызывать из работающего event loop.

    Example:
        >>> async with AsyncTransport() as transport:
        ...     tracker = ConnectionChangeTracker(config, client=consumer, transport=transport)
        ...     tracker.start()

    Args:
        client: Готовый httpx.AsyncClient (тогда транспорт его не закрывает)
        verify_ssl: Проверять TLS сертификаты (для собственного клиента)
        proxy: URL прокси (для собственного клиента)
        credential_storage: Хранилище credentials
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        verify_ssl: bool = True,
        proxy: Optional[str] = None,
        credential_storage: Optional[CredentialStorage] = None,
    ):
        super().__init__(credential_storage)
        self._client = client
        self._owns_client = client is None
        self._verify_ssl = verify_ssl
        self._proxy = proxy

    def _get_client(self) -> httpx.AsyncClient:
        """Получить или создать httpx клиент."""
        if self._client is None:
            client_kwargs: Dict[str, Any] = {
                "timeout": httpx.Timeout(None),
                "verify": self._verify_ssl,
                "follow_redirects": True,
            }
            if self._proxy:
                client_kwargs["proxy"] = self._proxy
            self._client = httpx.AsyncClient(**client_kwargs)
        return self._client

    def open(self, request: FeedRequest, delegate: ConnectionDelegate) -> AsyncFeedConnection:
        loop = asyncio.get_running_loop()
        connection = AsyncFeedConnection(self, request, delegate)
        connection._task = loop.create_task(connection._run())
        connection._task.add_done_callback(_report_task_exception)
        return connection

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)

    async def aclose(self) -> None:
        """Закрыть собственный httpx клиент."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "AsyncTransport":
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
