"""
Retry engine для повторных подключений к changes feed.

Включает:
- Exponential backoff с опциональным jitter
- Retry-After header parsing для 503 ответов
- Проверку лимита повторов подряд
"""

import logging
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Mapping, Optional

from .config import RetryConfig

logger = logging.getLogger(__name__)

MAX_RETRY_AFTER_HEADER_LENGTH = 100


class RetryEngine:
    """
    Решает, повторять ли подключение, и сколько ждать.

    Счётчик повторов принадлежит трекеру (``retry_count``), engine только
    считает по нему.

    Examples:
        >>> engine = RetryEngine(RetryConfig(max_attempts=3))
        >>> if engine.should_retry(error, retry_count=0):
        ...     delay = engine.get_wait_time(retry_count=0)
    """

    def __init__(self, config: RetryConfig):
        """
        Args:
            config: Конфигурация retry
        """
        self.config = config

    def should_retry(self, error: Exception, retry_count: int) -> bool:
        """
        Решить нужен ли повтор.

        Args:
            error: Исключение, завершившее цикл
            retry_count: Сколько повторов подряд уже было

        Returns:
            True если нужен повтор
        """
        if self.config.max_attempts is not None and retry_count >= self.config.max_attempts:
            return False

        # Фатальные ошибки НЕ повторяем
        if getattr(error, 'fatal', False):
            return False

        return bool(getattr(error, 'retryable', False))

    def get_wait_time(
        self,
        retry_count: int,
        headers: Optional[Mapping[str, str]] = None
    ) -> float:
        """
        Вычислить задержку перед повтором.

        Args:
            retry_count: Сколько повторов подряд уже было
            headers: Заголовки последнего ответа (для Retry-After)

        Returns:
            Секунды ожидания
        """
        # Приоритет 1: Retry-After header
        if headers:
            retry_after = self._parse_retry_after(headers)
            if retry_after is not None:
                return min(retry_after, self.config.backoff_max)

        # Приоритет 2: Exponential backoff
        exponent = min(retry_count, 16)
        wait = self.config.backoff_base * (self.config.backoff_factor ** exponent)
        wait = min(wait, self.config.backoff_max)

        if self.config.backoff_jitter:
            wait = wait * (0.5 + random.random())

        return wait

    def _parse_retry_after(self, headers: Mapping[str, str]) -> Optional[float]:
        """
        Распарсить Retry-After header.

        Returns:
            Секунды или None если заголовка нет или он некорректен
        """
        retry_after = next(
            (value for key, value in headers.items() if key.lower() == 'retry-after'),
            None
        )
        if not retry_after:
            return None

        if len(retry_after) > MAX_RETRY_AFTER_HEADER_LENGTH:
            logger.warning(
                f"Retry-After header too long ({len(retry_after)} chars), ignoring"
            )
            return None

        try:
            seconds = float(retry_after)
            if seconds < 0:
                return None
            return seconds
        except ValueError:
            try:
                retry_date = parsedate_to_datetime(retry_after)
                delta = (retry_date - datetime.now(timezone.utc)).total_seconds()
                return max(0.0, delta)
            except (ValueError, TypeError, OverflowError) as e:
                logger.debug(f"Failed to parse Retry-After header '{retry_after}': {e}")
                return None
