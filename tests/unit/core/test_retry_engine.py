"""Тесты RetryEngine."""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import pytest

from src.change_tracker.core.config import RetryConfig
from src.change_tracker.core.exceptions import (
    ChangeTrackerException,
    ConnectionError,
    NotFoundError,
    ServerError,
    TimeoutError,
    UpstreamError,
)
from src.change_tracker.core.retry_engine import RetryEngine

URL = "https://db.example.com/inbox/_changes"


def test_should_retry_connection_error():
    """Retry для обрыва соединения."""
    engine = RetryEngine(RetryConfig())
    assert engine.should_retry(ConnectionError("reset", URL), retry_count=0) is True


def test_should_retry_server_error():
    """Retry для 5xx."""
    engine = RetryEngine(RetryConfig())
    assert engine.should_retry(ServerError(503, URL), retry_count=10) is True


@pytest.mark.parametrize("error", [
    NotFoundError(URL),
    UpstreamError("Unparseable server response", URL),
    ChangeTrackerException("unknown"),
    ValueError("not ours"),
])
def test_should_not_retry(error):
    """НЕ retry для fatal и неизвестных ошибок."""
    engine = RetryEngine(RetryConfig())
    assert engine.should_retry(error, retry_count=0) is False


def test_should_not_retry_max_attempts():
    """НЕ retry после лимита."""
    engine = RetryEngine(RetryConfig(max_attempts=2))
    error = TimeoutError("Timeout", URL)

    assert engine.should_retry(error, retry_count=1) is True
    assert engine.should_retry(error, retry_count=2) is False


def test_zero_attempts_never_retries():
    engine = RetryEngine(RetryConfig(max_attempts=0))
    assert engine.should_retry(ConnectionError("reset", URL), retry_count=0) is False


def test_get_wait_time_exponential():
    """Exponential backoff."""
    engine = RetryEngine(RetryConfig(backoff_base=1.0, backoff_factor=2.0))

    assert [engine.get_wait_time(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]


def test_get_wait_time_capped():
    engine = RetryEngine(RetryConfig(backoff_base=2.0, backoff_max=10.0))

    assert engine.get_wait_time(3) == 10.0
    assert engine.get_wait_time(1000) == 10.0


def test_get_wait_time_jitter_bounds():
    engine = RetryEngine(RetryConfig(backoff_base=4.0, backoff_jitter=True))

    for _ in range(50):
        assert 2.0 <= engine.get_wait_time(0) <= 6.0


def test_retry_after_seconds():
    engine = RetryEngine(RetryConfig())
    assert engine.get_wait_time(0, {"Retry-After": "12"}) == 12.0


def test_retry_after_case_insensitive():
    engine = RetryEngine(RetryConfig())
    assert engine.get_wait_time(0, {"retry-after": "3"}) == 3.0


def test_retry_after_capped_by_backoff_max():
    engine = RetryEngine(RetryConfig(backoff_max=60.0))
    assert engine.get_wait_time(0, {"Retry-After": "3600"}) == 60.0


def test_retry_after_http_date():
    engine = RetryEngine(RetryConfig())
    when = datetime.now(timezone.utc) + timedelta(seconds=30)

    wait = engine.get_wait_time(0, {"Retry-After": format_datetime(when, usegmt=True)})

    assert 25.0 <= wait <= 31.0


def test_retry_after_past_date_is_zero():
    engine = RetryEngine(RetryConfig())
    when = datetime.now(timezone.utc) - timedelta(minutes=5)

    assert engine.get_wait_time(0, {"Retry-After": format_datetime(when, usegmt=True)}) == 0.0


@pytest.mark.parametrize("value", ["soon", "-5", "x" * 200, ""])
def test_invalid_retry_after_falls_back_to_backoff(value):
    engine = RetryEngine(RetryConfig(backoff_base=1.5))
    assert engine.get_wait_time(0, {"Retry-After": value}) == 1.5
