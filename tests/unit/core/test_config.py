"""Тесты конфигурации трекера."""

from types import MappingProxyType

import pytest

from src.change_tracker.core.config import (
    DEFAULT_HEARTBEAT,
    FeedMode,
    RetryConfig,
    TrackerConfig,
)
from src.change_tracker.core.exceptions import ConfigurationError
from src.change_tracker.core.logging import LoggingConfig


class TestFeedMode:

    @pytest.mark.parametrize("text, expected", [
        ("normal", FeedMode.ONE_SHOT),
        ("longpoll", FeedMode.LONG_POLL),
        ("LongPoll", FeedMode.LONG_POLL),
        ("continuous", FeedMode.CONTINUOUS),
        ("ONE_SHOT", FeedMode.ONE_SHOT),
        ("long_poll", FeedMode.LONG_POLL),
        (" longpoll ", FeedMode.LONG_POLL),
    ])
    def test_parse(self, text, expected):
        assert FeedMode.parse(text) is expected

    def test_parse_enum_passthrough(self):
        assert FeedMode.parse(FeedMode.CONTINUOUS) is FeedMode.CONTINUOUS

    def test_parse_unknown(self):
        with pytest.raises(ConfigurationError, match="Unknown feed mode"):
            FeedMode.parse("eventsource")

    def test_value_is_wire_name(self):
        assert FeedMode.LONG_POLL.value == "longpoll"
        assert FeedMode.ONE_SHOT == "normal"


class TestRetryConfig:

    def test_defaults(self):
        """Без ограничения повторов, 2s, 4s, 8s ... до 10 минут."""
        config = RetryConfig()

        assert config.max_attempts is None
        assert config.backoff_base == 2.0
        assert config.backoff_factor == 2.0
        assert config.backoff_max == 600.0
        assert config.backoff_jitter is False

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": -1},
        {"backoff_base": -0.1},
        {"backoff_factor": 0.5},
        {"backoff_max": -1},
    ])
    def test_validation(self, kwargs):
        with pytest.raises(ConfigurationError):
            RetryConfig(**kwargs)

    def test_immutable(self):
        config = RetryConfig()
        with pytest.raises(AttributeError):
            config.max_attempts = 3


class TestTrackerConfig:

    def test_defaults(self):
        config = TrackerConfig(database_url="https://db.example.com/inbox")

        assert config.mode is FeedMode.ONE_SHOT
        assert config.limit is None
        assert config.heartbeat == DEFAULT_HEARTBEAT
        assert config.since is None
        assert config.doc_ids is None
        assert config.verify_ssl is True
        assert config.logging is None
        assert isinstance(config.retry, RetryConfig)

    def test_mode_string_is_parsed(self):
        config = TrackerConfig(database_url="https://db.example.com/inbox", mode="longpoll")
        assert config.mode is FeedMode.LONG_POLL

    def test_mappings_are_frozen(self):
        config = TrackerConfig(
            database_url="https://db.example.com/inbox",
            request_headers={"X-Id": "1"},
            filter_params={"type": "note"},
            doc_ids=["a", "b"],
        )

        assert isinstance(config.request_headers, MappingProxyType)
        assert isinstance(config.filter_params, MappingProxyType)
        assert config.doc_ids == ("a", "b")
        with pytest.raises(TypeError):
            config.request_headers["X-Id"] = "2"

    @pytest.mark.parametrize("url", [
        "",
        "db.example.com/inbox",
        "ftp://db.example.com/inbox",
        "https:///inbox",
        "https://db.example.com:http/inbox",
    ])
    def test_invalid_url(self, url):
        with pytest.raises(ConfigurationError):
            TrackerConfig(database_url=url)

    @pytest.mark.parametrize("kwargs", [{"limit": 0}, {"limit": -5}, {"heartbeat": 0}])
    def test_invalid_numbers(self, kwargs):
        with pytest.raises(ConfigurationError):
            TrackerConfig(database_url="https://db.example.com/inbox", **kwargs)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            TrackerConfig(database_url="https://db.example.com/inbox", limit=0)

    def test_create(self):
        logging_config = LoggingConfig.create(level="DEBUG")
        config = TrackerConfig.create(
            "https://db.example.com/inbox",
            mode="longpoll",
            limit=50,
            heartbeat=60,
            headers={"X-Replication-Id": "r1"},
            max_retries=4,
            logging=logging_config,
            since="17",
            include_conflicts=True,
        )

        assert config.mode is FeedMode.LONG_POLL
        assert config.limit == 50
        assert config.heartbeat == 60
        assert config.request_headers["X-Replication-Id"] == "r1"
        assert config.retry.max_attempts == 4
        assert config.logging is logging_config
        assert config.since == "17"
        assert config.include_conflicts is True

    def test_create_with_retry_config(self):
        retry = RetryConfig(backoff_base=0.5)
        config = TrackerConfig.create("https://db.example.com/inbox", retry=retry, max_retries=9)

        assert config.retry is retry

    def test_with_headers_merges(self):
        config = TrackerConfig.create("https://db.example.com/inbox", headers={"A": "1", "B": "2"})

        updated = config.with_headers({"B": "3", "C": "4"})

        assert dict(updated.request_headers) == {"A": "1", "B": "3", "C": "4"}
        assert dict(config.request_headers) == {"A": "1", "B": "2"}

    def test_replace_validates(self):
        config = TrackerConfig(database_url="https://db.example.com/inbox")

        assert config.replace(limit=10).limit == 10
        with pytest.raises(ConfigurationError):
            config.replace(limit=0)
