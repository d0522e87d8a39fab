"""
Pytest configuration and fixtures for changes-feed-tracker tests.
"""

import json

import pytest
import responses as responses_lib

from src.change_tracker.core.config import RetryConfig, TrackerConfig
from src.change_tracker.core.connection_tracker import ConnectionChangeTracker
from src.change_tracker.core.credentials import CredentialStorage
from src.change_tracker.core.logging.config import LoggingConfig
from src.change_tracker.core.tracker import ChangeTrackerClient
from src.change_tracker.transport.base import FeedConnection, Transport

DATABASE_URL = "https://db.example.com/inbox"


class FakeTimer:
    """Handle returned by FakeTransport.call_later."""

    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        assert not self.cancelled, "timer was cancelled"
        self.callback()


class FakeTransport(Transport):
    """
    Transport that records requests instead of sending them.

    Tests drive connections by hand through ``respond``/``fail`` or by
    calling the delegate methods directly.
    """

    def __init__(self, credential_storage=None):
        super().__init__(credential_storage or CredentialStorage())
        self.connections = []
        self.timers = []

    def open(self, request, delegate):
        connection = FeedConnection(self, request, delegate)
        self.connections.append(connection)
        return connection

    def call_later(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def last(self):
        return self.connections[-1]

    def respond(self, connection=None, status=200, body=b"", headers=None, chunks=None):
        """Deliver a complete response on a connection (the last one by default)."""
        connection = connection or self.last
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")
        if not connection._deliver_response(status, headers or {}, connection.request.url):
            return
        for chunk in chunks if chunks is not None else [body]:
            if not connection._deliver_data(chunk):
                return
        connection._deliver_finish()

    def fail(self, error, connection=None):
        (connection or self.last)._deliver_error(error)


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingClient(ChangeTrackerClient):
    """Collects changes and stop notifications."""

    def __init__(self):
        self.changes = []
        self.stopped = []

    def change_tracker_received_change(self, change):
        self.changes.append(change)

    def change_tracker_stopped(self, tracker):
        self.stopped.append(tracker)


def results(*seqs, last_seq=None):
    """Build a poll response body with one change per sequence."""
    body = {"results": [{"seq": seq, "id": f"doc-{seq}", "changes": [{"rev": "1-a"}]} for seq in seqs]}
    if last_seq is not None:
        body["last_seq"] = last_seq
    return json.dumps(body).encode("utf-8")


@pytest.fixture
def database_url():
    """Database URL for testing."""
    return DATABASE_URL


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recording_client():
    return RecordingClient()


@pytest.fixture
def make_tracker(fake_transport, clock, recording_client):
    """
    Factory for ConnectionChangeTracker wired to the fakes.

    Example:
        def test_something(make_tracker):
            tracker = make_tracker(mode="longpoll", limit=10)
    """

    def factory(database_url=DATABASE_URL, retry=None, **kwargs):
        config = TrackerConfig.create(database_url, retry=retry or RetryConfig(), **kwargs)
        return ConnectionChangeTracker(
            config,
            client=recording_client,
            transport=fake_transport,
            clock=clock,
        )

    return factory


@pytest.fixture
def mock_responses():
    """Mock HTTP responses using responses library."""
    with responses_lib.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def logging_config():
    """LoggingConfig for tests that need a configured tracker logger."""
    return LoggingConfig.create(level="DEBUG", format="text")


@pytest.fixture
def feed_body():
    """The ``results`` body builder as a fixture."""
    return results
