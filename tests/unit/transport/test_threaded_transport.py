"""
Tests for ThreadedTransport using the responses library.
"""

import re
import threading

import pytest
import requests
import responses

from src.change_tracker.core.config import TrackerConfig
from src.change_tracker.core.connection_tracker import ConnectionChangeTracker
from src.change_tracker.core.credentials import Credential, CredentialStorage, ProtectionSpace
from src.change_tracker.core.exceptions import ConnectionError, DNSError, TimeoutError
from src.change_tracker.core.tracker import ChangeTrackerClient
from src.change_tracker.transport.base import ConnectionDelegate, FeedRequest
from src.change_tracker.transport.threaded_transport import ThreadedTransport

FEED_URL = "https://db.example.com/inbox/_changes?feed=normal&heartbeat=300000"
FEED_PATTERN = re.compile(r"https://db\.example\.com/inbox/_changes.*")


class RecordingDelegate(ConnectionDelegate):

    def __init__(self):
        self.events = []
        self.done = threading.Event()

    def on_response(self, connection, response):
        self.events.append(("response", response.status_code))

    def on_data(self, connection, data):
        self.events.append(("data", data))

    def on_finish(self, connection):
        self.events.append(("finish",))
        self.done.set()

    def on_error(self, connection, error):
        self.events.append(("error", error))
        self.done.set()

    @property
    def body(self):
        return b"".join(event[1] for event in self.events if event[0] == "data")


class EventClient(ChangeTrackerClient):

    def __init__(self):
        self.changes = []
        self.stopped = threading.Event()

    def change_tracker_received_change(self, change):
        self.changes.append(change)

    def change_tracker_stopped(self, tracker):
        self.stopped.set()


@pytest.fixture
def transport():
    with ThreadedTransport(credential_storage=CredentialStorage()) as transport:
        yield transport


def run(transport, request, delegate):
    connection = transport.open(request, delegate)
    connection.join(timeout=5)
    return connection


class TestThreadedTransportEvents:

    def test_successful_request(self, transport, mock_responses):
        mock_responses.add(responses.GET, FEED_PATTERN, json={"results": []}, status=200)
        delegate = RecordingDelegate()

        run(transport, FeedRequest(url=FEED_URL), delegate)

        assert delegate.events[0] == ("response", 200)
        assert delegate.events[-1] == ("finish",)
        assert delegate.body == b'{"results": []}'

    def test_runs_on_worker_thread(self, transport, mock_responses):
        mock_responses.add(responses.GET, FEED_PATTERN, json={"results": []})
        threads = []

        class ThreadRecorder(RecordingDelegate):
            def on_response(self, connection, response):
                threads.append(threading.current_thread().name)
                super().on_response(connection, response)

        run(transport, FeedRequest(url=FEED_URL), ThreadRecorder())

        assert threads[0].startswith("change-tracker-connection-")

    def test_headers_are_sent(self, transport, mock_responses):
        mock_responses.add(responses.GET, FEED_PATTERN, json={"results": []})
        request = FeedRequest(url=FEED_URL, headers={"Host": "db.example.com", "Cache-Control": "no-cache"})

        run(transport, request, RecordingDelegate())

        sent = mock_responses.calls[0].request
        assert sent.headers["Host"] == "db.example.com"
        assert sent.headers["Cache-Control"] == "no-cache"

    def test_connection_error(self, transport, mock_responses):
        mock_responses.add(responses.GET, FEED_PATTERN, body=requests.exceptions.ConnectionError("reset by peer"))
        delegate = RecordingDelegate()

        run(transport, FeedRequest(url=FEED_URL), delegate)

        kind, error = delegate.events[-1]
        assert kind == "error"
        assert isinstance(error, ConnectionError)
        assert error.url == FEED_URL

    def test_dns_error(self, transport, mock_responses):
        mock_responses.add(
            responses.GET,
            FEED_PATTERN,
            body=requests.exceptions.ConnectionError("Failed to resolve: Name or service not known"),
        )
        delegate = RecordingDelegate()

        run(transport, FeedRequest(url=FEED_URL), delegate)

        assert isinstance(delegate.events[-1][1], DNSError)

    def test_timeout(self, transport, mock_responses):
        mock_responses.add(responses.GET, FEED_PATTERN, body=requests.exceptions.ConnectTimeout("timed out"))
        delegate = RecordingDelegate()

        run(transport, FeedRequest(url=FEED_URL), delegate)

        assert isinstance(delegate.events[-1][1], TimeoutError)

    def test_call_later_runs_callback(self, transport):
        fired = threading.Event()

        transport.call_later(0.01, fired.set)

        assert fired.wait(timeout=5)

    def test_call_later_can_be_cancelled(self, transport):
        fired = threading.Event()

        handle = transport.call_later(0.2, fired.set)
        handle.cancel()

        assert not fired.wait(timeout=0.4)


class TestThreadedTransportAuth:

    def test_stored_credential_is_sent_after_challenge(self, mock_responses):
        mock_responses.add(
            responses.GET, FEED_PATTERN, status=401,
            headers={"WWW-Authenticate": 'Basic realm="couch"'},
        )
        mock_responses.add(responses.GET, FEED_PATTERN, json={"results": []}, status=200)
        storage = CredentialStorage()
        storage.set_default_credential(
            Credential("bob", "s3cret"),
            ProtectionSpace(host="db.example.com", port=443, protocol="https", realm="couch"),
        )
        delegate = RecordingDelegate()

        with ThreadedTransport(credential_storage=storage) as transport:
            run(transport, FeedRequest(url=FEED_URL), delegate)

        assert len(mock_responses.calls) == 2
        assert "Authorization" not in mock_responses.calls[0].request.headers
        assert mock_responses.calls[1].request.headers["Authorization"].startswith("Basic ")
        assert delegate.events[0] == ("response", 200)

    def test_challenge_without_credential_is_delivered(self, transport, mock_responses):
        mock_responses.add(
            responses.GET, FEED_PATTERN, status=401,
            headers={"WWW-Authenticate": 'Basic realm="couch"'},
        )
        delegate = RecordingDelegate()

        run(transport, FeedRequest(url=FEED_URL), delegate)

        assert len(mock_responses.calls) == 1
        assert delegate.events[0] == ("response", 401)


class TestThreadedTrackerLoop:

    def test_one_shot_drains_with_limit(self, transport, mock_responses):
        mock_responses.add(
            responses.GET, FEED_PATTERN,
            json={"results": [{"seq": 1, "id": "a"}, {"seq": 2, "id": "b"}]},
        )
        mock_responses.add(responses.GET, FEED_PATTERN, json={"results": [{"seq": 3, "id": "c"}]})
        client = EventClient()
        config = TrackerConfig.create("https://db.example.com/inbox", mode="normal", limit=2)

        tracker = ConnectionChangeTracker(config, client=client, transport=transport)
        tracker.start()

        assert client.stopped.wait(timeout=5)
        assert [c["id"] for c in client.changes] == ["a", "b", "c"]
        assert len(mock_responses.calls) == 2
        assert "since=2" in mock_responses.calls[1].request.url
        assert tracker.error is None

    def test_not_found_stops_with_error(self, transport, mock_responses):
        mock_responses.add(responses.GET, FEED_PATTERN, json={"error": "not_found"}, status=404)
        client = EventClient()
        config = TrackerConfig.create("https://db.example.com/inbox", mode="longpoll")

        tracker = ConnectionChangeTracker(config, client=client, transport=transport)
        tracker.start()

        assert client.stopped.wait(timeout=5)
        assert tracker.error is not None
        assert tracker.error.status_code == 404
        assert not tracker.running
