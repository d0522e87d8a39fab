"""Transports that drive one changes feed request at a time."""

from .base import (
    MAX_AUTH_ROUNDS,
    ConnectionDelegate,
    FeedConnection,
    FeedRequest,
    FeedResponse,
    Transport,
)
from .async_transport import AsyncFeedConnection, AsyncTransport
from .threaded_transport import ThreadedFeedConnection, ThreadedTransport

__all__ = [
    "MAX_AUTH_ROUNDS",
    "ConnectionDelegate",
    "FeedConnection",
    "FeedRequest",
    "FeedResponse",
    "Transport",
    "AsyncFeedConnection",
    "AsyncTransport",
    "ThreadedFeedConnection",
    "ThreadedTransport",
]
