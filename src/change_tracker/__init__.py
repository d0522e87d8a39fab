"""Changes feed tracker - follows a CouchDB-style ``_changes`` feed over HTTP."""

import logging
from importlib.metadata import version, PackageNotFoundError

from .core.config import DEFAULT_HEARTBEAT, FeedMode, RetryConfig, TrackerConfig
from .core.credentials import Credential, CredentialStorage, ProtectionSpace, shared_credential_storage
from .core.exceptions import (
    ChangeTrackerException,
    TemporaryError,
    FatalError,
    NetworkError,
    ServerError,
    HTTPStatusError,
    UnauthorizedError,
    UpstreamError,
    ConfigurationError,
)
from .core.logging import LoggingConfig, TrackerLogger
from .transport import AsyncTransport, ThreadedTransport, Transport
from .core.tracker import ChangeTracker, ChangeTrackerClient
from .core.connection_tracker import ConnectionChangeTracker, ConnectionState

# Set up logging - add NullHandler to prevent "No handler found" warnings
# Users can configure logging themselves using logging.getLogger('change_tracker')
logging.getLogger('change_tracker').addHandler(logging.NullHandler())

# Version info - read from package metadata (single source of truth in pyproject.toml)
try:
    __version__ = version("changes-feed-tracker")
except PackageNotFoundError:
    # Package is not installed (development mode)
    __version__ = "0.0.0-dev"

__all__ = [
    # Trackers
    "ChangeTracker",
    "ChangeTrackerClient",
    "ConnectionChangeTracker",
    "ConnectionState",
    # Transports
    "Transport",
    "AsyncTransport",
    "ThreadedTransport",
    # Config
    "DEFAULT_HEARTBEAT",
    "FeedMode",
    "RetryConfig",
    "TrackerConfig",
    "LoggingConfig",
    "TrackerLogger",
    # Credentials
    "Credential",
    "CredentialStorage",
    "ProtectionSpace",
    "shared_credential_storage",
    # Exceptions
    "ChangeTrackerException",
    "TemporaryError",
    "FatalError",
    "NetworkError",
    "ServerError",
    "HTTPStatusError",
    "UnauthorizedError",
    "UpstreamError",
    "ConfigurationError",
]
