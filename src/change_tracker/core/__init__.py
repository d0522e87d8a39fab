"""Core change tracker модули: конфиг, ошибки, credentials, повторы."""

from .config import DEFAULT_HEARTBEAT, FeedMode, RetryConfig, TrackerConfig
from .retry_engine import RetryEngine
from .exceptions import (
    ChangeTrackerException,
    TemporaryError,
    FatalError,
    NetworkError,
    TimeoutError,
    ConnectionError,
    ProxyError,
    DNSError,
    RequestCancelledError,
    ServerError,
    HTTPStatusError,
    UnauthorizedError,
    ForbiddenError,
    NotFoundError,
    TLSError,
    UpstreamError,
    ConfigurationError,
    classify_httpx_exception,
    classify_requests_exception,
)
from .credentials import (
    AuthenticationChallenge,
    ChallengeDisposition,
    Credential,
    CredentialStorage,
    ProtectionSpace,
    shared_credential_storage,
)

__all__ = [
    # Config
    "DEFAULT_HEARTBEAT",
    "FeedMode",
    "RetryConfig",
    "TrackerConfig",
    # Retry
    "RetryEngine",
    # Exceptions
    "ChangeTrackerException",
    "TemporaryError",
    "FatalError",
    "NetworkError",
    "TimeoutError",
    "ConnectionError",
    "ProxyError",
    "DNSError",
    "RequestCancelledError",
    "ServerError",
    "HTTPStatusError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "TLSError",
    "UpstreamError",
    "ConfigurationError",
    "classify_httpx_exception",
    "classify_requests_exception",
    # Credentials
    "AuthenticationChallenge",
    "ChallengeDisposition",
    "Credential",
    "CredentialStorage",
    "ProtectionSpace",
    "shared_credential_storage",
]
