"""
WebAPI Client Library

A resilient asynchronous HTTP client core. Provides linear-backoff retries,
auth and header injection, envelope-aware response decoding, and request
events with Prometheus metrics.
"""

from .auth import AuthenticationState
from .cancellation import CancellationToken
from .client import WebAPIClient
from .config import APIConfiguration, AuthenticationType, CLIENT_VERSION
from .decoder import ResponseDecoder
from .events import EventChannel, ObservabilitySink
from .executor import RequestExecutor
from .metrics import MetricsCollector
from .models import OutboundRequest, RequestMetrics, ResponseEnvelope, TransportResponse
from .retry import RetryConfig, RetryHandler
from .services import BaseAPIService
from .transport import AiohttpTransport, TransportPort
from .exceptions import (
    WebAPIError,
    TransportError,
    HTTPError,
    DecodeError,
    RequestCancelledError,
    MaxRetriesExceededError,
    InvalidConfigurationError,
    ServiceNotInitializedError,
)

__version__ = CLIENT_VERSION

__all__ = [
    # Main client
    "WebAPIClient",
    "APIConfiguration",
    "AuthenticationType",

    # Components
    "AuthenticationState",
    "CancellationToken",
    "RequestExecutor",
    "RetryHandler",
    "RetryConfig",
    "ResponseDecoder",
    "EventChannel",
    "ObservabilitySink",
    "MetricsCollector",
    "BaseAPIService",
    "TransportPort",
    "AiohttpTransport",

    # Models
    "ResponseEnvelope",
    "RequestMetrics",
    "OutboundRequest",
    "TransportResponse",

    # Exceptions
    "WebAPIError",
    "TransportError",
    "HTTPError",
    "DecodeError",
    "RequestCancelledError",
    "MaxRetriesExceededError",
    "InvalidConfigurationError",
    "ServiceNotInitializedError",
]
