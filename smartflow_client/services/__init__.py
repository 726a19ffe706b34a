"""
Service layer infrastructure - resilience patterns for SmartFlow API calls.

Provides:
- TokenStore: Access/refresh token storage and claim introspection
- ErrorClassifier: Failure taxonomy with retry/logout signals
- RetryEngine: Bounded backoff with jitter for transient failures
- CircuitBreaker: Stops calls to a failing backend
- RefreshCoordinator: Single-flight token renewal
- RequestPipeline: Per-call auth, tracing, refresh and retry
- ServiceClient: Composition root holding all of the above
"""

from smartflow_client.services.errors import (
    ServiceError,
    ApiError,
    NetworkError,
    RequestTimeoutError,
    CircuitOpenError,
    RefreshFailedError,
    ConfigurationError,
)
from smartflow_client.services.classifier import (
    ClassifiedError,
    ErrorCategory,
    ErrorClassifier,
    FieldValidationError,
)
from smartflow_client.services.token_store import (
    ClaimsResult,
    FileTokenStorage,
    MemoryTokenStorage,
    Token,
    TokenStorage,
    TokenStore,
    decode_claims,
)
from smartflow_client.services.retry import (
    BackoffType,
    RetryConfig,
    RetryEngine,
    RetryState,
)
from smartflow_client.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from smartflow_client.services.refresh import (
    RefreshCoordinator,
    RefreshResult,
    RefreshState,
)
from smartflow_client.services.envelope import ApiResponse
from smartflow_client.services.pipeline import (
    HttpClientConfig,
    RequestContext,
    RequestPipeline,
)
from smartflow_client.services.client import ClientName, ServiceClient

__all__ = [
    # Errors
    "ServiceError",
    "ApiError",
    "NetworkError",
    "RequestTimeoutError",
    "CircuitOpenError",
    "RefreshFailedError",
    "ConfigurationError",
    # Classification
    "ClassifiedError",
    "ErrorCategory",
    "ErrorClassifier",
    "FieldValidationError",
    # Tokens
    "ClaimsResult",
    "FileTokenStorage",
    "MemoryTokenStorage",
    "Token",
    "TokenStorage",
    "TokenStore",
    "decode_claims",
    # Retry
    "BackoffType",
    "RetryConfig",
    "RetryEngine",
    "RetryState",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    # Refresh
    "RefreshCoordinator",
    "RefreshResult",
    "RefreshState",
    # Pipeline / Client
    "ApiResponse",
    "HttpClientConfig",
    "RequestContext",
    "RequestPipeline",
    "ClientName",
    "ServiceClient",
]
