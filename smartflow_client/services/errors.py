"""
Service layer exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from smartflow_client.services.classifier import ClassifiedError, ErrorCategory


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(
        self,
        message: str,
        service_id: str | None = None,
        classified: ClassifiedError | None = None,
    ):
        self.service_id = service_id
        self.classified = classified
        super().__init__(message)

    @property
    def status(self) -> int | None:
        return self.classified.status if self.classified else None

    @property
    def correlation_id(self) -> str | None:
        return self.classified.correlation_id if self.classified else None

    @property
    def retryable(self) -> bool:
        return self.classified.retryable if self.classified else False

    @property
    def should_logout(self) -> bool:
        return self.classified.should_logout if self.classified else False


class ApiError(ServiceError):
    """The server answered with an error status or a non-success envelope."""

    def __init__(
        self,
        classified: ClassifiedError,
        service_id: str | None = None,
        errors: list[str] | None = None,
        retry_after: float | None = None,
    ):
        self.errors = errors or []
        self.retry_after = retry_after
        super().__init__(classified.message, service_id=service_id, classified=classified)

    @property
    def category(self) -> ErrorCategory:
        return self.classified.category


class NetworkError(ServiceError):
    """No response was received (DNS failure, refused or aborted connection)."""

    pass


class RequestTimeoutError(ServiceError):
    """Request timed out."""

    def __init__(
        self,
        service_id: str,
        timeout: float,
        classified: ClassifiedError | None = None,
    ):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
            classified=classified,
        )


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    def __init__(
        self,
        service_id: str,
        reset_after_seconds: float,
        classified: ClassifiedError | None = None,
    ):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            service_id=service_id,
            classified=classified,
        )


class RefreshFailedError(ServiceError):
    """Token renewal failed; the session is over and the user must log in again."""

    @property
    def should_logout(self) -> bool:
        return True


class ConfigurationError(ServiceError):
    """Client was asked for something it was not configured for."""

    pass
