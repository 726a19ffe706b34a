"""
ServiceClient - Async SmartFlow API client with resilience patterns.

Combines:
- TokenStore for session credentials
- RefreshCoordinator for single-flight token renewal
- RetryEngine for transient failures
- CircuitBreaker per named client
- RequestPipeline per named client (default, health_check, external)
"""

from enum import Enum
from typing import Any

import httpx
from loguru import logger

from smartflow_client.services.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from smartflow_client.services.classifier import ErrorClassifier
from smartflow_client.services.envelope import ApiResponse
from smartflow_client.services.errors import ConfigurationError
from smartflow_client.services.pipeline import HttpClientConfig, RequestPipeline
from smartflow_client.services.refresh import (
    RefreshCoordinator,
    RefreshResult,
    SessionExpiredListener,
)
from smartflow_client.services.retry import RetryConfig, RetryEngine
from smartflow_client.services.token_store import TokenStore
from smartflow_client.settings import Settings


class ClientName(str, Enum):
    """Named HTTP clients."""

    DEFAULT = "default"
    HEALTH_CHECK = "health_check"
    EXTERNAL = "external"


def build_client_configs(settings: Settings) -> dict[str, HttpClientConfig]:
    """Named client configurations derived from settings."""
    base_headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "X-Client-Name": settings.client_name,
        "X-Client-Version": settings.client_version,
    }
    return {
        ClientName.DEFAULT.value: HttpClientConfig(
            name=ClientName.DEFAULT.value,
            base_url=settings.api_url,
            timeout=settings.request_timeout,
            enable_tracing=settings.enable_tracing,
            headers=base_headers,
        ),
        ClientName.HEALTH_CHECK.value: HttpClientConfig(
            name=ClientName.HEALTH_CHECK.value,
            base_url=settings.resolved_health_url,
            timeout=settings.health_check_timeout,
            enable_tracing=False,
            use_auth=False,
            use_retry=False,
            use_circuit_breaker=False,
            headers={
                "Accept": "application/json",
                "X-Client-Name": f"{settings.client_name}.HealthCheck",
            },
        ),
        ClientName.EXTERNAL.value: HttpClientConfig(
            name=ClientName.EXTERNAL.value,
            base_url=settings.external_api_url or settings.api_url,
            timeout=settings.external_timeout,
            enable_tracing=settings.enable_tracing,
            headers={**base_headers, "X-Client-Name": f"{settings.client_name}.External"},
        ),
    }


class ServiceClient:
    """
    SmartFlow API client. Holds every shared component for one session.

    Usage:
        async with ServiceClient(load_settings()) as client:
            projects = await client.get("/projects", params={"pageSize": 10})

            # Raw response from another named client
            response = await client.pipeline(ClientName.EXTERNAL).send("GET", url)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        token_store: TokenStore | None = None,
        retry_engine: RetryEngine | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or Settings()
        self.token_store = token_store or TokenStore.from_settings(self.settings)
        self.classifier = ErrorClassifier()
        self.retry_engine = retry_engine or RetryEngine(
            RetryConfig.from_settings(self.settings)
        )
        self.coordinator = RefreshCoordinator(
            self.token_store,
            exchange=self._exchange_refresh_token,
            timeout=self.settings.request_timeout,
            debug=self.settings.debug,
        )
        self._circuit_breakers = CircuitBreakerRegistry(
            CircuitBreakerConfig.from_settings(self.settings)
        )
        self._transport = transport

        self._configs = build_client_configs(self.settings)
        self._http_clients: dict[str, httpx.AsyncClient] = {}
        self._pipelines: dict[str, RequestPipeline] = {}

    def register_client(self, config: HttpClientConfig) -> None:
        """Register (or replace) a named client configuration."""
        self._configs[config.name] = config
        self._pipelines.pop(config.name, None)
        logger.debug(f"Registered client: {config.name}")

    def get_client_config(self, name: str = ClientName.DEFAULT.value) -> HttpClientConfig | None:
        return self._configs.get(_name(name))

    def pipeline(self, name: str = ClientName.DEFAULT.value) -> RequestPipeline:
        """Get or create the pipeline of a named client."""
        name = _name(name)
        if name in self._pipelines:
            return self._pipelines[name]

        config = self._configs.get(name)
        if config is None:
            raise ConfigurationError(f"HTTP client '{name}' not found", service_id=name)

        http_client = self._http_clients.get(name)
        if http_client is None:
            http_client = httpx.AsyncClient(
                base_url=config.base_url,
                timeout=httpx.Timeout(config.timeout),
                headers=config.headers,
                follow_redirects=True,
                transport=self._transport,
            )
            self._http_clients[name] = http_client

        pipeline = RequestPipeline(
            config,
            http_client,
            self.token_store,
            coordinator=self.coordinator,
            retry_engine=self.retry_engine,
            circuit_breaker=self._circuit_breakers.get(name),
            classifier=self.classifier,
            refresh_buffer_seconds=self.settings.refresh_buffer_seconds,
        )
        self._pipelines[name] = pipeline
        return pipeline

    async def _exchange_refresh_token(self, refresh_token: str) -> RefreshResult:
        return await self.pipeline(ClientName.DEFAULT).exchange_refresh_token(refresh_token)

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
        skip_auth: bool = False,
        timeout: float | None = None,
        client: str = ClientName.DEFAULT.value,
    ) -> ApiResponse[Any]:
        """
        Make an HTTP request through the named client's pipeline.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Path relative to the client's base URL, or a full URL
            params: Query parameters
            json_data: JSON body
            headers: Additional headers
            skip_auth: Send without Authorization and never refresh
            timeout: Override request timeout
            client: Named client to use

        Returns:
            The unwrapped response envelope

        Raises:
            ApiError: Server error response or unsuccessful envelope
            NetworkError / RequestTimeoutError: Transport failure after retries
            CircuitOpenError: Client circuit is open
            RefreshFailedError: Session expired, re-authentication required
        """
        return await self.pipeline(client).request_envelope(
            method,
            url,
            params=params,
            json_data=json_data,
            headers=headers,
            skip_auth=skip_auth,
            timeout=timeout,
        )

    async def get(self, url: str, **kwargs: Any) -> ApiResponse[Any]:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, json_data: Any = None, **kwargs: Any) -> ApiResponse[Any]:
        return await self.request("POST", url, json_data=json_data, **kwargs)

    async def put(self, url: str, json_data: Any = None, **kwargs: Any) -> ApiResponse[Any]:
        return await self.request("PUT", url, json_data=json_data, **kwargs)

    async def patch(self, url: str, json_data: Any = None, **kwargs: Any) -> ApiResponse[Any]:
        return await self.request("PATCH", url, json_data=json_data, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> ApiResponse[Any]:
        return await self.request("DELETE", url, **kwargs)

    async def health_check(self) -> bool:
        """True when the API's readiness endpoint answers 200."""
        try:
            response = await self.pipeline(ClientName.HEALTH_CHECK).send(
                "GET", "/health/ready"
            )
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            return False
        return response.status_code == 200

    def on_session_expired(self, listener: SessionExpiredListener) -> None:
        """Call `listener` when token renewal fails and the user must log in again."""
        self.coordinator.add_session_expired_listener(listener)

    async def close(self) -> None:
        """Close the HTTP clients."""
        for http_client in self._http_clients.values():
            await http_client.aclose()
        self._http_clients.clear()
        self._pipelines.clear()
        logger.debug("ServiceClient closed")

    async def __aenter__(self) -> "ServiceClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    # Health and status methods

    def get_retry_stats(self) -> dict[str, int]:
        return self.retry_engine.get_stats()

    def get_health_status(self) -> dict[str, Any]:
        """Get status of the resilience components."""
        return {
            "refresh": {
                "state": self.coordinator.state.value,
                "pending_waiters": self.coordinator.pending_waiters,
                **self.coordinator.get_stats().to_dict(),
            },
            "retry": self.retry_engine.get_stats(),
            "circuit_breakers": self._circuit_breakers.get_all_status(),
            "open_circuits": self._circuit_breakers.get_open_circuits(),
        }

    def get_circuit_status(self, name: str) -> dict[str, Any] | None:
        """Get circuit breaker status for a named client."""
        name = _name(name)
        if name not in self._pipelines:
            return None
        return self._circuit_breakers.get(name).get_status()

    def reset_circuit(self, name: str) -> bool:
        """Reset circuit breaker for a named client."""
        return self._circuit_breakers.reset(_name(name))


def _name(name: str) -> str:
    return name.value if isinstance(name, ClientName) else name
