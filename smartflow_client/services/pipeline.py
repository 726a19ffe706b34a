"""
RequestPipeline - Per-call wrapper around one named httpx client.

For every call:
1. Generate request/correlation/trace ids
2. Renew the access token first if it is about to expire (proactive refresh)
3. Attach Authorization and X-Tenant-ID
4. Send, through the circuit breaker
5. On 401, renew once and resubmit (reactive refresh)
6. Classify failures; let RetryEngine retry the transient ones
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from smartflow_client.services.circuit_breaker import CircuitBreaker
from smartflow_client.services.classifier import ErrorClassifier
from smartflow_client.services.envelope import ApiResponse, is_envelope, parse_json_body
from smartflow_client.services.errors import (
    ApiError,
    CircuitOpenError,
    NetworkError,
    RefreshFailedError,
    RequestTimeoutError,
)
from smartflow_client.services.refresh import RefreshCoordinator, RefreshResult
from smartflow_client.services.retry import RetryEngine, RetryState
from smartflow_client.services.token_store import TokenStore
from smartflow_client.utils import (
    TraceContext,
    generate_correlation_id,
    generate_request_id,
    generate_trace_context,
    utc_timestamp,
)

REFRESH_PATH = "/auth/refresh"


@dataclass
class HttpClientConfig:
    """Configuration for a named HTTP client."""

    name: str
    base_url: str
    timeout: float = 30.0
    enable_tracing: bool = True
    use_auth: bool = True
    use_retry: bool = True
    use_circuit_breaker: bool = True
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class RequestContext:
    """Everything one logical request carries through the pipeline, retries included."""

    method: str
    url: str
    params: dict[str, Any] | None = None
    json_data: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    skip_auth: bool = False
    is_refresh_call: bool = False
    request_id: str = field(default_factory=generate_request_id)
    correlation_id: str = field(default_factory=generate_correlation_id)
    trace: TraceContext = field(default_factory=generate_trace_context)
    auth_retried: bool = False
    sent_token: str | None = None
    retry_state: RetryState = field(default_factory=RetryState)
    started_at: float = field(default_factory=time.monotonic)

    @property
    def label(self) -> str:
        return f"{self.method} {self.url}"


def parse_retry_after(value: str | None) -> float | None:
    """Retry-After in seconds; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class RequestPipeline:
    """
    Sends requests for one named client.

    Usage:
        pipeline = RequestPipeline(config, http_client, token_store, coordinator, retry_engine)

        response = await pipeline.send("GET", "/projects", params={"pageSize": 10})
        envelope = await pipeline.request_envelope("POST", "/tasks", json_data=task)
    """

    def __init__(
        self,
        config: HttpClientConfig,
        http_client: httpx.AsyncClient,
        token_store: TokenStore,
        coordinator: RefreshCoordinator | None = None,
        retry_engine: RetryEngine | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        classifier: ErrorClassifier | None = None,
        refresh_buffer_seconds: float = 60.0,
        refresh_path: str = REFRESH_PATH,
    ):
        self.config = config
        self._http = http_client
        self._token_store = token_store
        self._coordinator = coordinator
        self._retry_engine = retry_engine
        self._circuit_breaker = circuit_breaker
        self._classifier = classifier or ErrorClassifier()
        self._refresh_buffer = refresh_buffer_seconds
        self._refresh_path = refresh_path

    @property
    def name(self) -> str:
        return self.config.name

    async def send(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
        skip_auth: bool = False,
        timeout: float | None = None,
    ) -> httpx.Response:
        """
        Send one logical request and return the successful response.

        Raises:
            ApiError: error status that could not be recovered
            NetworkError / RequestTimeoutError: retries exhausted
            CircuitOpenError: the client's circuit is open
            RefreshFailedError: token renewal failed, session is over
        """
        ctx = RequestContext(
            method=method.upper(),
            url=url,
            params=params,
            json_data=json_data,
            headers=dict(headers or {}),
            timeout=timeout,
            skip_auth=skip_auth or not self.config.use_auth,
        )

        if self._retry_engine is not None and self.config.use_retry:
            return await self._retry_engine.execute(
                lambda: self._dispatch(ctx), ctx.retry_state, label=ctx.label
            )
        return await self._dispatch(ctx)

    async def request_envelope(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> ApiResponse[Any]:
        """Send a request and unwrap the API envelope."""
        response = await self.send(method, url, **kwargs)
        return self.parse_envelope(response)

    async def _dispatch(self, ctx: RequestContext) -> httpx.Response:
        headers = await self._build_headers(ctx)
        response = await self._transmit(ctx, headers)

        if response.status_code == 401 and self._can_auth_retry(ctx):
            ctx.auth_retried = True
            token = await self._token_for_resubmit(ctx)
            headers["Authorization"] = f"Bearer {token}"
            ctx.sent_token = token
            logger.info(f"[{self.name}] Resubmitting {ctx.label} after token refresh")
            response = await self._transmit(ctx, headers)

        if response.is_error:
            raise self._to_api_error(response, ctx)
        return response

    def _can_auth_retry(self, ctx: RequestContext) -> bool:
        return (
            self._coordinator is not None
            and not ctx.auth_retried
            and not ctx.skip_auth
            and not ctx.is_refresh_call
            and ctx.sent_token is not None
        )

    async def _token_for_resubmit(self, ctx: RequestContext) -> str:
        # Another call may already have renewed the token this one was sent with
        current = self._token_store.get_token()
        if current and ctx.sent_token and current != ctx.sent_token:
            return current
        return await self._coordinator.refresh(reason="reactive")

    async def _build_headers(self, ctx: RequestContext) -> dict[str, str]:
        headers = dict(ctx.headers)
        headers["X-Request-Id"] = ctx.request_id
        headers["X-Correlation-Id"] = ctx.correlation_id
        headers["X-Request-Timestamp"] = utc_timestamp()
        if self.config.enable_tracing:
            headers.update(ctx.trace.to_headers())

        if not ctx.skip_auth:
            token = self._token_store.get_token()
            if (
                token
                and not ctx.is_refresh_call
                and self._coordinator is not None
                and self._token_store.is_token_expiring_soon(self._refresh_buffer)
            ):
                token = await self._coordinator.refresh(reason="proactive")
            if token:
                headers["Authorization"] = f"Bearer {token}"
                ctx.sent_token = token

        tenant_id = self._token_store.get_tenant_id()
        if tenant_id:
            headers["X-Tenant-ID"] = tenant_id

        return headers

    async def _transmit(
        self,
        ctx: RequestContext,
        headers: dict[str, str],
        use_circuit_breaker: bool = True,
    ) -> httpx.Response:
        """
        One HTTP round trip, bounded by a single overall deadline.

        Transport failures become service errors.
        """
        breaker = (
            self._circuit_breaker
            if use_circuit_breaker and self.config.use_circuit_breaker
            else None
        )
        if breaker is not None and not breaker.allow_request():
            reset_after = breaker.retry_after() or 0
            error = CircuitOpenError(self.name, reset_after)
            error.classified = self._classifier.classify_transport_failure(
                error, ctx.correlation_id, retryable=False
            )
            raise error

        timeout = ctx.timeout or self.config.timeout
        logger.debug(
            f"[{self.name}] Outgoing request: {ctx.label} "
            f"request_id={ctx.request_id} trace_id={ctx.trace.trace_id}"
        )

        try:
            # httpx applies the timeout per phase; wait_for caps the whole call
            response = await asyncio.wait_for(
                self._http.request(
                    method=ctx.method,
                    url=ctx.url,
                    params=ctx.params,
                    json=ctx.json_data,
                    headers=headers,
                    timeout=timeout,
                ),
                timeout,
            )

        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            if breaker is not None:
                breaker.record_failure()
            logger.warning(f"[{self.name}] {ctx.label} timed out after {timeout}s")
            raise RequestTimeoutError(
                self.name,
                timeout,
                classified=self._classifier.classify_transport_failure(e, ctx.correlation_id),
            ) from e

        except httpx.RequestError as e:
            if breaker is not None:
                breaker.record_failure()
            logger.warning(f"[{self.name}] {ctx.label} failed without response: {e!r}")
            raise NetworkError(
                f"Request to '{self.name}' failed: {e}",
                service_id=self.name,
                classified=self._classifier.classify_transport_failure(e, ctx.correlation_id),
            ) from e

        except BaseException:
            # No outcome to record; a half-open slot must not stay taken
            if breaker is not None:
                breaker.release()
            raise

        if breaker is not None:
            if response.status_code >= 500:
                breaker.record_failure()
            else:
                breaker.record_success()

        duration_ms = (time.monotonic() - ctx.started_at) * 1000
        logger.debug(
            f"[{self.name}] Response received: {response.status_code} {ctx.label} "
            f"request_id={ctx.request_id} duration={duration_ms:.0f}ms"
        )
        return response

    def _to_api_error(self, response: httpx.Response, ctx: RequestContext) -> ApiError:
        body = parse_json_body(response)
        classified = self._classifier.classify(
            response.status_code, body, response.headers, ctx.correlation_id
        )
        errors = body.get("errors") if isinstance(body, dict) else None
        logger.warning(
            f"[{self.name}] Response error: {response.status_code} {ctx.label} "
            f"correlation_id={classified.correlation_id}: {classified.message}"
        )
        return ApiError(
            classified,
            service_id=self.name,
            errors=[str(e) for e in errors] if isinstance(errors, list) else None,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )

    def parse_envelope(self, response: httpx.Response) -> ApiResponse[Any]:
        """
        Unwrap {isSuccess, data, ...}.

        A body without an envelope is returned as successful data. A
        non-success envelope raises ApiError with its errors and correlation id.
        """
        body = parse_json_body(response)
        if not is_envelope(body):
            return ApiResponse(is_success=True, data=body)

        if body.get("isSuccess") is not True:
            correlation_id = response.request.headers.get("X-Correlation-Id")
            classified = self._classifier.classify(
                response.status_code, body, response.headers, correlation_id
            )
            errors = body.get("errors")
            logger.warning(
                f"[{self.name}] Unsuccessful response envelope "
                f"correlation_id={classified.correlation_id}: {classified.message}"
            )
            raise ApiError(
                classified,
                service_id=self.name,
                errors=[str(e) for e in errors] if isinstance(errors, list) else None,
            )

        return ApiResponse.model_validate(body)

    async def exchange_refresh_token(self, refresh_token: str) -> RefreshResult:
        """
        POST the refresh token to the refresh endpoint.

        Sent once: no Authorization header, no retries, no 401 handling.
        It also skips the circuit breaker, so an open circuit cannot end the
        session.
        Anything but {isSuccess: true, data: {token}} is a failed exchange.
        """
        ctx = RequestContext(
            method="POST",
            url=self._refresh_path,
            json_data={"refreshToken": refresh_token},
            skip_auth=True,
            is_refresh_call=True,
        )
        headers = await self._build_headers(ctx)
        response = await self._transmit(ctx, headers, use_circuit_breaker=False)
        body = parse_json_body(response)

        if response.is_error or not is_envelope(body) or body.get("isSuccess") is not True:
            classified = self._classifier.classify(
                response.status_code, body, response.headers, ctx.correlation_id
            )
            raise RefreshFailedError(
                f"Refresh endpoint rejected the token: {classified.message}",
                service_id=self.name,
                classified=classified,
            )

        data = body.get("data")
        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise RefreshFailedError(
                "No token received from refresh endpoint", service_id=self.name
            )

        rotated = data.get("refreshToken")
        return RefreshResult(
            token=token,
            refresh_token=rotated if isinstance(rotated, str) and rotated else None,
        )
