"""
RetryEngine - Bounded retry with exponential, linear or constant backoff.

Only transient failures are retried:
- no response at all (network error, timeout)
- 5xx responses, 408 and 429

400, 401, 403, 404 and 422 are never retried here. 401 belongs to the
pipeline's refresh-and-resubmit path.

Each logical request passes its own RetryState, so concurrent requests never
share a backoff counter.
"""

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from smartflow_client.services.errors import ApiError, CircuitOpenError, ServiceError

T = TypeVar("T")

NON_RETRYABLE_STATUSES = frozenset({400, 401, 403, 404, 422})
RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


class BackoffType(str, Enum):
    """Delay growth strategies."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    CONSTANT = "constant"


@dataclass
class RetryConfig:
    """Configuration for retries. Delays are in milliseconds."""

    max_attempts: int = 3  # Retries after the first call
    backoff_type: BackoffType = BackoffType.EXPONENTIAL
    base_delay_ms: float = 1000
    max_delay_ms: float = 30000
    growth_factor: float = 2.0
    jitter: bool = True

    @classmethod
    def from_settings(cls, settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.retry_max_attempts,
            backoff_type=BackoffType(settings.retry_backoff_type.lower()),
            base_delay_ms=settings.retry_base_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            growth_factor=settings.retry_growth_factor,
            jitter=settings.retry_jitter,
        )


@dataclass
class RetryState:
    """Retry bookkeeping for one logical request."""

    attempts: int = 0
    last_error: BaseException | None = None


class RetryEngine:
    """
    Decides whether and when to retry a failed call.

    Usage:
        engine = RetryEngine(RetryConfig(max_attempts=3))
        state = RetryState()

        response = await engine.execute(lambda: send(request), state)
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng
        self._active = 0
        self._total_retries = 0

    def calculate_delay(self, attempt: int) -> float:
        """Delay in milliseconds before retry number `attempt` (1-based)."""
        cfg = self.config
        attempt = max(1, attempt)

        if cfg.backoff_type == BackoffType.EXPONENTIAL:
            delay = cfg.base_delay_ms * cfg.growth_factor ** (attempt - 1)
        elif cfg.backoff_type == BackoffType.LINEAR:
            delay = cfg.base_delay_ms * attempt
        else:
            delay = cfg.base_delay_ms
        delay = min(delay, cfg.max_delay_ms)

        if cfg.jitter:
            # Uniform factor in [0.5, 1.0]
            delay *= 0.5 + self._rng() * 0.5

        return float(int(delay))

    def is_retryable_error(self, error: BaseException) -> bool:
        """Whether the failure is transient, ignoring the attempt budget."""
        if isinstance(error, CircuitOpenError):
            return False
        if isinstance(error, ApiError):
            status = error.status
            if status is None or status in NON_RETRYABLE_STATUSES:
                return False
            return status >= 500 or status in RETRYABLE_CLIENT_STATUSES
        if isinstance(error, ServiceError):
            # Transport failures have no status
            return error.status is None and error.retryable
        return False

    def should_retry(self, error: BaseException, state: RetryState) -> bool:
        if state.attempts >= self.config.max_attempts:
            return False
        return self.is_retryable_error(error)

    def _delay_for(self, error: BaseException, attempt: int) -> float:
        if isinstance(error, ApiError) and error.retry_after is not None:
            return min(error.retry_after * 1000, self.config.max_delay_ms)
        return self.calculate_delay(attempt)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        state: RetryState | None = None,
        label: str = "request",
    ) -> T:
        """
        Run `operation`, retrying transient failures.

        Raises the last error once it is not retryable or the attempt budget
        is spent.
        """
        state = state or RetryState()
        self._active += 1
        try:
            while True:
                try:
                    return await operation()
                except ServiceError as e:
                    state.last_error = e
                    if not self.should_retry(e, state):
                        if state.attempts:
                            logger.warning(
                                f"[Retry] Giving up on {label} after {state.attempts} retries: {e}"
                            )
                        raise

                    state.attempts += 1
                    self._total_retries += 1
                    delay = self._delay_for(e, state.attempts)
                    logger.info(
                        f"[Retry] Retrying {label} "
                        f"(attempt {state.attempts}/{self.config.max_attempts}) "
                        f"after {delay:.0f}ms: {e}"
                    )
                    await self._sleep(delay / 1000)
        finally:
            self._active -= 1

    def get_stats(self) -> dict[str, int]:
        """Retry loops currently running and retries issued so far."""
        return {
            "active_retries": self._active,
            "total_retries": self._total_retries,
        }
