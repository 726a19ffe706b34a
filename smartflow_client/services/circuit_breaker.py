"""
CircuitBreaker - Fails fast while a named client's backend keeps failing.

States:
- CLOSED: Calls pass through and their outcomes are sampled
- OPEN: Calls are rejected locally until break_duration has elapsed
- HALF_OPEN: A limited number of trial calls decide between CLOSED and OPEN

The circuit opens when the sampling window holds at least
`minimum_throughput` outcomes and the share of failures among them reaches
`failure_ratio`. Only infrastructure failures (no response, 5xx) are
recorded as failures; a 4xx is a healthy backend saying no.
"""

import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from loguru import logger


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreakerConfig:
    """Breaker thresholds. Durations are in seconds."""

    failure_ratio: float = 0.5
    minimum_throughput: int = 3
    break_duration: float = 30.0
    sampling_duration: float = 60.0  # Outcomes older than this are forgotten
    half_open_max_calls: int = 1

    @classmethod
    def from_settings(cls, settings) -> "CircuitBreakerConfig":
        return cls(
            failure_ratio=settings.circuit_failure_ratio,
            minimum_throughput=settings.circuit_minimum_throughput,
            break_duration=settings.circuit_break_duration,
            sampling_duration=settings.circuit_sampling_duration,
        )


class CircuitBreaker:
    """
    Breaker for one named client.

    Usage:
        breaker = CircuitBreaker("default")

        if not breaker.allow_request():
            raise CircuitOpenError("default", breaker.retry_after() or 0)

        response = await send()
        if response.status_code >= 500:
            breaker.record_failure()
        else:
            breaker.record_success()
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._outcomes: deque[tuple[float, bool]] = deque()  # (recorded_at, failed)
        self._opened_at: float | None = None
        self._trial_calls = 0
        self._trial_started_at: float | None = None
        self._times_opened = 0
        self._last_failure_at: float | None = None

    @property
    def state(self) -> CircuitState:
        """Current state; an expired OPEN period moves to HALF_OPEN here."""
        if (
            self._state == CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.config.break_duration
        ):
            self._state = CircuitState.HALF_OPEN
            self._trial_calls = 0
            logger.info(f"[Circuit] '{self.name}' half-open, letting a trial call through")
        return self._state

    def _sample(self) -> tuple[int, int]:
        """(failures, total) inside the sampling window."""
        horizon = self._clock() - self.config.sampling_duration
        while self._outcomes and self._outcomes[0][0] < horizon:
            self._outcomes.popleft()
        failures = sum(1 for _, failed in self._outcomes if failed)
        return failures, len(self._outcomes)

    @property
    def failure_rate(self) -> float:
        failures, total = self._sample()
        return failures / total if total else 0.0

    def allow_request(self) -> bool:
        """Whether a call may go out now. Each HALF_OPEN admission uses up a trial slot."""
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state != CircuitState.HALF_OPEN:
            return False

        if (
            self._trial_calls
            and self._trial_started_at is not None
            and self._clock() - self._trial_started_at >= self.config.break_duration
        ):
            # Admitted trial calls never reported back
            self._trial_calls = 0
        if self._trial_calls < self.config.half_open_max_calls:
            self._trial_calls += 1
            self._trial_started_at = self._clock()
            return True
        return False

    def release(self) -> None:
        """Give back a HALF_OPEN trial slot whose call ended without an outcome."""
        if self._state == CircuitState.HALF_OPEN and self._trial_calls:
            self._trial_calls -= 1

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._close()
        elif self._state == CircuitState.CLOSED:
            self._outcomes.append((self._clock(), False))

    def record_failure(self) -> None:
        now = self._clock()
        self._last_failure_at = now

        if self._state == CircuitState.HALF_OPEN:
            self._trip("trial call failed")
            return
        if self._state == CircuitState.OPEN:
            return

        self._outcomes.append((now, True))
        failures, total = self._sample()
        if (
            total >= self.config.minimum_throughput
            and failures / total >= self.config.failure_ratio
        ):
            self._trip(f"{failures}/{total} sampled calls failed")

    def _trip(self, reason: str) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._times_opened += 1
        logger.warning(
            f"[Circuit] '{self.name}' opened for {self.config.break_duration:.0f}s: {reason}"
        )

    def _close(self) -> None:
        self._state = CircuitState.CLOSED
        self._opened_at = None
        self._trial_calls = 0
        self._outcomes.clear()
        logger.info(f"[Circuit] '{self.name}' closed")

    def reset(self) -> None:
        """Force the circuit closed and forget sampled outcomes."""
        self._close()
        self._last_failure_at = None

    def retry_after(self) -> float | None:
        """Seconds until the circuit lets a trial call through, None unless OPEN."""
        if self.state != CircuitState.OPEN or self._opened_at is None:
            return None
        return max(0.0, self._opened_at + self.config.break_duration - self._clock())

    def get_status(self) -> dict[str, Any]:
        failures, total = self._sample()
        return {
            "name": self.name,
            "state": self.state.value,
            "sampled_calls": total,
            "sampled_failures": failures,
            "failure_rate": round(failures / total, 3) if total else 0.0,
            "times_opened": self._times_opened,
            "seconds_since_last_failure": (
                round(self._clock() - self._last_failure_at, 3)
                if self._last_failure_at is not None
                else None
            ),
            "retry_after": self.retry_after(),
        }


class CircuitBreakerRegistry:
    """One breaker per named client, created on first use."""

    def __init__(self, config: CircuitBreakerConfig | None = None):
        self._config = config or CircuitBreakerConfig()
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = self._breakers[name] = CircuitBreaker(name, self._config)
        return breaker

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.get_status() for name, breaker in self._breakers.items()}

    def reset(self, name: str) -> bool:
        breaker = self._breakers.get(name)
        if breaker is None:
            return False
        breaker.reset()
        return True

    def get_open_circuits(self) -> list[str]:
        return [
            name
            for name, breaker in self._breakers.items()
            if breaker.state == CircuitState.OPEN
        ]
