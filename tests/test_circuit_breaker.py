import pytest

from smartflow_client.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from smartflow_client.settings import Settings


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def breaker(clock, **overrides) -> CircuitBreaker:
    return CircuitBreaker("default", CircuitBreakerConfig(**overrides), clock=clock)


def test_stays_closed_below_minimum_throughput(clock):
    cb = breaker(clock, minimum_throughput=3)
    cb.record_failure()
    cb.record_failure()

    assert cb.state == CircuitState.CLOSED
    assert cb.allow_request() is True


def test_opens_when_failure_ratio_reached(clock):
    cb = breaker(clock, failure_ratio=0.5, minimum_throughput=3, break_duration=30)
    cb.record_success()
    cb.record_success()
    cb.record_failure()
    assert cb.state == CircuitState.CLOSED

    cb.record_failure()
    assert cb.state == CircuitState.OPEN
    assert cb.allow_request() is False
    assert cb.retry_after() == 30

    clock.now += 10
    assert cb.retry_after() == 20


def test_old_outcomes_leave_the_sampling_window(clock):
    cb = breaker(clock, minimum_throughput=3, sampling_duration=60)
    cb.record_failure()
    cb.record_failure()

    clock.now += 61
    cb.record_failure()

    assert cb.state == CircuitState.CLOSED
    assert cb.get_status()["sampled_calls"] == 1


def test_half_open_allows_one_trial_call_then_closes(clock):
    cb = breaker(clock, minimum_throughput=1, break_duration=30)
    cb.record_failure()
    assert cb.state == CircuitState.OPEN

    clock.now += 30
    assert cb.state == CircuitState.HALF_OPEN
    assert cb.allow_request() is True
    assert cb.allow_request() is False

    cb.record_success()
    assert cb.state == CircuitState.CLOSED
    assert cb.failure_rate == 0.0


def test_failed_trial_call_reopens(clock):
    cb = breaker(clock, minimum_throughput=1, break_duration=30)
    cb.record_failure()
    clock.now += 30
    assert cb.allow_request() is True

    cb.record_failure()
    assert cb.state == CircuitState.OPEN
    assert cb.retry_after() == 30
    assert cb.get_status()["times_opened"] == 2


def test_released_half_open_slot_can_be_reused(clock):
    cb = breaker(clock, minimum_throughput=1, break_duration=30)
    cb.record_failure()
    clock.now += 30
    assert cb.allow_request() is True
    assert cb.allow_request() is False

    cb.release()
    assert cb.state == CircuitState.HALF_OPEN
    assert cb.allow_request() is True


def test_unanswered_half_open_call_expires(clock):
    cb = breaker(clock, minimum_throughput=1, break_duration=30)
    cb.record_failure()
    clock.now += 30
    assert cb.allow_request() is True

    clock.now += 29
    assert cb.allow_request() is False
    clock.now += 1
    assert cb.allow_request() is True

    cb.record_success()
    assert cb.state == CircuitState.CLOSED


def test_release_outside_half_open_is_ignored(clock):
    cb = breaker(clock, minimum_throughput=1)
    cb.release()
    assert cb.state == CircuitState.CLOSED

    cb.record_failure()
    cb.release()
    assert cb.state == CircuitState.OPEN
    assert cb.allow_request() is False


def test_reset_and_status(clock):
    cb = breaker(clock, minimum_throughput=1)
    cb.record_failure()
    status = cb.get_status()
    assert status["state"] == "OPEN"
    assert status["failure_rate"] == 1.0
    assert status["seconds_since_last_failure"] == 0

    cb.reset()
    assert cb.state == CircuitState.CLOSED
    assert cb.retry_after() is None
    assert cb.get_status()["seconds_since_last_failure"] is None


def test_registry():
    config = CircuitBreakerConfig.from_settings(Settings(circuit_minimum_throughput=1))
    registry = CircuitBreakerRegistry(config)
    cb = registry.get("external")
    assert registry.get("external") is cb
    assert cb.config.minimum_throughput == 1
    assert cb.config.break_duration == 30

    cb.record_failure()
    assert registry.get_open_circuits() == ["external"]
    assert set(registry.get_all_status()) == {"external"}

    assert registry.reset("external") is True
    assert registry.reset("missing") is False
    assert registry.get_open_circuits() == []
