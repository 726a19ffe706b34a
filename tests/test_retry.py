import pytest

from smartflow_client.services.classifier import ErrorClassifier
from smartflow_client.services.errors import (
    ApiError,
    CircuitOpenError,
    NetworkError,
    RefreshFailedError,
    RequestTimeoutError,
)
from smartflow_client.services.retry import (
    BackoffType,
    RetryConfig,
    RetryEngine,
    RetryState,
)
from smartflow_client.settings import Settings
from tests.helpers import Sleeper

classifier = ErrorClassifier()


def api_error(status: int, retry_after: float | None = None) -> ApiError:
    return ApiError(classifier.classify(status), service_id="default", retry_after=retry_after)


def network_error() -> NetworkError:
    return NetworkError(
        "connection refused",
        service_id="default",
        classified=classifier.classify_transport_failure(ConnectionError("refused")),
    )


class FailingOperation:
    """Raises the queued errors in order, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def test_exponential_delays_are_capped():
    engine = RetryEngine(RetryConfig(base_delay_ms=1000, max_delay_ms=30000, jitter=False))
    delays = [engine.calculate_delay(n) for n in range(1, 8)]
    assert delays == [1000, 2000, 4000, 8000, 16000, 30000, 30000]


def test_linear_and_constant_delays():
    linear = RetryEngine(RetryConfig(backoff_type=BackoffType.LINEAR, base_delay_ms=500, max_delay_ms=1200, jitter=False))
    assert [linear.calculate_delay(n) for n in (1, 2, 3)] == [500, 1000, 1200]

    constant = RetryEngine(RetryConfig(backoff_type=BackoffType.CONSTANT, base_delay_ms=750, jitter=False))
    assert [constant.calculate_delay(n) for n in (1, 5)] == [750, 750]


@pytest.mark.parametrize("rng_value,expected", [(0.0, 2000), (0.5, 3000), (0.75, 3500)])
def test_jitter_stays_between_half_and_full_delay(rng_value, expected):
    engine = RetryEngine(RetryConfig(base_delay_ms=1000, jitter=True), rng=lambda: rng_value)
    assert engine.calculate_delay(3) == expected


def test_config_from_settings():
    config = RetryConfig.from_settings(
        Settings(retry_max_attempts=5, retry_backoff_type="Linear", retry_jitter=False)
    )
    assert config.max_attempts == 5
    assert config.backoff_type == BackoffType.LINEAR
    assert config.jitter is False


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [500, 502, 503, 504, 408, 429])
async def test_transient_statuses_retry_up_to_max_attempts(retry_engine, sleeper, status):
    operation = FailingOperation(*(api_error(status) for _ in range(10)))
    state = RetryState()

    with pytest.raises(ApiError) as exc_info:
        await retry_engine.execute(operation, state)

    assert exc_info.value.status == status
    assert operation.calls == 4
    assert state.attempts == 3
    assert sleeper.calls == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
async def test_client_errors_are_never_retried(retry_engine, sleeper, status):
    operation = FailingOperation(api_error(status))

    with pytest.raises(ApiError):
        await retry_engine.execute(operation)

    assert operation.calls == 1
    assert sleeper.calls == []


@pytest.mark.asyncio
async def test_recovers_after_transient_failures(retry_engine):
    operation = FailingOperation(network_error(), api_error(503))
    state = RetryState()

    assert await retry_engine.execute(operation, state) == "ok"
    assert operation.calls == 3
    assert state.attempts == 2
    assert retry_engine.get_stats() == {"active_retries": 0, "total_retries": 2}


@pytest.mark.asyncio
async def test_timeouts_are_retried(retry_engine):
    timeout = RequestTimeoutError(
        "default", 5, classified=classifier.classify_transport_failure(TimeoutError())
    )
    operation = FailingOperation(timeout)

    assert await retry_engine.execute(operation) == "ok"
    assert operation.calls == 2


@pytest.mark.asyncio
async def test_open_circuit_and_failed_refresh_are_not_retried(retry_engine):
    open_circuit = CircuitOpenError(
        "default", 10, classified=classifier.classify_transport_failure(Exception(), retryable=False)
    )
    for error in (open_circuit, RefreshFailedError("expired")):
        operation = FailingOperation(error)
        with pytest.raises(type(error)):
            await retry_engine.execute(operation)
        assert operation.calls == 1


@pytest.mark.asyncio
async def test_non_service_errors_propagate_immediately(retry_engine):
    operation = FailingOperation(ValueError("bug"))

    with pytest.raises(ValueError):
        await retry_engine.execute(operation)
    assert operation.calls == 1


@pytest.mark.asyncio
async def test_retry_after_header_overrides_backoff():
    sleeper = Sleeper()
    engine = RetryEngine(RetryConfig(max_delay_ms=5000, jitter=False), sleep=sleeper)
    operation = FailingOperation(api_error(429, retry_after=2), api_error(429, retry_after=60))

    assert await engine.execute(operation) == "ok"
    assert sleeper.calls == [2.0, 5.0]


@pytest.mark.asyncio
async def test_zero_max_attempts_disables_retries():
    engine = RetryEngine(RetryConfig(max_attempts=0), sleep=Sleeper())
    operation = FailingOperation(api_error(503))

    with pytest.raises(ApiError):
        await engine.execute(operation)
    assert operation.calls == 1


@pytest.mark.asyncio
async def test_each_request_has_its_own_state(retry_engine):
    first, second = RetryState(), RetryState()

    await retry_engine.execute(FailingOperation(api_error(503)), first)
    await retry_engine.execute(FailingOperation(api_error(503), api_error(503)), second)

    assert first.attempts == 1
    assert second.attempts == 2
