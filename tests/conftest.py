"""
SmartFlow client test suite - shared fixtures
"""

import pytest

from smartflow_client.services.retry import RetryConfig, RetryEngine
from smartflow_client.services.token_store import TokenStore
from smartflow_client.settings import Settings
from tests.helpers import Sleeper

API_URL = "https://api.test/api"


@pytest.fixture
def settings():
    return Settings(
        api_url=API_URL,
        retry_base_delay_ms=1,
        retry_max_delay_ms=10,
        retry_jitter=False,
        request_timeout=5,
    )


@pytest.fixture
def token_store():
    return TokenStore()


@pytest.fixture
def sleeper():
    return Sleeper()


@pytest.fixture
def retry_engine(sleeper):
    return RetryEngine(
        RetryConfig(max_attempts=3, base_delay_ms=1000, jitter=False),
        sleep=sleeper,
    )
