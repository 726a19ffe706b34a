"""
RefreshCoordinator - Single-flight access token renewal.

When many coroutines find the access token expired at once, only one refresh
exchange is made. Everyone else parks on a future and is resumed, in arrival
order, with the token that exchange produced.

States:
- IDLE: no exchange running
- REFRESHING: an exchange is in flight, new callers queue

The REFRESHING flag is set before the first await of the exchange. Because
all callers run on one event loop, any caller that gets scheduled after that
point sees the flag, so no lock is needed.

The exchange runs in its own task. A leader that is cancelled only stops
waiting for it; the exchange still completes and settles the queue.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger

from smartflow_client.services.errors import RefreshFailedError
from smartflow_client.services.token_store import TokenStore


class RefreshState(str, Enum):
    """Refresh coordinator states."""

    IDLE = "IDLE"
    REFRESHING = "REFRESHING"


@dataclass
class RefreshResult:
    """Tokens returned by a successful exchange."""

    token: str
    refresh_token: str | None = None


RefreshExchange = Callable[[str], Awaitable[RefreshResult]]
SessionExpiredListener = Callable[[RefreshFailedError], Any]


class RefreshCoordinator:
    """
    Coordinates token renewal for one client instance.

    Usage:
        coordinator = RefreshCoordinator(
            token_store,
            exchange=pipeline.exchange_refresh_token,
            timeout=30.0,
        )

        token = await coordinator.refresh(reason="reactive")
    """

    def __init__(
        self,
        token_store: TokenStore,
        exchange: RefreshExchange,
        timeout: float = 30.0,
        debug: bool = False,
    ):
        self._token_store = token_store
        self._exchange = exchange
        self._timeout = timeout
        self._debug = debug

        self._state = RefreshState.IDLE
        self._waiters: deque[asyncio.Future[str]] = deque()
        self._in_flight: asyncio.Task[str] | None = None
        self._listeners: list[SessionExpiredListener] = []
        self._stats = RefreshStats()

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def is_refreshing(self) -> bool:
        return self._state == RefreshState.REFRESHING

    @property
    def pending_waiters(self) -> int:
        return len(self._waiters)

    def add_session_expired_listener(self, listener: SessionExpiredListener) -> None:
        """Register a callback fired when renewal fails and re-login is required."""
        self._listeners.append(listener)

    async def refresh(self, reason: str = "reactive") -> str:
        """
        Return a fresh access token, sharing any exchange already in flight.

        Raises:
            RefreshFailedError: the exchange failed; tokens have been cleared
        """
        if self._state == RefreshState.REFRESHING:
            waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            self._stats.coalesced += 1
            self._log(f"Queued {reason} caller behind in-flight refresh ({len(self._waiters)} waiting)")
            return await waiter

        # Must happen before the first await below
        self._state = RefreshState.REFRESHING
        self._stats.exchanges += 1
        logger.info(f"[Refresh] Starting {reason} token refresh")
        self._in_flight = asyncio.ensure_future(self._exchange_and_settle())
        return await asyncio.shield(self._in_flight)

    async def _exchange_and_settle(self) -> str:
        try:
            result = await self._run_exchange()
        except asyncio.CancelledError:
            self._fail(RefreshFailedError("Token refresh was cancelled"))
            raise
        except RefreshFailedError as e:
            self._fail(e)
            raise
        except Exception as e:
            error = RefreshFailedError(f"Token refresh failed: {e}")
            self._fail(error)
            raise error from e

        self._succeed(result)
        return result.token

    async def _run_exchange(self) -> RefreshResult:
        refresh_token = self._token_store.get_refresh_token()
        if not refresh_token:
            raise RefreshFailedError("No refresh token available")

        try:
            return await asyncio.wait_for(self._exchange(refresh_token), self._timeout)
        except asyncio.TimeoutError as e:
            raise RefreshFailedError(
                f"Token refresh timed out after {self._timeout}s"
            ) from e

    def _succeed(self, result: RefreshResult) -> None:
        # Persist before waking waiters
        refresh_token = result.refresh_token or self._token_store.get_refresh_token()
        self._token_store.set_tokens(result.token, refresh_token)

        waiters = self._drain()
        self._state = RefreshState.IDLE
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(result.token)
        logger.info(f"[Refresh] Token refreshed, resumed {len(waiters)} waiting callers")

    def _fail(self, error: RefreshFailedError) -> None:
        self._stats.failures += 1
        self._token_store.clear_tokens()

        waiters = self._drain()
        self._state = RefreshState.IDLE
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(error)
        logger.warning(
            f"[Refresh] Token refresh failed, {len(waiters)} waiting callers rejected: {error}"
        )

        for listener in self._listeners:
            try:
                listener(error)
            except Exception as e:
                logger.error(f"[Refresh] Session-expired listener raised: {e}")

    def _drain(self) -> list[asyncio.Future[str]]:
        self._in_flight = None
        waiters = list(self._waiters)
        self._waiters.clear()
        return waiters

    def get_stats(self) -> "RefreshStats":
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Refresh] {message}")


class RefreshStats:
    """Statistics for token renewal."""

    def __init__(self):
        self.exchanges: int = 0  # Exchanges actually sent
        self.coalesced: int = 0  # Callers that joined an in-flight exchange
        self.failures: int = 0  # Exchanges that ended the session

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "exchanges": self.exchanges,
            "coalesced": self.coalesced,
            "failures": self.failures,
        }
