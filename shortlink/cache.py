"""Cache adapter with an explicit per-call retry strategy.

Every Redis access made by the core goes through ``CacheAdapter`` so that the
same retry policy and the same error mapping apply everywhere.

Flow Diagram — get_with_retry()
===============================
::
    ┌─────────────┐
    │ GET key      │
    │ (attempt n)  │
    └──────┬──────┘
           ▼
    ┌─────────────┐   transport error / timeout    ┌─────────────┐
    │ Redis reply? ├──────────────────────────────►│ backoff and │
    └──────┬──────┘                                │ retry       │
           │                                       └──────┬──────┘
           │                              attempts left?  │ no
           │                                              ▼
           │                                   CacheUnavailableError
    ┌──────┴──────┐
    │ None        │ value
    ▼             ▼
 CacheMissError  return value

How to Use
===========
**Step 1 — Build once at startup**::
    cache = CacheAdapter(client, RetryStrategy.from_settings(settings))

**Step 2 — Distinguish a miss from an outage**::
    try:
        raw = await cache.get_with_retry("link:abc123")
    except CacheMissError:
        ...  # key absent, go to the store
    except CacheUnavailableError:
        ...  # Redis unreachable after retries, go to the store

Key Behaviours
===============
- A miss is never retried; only transport errors and timeouts are.
- Each attempt is bounded by RetryStrategy.timeout.
- Retries use exponential backoff capped at RetryStrategy.max_delay.
- Caller cancellation propagates untouched.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

import redis.asyncio as redis
from prometheus_client import Counter
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shortlink.config import Settings
from shortlink.exceptions import CacheMissError, CacheUnavailableError

__all__ = ["RetryStrategy", "CacheAdapter", "RETRIABLE_CACHE_EXCEPTIONS"]

logger = logging.getLogger("shortlink")

RETRIABLE_CACHE_EXCEPTIONS = (
    RedisConnectionError,
    RedisTimeoutError,
    TimeoutError,
)

CACHE_OPERATIONS_TOTAL = Counter(
    "shortlink_cache_operations_total",
    "Cache operations issued through the cache adapter",
    ["operation", "status"],
)


@dataclass(frozen=True)
class RetryStrategy:
    """Bounded retry policy applied to every cache call."""

    attempts: int = 3
    delay: float = 0.05
    max_delay: float = 1.0
    timeout: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryStrategy":
        return cls(
            attempts=settings.CACHE_RETRY_ATTEMPTS,
            delay=settings.CACHE_RETRY_DELAY_SECONDS,
            max_delay=settings.CACHE_RETRY_MAX_DELAY_SECONDS,
            timeout=settings.CACHE_OP_TIMEOUT_SECONDS,
        )

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.delay, max=self.max_delay),
            retry=retry_if_exception_type(RETRIABLE_CACHE_EXCEPTIONS),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )


class CacheAdapter:
    """Key-value access to Redis with retries and a distinguishable miss."""

    def __init__(
        self,
        client: redis.Redis,
        strategy: Optional[RetryStrategy] = None,
        logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
    ):
        self._client = client
        self._strategy = strategy or RetryStrategy()
        self._logger = logger or logging.getLogger("shortlink")

    @property
    def strategy(self) -> RetryStrategy:
        return self._strategy

    async def get_with_retry(self, key: str) -> str:
        """Return the value stored under ``key``.

        Raises:
            CacheMissError: The key is absent.
            CacheUnavailableError: Redis could not be reached within the strategy.
        """
        value = await self._call("get", key, lambda: self._client.get(key))
        if value is None:
            CACHE_OPERATIONS_TOTAL.labels(operation="get", status="miss").inc()
            raise CacheMissError(key)
        CACHE_OPERATIONS_TOTAL.labels(operation="get", status="hit").inc()
        return value

    async def set_with_retry(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self._call("set", key, lambda: self._client.set(key, value, ex=ttl))
        CACHE_OPERATIONS_TOTAL.labels(operation="set", status="success").inc()

    async def ping(self) -> bool:
        return bool(await self._call("ping", "-", self._client.ping))

    async def _call(self, operation: str, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        try:
            async for attempt in self._strategy.retrying():
                with attempt:
                    async with asyncio.timeout(self._strategy.timeout):
                        result = await factory()
        except (RedisError, TimeoutError) as exc:
            CACHE_OPERATIONS_TOTAL.labels(operation=operation, status="error").inc()
            self._logger.debug(f"Cache {operation} failed for {key}: {exc!r}")
            raise CacheUnavailableError(f"cache {operation} failed for '{key}'") from exc
        return result
