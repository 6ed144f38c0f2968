"""Redis client management for the shortlink service.

This module owns the single shared Redis client. The cache adapter wraps it
with the retry strategy; nothing else talks to Redis directly.

Flow Diagram — Redis Operations
=============================
::
    ┌─────────────┐
    │ ServiceMgr  │
    │ initialize  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ get_redis()  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check global │
    │ client var   │
    └──────┬──────┘
    EXISTS?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Redis   │  │ existing│
│ client  │  │ client  │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Wrap in the cache adapter**::
    cache = CacheAdapter(await get_redis(), RetryStrategy.from_settings(settings))

**Step 2 — Cleanup on shutdown**::
    await close_redis()

Key Behaviours
===============
- Redis client is created lazily on first access.
- Global client is reused across all requests and background tasks.
- Socket timeouts follow CACHE_OP_TIMEOUT_SECONDS so a dead server fails fast.
- UTF-8 encoding with decode_responses for string operations.

Functions:
    get_redis():  Shared Redis client.
    close_redis():  Cleanup function for shutdown.
"""

import redis.asyncio as redis

from shortlink.config import get_settings

__all__ = ["close_redis", "get_redis"]

settings = get_settings()

redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.CACHE_OP_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.CACHE_OP_TIMEOUT_SECONDS,
        )
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
