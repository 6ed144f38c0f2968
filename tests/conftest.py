"""Shared pytest fixtures: SQLite-backed store, dict-backed Redis mock, services, API client."""

from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
import redis.asyncio as redis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import shortlink.models  # noqa: F401  (registers tables on Base.metadata)
from shortlink.allocator import AliasAllocator
from shortlink.analytics_service import AnalyticsService
from shortlink.background import BackgroundTaskRunner
from shortlink.cache import CacheAdapter, RetryStrategy
from shortlink.config import Settings
from shortlink.database import Base, create_session_factory
from shortlink.dependencies import ServiceManager, get_service_manager
from shortlink.link_service import LinkService
from shortlink.main import app
from shortlink.store import AnalyticsRepository, LinkRepository


@pytest.fixture
def settings() -> Settings:
    return Settings(
        CACHE_RETRY_ATTEMPTS=2,
        CACHE_RETRY_DELAY_SECONDS=0,
        CACHE_OP_TIMEOUT_SECONDS=1.0,
        ALIAS_MAX_ATTEMPTS=5,
        LOG_LEVEL="DEBUG",
    )


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    # File-backed so concurrent sessions get their own connections.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shortlink.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def cache_store() -> dict[str, str]:
    """Backing dict for the Redis mock; tests inspect and evict entries through it."""
    return {}


@pytest.fixture
def mock_redis(cache_store: dict[str, str]) -> AsyncMock:
    def _set(key, value, ex=None, **kwargs):
        cache_store[key] = value
        return True

    client = AsyncMock(spec=redis.Redis)
    client.get = AsyncMock(side_effect=lambda key: cache_store.get(key))
    client.set = AsyncMock(side_effect=_set)
    client.ping = AsyncMock(return_value=True)
    return client


@pytest.fixture
def strategy() -> RetryStrategy:
    return RetryStrategy(attempts=2, delay=0, max_delay=0, timeout=1.0)


@pytest.fixture
def cache(mock_redis: AsyncMock, strategy: RetryStrategy) -> CacheAdapter:
    return CacheAdapter(mock_redis, strategy)


@pytest.fixture
def link_repository(session_factory) -> LinkRepository:
    return LinkRepository(session_factory, timeout=5.0)


@pytest.fixture
def analytics_repository(session_factory) -> AnalyticsRepository:
    return AnalyticsRepository(session_factory, timeout=5.0)


@pytest_asyncio.fixture
async def runner() -> AsyncGenerator[BackgroundTaskRunner, None]:
    runner = BackgroundTaskRunner()
    yield runner
    await runner.drain(timeout=5.0)


@pytest.fixture
def link_service(link_repository: LinkRepository, cache: CacheAdapter) -> LinkService:
    return LinkService(link_repository, cache, AliasAllocator(link_repository, max_attempts=5))


@pytest.fixture
def analytics_service(
    analytics_repository: AnalyticsRepository, cache: CacheAdapter, runner: BackgroundTaskRunner
) -> AnalyticsService:
    return AnalyticsService(analytics_repository, cache, runner)


@pytest_asyncio.fixture
async def manager(settings: Settings, session_factory, mock_redis: AsyncMock) -> AsyncGenerator[ServiceManager, None]:
    manager = ServiceManager()
    await manager.initialize(settings=settings, session_factory=session_factory, redis_client=mock_redis)
    yield manager
    await manager.cleanup()


@pytest_asyncio.fixture
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_service_manager() -> ServiceManager:
        return manager

    app.dependency_overrides[get_service_manager] = override_get_service_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
