"""Dependency injection with a shared service manager.

This module wires the shared, concurrency-safe resources (session factory,
Redis client, repositories, allocator, background runner) once at startup and
hands lightweight per-request services to the FastAPI routes.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.allocator import AliasAllocator
from shortlink.analytics_service import AnalyticsService
from shortlink.background import BackgroundTaskRunner
from shortlink.cache import CacheAdapter, RetryStrategy
from shortlink.config import Settings, get_settings
from shortlink.database import async_session
from shortlink.link_service import LinkService
from shortlink.redis import get_redis
from shortlink.store import AnalyticsRepository, LinkRepository
from shortlink.visitor import client_ip_from_request

__all__ = [
    "ServiceManager",
    "RequestContext",
    "get_service_manager",
    "get_request_context",
    "get_link_service",
    "get_analytics_service",
]


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Owner of the shared resources used by every request.

    None of these hold per-request state: repositories open a session per call
    and the Redis client is safe for concurrent use, so no locking is needed.
    """

    def __init__(self) -> None:
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(
        self,
        settings: Optional[Settings] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        redis_client: Optional[redis.Redis] = None,
    ) -> None:
        """Initialize shared resources once at startup."""
        if self._initialized:
            return
        self.settings = settings or get_settings()
        self.logger = self._setup_logger()
        self.session_factory = session_factory or async_session
        self.redis_client = redis_client or await get_redis()

        self.cache = CacheAdapter(self.redis_client, RetryStrategy.from_settings(self.settings), self.logger)
        self.link_repository = LinkRepository(self.session_factory, timeout=self.settings.STORE_TIMEOUT_SECONDS)
        self.analytics_repository = AnalyticsRepository(
            self.session_factory,
            timeout=self.settings.STORE_TIMEOUT_SECONDS,
            isolation_level=self.settings.SUMMARY_ISOLATION_LEVEL,
        )
        self.allocator = AliasAllocator(
            self.link_repository,
            length=self.settings.ALIAS_LENGTH,
            max_attempts=self.settings.ALIAS_MAX_ATTEMPTS,
            logger=self.logger,
        )
        self.runner = BackgroundTaskRunner(self.logger)
        self._initialized = True

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("shortlink")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    async def cleanup(self) -> None:
        """Wait for background work, then release shared resources."""
        if not self._initialized:
            return
        try:
            await self.runner.drain(timeout=self.settings.SHUTDOWN_DRAIN_TIMEOUT_SECONDS)
        except TimeoutError:
            self.logger.warning(f"Shutdown with {self.runner.pending} background tasks still running")
        self._initialized = False


# Global instance
_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking data plus access to the shared resources.

    Attributes:
        service_manager: Shared resources
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger with request context attached."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager.initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        trace_id=request.headers.get("x-trace-id"),
        user_agent=request.headers.get("user-agent"),
        client_ip=client_ip_from_request(request),
    )


def get_link_service(ctx: RequestContext = Depends(get_request_context)) -> LinkService:
    return LinkService.from_context(ctx)


def get_analytics_service(ctx: RequestContext = Depends(get_request_context)) -> AnalyticsService:
    return AnalyticsService.from_context(ctx)
