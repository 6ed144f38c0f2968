"""Link resolution engine: create links and resolve aliases cache-aside.

Architecture Overview
=====================
::
    ┌──────────────┐     ┌──────────────┐     ┌──────────────┐
    │ AliasAllocator│────►│LinkRepository│────►│ CacheAdapter │
    │ (store check) │     │ (PostgreSQL) │     │ (Redis)      │
    └──────────────┘     └──────────────┘     └──────────────┘

Link Creation Flow
------------------
::
    allocate alias ─► INSERT ─► cache "link:<alias>" (best effort) ─► return
                        │
                        └─ unique violation ─► AliasConflictError (requested alias)
                                           └─► retry allocate+insert (generated alias)

Alias Resolution Flow
---------------------
::
    GET "link:<alias>"
        ├─ hit ──────────────► decode (corrupt payload = SerializationError)
        ├─ miss ─────────────┐
        └─ cache unavailable ┤
                             ▼
                     SELECT by alias
                        ├─ none ─► AliasNotFoundError
                        └─ row ──► cache "link:<alias>" (best effort) ─► return

Key Behaviours
===============
- The cache is keyed by alias because every read is by alias.
- Creation never fails because of the cache; a missing entry heals on the next read.
- Resolution never fails only because the cache is unavailable.
- A corrupt cache entry is a hard error, not a miss, so corruption stays visible.

Classes:
    LinkService:  create_link() and resolve_alias().
"""

import logging
import time
from typing import Optional

from prometheus_client import Counter, Histogram
from pydantic import ValidationError

from shortlink.allocator import AliasAllocator
from shortlink.cache import CacheAdapter
from shortlink.enums import CacheStatus, RequestStatus
from shortlink.exceptions import (
    AliasConflictError,
    AliasNotFoundError,
    AliasSpaceExhaustedError,
    CacheMissError,
    CacheUnavailableError,
    SerializationError,
)
from shortlink.schemas import LinkRecord
from shortlink.store import LinkRepository

__all__ = ["LINK_CACHE_PREFIX", "link_cache_key", "LinkService"]

LINK_CACHE_PREFIX = "link:"
DEFAULT_CACHE_TTL_SECONDS = 3600  # 1 hour


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

LINK_CREATION_REQUESTS_TOTAL = Counter(
    "shortlink_creation_requests_total",
    "Total link creation requests",
    ["status"],
)
LINK_RESOLUTION_REQUESTS_TOTAL = Counter(
    "shortlink_resolution_requests_total",
    "Total alias resolution requests",
    ["status", "cache_hit"],
)
LINK_CREATION_DURATION = Histogram(
    "shortlink_creation_duration_seconds",
    "Time taken to create links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
LINK_RESOLUTION_DURATION = Histogram(
    "shortlink_resolution_duration_seconds",
    "Time taken to resolve aliases",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)


def link_cache_key(alias: str) -> str:
    return f"{LINK_CACHE_PREFIX}{alias}"


class LinkService:
    """Creates links and resolves aliases through the cache.

    Example:
        >>> service = LinkService(links, cache, AliasAllocator(links))
        >>> record = await service.create_link("https://example.com/page")
        >>> (await service.resolve_alias(record.alias)).url
        'https://example.com/page'
    """

    def __init__(
        self,
        links: LinkRepository,
        cache: CacheAdapter,
        allocator: AliasAllocator,
        cache_ttl: int = DEFAULT_CACHE_TTL_SECONDS,
        logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
    ):
        self._links = links
        self._cache = cache
        self._allocator = allocator
        self._cache_ttl = cache_ttl
        self._logger = logger or logging.getLogger("shortlink")

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "LinkService":
        manager = ctx.service_manager
        return cls(
            links=manager.link_repository,
            cache=manager.cache,
            allocator=manager.allocator,
            cache_ttl=manager.settings.LINK_CACHE_TTL_SECONDS,
            logger=ctx.logger,
        )

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create_link(self, url: str, requested_alias: Optional[str] = None) -> LinkRecord:
        """Store a new link under a requested or generated alias.

        Args:
            url: Target URL, already validated by the caller.
            requested_alias: Alias asked for by the user; empty or None to generate one.

        Returns:
            LinkRecord: The stored link with its store-assigned id and created_at.

        Raises:
            AliasConflictError: The requested alias is already taken.
            AliasSpaceExhaustedError: No free generated alias within the attempt bound.
            StoreUnavailableError: The store failed.
        """
        start_time = time.perf_counter()
        try:
            record = await self._insert_with_alias(url, requested_alias or None)
        except AliasConflictError:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.CONFLICT).inc()
            raise
        except AliasSpaceExhaustedError:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.EXHAUSTED).inc()
            raise
        except Exception:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            raise
        finally:
            LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)

        await self._populate_cache(record)
        LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info(f"Link created: {record.alias} -> {record.url}")
        return record

    async def resolve_alias(self, alias: str) -> LinkRecord:
        """Return the link stored under ``alias``, reading through the cache.

        Raises:
            AliasNotFoundError: No link is stored under the alias.
            SerializationError: The cached entry is corrupt.
            StoreUnavailableError: The cache missed and the store failed.
        """
        start_time = time.perf_counter()
        try:
            cached = await self._read_cache(alias)
            if cached is not None:
                LINK_RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.HIT).inc()
                return cached

            try:
                record = await self._links.get_link_by_alias(alias)
            except AliasNotFoundError:
                LINK_RESOLUTION_REQUESTS_TOTAL.labels(
                    status=RequestStatus.NOT_FOUND, cache_hit=CacheStatus.MISS
                ).inc()
                raise
            await self._populate_cache(record)
            LINK_RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.MISS).inc()
            return record
        finally:
            LINK_RESOLUTION_DURATION.observe(time.perf_counter() - start_time)

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _insert_with_alias(self, url: str, requested_alias: Optional[str]) -> LinkRecord:
        # A generated alias can still lose the insert race; a requested one cannot be retried.
        attempts = 1 if requested_alias else self._allocator.max_attempts
        for attempt in range(1, attempts + 1):
            alias = await self._allocator.allocate(requested_alias)
            try:
                return await self._links.create_link(url, alias)
            except AliasConflictError:
                if requested_alias:
                    raise
                self._logger.warning(f"Generated alias {alias} taken at insert (attempt {attempt})")
        raise AliasSpaceExhaustedError(attempts)

    async def _read_cache(self, alias: str) -> Optional[LinkRecord]:
        try:
            raw = await self._cache.get_with_retry(link_cache_key(alias))
        except CacheMissError:
            return None
        except CacheUnavailableError as exc:
            self._logger.warning(f"Cache unavailable for {alias}, falling back to store: {exc}")
            return None

        try:
            return LinkRecord.model_validate_json(raw)
        except ValidationError as exc:
            self._logger.error(f"Corrupt cache entry for {alias}: {exc}")
            raise SerializationError(f"corrupt cached link for '{alias}'") from exc

    async def _populate_cache(self, record: LinkRecord) -> None:
        try:
            await self._cache.set_with_retry(link_cache_key(record.alias), record.model_dump_json(), ttl=self._cache_ttl)
        except CacheUnavailableError as exc:
            self._logger.warning(f"Failed to cache link {record.alias}: {exc}")
