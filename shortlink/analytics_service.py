"""Analytics aggregation engine: record visits, serve cached summaries.

Visits are appended to the store synchronously; the summary for the alias is
then recomputed in the background and written to ``"analytics:<alias>"``.
Readers get the cached summary when there is one and recompute on a miss.

Flow Diagram — record_visit()
=============================
::
    ┌─────────────┐
    │ save_event  │  (store, authoritative)
    └──────┬──────┘
           ▼
    ┌─────────────┐        ┌────────────────────────────┐
    │ submit       ├──────►│ refresh_summary(alias)      │
    │ background   │       │  summarize() in the store   │
    └──────┬──────┘        │  SET "analytics:<alias>"     │
           │               │  count_clicks() changed?     │
           │               │    yes: summarize again      │
           ▼               │  (own deadline, logged only) │
      return event id      └────────────────────────────┘

Flow Diagram — get_summary()
============================
::
    GET "analytics:<alias>"
        ├─ hit (valid payload) ─► return
        ├─ hit (corrupt)       ─► SerializationError
        └─ miss / unavailable  ─► refresh_summary(alias) ─► return

Key Behaviours
===============
- Summary staleness is bounded by one pending background refresh.
- A summary read racing a refresh may see the summary from before the latest visit.
- Refreshes finishing out of order still converge: whichever writes last
  confirms the click count afterwards and rewrites if a visit slipped in.
- Only an actual hit short-circuits; a cache error always falls through to the store.
- An alias with no visits has total_clicks == 0 and empty histograms.

Classes:
    AnalyticsService:  record_visit(), get_summary(), refresh_summary().
"""

import logging
import uuid
from typing import Optional

from prometheus_client import Counter
from pydantic import ValidationError

from shortlink.background import BackgroundTaskRunner
from shortlink.cache import CacheAdapter
from shortlink.enums import CacheStatus, RequestStatus
from shortlink.exceptions import (
    CacheMissError,
    CacheUnavailableError,
    SerializationError,
    StoreUnavailableError,
)
from shortlink.schemas import AnalyticsSummary, VisitEvent
from shortlink.store import AnalyticsRepository

__all__ = ["SUMMARY_CACHE_PREFIX", "summary_cache_key", "AnalyticsService"]

SUMMARY_CACHE_PREFIX = "analytics:"
DEFAULT_SUMMARY_TTL_SECONDS = 3600
DEFAULT_REFRESH_TIMEOUT_SECONDS = 5.0
DEFAULT_REFRESH_PASSES = 3

VISITS_RECORDED_TOTAL = Counter(
    "shortlink_visits_recorded_total",
    "Visit events persisted to the store",
)
SUMMARY_REQUESTS_TOTAL = Counter(
    "shortlink_summary_requests_total",
    "Analytics summary reads",
    ["cache_hit"],
)
SUMMARY_REFRESHES_TOTAL = Counter(
    "shortlink_summary_refreshes_total",
    "Analytics summary recomputations",
    ["status"],
)


def summary_cache_key(alias: str) -> str:
    return f"{SUMMARY_CACHE_PREFIX}{alias}"


class AnalyticsService:
    def __init__(
        self,
        analytics: AnalyticsRepository,
        cache: CacheAdapter,
        runner: BackgroundTaskRunner,
        cache_ttl: int = DEFAULT_SUMMARY_TTL_SECONDS,
        refresh_timeout: float = DEFAULT_REFRESH_TIMEOUT_SECONDS,
        refresh_passes: int = DEFAULT_REFRESH_PASSES,
        logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
    ):
        self._analytics = analytics
        self._cache = cache
        self._runner = runner
        self._cache_ttl = cache_ttl
        self._refresh_timeout = refresh_timeout
        self._refresh_passes = refresh_passes
        self._logger = logger or logging.getLogger("shortlink")

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "AnalyticsService":
        manager = ctx.service_manager
        return cls(
            analytics=manager.analytics_repository,
            cache=manager.cache,
            runner=manager.runner,
            cache_ttl=manager.settings.SUMMARY_CACHE_TTL_SECONDS,
            refresh_timeout=manager.settings.SUMMARY_REFRESH_TIMEOUT_SECONDS,
            logger=ctx.logger,
        )

    async def record_visit(self, event: VisitEvent) -> uuid.UUID:
        """Persist a visit and schedule a summary refresh for its alias.

        The refresh is fire-and-forget: its failure is logged and never fails
        this call.

        Returns:
            uuid.UUID: The store-assigned event id.

        Raises:
            StoreUnavailableError: The event could not be persisted.
        """
        event_id = await self._analytics.save_event(event)
        VISITS_RECORDED_TOTAL.inc()
        self._logger.debug(f"Visit {event_id} recorded for {event.alias}")

        alias = event.alias
        self._runner.submit("refresh_summary", lambda: self.refresh_summary(alias), timeout=self._refresh_timeout)
        return event_id

    async def get_summary(self, alias: str) -> AnalyticsSummary:
        """Return the cached summary for ``alias``, recomputing it on a miss.

        Raises:
            SerializationError: The cached summary is corrupt.
            StoreUnavailableError: The summary had to be recomputed and the store failed.
        """
        try:
            raw = await self._cache.get_with_retry(summary_cache_key(alias))
        except CacheMissError:
            raw = None
        except CacheUnavailableError as exc:
            self._logger.warning(f"Cache unavailable for summary {alias}, recomputing: {exc}")
            raw = None

        if raw is not None:
            try:
                summary = AnalyticsSummary.model_validate_json(raw)
            except ValidationError as exc:
                self._logger.error(f"Corrupt cached summary for {alias}: {exc}")
                raise SerializationError(f"corrupt cached summary for '{alias}'") from exc
            SUMMARY_REQUESTS_TOTAL.labels(cache_hit=CacheStatus.HIT).inc()
            return summary

        SUMMARY_REQUESTS_TOTAL.labels(cache_hit=CacheStatus.MISS).inc()
        return await self.refresh_summary(alias)

    async def refresh_summary(self, alias: str) -> AnalyticsSummary:
        """Recompute the summary from the store and cache it (best effort).

        After each write the click count is read back. If a visit landed while
        this refresh was running, the summary is recomputed and written again,
        up to ``refresh_passes`` times, so the refresh that writes last leaves
        the current count behind.
        """
        for attempt in range(1, self._refresh_passes + 1):
            try:
                summary = await self._analytics.summarize(alias)
            except Exception:
                SUMMARY_REFRESHES_TOTAL.labels(status=RequestStatus.ERROR).inc()
                raise

            try:
                await self._cache.set_with_retry(
                    summary_cache_key(alias), summary.model_dump_json(), ttl=self._cache_ttl
                )
            except CacheUnavailableError as exc:
                self._logger.warning(f"Failed to cache summary for {alias}: {exc}")
                break

            try:
                latest = await self._analytics.count_clicks(alias)
            except StoreUnavailableError as exc:
                self._logger.warning(f"Could not confirm cached summary for {alias}: {exc}")
                break
            if latest == summary.total_clicks:
                break
            self._logger.debug(
                f"Summary for {alias} moved during refresh ({summary.total_clicks} -> {latest}), pass {attempt}"
            )

        SUMMARY_REFRESHES_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.debug(f"Summary refreshed for {alias}: {summary.total_clicks} clicks")
        return summary
