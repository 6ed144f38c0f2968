"""AnalyticsService tests: visit recording, background refresh, cached summaries."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shortlink.analytics_service import AnalyticsService, summary_cache_key
from shortlink.background import BackgroundTaskRunner
from shortlink.cache import CacheAdapter
from shortlink.exceptions import SerializationError, StoreUnavailableError
from shortlink.schemas import AnalyticsSummary, VisitEvent
from shortlink.store import AnalyticsRepository


@pytest.mark.asyncio
async def test_summary_counts_visits_by_user_agent(
    analytics_service: AnalyticsService, runner: BackgroundTaskRunner
) -> None:
    for ua in ("UA1", "UA1", "UA2"):
        await analytics_service.record_visit(VisitEvent(alias="abc123", user_agent=ua))
    await runner.drain()

    summary = await analytics_service.get_summary("abc123")

    assert summary.total_clicks == 3
    assert summary.user_agent == {"UA1": 2, "UA2": 1}
    assert sum(summary.daily.values()) == 3


@pytest.mark.asyncio
async def test_histograms_sum_to_total(analytics_service: AnalyticsService, runner: BackgroundTaskRunner) -> None:
    for i in range(7):
        await analytics_service.record_visit(VisitEvent(alias="abc123", user_agent=f"UA{i % 3}"))
    await runner.drain()

    summary = await analytics_service.get_summary("abc123")

    assert summary.total_clicks == 7
    assert sum(summary.daily.values()) == summary.total_clicks
    assert sum(summary.user_agent.values()) == summary.total_clicks


@pytest.mark.asyncio
async def test_background_refresh_writes_cache(
    analytics_service: AnalyticsService, runner: BackgroundTaskRunner, cache_store: dict[str, str]
) -> None:
    await analytics_service.record_visit(VisitEvent(alias="abc123", user_agent="UA1"))
    await runner.drain()

    cached = AnalyticsSummary.model_validate_json(cache_store[summary_cache_key("abc123")])
    assert cached.total_clicks == 1


@pytest.mark.asyncio
async def test_alias_without_visits_has_empty_summary(analytics_service: AnalyticsService) -> None:
    summary = await analytics_service.get_summary("never1")
    assert summary == AnalyticsSummary(alias="never1", total_clicks=0, daily={}, user_agent={})


@pytest.mark.asyncio
async def test_cached_summary_short_circuits(
    cache: CacheAdapter, runner: BackgroundTaskRunner, cache_store: dict[str, str]
) -> None:
    analytics = AsyncMock(spec=AnalyticsRepository)
    cached = AnalyticsSummary(alias="abc123", total_clicks=9, daily={"2024-01-01": 9}, user_agent={"UA": 9})
    cache_store[summary_cache_key("abc123")] = cached.model_dump_json()
    service = AnalyticsService(analytics, cache, runner)

    assert await service.get_summary("abc123") == cached
    analytics.summarize.assert_not_awaited()


@pytest.mark.asyncio
async def test_cache_outage_recomputes_from_store(
    analytics_service: AnalyticsService, runner: BackgroundTaskRunner, mock_redis: AsyncMock
) -> None:
    await analytics_service.record_visit(VisitEvent(alias="abc123", user_agent="UA1"))
    await runner.drain()
    mock_redis.get.side_effect = RedisConnectionError("down")

    summary = await analytics_service.get_summary("abc123")

    assert summary.total_clicks == 1


@pytest.mark.asyncio
async def test_corrupt_cached_summary_is_serialization_error(
    analytics_service: AnalyticsService, cache_store: dict[str, str]
) -> None:
    cache_store[summary_cache_key("abc123")] = '{"alias": "abc123", "total_clicks": -1}'

    with pytest.raises(SerializationError):
        await analytics_service.get_summary("abc123")


@pytest.mark.asyncio
async def test_refresh_failure_does_not_fail_record_visit(cache: CacheAdapter, runner: BackgroundTaskRunner) -> None:
    analytics = AsyncMock(spec=AnalyticsRepository)
    analytics.save_event.return_value = "event-id"
    analytics.summarize.side_effect = StoreUnavailableError("down")
    service = AnalyticsService(analytics, cache, runner)

    assert await service.record_visit(VisitEvent(alias="abc123")) == "event-id"
    await runner.drain()

    analytics.summarize.assert_awaited_once_with("abc123")
    assert runner.pending == 0


@pytest.mark.asyncio
async def test_save_failure_propagates(cache: CacheAdapter, runner: BackgroundTaskRunner) -> None:
    analytics = AsyncMock(spec=AnalyticsRepository)
    analytics.save_event.side_effect = StoreUnavailableError("down")
    service = AnalyticsService(analytics, cache, runner)

    with pytest.raises(StoreUnavailableError):
        await service.record_visit(VisitEvent(alias="abc123"))
    assert runner.pending == 0
    analytics.summarize.assert_not_awaited()


@pytest.mark.asyncio
async def test_refresh_survives_cache_write_failure(
    analytics_service: AnalyticsService, mock_redis: AsyncMock
) -> None:
    mock_redis.set.side_effect = RedisConnectionError("down")
    summary = await analytics_service.refresh_summary("abc123")
    assert summary.total_clicks == 0


@pytest.mark.asyncio
async def test_out_of_order_refreshes_leave_latest_summary(
    analytics_service: AnalyticsService,
    analytics_repository: AnalyticsRepository,
    cache_store: dict[str, str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await analytics_repository.save_event(VisitEvent(alias="abc123", user_agent="UA1"))
    summarize = analytics_repository.summarize
    stale_read = asyncio.Event()
    fresh_written = asyncio.Event()
    calls = 0

    async def slow_first_summarize(alias: str) -> AnalyticsSummary:
        nonlocal calls
        calls += 1
        summary = await summarize(alias)
        if calls == 1:
            stale_read.set()
            await fresh_written.wait()
        return summary

    monkeypatch.setattr(analytics_repository, "summarize", slow_first_summarize)

    stale = asyncio.create_task(analytics_service.refresh_summary("abc123"))
    await stale_read.wait()
    await analytics_repository.save_event(VisitEvent(alias="abc123", user_agent="UA2"))
    await analytics_service.refresh_summary("abc123")
    fresh_written.set()
    await stale

    cached = AnalyticsSummary.model_validate_json(cache_store[summary_cache_key("abc123")])
    assert cached.total_clicks == 2
    assert cached.user_agent == {"UA1": 1, "UA2": 1}
    assert (await analytics_service.get_summary("abc123")).total_clicks == 2


@pytest.mark.asyncio
async def test_refresh_rewrites_are_bounded(cache: CacheAdapter, runner: BackgroundTaskRunner) -> None:
    analytics = AsyncMock(spec=AnalyticsRepository)
    analytics.summarize.return_value = AnalyticsSummary(alias="abc123", total_clicks=1)
    analytics.count_clicks.return_value = 2
    service = AnalyticsService(analytics, cache, runner, refresh_passes=3)

    summary = await service.refresh_summary("abc123")

    assert summary.total_clicks == 1
    assert analytics.summarize.await_count == 3
