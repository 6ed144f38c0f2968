"""FastAPI route definitions for the shortlink REST API.

This module maps HTTP requests onto the core services and translates core
errors into status codes. No consistency logic lives here.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /api/shorten
        ├─ LinkCreate (request body)
        └─ LinkResponse (201) or 409/422

    GET  /api/s/{alias}
        └─ 302 Redirect or 404 (visit recorded in the background)

    GET  /api/analytics/{alias}
        └─ AnalyticsSummary (200)

Key Behaviours
===============
- Alias conflicts map to 409 and unknown aliases to 404.
- Every other core failure collapses to a generic 500 without internal detail.
- The redirect response never waits for analytics: the visit is handed to the
  background runner with its own deadline.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from shortlink.analytics_service import AnalyticsService
from shortlink.dependencies import (
    RequestContext,
    ServiceManager,
    get_analytics_service,
    get_link_service,
    get_request_context,
    get_service_manager,
)
from shortlink.enums import HealthStatus
from shortlink.exceptions import (
    AliasConflictError,
    AliasNotFoundError,
    CacheUnavailableError,
    StoreUnavailableError,
)
from shortlink.link_service import LinkService
from shortlink.schemas import AnalyticsSummary, HealthResponse, LinkCreate, LinkResponse
from shortlink.visitor import build_visit_event

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await manager.link_repository.ping()
    except StoreUnavailableError as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await manager.cache.ping()
    except CacheUnavailableError as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post("/api/shorten", response_model=LinkResponse, status_code=201, tags=["links"])
async def shorten_link(
    payload: LinkCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkResponse:
    ctx.add_tag("link_creation")
    ctx.logger.info(
        f"Link creation requested: {payload.url}",
        extra={"operation": "create_link", "target_url": payload.url, "alias": payload.alias},
    )

    try:
        record = await service.create_link(payload.url, payload.alias)
    except AliasConflictError as exc:
        ctx.logger.warning(f"Link creation failed: {exc}", extra={"operation": "create_link"})
        raise HTTPException(status_code=409, detail="alias already exists") from exc

    ctx.logger.info(
        f"Link created: {record.alias}",
        extra={"operation": "create_link", "alias": record.alias, "duration_ms": ctx.get_duration()},
    )
    return LinkResponse.from_record(record, ctx.settings.BASE_URL)


@router.get("/api/s/{alias}", tags=["redirect"])
async def redirect_link(
    alias: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> RedirectResponse:
    ctx.add_tag("redirect")

    try:
        link = await service.resolve_alias(alias)
    except AliasNotFoundError as exc:
        ctx.logger.warning(f"Redirect failed - alias not found: {alias}", extra={"operation": "redirect"})
        raise HTTPException(status_code=404, detail="alias not found") from exc

    event = build_visit_event(link.alias, ctx.user_agent, ctx.client_ip)
    ctx.service_manager.runner.submit(
        "record_visit",
        lambda: analytics.record_visit(event),
        timeout=ctx.settings.VISIT_RECORD_TIMEOUT_SECONDS,
    )

    ctx.logger.info(
        f"Redirect: {alias} -> {link.url}",
        extra={"operation": "redirect", "alias": alias, "duration_ms": ctx.get_duration()},
    )
    return RedirectResponse(url=link.url, status_code=302)


@router.get("/api/analytics/{alias}", response_model=AnalyticsSummary, tags=["analytics"])
async def get_analytics(
    alias: str,
    ctx: RequestContext = Depends(get_request_context),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsSummary:
    ctx.add_tag("analytics")
    summary = await analytics.get_summary(alias)
    ctx.logger.info(f"Analytics served for {alias}: {summary.total_clicks} clicks")
    return summary
