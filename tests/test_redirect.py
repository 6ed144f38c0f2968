"""Redirect endpoint behavior tests."""

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from shortlink.dependencies import ServiceManager, get_link_service
from shortlink.exceptions import StoreUnavailableError
from shortlink.link_service import LinkService
from shortlink.main import app


@pytest.mark.asyncio
async def test_redirect_valid_alias(client: AsyncClient) -> None:
    create_resp = await client.post("/api/shorten", json={"url": "https://www.google.com"})
    alias = create_resp.json()["alias"]

    # httpx won't follow by default
    response = await client.get(f"/api/s/{alias}", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "https://www.google.com"


@pytest.mark.asyncio
async def test_redirect_unknown_alias(client: AsyncClient) -> None:
    response = await client.get("/api/s/nonexistent", follow_redirects=False)
    assert response.status_code == 404
    assert response.json()["detail"] == "alias not found"


@pytest.mark.asyncio
async def test_redirect_with_custom_alias(client: AsyncClient) -> None:
    await client.post("/api/shorten", json={"url": "https://www.github.com", "alias": "ghub"})
    response = await client.get("/api/s/ghub", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "https://www.github.com"


@pytest.mark.asyncio
async def test_redirect_records_visit_in_background(client: AsyncClient, manager: ServiceManager) -> None:
    await client.post("/api/shorten", json={"url": "https://www.python.org", "alias": "pyorg"})

    await client.get("/api/s/pyorg", follow_redirects=False, headers={"User-Agent": "UA1"})
    await manager.runner.drain()

    assert await manager.analytics_repository.count_clicks("pyorg") == 1


@pytest.mark.asyncio
async def test_store_failure_is_generic_500(client: AsyncClient) -> None:
    service = AsyncMock(spec=LinkService)
    service.resolve_alias.side_effect = StoreUnavailableError("connection refused to db-primary:5432")
    app.dependency_overrides[get_link_service] = lambda: service

    response = await client.get("/api/s/abc123", follow_redirects=False)

    assert response.status_code == 500
    assert response.json() == {"detail": "internal server error"}
