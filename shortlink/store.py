"""Durable store adapter: links and the raw analytics event log.

The repositories here are the only code that talks SQL. Each call opens its own
session from the shared factory and runs under a deadline, so a call made from
a background task never depends on the request that spawned it.

Flow Diagram — Repository call
==============================
::
    ┌─────────────┐
    │ repo method  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ asyncio.     │
    │ timeout()    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ new session  │
    │ run query    │
    └──────┬──────┘
    OK?   │
    ┌─────┴──────────────┐
    │ YES                │ NO (SQLAlchemyError / timeout)
    ▼                    ▼
 return value     StoreUnavailableError

How to Use
===========
**Step 1 — Build the repositories**::
    links = LinkRepository(async_session, timeout=settings.STORE_TIMEOUT_SECONDS)
    analytics = AnalyticsRepository(async_session, timeout=settings.STORE_TIMEOUT_SECONDS)

**Step 2 — Persist and read links**::
    record = await links.create_link("https://example.com", "abc123")
    same = await links.get_link_by_alias("abc123")

**Step 3 — Aggregate visits**::
    summary = await analytics.summarize("abc123")

Key Behaviours
===============
- Unique-constraint violations on links.alias become AliasConflictError.
- A missing alias is AliasNotFoundError; every other failure is StoreUnavailableError.
- clicks_by_day groups on the database's own date() of created_at, newest first.
- clicks_by_user_agent is ordered by count, highest first.
- summarize() runs the three aggregates in one session, optionally under a
  configured isolation level so they share one snapshot.

Classes:
    LinkRepository:  links table access.
    AnalyticsRepository:  analytics table access and aggregates.
"""

import asyncio
import datetime
import uuid
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

from prometheus_client import Counter
from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.exceptions import AliasConflictError, AliasNotFoundError, StoreUnavailableError
from shortlink.models import AnalyticsEvent, Link
from shortlink.schemas import AnalyticsSummary, LinkRecord, VisitEvent

__all__ = ["LinkRepository", "AnalyticsRepository"]

T = TypeVar("T")

DATABASE_OPERATIONS_TOTAL = Counter(
    "shortlink_database_operations_total",
    "Durable store operations",
    ["operation", "status"],
)


class _Repository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], timeout: float = 5.0):
        self._session_factory = session_factory
        self._timeout = timeout

    async def _run(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        isolation_level: Optional[str] = None,
    ) -> T:
        try:
            async with asyncio.timeout(self._timeout):
                async with self._session_factory() as session:
                    if isolation_level:
                        await session.connection(execution_options={"isolation_level": isolation_level})
                    result = await work(session)
        except TimeoutError as exc:
            DATABASE_OPERATIONS_TOTAL.labels(operation=operation, status="timeout").inc()
            raise StoreUnavailableError(f"{operation} timed out after {self._timeout}s") from exc
        except SQLAlchemyError as exc:
            DATABASE_OPERATIONS_TOTAL.labels(operation=operation, status="error").inc()
            raise StoreUnavailableError(f"{operation} failed: {exc.__class__.__name__}") from exc
        DATABASE_OPERATIONS_TOTAL.labels(operation=operation, status="success").inc()
        return result

    async def ping(self) -> None:
        async def _ping(session: AsyncSession) -> None:
            await session.execute(text("SELECT 1"))

        await self._run("ping", _ping)


class LinkRepository(_Repository):
    async def create_link(self, url: str, alias: str) -> LinkRecord:
        """Insert a link; the store assigns id and created_at."""

        async def _create(session: AsyncSession) -> LinkRecord:
            link = Link(url=url, alias=alias)
            session.add(link)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise AliasConflictError(alias) from exc
            await session.refresh(link)
            return LinkRecord.model_validate(link)

        return await self._run("create_link", _create)

    async def get_link_by_alias(self, alias: str) -> LinkRecord:
        async def _get(session: AsyncSession) -> LinkRecord:
            result = await session.execute(select(Link).where(Link.alias == alias))
            link = result.scalar_one_or_none()
            if link is None:
                raise AliasNotFoundError(alias)
            return LinkRecord.model_validate(link)

        return await self._run("get_link_by_alias", _get)


class AnalyticsRepository(_Repository):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
        isolation_level: Optional[str] = None,
    ):
        super().__init__(session_factory, timeout)
        self._isolation_level = isolation_level

    async def save_event(self, event: VisitEvent) -> uuid.UUID:
        async def _save(session: AsyncSession) -> uuid.UUID:
            row = AnalyticsEvent(**event.model_dump(exclude={"id", "created_at"}))
            session.add(row)
            await session.commit()
            return row.id

        return await self._run("save_event", _save)

    async def count_clicks(self, alias: str) -> int:
        return await self._run("count_clicks", lambda session: _count_clicks(session, alias))

    async def clicks_by_day(self, alias: str) -> dict[str, int]:
        return await self._run("clicks_by_day", lambda session: _clicks_by_day(session, alias))

    async def clicks_by_user_agent(self, alias: str) -> dict[str, int]:
        return await self._run("clicks_by_user_agent", lambda session: _clicks_by_user_agent(session, alias))

    async def summarize(self, alias: str) -> AnalyticsSummary:
        async def _summarize(session: AsyncSession) -> AnalyticsSummary:
            return AnalyticsSummary(
                alias=alias,
                total_clicks=await _count_clicks(session, alias),
                daily=await _clicks_by_day(session, alias),
                user_agent=await _clicks_by_user_agent(session, alias),
            )

        return await self._run("summarize", _summarize, isolation_level=self._isolation_level)


async def _count_clicks(session: AsyncSession, alias: str) -> int:
    stmt = select(func.count()).select_from(AnalyticsEvent).where(AnalyticsEvent.alias == alias)
    return int((await session.execute(stmt)).scalar_one())


async def _clicks_by_day(session: AsyncSession, alias: str) -> dict[str, int]:
    day = func.date(AnalyticsEvent.created_at).label("day")
    stmt = (
        select(day, func.count().label("clicks"))
        .where(AnalyticsEvent.alias == alias)
        .group_by(day)
        .order_by(day.desc())
    )
    rows = await session.execute(stmt)
    return {_day_key(row.day): int(row.clicks) for row in rows}


async def _clicks_by_user_agent(session: AsyncSession, alias: str) -> dict[str, int]:
    clicks = func.count().label("clicks")
    stmt = (
        select(AnalyticsEvent.user_agent, clicks)
        .where(AnalyticsEvent.alias == alias)
        .group_by(AnalyticsEvent.user_agent)
        .order_by(clicks.desc(), AnalyticsEvent.user_agent)
    )
    rows = await session.execute(stmt)
    return {row.user_agent: int(row.clicks) for row in rows}


def _day_key(value: datetime.date | str) -> str:
    # PostgreSQL returns a date, SQLite an ISO string.
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)[:10]
