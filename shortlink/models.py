"""SQLAlchemy ORM models for the shortlink service.

This module defines the durable schema: the alias → URL mapping and the raw
visit log the analytics summary is derived from.

Data Model Layout
=================
::
    links table
    ├─ id (UUID PRIMARY KEY)
    ├─ url (TEXT NOT NULL)
    ├─ alias (VARCHAR(32) UNIQUE, INDEXED)
    └─ created_at (TIMESTAMPTZ, DEFAULT NOW())

    analytics table
    ├─ id (UUID PRIMARY KEY)
    ├─ alias (VARCHAR(32), INDEXED, no foreign key)
    ├─ user_agent (TEXT)
    ├─ device_type (VARCHAR(16))
    ├─ os (VARCHAR(64))
    ├─ browser (VARCHAR(64))
    ├─ ip_address (VARCHAR(45))
    └─ created_at (TIMESTAMPTZ, DEFAULT NOW())

How to Use
===========
**Step 1 — Import**::
    from shortlink.models import AnalyticsEvent, Link

**Step 2 — Create a new link**::
    link = Link(url="https://example.com", alias="abc123")
    session.add(link)
    await session.commit()
    await session.refresh(link)  # loads created_at

**Step 3 — Query by alias**::
    result = await session.execute(select(Link).where(Link.alias == "abc123"))
    link = result.scalar_one_or_none()

Key Behaviours
===============
- The unique index on links.alias is the single arbiter of alias uniqueness.
- Analytics rows reference links by alias only, so history survives link removal.
- Timestamps are assigned by the database, not by the application.

Classes:
    Link:  A shortened URL.
    AnalyticsEvent:  One recorded visit to an alias.
"""

import datetime
import uuid

from sqlalchemy import DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.database import Base

__all__ = ["Link", "AnalyticsEvent"]


class Link(Base):
    __tablename__ = "links"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    alias: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Link(id={self.id}, alias='{self.alias}')>"


class AnalyticsEvent(Base):
    __tablename__ = "analytics"
    __table_args__ = (Index("ix_analytics_alias_created_at", "alias", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    alias: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    user_agent: Mapped[str] = mapped_column(Text, default="", nullable=False)
    device: Mapped[str] = mapped_column("device_type", String(16), default="", nullable=False)
    os: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    browser: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    ip: Mapped[str] = mapped_column("ip_address", String(45), default="", nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<AnalyticsEvent(id={self.id}, alias='{self.alias}')>"
