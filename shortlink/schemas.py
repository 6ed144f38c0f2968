"""Pydantic schemas for request validation, responses, and cache payloads.

This module defines Pydantic models for API input validation and output
serialization, plus the value types the core passes around and stores in Redis.

Schema Hierarchy
=================
::
    LinkCreate (Input)
    ├─ url: str (validated)
    └─ alias: str | None (3-32 chars of [A-Za-z0-9_-], "" means generate)

    LinkRecord (Core value / cache payload under "link:<alias>")
    ├─ id: UUID
    ├─ url: str
    ├─ alias: str
    └─ created_at: datetime

    LinkResponse (Output)
    └─ LinkRecord fields + short_url

    VisitEvent (Core value)
    ├─ id: UUID | None (store-assigned)
    ├─ alias, user_agent, device, os, browser, ip: str
    └─ created_at: datetime | None (store-assigned)

    AnalyticsSummary (Output / cache payload under "analytics:<alias>")
    ├─ alias: str
    ├─ total_clicks: int
    ├─ daily: dict[str, int]
    └─ user_agent: dict[str, int]

    HealthResponse (Output)

How to Use
===========
**Step 1 — Input validation**::
    @router.post("/api/shorten")
    async def shorten(payload: LinkCreate):
        # payload is already validated
        ...

**Step 2 — Cache round-trip**::
    raw = record.model_dump_json()
    assert LinkRecord.model_validate_json(raw) == record

**Step 3 — Building from ORM rows**::
    record = LinkRecord.model_validate(orm_link)

Key Behaviours
===============
- URL validation uses the validators library for RFC compliance.
- An empty alias is normalised to None so the allocator generates one.
- Cache payloads use snake_case JSON field names.
- Models are configured for ORM attribute mapping.

Classes:
    LinkCreate:  Input schema for link creation.
    LinkRecord:  A stored link.
    LinkResponse:  Output schema for created links.
    VisitEvent:  One visit to an alias.
    AnalyticsSummary:  Aggregated analytics for an alias.
    HealthResponse:  Output schema for health checks.
"""

import datetime
import re
import uuid

import validators
from pydantic import BaseModel, Field, field_validator

from shortlink.enums import HealthStatus

__all__ = [
    "LinkCreate",
    "LinkRecord",
    "LinkResponse",
    "VisitEvent",
    "AnalyticsSummary",
    "HealthResponse",
]

ALIAS_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,32}$")


class LinkCreate(BaseModel):
    url: str
    alias: str | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not validators.url(v):
            raise ValueError("Invalid URL provided")
        return v

    @field_validator("alias")
    @classmethod
    def validate_alias(cls, v: str | None) -> str | None:
        if not v:
            return None
        if not ALIAS_PATTERN.match(v):
            raise ValueError("Alias must be 3-32 characters of letters, digits, '-' or '_'")
        return v


class LinkRecord(BaseModel):
    id: uuid.UUID
    url: str
    alias: str
    created_at: datetime.datetime

    model_config = {"from_attributes": True}


class LinkResponse(BaseModel):
    id: uuid.UUID
    url: str
    alias: str
    short_url: str
    created_at: datetime.datetime

    @classmethod
    def from_record(cls, record: LinkRecord, base_url: str) -> "LinkResponse":
        return cls(
            id=record.id,
            url=record.url,
            alias=record.alias,
            short_url=f"{base_url.rstrip('/')}/api/s/{record.alias}",
            created_at=record.created_at,
        )


class VisitEvent(BaseModel):
    """A single visit to a shortened link."""

    id: uuid.UUID | None = None
    alias: str
    user_agent: str = ""
    device: str = ""
    os: str = ""
    browser: str = ""
    ip: str = ""
    created_at: datetime.datetime | None = None

    model_config = {"from_attributes": True}


class AnalyticsSummary(BaseModel):
    """Aggregated analytics for one alias, derived from the visit log."""

    alias: str
    total_clicks: int = Field(0, ge=0)
    daily: dict[str, int] = Field(default_factory=dict, description="Clicks per day, e.g. {'2024-01-31': 4}")
    user_agent: dict[str, int] = Field(default_factory=dict, description="Clicks per raw User-Agent")


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
