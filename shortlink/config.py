"""Configuration management for the shortlink service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from shortlink.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Tune the cache retry strategy from the environment**::
    CACHE_RETRY_ATTEMPTS=5 CACHE_RETRY_DELAY_SECONDS=0.1 uvicorn shortlink.main:app

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- Invalid values (e.g. a non-numeric retry count) raise ValidationError.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortlink"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortlink:shortlink@db:5432/shortlink"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    STORE_TIMEOUT_SECONDS: float = Field(5.0, gt=0)
    # e.g. "REPEATABLE READ" so the three summary aggregates share one snapshot
    SUMMARY_ISOLATION_LEVEL: str | None = None

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_OP_TIMEOUT_SECONDS: float = Field(0.5, gt=0)
    CACHE_RETRY_ATTEMPTS: int = Field(3, ge=1)
    CACHE_RETRY_DELAY_SECONDS: float = Field(0.05, ge=0)
    CACHE_RETRY_MAX_DELAY_SECONDS: float = Field(1.0, ge=0)
    LINK_CACHE_TTL_SECONDS: int = 3600
    SUMMARY_CACHE_TTL_SECONDS: int = 3600

    # Alias allocation
    ALIAS_LENGTH: int = Field(6, ge=1)
    ALIAS_MAX_ATTEMPTS: int = Field(10, ge=1)

    # Background work
    VISIT_RECORD_TIMEOUT_SECONDS: float = Field(2.0, gt=0)
    SUMMARY_REFRESH_TIMEOUT_SECONDS: float = Field(5.0, gt=0)
    SHUTDOWN_DRAIN_TIMEOUT_SECONDS: float = Field(5.0, gt=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
