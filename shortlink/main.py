"""FastAPI application entry point for the shortlink service.

This module configures the FastAPI application with middleware, lifecycle
management, error translation, and route registration.

Application Lifecycle Diagram
===========================
::
    startup:   init_db() ─► ServiceManager.initialize()
    serving:   router (shorten / redirect / analytics / health) + /metrics
    shutdown:  ServiceManager.cleanup() (drain background tasks)
               ─► close_db() ─► close_redis()

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn shortlink.main:app --host 0.0.0.0 --port 8080

**Step 2 — Make API calls**::
    curl -X POST http://localhost:8080/api/shorten \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com/page"}'

    curl -i http://localhost:8080/api/s/<alias>
    curl http://localhost:8080/api/analytics/<alias>

Key Behaviours
===============
- Database tables are created automatically on startup.
- In-flight background analytics are drained before connections close.
- Core errors without a dedicated status become a generic 500.
- CORS is enabled for all origins (configure for production).
- Prometheus metrics are exposed at /metrics.
"""

__all__ = ["app"]

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortlink.config import get_settings
from shortlink.database import close_db, init_db
from shortlink.dependencies import _service_manager
from shortlink.exceptions import ShortlinkError
from shortlink.redis import close_redis
from shortlink.routes import router

settings = get_settings()
logger = logging.getLogger("shortlink")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    await _service_manager.initialize()
    yield
    # Shutdown
    await _service_manager.cleanup()
    await close_db()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="URL shortener with cached alias resolution and visit analytics",
    lifespan=lifespan,
)


@app.exception_handler(ShortlinkError)
async def shortlink_error_handler(request: Request, exc: ShortlinkError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc.error_code}: {exc!r}")
    return JSONResponse(status_code=500, content={"detail": "internal server error"})


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
