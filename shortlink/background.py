"""Detached background tasks with their own deadline.

Work submitted here outlives the request that triggered it: it is not cancelled
when the request finishes, it runs under its own timeout, and its failures go to
the log and to Prometheus only.

Lifecycle
=========
::
    submit(name, factory, timeout)
        └─ asyncio.create_task(_guard(...))
              ├─ asyncio.timeout(timeout)
              │    └─ await factory()
              ├─ success  → counter{status="success"}
              ├─ timeout  → logger.warning, counter{status="timeout"}
              └─ error    → logger.error,   counter{status="error"}

    drain(timeout)   # shutdown / tests: wait for in-flight tasks

Key Behaviours
===============
- Strong references are kept until each task finishes, so tasks are never
  garbage-collected mid-flight.
- A coroutine factory (not a coroutine) is submitted, so nothing is created
  when submission itself fails.
- Exceptions never propagate back to the submitter.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from prometheus_client import Counter

from shortlink.enums import RequestStatus

__all__ = ["BackgroundTaskRunner"]

BACKGROUND_TASKS_TOTAL = Counter(
    "shortlink_background_tasks_total",
    "Background tasks by outcome",
    ["task", "status"],
)


class BackgroundTaskRunner:
    def __init__(self, logger: Optional[logging.Logger | logging.LoggerAdapter] = None):
        self._logger = logger or logging.getLogger("shortlink")
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, factory: Callable[[], Awaitable[Any]], timeout: float) -> asyncio.Task:
        task = asyncio.create_task(self._guard(name, factory, timeout), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until every submitted task, including ones submitted meanwhile, is done."""
        async with asyncio.timeout(timeout):
            while self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _guard(self, name: str, factory: Callable[[], Awaitable[Any]], timeout: float) -> None:
        try:
            async with asyncio.timeout(timeout):
                await factory()
        except TimeoutError:
            BACKGROUND_TASKS_TOTAL.labels(task=name, status=RequestStatus.TIMEOUT).inc()
            self._logger.warning(f"Background task {name} timed out after {timeout}s")
        except Exception as exc:
            BACKGROUND_TASKS_TOTAL.labels(task=name, status=RequestStatus.ERROR).inc()
            self._logger.error(f"Background task {name} failed: {exc!r}")
        else:
            BACKGROUND_TASKS_TOTAL.labels(task=name, status=RequestStatus.SUCCESS).inc()
