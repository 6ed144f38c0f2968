"""BackgroundTaskRunner tests."""

import asyncio
import logging

import pytest

from shortlink.background import BackgroundTaskRunner


@pytest.mark.asyncio
async def test_submitted_work_runs_and_drains(runner: BackgroundTaskRunner) -> None:
    done = []

    async def work():
        await asyncio.sleep(0)
        done.append(True)

    runner.submit("work", work, timeout=1.0)
    assert runner.pending == 1

    await runner.drain()

    assert done == [True]
    assert runner.pending == 0


@pytest.mark.asyncio
async def test_failure_is_logged_not_raised(runner: BackgroundTaskRunner, caplog: pytest.LogCaptureFixture) -> None:
    async def boom():
        raise RuntimeError("boom")

    with caplog.at_level(logging.ERROR, logger="shortlink"):
        task = runner.submit("boom", boom, timeout=1.0)
        await runner.drain()

    assert task.exception() is None
    assert "boom failed" in caplog.text


@pytest.mark.asyncio
async def test_timeout_is_logged(runner: BackgroundTaskRunner, caplog: pytest.LogCaptureFixture) -> None:
    async def slow():
        await asyncio.sleep(5)

    with caplog.at_level(logging.WARNING, logger="shortlink"):
        runner.submit("slow", slow, timeout=0.01)
        await runner.drain()

    assert "slow timed out" in caplog.text


@pytest.mark.asyncio
async def test_work_outlives_cancelled_submitter(runner: BackgroundTaskRunner) -> None:
    started = asyncio.Event()
    finished = asyncio.Event()

    async def work():
        started.set()
        await asyncio.sleep(0.01)
        finished.set()

    async def handler():
        runner.submit("work", work, timeout=1.0)
        await asyncio.sleep(10)

    request = asyncio.create_task(handler())
    await started.wait()
    request.cancel()
    with pytest.raises(asyncio.CancelledError):
        await request

    await runner.drain()
    assert finished.is_set()


@pytest.mark.asyncio
async def test_drain_waits_for_tasks_submitted_meanwhile(runner: BackgroundTaskRunner) -> None:
    order = []

    async def second():
        order.append("second")

    async def first():
        order.append("first")
        runner.submit("second", second, timeout=1.0)

    runner.submit("first", first, timeout=1.0)
    await runner.drain()

    assert order == ["first", "second"]
