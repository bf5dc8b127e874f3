"""Tests for _processor module."""

import asyncio

import pytest

from craftlocal_tracing._processor import BackgroundProcessor, run_soon


class _Counter:
    def __init__(self) -> None:
        self.calls = 0

    async def flush(self) -> None:
        self.calls += 1


@pytest.mark.asyncio
async def test_start_and_stop() -> None:
    counter = _Counter()
    proc = BackgroundProcessor(counter.flush, flush_interval_ms=10)
    proc.start()
    assert proc.is_running
    await asyncio.sleep(0.1)
    proc.stop()
    assert not proc.is_running
    assert counter.calls >= 2


@pytest.mark.asyncio
async def test_no_flush_before_interval() -> None:
    counter = _Counter()
    proc = BackgroundProcessor(counter.flush, flush_interval_ms=10_000)
    proc.start()
    await asyncio.sleep(0.05)
    proc.stop()
    assert counter.calls == 0


@pytest.mark.asyncio
async def test_flush_exception_does_not_stop_loop() -> None:
    calls = 0

    async def bad_flush() -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("flush exploded")

    proc = BackgroundProcessor(bad_flush, flush_interval_ms=10)
    proc.start()
    await asyncio.sleep(0.1)
    assert proc.is_running
    proc.stop()
    assert calls >= 2


@pytest.mark.asyncio
async def test_double_start_is_idempotent() -> None:
    proc = BackgroundProcessor(_Counter().flush, flush_interval_ms=50)
    proc.start()
    task1 = proc._task
    proc.start()
    assert proc._task is task1
    proc.stop()


def test_start_requires_running_loop() -> None:
    proc = BackgroundProcessor(_Counter().flush, flush_interval_ms=50)
    with pytest.raises(RuntimeError):
        proc.start()
    assert not proc.is_running


def test_stop_without_start() -> None:
    proc = BackgroundProcessor(_Counter().flush)
    proc.stop()
    assert not proc.is_running


def test_run_soon_without_loop_runs_to_completion() -> None:
    counter = _Counter()
    assert run_soon(counter.flush()) is None
    assert counter.calls == 1


@pytest.mark.asyncio
async def test_run_soon_with_loop_schedules_task() -> None:
    counter = _Counter()
    task = run_soon(counter.flush())
    assert task is not None
    assert counter.calls == 0
    await task
    assert counter.calls == 1
