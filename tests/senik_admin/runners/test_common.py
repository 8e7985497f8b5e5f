"""Tests for worker start retry and shutdown handling."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from senik_admin.runners.common import _start_with_retry, execute_worker_with_shutdown


class BlockingWorker:
    """start() blocks until stop() is called, like a consumer loop."""

    def __init__(self):
        self._stopped = asyncio.Event()
        self.start_calls = 0
        self.stop_calls = 0

    async def start(self):
        self.start_calls += 1
        await self._stopped.wait()

    async def stop(self):
        self.stop_calls += 1
        self._stopped.set()


class TestStartWithRetry:

    @pytest.mark.asyncio
    async def test_retries_with_linear_backoff(self):
        start = AsyncMock(side_effect=[ConnectionError("no broker"), ConnectionError("no broker"), None])

        with patch("senik_admin.runners.common.asyncio.sleep", new=AsyncMock()) as sleep:
            await _start_with_retry(start, "income_calculation", max_retries=3, backoff_base=2)

        assert start.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [2, 4]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        start = AsyncMock(side_effect=ConnectionError("no broker"))

        with patch("senik_admin.runners.common.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ConnectionError):
                await _start_with_retry(start, "income_calculation", max_retries=2, backoff_base=1)

        assert start.await_count == 2

    @pytest.mark.asyncio
    async def test_no_retry_during_shutdown(self):
        start = AsyncMock(side_effect=ConnectionError("no broker"))
        shutdown = asyncio.Event()
        shutdown.set()

        with pytest.raises(ConnectionError):
            await _start_with_retry(start, "x", max_retries=5, backoff_base=1, shutdown_event=shutdown)

        assert start.await_count == 1

    @pytest.mark.asyncio
    async def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("STARTUP_MAX_RETRIES", "1")
        start = AsyncMock(side_effect=ConnectionError("no broker"))

        with pytest.raises(ConnectionError):
            await _start_with_retry(start, "x")

        assert start.await_count == 1


class TestExecuteWorkerWithShutdown:

    @pytest.mark.asyncio
    async def test_shutdown_event_stops_worker_once(self):
        worker = BlockingWorker()
        shutdown = asyncio.Event()

        task = asyncio.create_task(
            execute_worker_with_shutdown(worker, "income_calculation", shutdown, instance_id="1")
        )
        await asyncio.sleep(0.01)
        shutdown.set()
        await asyncio.wait_for(task, timeout=2)

        assert worker.start_calls == 1
        assert worker.stop_calls == 1

    @pytest.mark.asyncio
    async def test_worker_returning_is_stopped(self):
        worker = AsyncMock()
        shutdown = asyncio.Event()

        await execute_worker_with_shutdown(worker, "income_calculation", shutdown)

        worker.start.assert_awaited_once()
        worker.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_failure_propagates_and_stops(self, monkeypatch):
        monkeypatch.setenv("STARTUP_MAX_RETRIES", "1")
        worker = AsyncMock()
        worker.start.side_effect = RuntimeError("bad config")

        with pytest.raises(RuntimeError, match="bad config"):
            await execute_worker_with_shutdown(worker, "income_calculation", asyncio.Event())

        worker.stop.assert_awaited_once()
