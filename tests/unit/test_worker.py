"""Unit tests for the settlement worker loop and its health endpoints."""

import asyncio

import pytest
from aiohttp.test_utils import make_mocked_request

from dedata.services.settlement_worker import SettlementWorker
from jobs.health import (
    WORKER_KEY,
    create_health_app,
    health_handler,
    liveness_handler,
    readiness_handler,
)


class CountingProcessor:
    """Processor double that counts passes."""

    def __init__(self, error: Exception | None = None, block: asyncio.Event | None = None) -> None:
        self.calls = 0
        self.error = error
        self.block = block
        self.started = asyncio.Event()

    async def process_batch(self) -> dict[str, int]:
        self.calls += 1
        self.started.set()
        if self.block is not None:
            await self.block.wait()
        if self.error:
            raise self.error
        return {"processed": 0, "errors": 0}


class TestSettlementWorker:
    """Tests for SettlementWorker."""

    @pytest.mark.asyncio
    async def test_first_pass_runs_immediately(self):
        processor = CountingProcessor()
        worker = SettlementWorker(processor, interval=60)

        worker.start()
        await asyncio.wait_for(processor.started.wait(), timeout=1)
        await worker.stop()

        assert processor.calls == 1
        assert not worker.running
        assert worker.passes == 1
        assert worker.last_stats == {"processed": 0, "errors": 0}

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_runs_every_interval(self):
        processor = CountingProcessor()
        worker = SettlementWorker(processor, interval=0.01)

        worker.start()
        await asyncio.sleep(0.1)
        await worker.stop()

        assert processor.calls >= 3

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        worker = SettlementWorker(CountingProcessor(), interval=60)

        first = worker.start()
        second = worker.start()
        await worker.stop()

        assert first is second

    @pytest.mark.asyncio
    async def test_failed_pass_is_recorded(self):
        processor = CountingProcessor(error=RuntimeError("db down"))
        worker = SettlementWorker(processor, interval=60)

        stats = await worker.run_once()

        assert stats is None
        assert worker.last_error == "db down"
        assert worker.passes == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_after_grace(self):
        """A pass that outlives the grace period is cancelled."""
        processor = CountingProcessor(block=asyncio.Event())
        worker = SettlementWorker(processor, interval=60, shutdown_grace=0.05)

        task = worker.start()
        await asyncio.wait_for(processor.started.wait(), timeout=1)
        await worker.stop()

        assert task.cancelled()
        assert not worker.running

    @pytest.mark.asyncio
    async def test_stop_waits_for_running_pass(self):
        block = asyncio.Event()
        processor = CountingProcessor(block=block)
        worker = SettlementWorker(processor, interval=60, shutdown_grace=1)

        task = worker.start()
        await asyncio.wait_for(processor.started.wait(), timeout=1)
        asyncio.get_running_loop().call_later(0.02, block.set)
        await worker.stop()

        assert not task.cancelled()
        assert worker.passes == 1

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        worker = SettlementWorker(CountingProcessor())

        await worker.stop()

        assert worker.status()["running"] is False


class TestHealthHandlers:
    """Tests for the health endpoints."""

    def request(self, worker, path):
        app = create_health_app(worker)
        return make_mocked_request("GET", path, app=app)

    @pytest.mark.asyncio
    async def test_health_reports_running_worker(self):
        processor = CountingProcessor()
        worker = SettlementWorker(processor, interval=60)
        worker.start()
        await asyncio.wait_for(processor.started.wait(), timeout=1)
        await asyncio.sleep(0)

        try:
            health = await health_handler(self.request(worker, "/health"))
            ready = await readiness_handler(self.request(worker, "/ready"))
        finally:
            await worker.stop()

        assert health.status == 200
        assert ready.status == 200

    @pytest.mark.asyncio
    async def test_stopped_worker_is_unhealthy(self):
        worker = SettlementWorker(CountingProcessor())

        health = await health_handler(self.request(worker, "/health"))
        ready = await readiness_handler(self.request(worker, "/ready"))

        assert health.status == 503
        assert ready.status == 503

    @pytest.mark.asyncio
    async def test_liveness(self):
        response = await liveness_handler(self.request(SettlementWorker(CountingProcessor()), "/live"))
        assert response.status == 200

    def test_app_holds_worker(self):
        worker = SettlementWorker(CountingProcessor())
        assert create_health_app(worker)[WORKER_KEY] is worker
