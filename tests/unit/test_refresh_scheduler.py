"""
Tests for RefreshScheduler
==========================
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from newsleak.ingestion.orchestrator import RunSummary
from newsleak.scheduler.refresh_scheduler import RefreshScheduler
from newsleak.utils.exceptions import StoreUnavailableError


@pytest.fixture
def orchestrator():
    mock = MagicMock()
    mock.run = AsyncMock(side_effect=lambda: RunSummary(run_id="run-1"))
    return mock


class TestRefreshScheduler:
    """Test suite for RefreshScheduler."""

    def test_interval_must_be_positive(self, orchestrator):
        with pytest.raises(ValueError):
            RefreshScheduler(orchestrator, interval_minutes=0)

        assert RefreshScheduler(orchestrator, interval_minutes=2).interval_seconds == 120

    @pytest.mark.asyncio
    async def test_run_once_keeps_summary(self, orchestrator):
        scheduler = RefreshScheduler(orchestrator)

        summary = await scheduler.run_once()

        assert summary.run_id == "run-1"
        assert scheduler.last_summary is summary
        assert scheduler.runs_completed == 1
        assert scheduler.runs_failed == 0

    @pytest.mark.asyncio
    async def test_run_once_survives_unavailable_store(self, orchestrator):
        orchestrator.run.side_effect = StoreUnavailableError("database locked")
        scheduler = RefreshScheduler(orchestrator)

        assert await scheduler.run_once() is None
        assert scheduler.runs_failed == 1
        assert scheduler.last_summary is None

    @pytest.mark.asyncio
    async def test_run_once_survives_unexpected_error(self, orchestrator):
        orchestrator.run.side_effect = RuntimeError("boom")
        scheduler = RefreshScheduler(orchestrator)

        assert await scheduler.run_once() is None
        assert scheduler.runs_failed == 1

    @pytest.mark.asyncio
    async def test_run_forever_max_runs(self, orchestrator):
        scheduler = RefreshScheduler(orchestrator, interval_minutes=0.0001)

        await asyncio.wait_for(scheduler.run_forever(max_runs=3), timeout=2)

        assert orchestrator.run.await_count == 3
        assert scheduler.runs_completed == 3
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_stop_interrupts_wait(self, orchestrator):
        first_run = asyncio.Event()

        async def run():
            first_run.set()
            return RunSummary(run_id="run-1")

        orchestrator.run.side_effect = run
        scheduler = RefreshScheduler(orchestrator, interval_minutes=60)

        task = asyncio.ensure_future(scheduler.run_forever())
        await asyncio.wait_for(first_run.wait(), timeout=1)
        assert scheduler.running is True

        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert orchestrator.run.await_count == 1
        assert scheduler.running is False
