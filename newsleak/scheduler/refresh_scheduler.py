"""
Newsleak Refresh Scheduler
==========================

Runs the ingestion orchestrator on a fixed interval until stopped.

Each run's ``RunSummary`` is logged and kept as ``last_summary``. A run that
aborts because the store is unreachable is logged and the scheduler waits
for the next tick instead of exiting.
"""

import asyncio
from typing import Optional

from ..database.models import utc_now
from ..ingestion.orchestrator import IngestionOrchestrator, RunSummary
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import StoreUnavailableError, handle_exception


class RefreshScheduler:
    """
    Periodic trigger for ingestion runs.

    Runs never overlap: the next interval starts counting once the previous
    run has finished.
    """

    def __init__(self, orchestrator: IngestionOrchestrator, interval_minutes: float = 30):
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")

        self.orchestrator = orchestrator
        self.interval_seconds = interval_minutes * 60
        self.logger = get_logger_for_component("scheduler")

        self.runs_completed = 0
        self.runs_failed = 0
        self.last_summary: Optional[RunSummary] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    async def run_once(self) -> Optional[RunSummary]:
        """Execute a single ingestion run.

        Returns:
            The run summary, or None if the run could not complete
        """
        started = utc_now()
        try:
            summary = await self.orchestrator.run()
        except StoreUnavailableError as e:
            self.runs_failed += 1
            self.logger.error(f"Refresh skipped, store unavailable: {e}", extra=e.to_dict())
            return None
        except Exception as e:
            self.runs_failed += 1
            handle_exception(e, self.logger, "scheduled_refresh")
            return None

        self.runs_completed += 1
        self.last_summary = summary
        self.logger.info(
            "Scheduled refresh completed",
            extra={
                "run_id": summary.run_id,
                "started_at": started.isoformat(),
                "feeds_processed": summary.feeds_processed,
                "feeds_failed": summary.feeds_failed,
                "items_upserted": summary.items_upserted,
                "items_created": summary.items_created,
                "duration_seconds": summary.duration_seconds,
            },
        )
        return summary

    async def run_forever(self, max_runs: Optional[int] = None) -> None:
        """Run until ``stop()`` is called (or ``max_runs`` runs have started)."""
        self._stop_event = asyncio.Event()
        runs = 0

        self.logger.info(f"Refresh scheduler started, interval {self.interval_seconds:.0f}s")

        try:
            while not self._stop_event.is_set():
                await self.run_once()
                runs += 1
                if max_runs is not None and runs >= max_runs:
                    break

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                except asyncio.TimeoutError:
                    continue
        finally:
            self._stop_event.set()
            self.logger.info(
                f"Refresh scheduler stopped after {runs} runs "
                f"({self.runs_completed} completed, {self.runs_failed} failed)"
            )

    def stop(self) -> None:
        """Ask ``run_forever`` to exit after the current run."""
        if self._stop_event is not None:
            self._stop_event.set()
