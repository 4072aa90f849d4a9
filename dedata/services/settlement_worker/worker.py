"""
Settlement worker.

Background loop that runs one settlement pass immediately at startup and
then one per interval until stopped.
"""

import asyncio
from datetime import datetime

from loguru import logger

from dedata.services.settlement_worker.processor import SettlementProcessor
from dedata.utils.datetime_utils import utc_now


class SettlementWorker:
    """
    Periodic settlement loop.

    The stop signal is observed between passes and during the wait for
    the next pass. A pass still running when ``stop`` is called gets a
    grace period, after which the task is cancelled; every record it was
    touching is resumable on the next start.
    """

    def __init__(
        self,
        processor: SettlementProcessor,
        interval: float = 30.0,
        shutdown_grace: float = 10.0,
    ) -> None:
        """
        Initialize settlement worker.

        Args:
            processor: Settlement processor
            interval: Seconds between passes
            shutdown_grace: Seconds a running pass may take to finish on stop
        """
        self.processor = processor
        self.interval = interval
        self.shutdown_grace = shutdown_grace

        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

        self.last_run_at: datetime | None = None
        self.last_stats: dict[str, int] | None = None
        self.last_error: str | None = None
        self.passes = 0

    @property
    def running(self) -> bool:
        """True while the loop task is alive."""
        return self._task is not None and not self._task.done()

    async def run_once(self) -> dict[str, int] | None:
        """
        Run a single settlement pass.

        Returns:
            Pass stats, or None if the pass itself failed
        """
        try:
            stats = await self.processor.process_batch()
        except Exception as e:
            logger.exception(f"Settlement pass failed: {e}")
            self.last_error = str(e)
            return None
        finally:
            self.passes += 1
            self.last_run_at = utc_now()

        self.last_stats = stats
        self.last_error = None
        return stats

    async def run(self) -> None:
        """Run passes until stopped."""
        logger.info(f"Settlement worker started, interval {self.interval}s")
        self._stop_event.clear()

        try:
            while not self._stop_event.is_set():
                await self.run_once()

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                except TimeoutError:
                    continue
        except asyncio.CancelledError:
            logger.warning("Settlement worker cancelled")
            raise
        finally:
            logger.info("Settlement worker stopped")

    def start(self) -> asyncio.Task:
        """
        Start the loop as a background task.

        Returns:
            The running task
        """
        if self.running:
            return self._task

        self._task = asyncio.create_task(self.run(), name="settlement-worker")
        return self._task

    async def stop(self) -> None:
        """Signal the loop to stop and wait for it, cancelling after the grace period."""
        self._stop_event.set()

        if self._task is None or self._task.done():
            return

        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=self.shutdown_grace)
        except TimeoutError:
            logger.warning(
                f"Settlement pass still running after {self.shutdown_grace}s, cancelling"
            )
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def status(self) -> dict:
        """Snapshot for the health endpoint."""
        return {
            "running": self.running,
            "interval_seconds": self.interval,
            "passes": self.passes,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_stats": self.last_stats,
            "last_error": self.last_error,
        }
