"""Scheduled re-invocation of receipts left pending or failed."""

from __future__ import annotations

import logging
from collections.abc import Callable

from .config import ReceiptsConfig
from .db import ExpenseDB
from .models import ProcessResult
from .pipeline import ReceiptProcessor

logger = logging.getLogger(__name__)


class ReceiptRetryScheduler:
    """Periodically re-runs the pipeline for expenses that still need it.

    Uses APScheduler for cron-based scheduling.
    """

    def __init__(
        self,
        config: ReceiptsConfig,
        processor_factory: Callable[[], ReceiptProcessor] | None = None,
    ) -> None:
        """Initialize scheduler with a ReceiptsConfig.

        Args:
            config: ReceiptsConfig instance.
            processor_factory: Builds the processor used for one sweep.

        Raises:
            ImportError: If apscheduler is not installed.
        """
        try:
            from apscheduler.schedulers.asyncio import AsyncIOScheduler
            from apscheduler.triggers.cron import CronTrigger
        except ImportError:
            raise ImportError(
                "apscheduler is required: pip install apscheduler"
            )

        self._config = config
        self._processor_factory = processor_factory or (
            lambda: ReceiptProcessor.from_config(config)
        )
        self._scheduler = AsyncIOScheduler()
        self._CronTrigger = CronTrigger
        self._running = False

    def setup_jobs(self) -> None:
        """Register the retry sweep job."""
        schedule = self._config.scheduler.retry_schedule
        self._scheduler.add_job(
            self._job_retry_receipts,
            trigger=self._parse_cron(schedule),
            id="retry_receipts",
            name="Retry pending receipts",
            replace_existing=True,
        )
        logger.info("Registered receipt retry job: %s", schedule)

    def start(self) -> None:
        """Start the scheduler."""
        self.setup_jobs()
        self._scheduler.start()
        self._running = True
        logger.info("Scheduler started")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._running

    def get_jobs(self) -> list[dict]:
        """Return info about scheduled jobs."""
        jobs = []
        for job in self._scheduler.get_jobs():
            # Pending jobs have no next_run_time until the scheduler starts
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": str(next_run) if next_run else None,
            })
        return jobs

    def _parse_cron(self, expr: str):
        """Parse a cron expression into a CronTrigger."""
        parts = expr.split()
        if len(parts) == 5:
            return self._CronTrigger(
                minute=parts[0],
                hour=parts[1],
                day=parts[2],
                month=parts[3],
                day_of_week=parts[4],
            )
        raise ValueError(f"Invalid cron expression: {expr}")

    async def run_once(self, limit: int | None = None) -> list[ProcessResult]:
        """Re-invoke every retryable expense once, sequentially."""
        sc = self._config.scheduler
        db = ExpenseDB(self._config.database.path)
        try:
            expense_ids = db.list_retryable(
                include_failed=sc.retry_failed,
                stale_after_s=self._config.pipeline.stale_lock_after_s,
                limit=limit if limit is not None else sc.batch_limit,
            )
        finally:
            db.close()

        if not expense_ids:
            logger.debug("No receipts to retry")
            return []

        logger.info("Retrying %d receipts", len(expense_ids))
        results = []
        processor = self._processor_factory()
        try:
            for expense_id in expense_ids:
                results.append(await processor.process(expense_id))
        finally:
            processor.close()
        return results

    async def _job_retry_receipts(self) -> None:
        logger.info("Running receipt retry job...")
        try:
            results = await self.run_once()
            done = sum(1 for r in results if r.success)
            logger.info("Receipt retry job finished: %d/%d succeeded", done, len(results))
        except Exception:
            logger.exception("Receipt retry job failed")
