"""Tests for ReceiptRetryScheduler."""

import pytest

from budgetbook.receipts.config import load_config
from budgetbook.receipts.models import ProcessOutcome
from budgetbook.receipts.scheduler import ReceiptRetryScheduler

from conftest import DATA_URI

RECEIPT = {"url": DATA_URI}


@pytest.fixture
def config(db_path):
    cfg = load_config()
    cfg.database.path = str(db_path)
    return cfg


def test_scheduler_initial_state(config):
    scheduler = ReceiptRetryScheduler(config)
    assert scheduler.running is False


def test_scheduler_setup_jobs(config):
    """Scheduler registers the retry job."""
    config.scheduler.retry_schedule = "*/5 * * * *"
    scheduler = ReceiptRetryScheduler(config)
    scheduler.setup_jobs()

    job_ids = {j["id"] for j in scheduler.get_jobs()}
    assert job_ids == {"retry_receipts"}


def test_parse_cron_valid(config):
    scheduler = ReceiptRetryScheduler(config)
    trigger = scheduler._parse_cron("30 6 * * 1-5")
    assert trigger is not None


def test_parse_cron_invalid(config):
    scheduler = ReceiptRetryScheduler(config)
    with pytest.raises(ValueError, match="Invalid cron"):
        scheduler._parse_cron("bad")


def test_stop_when_not_running(config):
    scheduler = ReceiptRetryScheduler(config)
    scheduler.stop()
    assert scheduler.running is False


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_retries_pending_expenses(self, config, expenses, items_db, make_processor):
        expenses.add_expense("pending", category="Groceries", receipt=RECEIPT, status="pending")
        expenses.add_expense("done", category="Groceries", receipt=RECEIPT,
                             status="completed", receipt_scanned=True)
        expenses.add_expense("failed", category="Groceries", receipt=RECEIPT, status="failed")

        scheduler = ReceiptRetryScheduler(config, processor_factory=make_processor)
        results = await scheduler.run_once()

        assert [r.expense_id for r in results] == ["pending"]
        assert results[0].outcome is ProcessOutcome.COMPLETED
        assert len(items_db.list_items("pending")) == 2

    @pytest.mark.asyncio
    async def test_retry_failed_enabled(self, config, expenses, make_processor):
        config.scheduler.retry_failed = True
        expenses.add_expense("failed", category="Groceries", receipt=RECEIPT, status="failed")

        scheduler = ReceiptRetryScheduler(config, processor_factory=make_processor)
        results = await scheduler.run_once()

        assert [r.expense_id for r in results] == ["failed"]

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, config, make_processor):
        scheduler = ReceiptRetryScheduler(config, processor_factory=make_processor)
        assert await scheduler.run_once() == []

    @pytest.mark.asyncio
    async def test_limit(self, config, expenses, make_processor):
        for i in range(3):
            expenses.add_expense(f"e{i}", category="Groceries", receipt=RECEIPT)

        scheduler = ReceiptRetryScheduler(config, processor_factory=make_processor)
        results = await scheduler.run_once(limit=2)
        assert len(results) == 2
