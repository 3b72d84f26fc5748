"""Receipt processing state machine.

One ``process`` call owns one expense for the duration of an attempt:

    unset/pending/failed --lock--> processing --> completed | failed | skipped
    processing --> pending  (receipt not uploaded yet)

The lock is the conditional update in ``ExpenseDB.try_acquire``, which hands
back a per-attempt token. Every later status write is conditional on that
token, so two workers triggered for the same expense never both write line
items, and a worker whose stale lock was reclaimed cannot overwrite the new
owner's outcome.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from .committer import ReceiptCommitter
from .config import PipelineConfig, ReceiptsConfig
from .db import ExpenseDB, ReceiptItemDB
from .errors import (
    ConfigurationError,
    LockLost,
    NoItemsFound,
    PointerNotReady,
    describe_error,
    truncate_error,
)
from .extraction import (
    StructuredExtractor,
    TextExtractor,
    create_structured_extractor,
    create_text_extractor,
)
from .models import ExpenseRecord, ExtractedReceipt, ProcessOutcome, ProcessResult
from .normalizer import normalize_items
from .pointer import PointerResolver, ReceiptPointer, ResolvedImage, parse_receipt_pointer
from .secrets import SecretStore, create_secret_store

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

_NOT_READY_MESSAGE = "Receipt not available yet; retry once the upload completes"


def is_grocery(category: str, keywords: Iterable[str]) -> bool:
    text = (category or "").lower()
    return any(k.lower() in text for k in keywords if k)


class ReceiptProcessor:
    """Runs the receipt pipeline for one expense at a time.

    Holds no per-expense state between calls; all coordination happens
    through the expense row.
    """

    def __init__(
        self,
        expenses: ExpenseDB,
        items: ReceiptItemDB,
        resolver: PointerResolver,
        structured: StructuredExtractor,
        text: TextExtractor | None = None,
        *,
        settings: PipelineConfig | None = None,
        mode: str = "ocr",
        sleep: Sleep = asyncio.sleep,
        secrets: SecretStore | None = None,
    ) -> None:
        self._expenses = expenses
        self._items = items
        self._resolver = resolver
        self._structured = structured
        self._text = text
        self._settings = settings or PipelineConfig()
        self._mode = mode
        self._sleep = sleep
        self._secrets = secrets
        self._committer = ReceiptCommitter(items)

    @classmethod
    def from_config(
        cls,
        config: ReceiptsConfig,
        secrets: SecretStore | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> "ReceiptProcessor":
        """Wire a processor from configuration.

        A secret store created here is closed by ``close()``; one passed in
        is left to the caller.
        """
        owned_secrets = None
        if secrets is None:
            secrets = owned_secrets = create_secret_store(config)

        resolver = PointerResolver(
            secrets,
            signed_url_ttl_s=config.storage.signed_url_ttl_s,
            timeout_s=config.storage.timeout_s,
        )
        return cls(
            ExpenseDB(config.database.path),
            ReceiptItemDB(config.database.path),
            resolver,
            create_structured_extractor(config, secrets),
            create_text_extractor(config, secrets),
            settings=config.pipeline,
            mode=config.structured.mode,
            sleep=sleep,
            secrets=owned_secrets,
        )

    def close(self) -> None:
        self._expenses.close()
        self._items.close()
        if self._secrets is not None:
            self._secrets.close()

    @property
    def uses_vision(self) -> bool:
        return self._mode == "vision" and self._structured.supports_images

    async def process(self, expense_id: str) -> ProcessResult:
        """Run the pipeline for ``expense_id`` and report the outcome.

        Never leaves the expense in 'processing': every path ends completed,
        failed, skipped or pending.
        """
        s = self._settings
        token = self._expenses.try_acquire(expense_id, stale_after_s=s.stale_lock_after_s)
        if token is None:
            logger.info("Expense %s is not pending; nothing to do", expense_id)
            return ProcessResult(
                ProcessOutcome.NOOP, expense_id, message="Receipt already processed or in progress"
            )

        logger.info("Acquired receipt lock for expense %s", expense_id)
        try:
            return await self._run_locked(expense_id, token)
        except LockLost as e:
            logger.warning("Lost receipt lock for expense %s: %s", expense_id, e)
            return ProcessResult(ProcessOutcome.NOOP, expense_id, message=str(e))
        except ConfigurationError as e:
            error = truncate_error(describe_error(e), s.error_max_length)
            logger.error("Configuration error for expense %s: %s", expense_id, error)
            if not self._expenses.mark_failed(expense_id, token, error):
                return ProcessResult(ProcessOutcome.NOOP, expense_id, message="Lock lost")
            return ProcessResult(
                ProcessOutcome.CONFIG_ERROR, expense_id, message="Configuration error", error=error
            )
        except Exception as e:
            error = truncate_error(describe_error(e), s.error_max_length)
            logger.exception("Unexpected failure processing expense %s", expense_id)
            if not self._expenses.mark_failed(expense_id, token, error):
                return ProcessResult(ProcessOutcome.NOOP, expense_id, message="Lock lost")
            return ProcessResult(
                ProcessOutcome.FAILED, expense_id, message="Receipt processing failed", error=error
            )

    async def _run_locked(self, expense_id: str, token: str) -> ProcessResult:
        s = self._settings

        expense = self._expenses.get(expense_id)
        if expense is None:
            raise LockLost(f"Expense {expense_id} disappeared")

        if not is_grocery(expense.category, s.grocery_keywords):
            if not self._expenses.mark_skipped(expense_id, token):
                raise LockLost(f"Expense {expense_id} lost its lock before skipping")
            logger.info("Expense %s is not a grocery expense (%r); skipped", expense_id, expense.category)
            return ProcessResult(
                ProcessOutcome.SKIPPED, expense_id, message="Not a grocery expense"
            )

        try:
            expense, pointer = await self._wait_for_pointer(expense_id)
        except PointerNotReady as e:
            if not self._expenses.mark_pending(expense_id, token, str(e)):
                raise LockLost(f"Expense {expense_id} lost its lock while waiting for the receipt")
            logger.warning("Receipt for expense %s not ready after %d polls", expense_id, s.pointer_polls)
            return ProcessResult(
                ProcessOutcome.RETRYABLE,
                expense_id,
                message="Receipt not ready",
                error=str(e),
            )

        last_error = ""
        for attempt in range(1, s.max_attempts + 1):
            try:
                count = await self._attempt(expense, pointer, token)
            except (ConfigurationError, LockLost):
                raise
            except Exception as e:
                last_error = describe_error(e)
                logger.warning(
                    "Attempt %d/%d failed for expense %s: %s",
                    attempt, s.max_attempts, expense_id, last_error,
                )
                if attempt < s.max_attempts:
                    await self._sleep(s.attempt_backoff_s * attempt)
                continue

            logger.info(
                "Expense %s completed on attempt %d with %d items", expense_id, attempt, count
            )
            return ProcessResult(
                ProcessOutcome.COMPLETED,
                expense_id,
                message=f"Extracted {count} items",
                items_count=count,
            )

        error = truncate_error(last_error or "Receipt processing failed", s.error_max_length)
        if not self._expenses.mark_failed(expense_id, token, error):
            raise LockLost(f"Expense {expense_id} lost its lock before failing")
        logger.warning("Expense %s failed after %d attempts", expense_id, s.max_attempts)
        return ProcessResult(
            ProcessOutcome.FAILED, expense_id, message="Receipt processing failed", error=error
        )

    async def _wait_for_pointer(
        self, expense_id: str
    ) -> tuple[ExpenseRecord, ReceiptPointer]:
        """Re-read the expense until its receipt pointer is usable.

        Raises:
            PointerNotReady: Still no usable pointer after the last poll.
        """
        s = self._settings
        for poll in range(1, s.pointer_polls + 1):
            expense = self._expenses.get(expense_id)
            if expense is None:
                raise LockLost(f"Expense {expense_id} disappeared")

            pointer = parse_receipt_pointer(expense.receipt)
            if pointer is not None:
                return expense, pointer

            logger.debug("Receipt pointer for %s missing (poll %d/%d)", expense_id, poll, s.pointer_polls)
            if poll < s.pointer_polls:
                await self._sleep(s.pointer_poll_backoff_s * poll)
        raise PointerNotReady(_NOT_READY_MESSAGE)

    async def _attempt(
        self, expense: ExpenseRecord, pointer: ReceiptPointer, token: str
    ) -> int:
        image = await self._resolver.resolve(pointer)
        receipt = await self._extract(image)

        items = normalize_items(receipt.items)
        if not items:
            raise NoItemsFound("No line items found on receipt")

        return self._committer.commit(expense, receipt, items, token)

    async def _extract(self, image: ResolvedImage) -> ExtractedReceipt:
        if self.uses_vision:
            return await self._structured.extract_from_image(image)
        if self._text is None:
            raise ConfigurationError("No OCR backend configured for text mode")
        text = await self._text.extract_text(image)
        return await self._structured.extract_from_text(text)
