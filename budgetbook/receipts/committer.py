"""Persist normalized line items and complete the expense."""

from __future__ import annotations

import logging
from datetime import date

from .db.receipt_items import ReceiptItemDB
from .errors import LockLost
from .models import ExpenseRecord, ExtractedReceipt, NormalizedItem, ReceiptLineItem

logger = logging.getLogger(__name__)

_COUNT_UNITS = {"ea", "each"}


def item_name(item: NormalizedItem) -> str:
    unit = item.quantity_unit
    if unit and unit.lower() not in _COUNT_UNITS:
        return f"{item.description} ({unit})"
    return item.description


def purchase_date(receipt: ExtractedReceipt, expense: ExpenseRecord) -> str | None:
    """The receipt's ISO date if it has one, else the expense date."""
    candidate = (receipt.date or "").strip()[:10]
    if len(candidate) == 10:
        try:
            return date.fromisoformat(candidate).isoformat()
        except ValueError:
            pass
    return expense.expense_date


def build_line_items(
    expense: ExpenseRecord, receipt: ExtractedReceipt, items: list[NormalizedItem]
) -> list[ReceiptLineItem]:
    store = receipt.store or expense.item.strip() or "Unknown"
    when = purchase_date(receipt, expense)
    return [
        ReceiptLineItem(
            expense_id=expense.id,
            item_name=item_name(item),
            quantity=item.quantity,
            quantity_unit=item.quantity_unit,
            unit_price=item.unit_price,
            total_price=item.total_price,
            store=store,
            purchase_date=when,
        )
        for item in items
    ]


class ReceiptCommitter:
    """Replaces an expense's line items and marks it completed."""

    def __init__(self, items: ReceiptItemDB) -> None:
        self._items = items

    def commit(
        self,
        expense: ExpenseRecord,
        receipt: ExtractedReceipt,
        items: list[NormalizedItem],
        lock_token: str,
    ) -> int:
        """Write ``items`` for ``expense`` and release the lock as completed.

        The item replace and the status change share one transaction, so a
        lost lock leaves both untouched.

        Returns:
            Number of line items written.

        Raises:
            LockLost: ``lock_token`` no longer owns the expense.
        """
        rows = build_line_items(expense, receipt, items)
        if not self._items.replace_and_complete(expense.id, rows, lock_token):
            raise LockLost(f"Expense {expense.id} is no longer processing")
        count = len(rows)

        logger.info("Saved %d receipt items for expense %s", count, expense.id)
        return count
