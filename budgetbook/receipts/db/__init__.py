"""SQLite storage for expenses, receipt line items and secrets."""

from .expenses import ExpenseDB
from .receipt_items import ReceiptItemDB
from .schema import ensure_schema

__all__ = [
    "ExpenseDB",
    "ReceiptItemDB",
    "ensure_schema",
]
