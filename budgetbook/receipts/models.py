"""Data models shared across the receipt pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProcessingStatus(str, Enum):
    UNSET = "unset"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @classmethod
    def from_db(cls, value: str | None) -> "ProcessingStatus":
        if not value:
            return cls.UNSET
        try:
            return cls(value)
        except ValueError:
            return cls.UNSET


@dataclass
class ExpenseRecord:
    """The subset of a budget expense row the pipeline reads."""

    id: str
    item: str = ""
    category: str = ""
    year: int | None = None
    month: int | None = None
    day: int | None = None
    receipt: Any = None
    has_receipt: bool = False
    receipt_scanned: bool = False
    processing_status: ProcessingStatus = ProcessingStatus.UNSET
    processing_error: str | None = None

    @property
    def expense_date(self) -> str | None:
        """ISO date built from year/month/day, or None if any part is missing."""
        if not (self.year and self.month and self.day):
            return None
        return f"{int(self.year):04d}-{int(self.month):02d}-{int(self.day):02d}"


@dataclass
class ExtractedReceipt:
    """Structured extraction result before normalization.

    ``items`` holds the raw item mappings exactly as the extractor produced
    them (``raw_description``, ``description``, ``quantity``,
    ``quantity_unit``, ``unit_price``, ``total_price``).
    """

    store: str = ""
    date: str = ""
    total: float | None = None
    items: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtractedReceipt":
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raw_items = []

        total = data.get("total")
        if isinstance(total, bool) or not isinstance(total, (int, float)):
            total = None

        return cls(
            store=str(data.get("store") or "").strip(),
            date=str(data.get("date") or "").strip(),
            total=float(total) if total is not None else None,
            items=[item for item in raw_items if isinstance(item, dict)],
        )


@dataclass
class NormalizedItem:
    description: str
    quantity: float = 1.0
    quantity_unit: str = "ea"
    unit_price: float = 0.0
    total_price: float = 0.0
    raw_description: str = ""


@dataclass
class ReceiptLineItem:
    """A row of the ``receipt_items`` table."""

    expense_id: str
    item_name: str
    quantity: float
    quantity_unit: str
    unit_price: float
    total_price: float
    store: str
    purchase_date: str | None = None


class ProcessOutcome(str, Enum):
    NOOP = "noop"
    SKIPPED = "skipped"
    RETRYABLE = "retryable"
    COMPLETED = "completed"
    FAILED = "failed"
    CONFIG_ERROR = "config_error"


_SUCCESS_OUTCOMES = {ProcessOutcome.NOOP, ProcessOutcome.SKIPPED, ProcessOutcome.COMPLETED}


@dataclass
class ProcessResult:
    outcome: ProcessOutcome
    expense_id: str
    message: str = ""
    items_count: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome in _SUCCESS_OUTCOMES

    @property
    def retryable(self) -> bool:
        return self.outcome is ProcessOutcome.RETRYABLE

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "outcome": self.outcome.value,
            "expense_id": self.expense_id,
            "message": self.message,
            "items_count": self.items_count,
            "error": self.error,
            "retryable": self.retryable,
        }
