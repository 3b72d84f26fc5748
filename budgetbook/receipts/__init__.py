"""Receipt processing: extract grocery line items from expense receipts."""

from .config import ReceiptsConfig, load_config
from .errors import (
    ConfigurationError,
    ExtractionEmpty,
    ExtractionUnavailable,
    InvalidTriggerPayload,
    LockLost,
    NoItemsFound,
    NonJsonResponse,
    PointerNotReady,
    PointerResolutionError,
    ReceiptPipelineError,
    SecretNotFound,
    TransientError,
)
from .models import (
    ExpenseRecord,
    ExtractedReceipt,
    NormalizedItem,
    ProcessOutcome,
    ProcessResult,
    ProcessingStatus,
    ReceiptLineItem,
)
from .normalizer import normalize_items
from .pipeline import ReceiptProcessor
from .pointer import PointerResolver, parse_receipt_pointer
from .trigger import resolve_expense_id

__all__ = [
    "ConfigurationError",
    "ExpenseRecord",
    "ExtractedReceipt",
    "ExtractionEmpty",
    "ExtractionUnavailable",
    "InvalidTriggerPayload",
    "LockLost",
    "NoItemsFound",
    "NonJsonResponse",
    "NormalizedItem",
    "PointerNotReady",
    "PointerResolutionError",
    "PointerResolver",
    "ProcessOutcome",
    "ProcessResult",
    "ProcessingStatus",
    "ReceiptLineItem",
    "ReceiptPipelineError",
    "ReceiptProcessor",
    "ReceiptsConfig",
    "SecretNotFound",
    "TransientError",
    "load_config",
    "normalize_items",
    "parse_receipt_pointer",
    "resolve_expense_id",
]
