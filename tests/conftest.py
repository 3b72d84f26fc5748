"""Shared fixtures: a temporary database and in-memory extraction backends."""

import base64

import pytest

from budgetbook.receipts.config import PipelineConfig
from budgetbook.receipts.db import ExpenseDB, ReceiptItemDB
from budgetbook.receipts.extraction import StructuredExtractor, TextExtractor
from budgetbook.receipts.models import ExtractedReceipt
from budgetbook.receipts.pipeline import ReceiptProcessor
from budgetbook.receipts.pointer import PointerResolver
from budgetbook.receipts.secrets import MappingSecretStore

DATA_URI = "data:image/jpeg;base64," + base64.b64encode(b"fake-jpeg").decode()

GROCERY_RECEIPT = ExtractedReceipt(
    store="Safeway",
    date="2025-02-01",
    total=7.48,
    items=[
        {"description": "Milk", "quantity": 1, "unit_price": 3.99, "total_price": 3.99},
        {"description": "Bread", "quantity": 1, "unit_price": 3.49, "total_price": 3.49},
    ],
)


class FakeTextExtractor(TextExtractor):
    def __init__(self, text="SAFEWAY\nMILK 3.99\nBREAD 3.49", error=None):
        self.text = text
        self.error = error
        self.calls = 0

    async def extract_text(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.text


class FakeStructuredExtractor(StructuredExtractor):
    """Returns (or raises) the queued results in order; the last one repeats."""

    def __init__(self, *results, supports_images=True, on_call=None):
        self.results = list(results) or [GROCERY_RECEIPT]
        self.supports_images = supports_images
        self.on_call = on_call
        self.text_calls = 0
        self.image_calls = 0

    @property
    def calls(self):
        return self.text_calls + self.image_calls

    def _next(self):
        if self.on_call is not None:
            self.on_call(self.calls)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def extract_from_text(self, text):
        self.text_calls += 1
        return self._next()

    async def extract_from_image(self, image):
        self.image_calls += 1
        return self._next()


class SleepRecorder:
    def __init__(self, on_sleep=None):
        self.delays = []
        self.on_sleep = on_sleep

    async def __call__(self, delay):
        self.delays.append(round(delay, 4))
        if self.on_sleep is not None:
            self.on_sleep(len(self.delays))


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "budget.db"


@pytest.fixture
def expenses(db_path):
    """ExpenseDB used by tests to seed and inspect rows."""
    db = ExpenseDB(db_path)
    yield db
    db.close()


@pytest.fixture
def items_db(db_path):
    db = ReceiptItemDB(db_path)
    yield db
    db.close()


@pytest.fixture
def make_processor(db_path):
    """Build ReceiptProcessors against the temporary database."""
    created = []

    def _make(
        structured=None,
        text=None,
        *,
        sleep=None,
        secrets=None,
        items=None,
        mode="ocr",
        **settings,
    ):
        processor = ReceiptProcessor(
            ExpenseDB(db_path),
            items or ReceiptItemDB(db_path),
            PointerResolver(secrets or MappingSecretStore()),
            structured or FakeStructuredExtractor(),
            text or FakeTextExtractor(),
            settings=PipelineConfig(**settings),
            mode=mode,
            sleep=sleep or SleepRecorder(),
        )
        created.append(processor)
        return processor

    yield _make
    for processor in created:
        processor.close()
