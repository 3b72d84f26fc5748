"""Tests for the HTTP trigger surface."""

import pytest
from fastapi.testclient import TestClient

from budgetbook.receipts.config import load_config
from budgetbook.receipts.errors import ExtractionUnavailable
from budgetbook.receipts.server import create_app

from conftest import DATA_URI, FakeStructuredExtractor

RECEIPT = {"url": DATA_URI}


@pytest.fixture
def client_for(make_processor, db_path):
    def _client(structured=None):
        config = load_config()
        config.database.path = str(db_path)
        app = create_app(config, processor_factory=lambda: make_processor(structured))
        return TestClient(app)

    return _client


def _seed(expenses, expense_id="e1", category="Groceries", **kwargs):
    kwargs.setdefault("receipt", RECEIPT)
    expenses.add_expense(expense_id, category=category, year=2025, month=1, day=1, **kwargs)


def test_healthz(client_for):
    resp = client_for().get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_completed(client_for, expenses):
    _seed(expenses)
    resp = client_for().post("/process-receipt", json={"expense_id": "e1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["outcome"] == "completed"
    assert body["items_count"] == 2


def test_webhook_record_shape(client_for, expenses):
    _seed(expenses)
    resp = client_for().post(
        "/process-receipt",
        json={"type": "INSERT", "table": "expenses", "record": {"id": "e1"}},
    )
    assert resp.status_code == 200
    assert resp.json()["expense_id"] == "e1"


def test_noop_is_success(client_for, expenses):
    _seed(expenses, status="completed", receipt_scanned=True)
    resp = client_for().post("/process-receipt", json={"expense_id": "e1"})
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "noop"


def test_skipped(client_for, expenses):
    _seed(expenses, category="Entertainment")
    resp = client_for().post("/process-receipt", json={"expense_id": "e1"})
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "skipped"


def test_retryable_is_503(client_for, expenses):
    _seed(expenses, receipt=None, has_receipt=True)
    resp = client_for().post("/process-receipt", json={"expense_id": "e1"})
    assert resp.status_code == 503
    assert resp.json()["retryable"] is True


def test_failed_is_502(client_for, expenses):
    _seed(expenses)
    structured = FakeStructuredExtractor(ExtractionUnavailable("down"))
    resp = client_for(structured).post("/process-receipt", json={"expense_id": "e1"})
    assert resp.status_code == 502
    assert resp.json()["success"] is False
    assert "down" in resp.json()["error"]


def test_config_error_is_500(client_for, expenses):
    _seed(expenses, receipt={"storage": "primary-blob", "bucket": "b", "path": "p.jpg"})
    resp = client_for().post("/process-receipt", json={"expense_id": "e1"})
    assert resp.status_code == 500
    assert resp.json()["outcome"] == "config_error"


def test_missing_expense_id_is_400(client_for):
    resp = client_for().post("/process-receipt", json={"foo": "bar"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_invalid_json_is_400(client_for):
    resp = client_for().post(
        "/process-receipt", content=b"not json", headers={"content-type": "application/json"}
    )
    assert resp.status_code == 400
