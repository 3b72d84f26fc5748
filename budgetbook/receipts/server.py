"""HTTP trigger surface for webhooks and client calls."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import ReceiptsConfig, load_config
from .errors import InvalidTriggerPayload
from .models import ProcessOutcome
from .pipeline import ReceiptProcessor
from .trigger import resolve_expense_id

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ProcessOutcome.NOOP: 200,
    ProcessOutcome.SKIPPED: 200,
    ProcessOutcome.COMPLETED: 200,
    ProcessOutcome.RETRYABLE: 503,
    ProcessOutcome.FAILED: 502,
    ProcessOutcome.CONFIG_ERROR: 500,
}


def create_app(
    config: ReceiptsConfig | None = None,
    processor_factory: Callable[[], ReceiptProcessor] | None = None,
) -> FastAPI:
    """Build the app.

    Each request gets its own processor (and database connections) from
    ``processor_factory``; the default wires one from ``config``.
    """
    if config is None:
        config = load_config()
    if processor_factory is None:
        def processor_factory() -> ReceiptProcessor:
            return ReceiptProcessor.from_config(config)

    app = FastAPI(title="Budgetbook Receipt Processing", version="0.1.0")

    @app.get("/healthz")
    def healthz() -> dict:
        return {"status": "ok"}

    @app.post("/process-receipt")
    async def process_receipt(request: Request) -> JSONResponse:
        try:
            payload = json.loads(await request.body() or b"{}")
            expense_id = resolve_expense_id(payload)
        except (ValueError, InvalidTriggerPayload) as e:
            return JSONResponse({"success": False, "error": str(e) or "Invalid JSON"}, status_code=400)

        processor = processor_factory()
        try:
            result = await processor.process(expense_id)
        finally:
            processor.close()

        logger.info("process-receipt %s -> %s", expense_id, result.outcome.value)
        return JSONResponse(result.to_dict(), status_code=STATUS_CODES[result.outcome])

    return app
