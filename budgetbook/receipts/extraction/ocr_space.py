"""OCR.Space text extraction backend."""

from __future__ import annotations

import logging

import httpx

from ..errors import ExtractionEmpty, ExtractionUnavailable
from ..http import http_session
from ..pointer import ResolvedImage
from ..secrets import SecretStore
from . import TextExtractor

logger = logging.getLogger(__name__)

_MIN_TEXT_LENGTH = 10


class OCRSpaceExtractor(TextExtractor):
    """Read receipt text with the OCR.Space ``parse/image`` endpoint."""

    def __init__(
        self,
        secrets: SecretStore,
        *,
        endpoint: str = "https://api.ocr.space/parse/image",
        language: str = "eng",
        engine: int = 2,
        timeout_s: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._secrets = secrets
        self._endpoint = endpoint
        self._language = language
        self._engine = engine
        self._timeout_s = timeout_s
        self._http_client = http_client

    async def extract_text(self, image: ResolvedImage) -> str:
        api_key = self._secrets.get("OCR_SPACE_API_KEY")

        form = {
            "apikey": api_key,
            "language": self._language,
            "isOverlayRequired": "false",
            "OCREngine": str(self._engine),
        }
        if image.is_inline:
            form["base64Image"] = image.data_uri()
        elif image.url:
            form["url"] = image.url
        else:
            raise ExtractionUnavailable("No image data or URL to send to OCR")

        try:
            async with http_session(self._http_client, self._timeout_s) as client:
                resp = await client.post(self._endpoint, data=form)
        except httpx.HTTPError as e:
            raise ExtractionUnavailable(f"OCR request failed: {e}") from e

        if resp.status_code >= 400:
            raise ExtractionUnavailable(f"OCR API error: HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            raise ExtractionUnavailable("OCR API returned a non-JSON body") from e

        if body.get("IsErroredOnProcessing"):
            message = body.get("ErrorMessage") or "unknown error"
            if isinstance(message, list):
                message = "; ".join(str(m) for m in message)
            raise ExtractionUnavailable(f"OCR API error: {message}")

        results = body.get("ParsedResults") or []
        text = ""
        if results and isinstance(results[0], dict):
            text = str(results[0].get("ParsedText") or "")

        if len(text.strip()) < _MIN_TEXT_LENGTH:
            raise ExtractionEmpty("No text detected in receipt image")

        logger.debug("OCR returned %d characters", len(text))
        return text
