"""Gemini structured extraction backend."""

from __future__ import annotations

import logging

from ..errors import ConfigurationError, ExtractionUnavailable
from ..models import ExtractedReceipt
from ..pointer import ResolvedImage
from ..secrets import SecretStore
from . import StructuredExtractor
from .parsing import IMAGE_PROMPT, receipt_from_response, text_prompt

logger = logging.getLogger(__name__)


class GeminiReceiptExtractor(StructuredExtractor):
    """Turn OCR text or a receipt image into JSON using Google Gemini."""

    supports_images = True

    def __init__(self, secrets: SecretStore, model: str = "gemini-2.5-flash") -> None:
        self._secrets = secrets
        self._model = model

    async def extract_from_text(self, text: str) -> ExtractedReceipt:
        return await self._generate([text_prompt(text)])

    async def extract_from_image(self, image: ResolvedImage) -> ExtractedReceipt:
        image = await image.fetch()
        return await self._generate(
            [{"mime_type": image.mime_type, "data": image.data}, IMAGE_PROMPT]
        )

    async def _generate(self, parts: list) -> ExtractedReceipt:
        api_key = self._secrets.get("GEMINI_API_KEY")

        try:
            import google.generativeai as genai
        except ImportError:
            raise ConfigurationError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(
            self._model,
            generation_config={"temperature": 0.1, "max_output_tokens": 4096},
        )

        try:
            response = await model.generate_content_async(parts)
            text = response.text
        except Exception as e:
            raise ExtractionUnavailable(f"Gemini request failed: {e}") from e

        logger.debug("Gemini (%s) returned %d characters", self._model, len(text or ""))
        return receipt_from_response(text)
