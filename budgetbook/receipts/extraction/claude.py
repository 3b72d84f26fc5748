"""Claude structured extraction backend."""

from __future__ import annotations

import logging

from ..errors import ConfigurationError, ExtractionUnavailable
from ..models import ExtractedReceipt
from ..pointer import ResolvedImage
from ..secrets import SecretStore
from . import StructuredExtractor
from .parsing import IMAGE_PROMPT, receipt_from_response, text_prompt

logger = logging.getLogger(__name__)


class ClaudeReceiptExtractor(StructuredExtractor):
    """Turn OCR text or a receipt image into JSON using Claude."""

    supports_images = True

    def __init__(
        self, secrets: SecretStore, model: str = "claude-sonnet-4-5-20250929"
    ) -> None:
        self._secrets = secrets
        self._model = model

    async def extract_from_text(self, text: str) -> ExtractedReceipt:
        return await self._create([{"type": "text", "text": text_prompt(text)}])

    async def extract_from_image(self, image: ResolvedImage) -> ExtractedReceipt:
        if image.is_inline:
            source = {
                "type": "base64",
                "media_type": image.mime_type,
                "data": image.base64(),
            }
        else:
            source = {"type": "url", "url": image.url}
        return await self._create(
            [
                {"type": "image", "source": source},
                {"type": "text", "text": IMAGE_PROMPT},
            ]
        )

    async def _create(self, content: list[dict]) -> ExtractedReceipt:
        api_key = self._secrets.get("ANTHROPIC_API_KEY")

        try:
            import anthropic
        except ImportError:
            raise ConfigurationError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        client = anthropic.AsyncAnthropic(api_key=api_key)
        try:
            response = await client.messages.create(
                model=self._model,
                max_tokens=4096,
                messages=[{"role": "user", "content": content}],
            )
        except Exception as e:
            raise ExtractionUnavailable(f"Claude request failed: {e}") from e

        text = response.content[0].text
        logger.debug("Claude (%s) returned %d characters", self._model, len(text))
        return receipt_from_response(text)
