"""Extraction backend base classes and factories."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..models import ExtractedReceipt

if TYPE_CHECKING:
    import httpx

    from ..config import ReceiptsConfig
    from ..pointer import ResolvedImage
    from ..secrets import SecretStore


class TextExtractor(ABC):
    """Abstract base for OCR: receipt image in, plain text out."""

    @abstractmethod
    async def extract_text(self, image: ResolvedImage) -> str:
        """Return the receipt text.

        Raises:
            ExtractionUnavailable: The upstream service failed.
            ExtractionEmpty: No usable text was recognised.
            ConfigurationError: Credentials are missing.
        """
        ...


class StructuredExtractor(ABC):
    """Abstract base for turning receipt text or an image into a receipt object.

    Backends that can read images set ``supports_images`` and override
    ``extract_from_image``. Callers check the flag first; the pipeline falls
    back to OCR plus ``extract_from_text`` when it is False.
    """

    supports_images: bool = False

    @abstractmethod
    async def extract_from_text(self, text: str) -> ExtractedReceipt:
        ...

    async def extract_from_image(self, image: ResolvedImage) -> ExtractedReceipt:
        """Only called when ``supports_images`` is True."""
        raise NotImplementedError(
            f"{type(self).__name__} cannot read images directly"
        )


def create_text_extractor(
    config: ReceiptsConfig,
    secrets: SecretStore,
    http_client: httpx.AsyncClient | None = None,
) -> TextExtractor:
    """Create the OCR backend selected by ``[ocr] backend``."""
    backend_name = config.ocr.backend

    match backend_name:
        case "ocr_space":
            from .ocr_space import OCRSpaceExtractor

            return OCRSpaceExtractor(
                secrets,
                endpoint=config.ocr.endpoint,
                language=config.ocr.language,
                engine=config.ocr.engine,
                timeout_s=config.ocr.timeout_s,
                http_client=http_client,
            )
        case _:
            raise ValueError(
                f"Unknown OCR backend: {backend_name!r} (choose ocr_space)"
            )


def create_structured_extractor(
    config: ReceiptsConfig, secrets: SecretStore
) -> StructuredExtractor:
    """Create the structured-extraction backend selected by ``[structured] backend``."""
    backend_name = config.structured.backend

    match backend_name:
        case "gemini":
            from .gemini import GeminiReceiptExtractor

            return GeminiReceiptExtractor(
                secrets,
                model=config.structured.gemini.model,
            )
        case "claude":
            from .claude import ClaudeReceiptExtractor

            return ClaudeReceiptExtractor(
                secrets,
                model=config.structured.claude.model,
            )
        case _:
            raise ValueError(
                f"Unknown structured extraction backend: {backend_name!r} "
                f"(choose gemini or claude)"
            )


__all__ = [
    "StructuredExtractor",
    "TextExtractor",
    "create_structured_extractor",
    "create_text_extractor",
]
