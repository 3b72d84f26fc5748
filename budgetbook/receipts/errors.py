"""Exception taxonomy for the receipt pipeline."""

from __future__ import annotations


class ReceiptPipelineError(Exception):
    """Base class for every error raised by the receipt pipeline."""


class ConfigurationError(ReceiptPipelineError):
    """Required credentials or configuration are missing. Never retried."""


class SecretNotFound(ConfigurationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Missing secret: {name}")
        self.name = name


class PointerNotReady(ReceiptPipelineError):
    """The expense has no usable receipt pointer yet."""


class LockLost(ReceiptPipelineError):
    """The expense stopped being 'processing' under this attempt."""


class InvalidTriggerPayload(ReceiptPipelineError, ValueError):
    """A trigger payload did not carry an expense identifier."""


class TransientError(ReceiptPipelineError):
    """An upstream failure that is retried within the attempt budget."""


class PointerResolutionError(TransientError):
    """A stored pointer could not be turned into a fetchable image."""


class ExtractionUnavailable(TransientError):
    """An extraction service failed or could not be reached."""


class ExtractionEmpty(TransientError):
    """OCR returned no usable text."""


class NonJsonResponse(TransientError):
    """The structured extractor answered with something that is not a JSON object."""


class NoItemsFound(TransientError):
    """Structured extraction succeeded but produced zero line items."""


def describe_error(exc: BaseException) -> str:
    """Render an exception as ``"<Type>: <message>"`` for storage on the record."""
    message = str(exc).strip()
    name = type(exc).__name__
    return f"{name}: {message}" if message else name


def truncate_error(message: str, limit: int = 500) -> str:
    message = " ".join(message.split())
    if len(message) <= limit:
        return message
    return message[: max(limit - 3, 0)] + "..."
