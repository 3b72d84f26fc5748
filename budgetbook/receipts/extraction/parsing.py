"""Prompts and JSON recovery shared by the language-model backends."""

from __future__ import annotations

import json
import re
from typing import Any

from ..errors import NonJsonResponse
from ..models import ExtractedReceipt

_SCHEMA = """\
{
  "store": "store/merchant name",
  "date": "YYYY-MM-DD format",
  "total": number,
  "items": [
    {
      "raw_description": "exact line item text from receipt",
      "description": "cleaned, normalized grocery item name",
      "quantity": number,
      "quantity_unit": "lb|kg|oz|g|ct|ea|gal|qt|pt|l|ml",
      "unit_price": number,
      "total_price": number
    }
  ]
}"""

_RULES = """\
Rules:
- Return ONLY JSON (no markdown)
- Extract ALL line items from the receipt
- Normalize items: remove store codes, abbreviations, and extra whitespace
- Keep brand if it's important for identifying the item
- quantity_unit must be one of the allowed values (default "ea")
- If weight-based item is detected (e.g. "0.66 lb"), set quantity=0.66 and quantity_unit="lb"
- For non-weight items, quantity=1 and quantity_unit="ea" unless explicit
- Prices should be numbers without currency symbols"""

TEXT_PROMPT = f"""\
You are given OCR text extracted from a grocery receipt. Extract receipt data and return ONLY valid JSON.

Return JSON in this exact schema:
{_SCHEMA}

{_RULES}

OCR TEXT:
"""

IMAGE_PROMPT = f"""\
Analyze this grocery receipt image. Extract receipt data and return ONLY valid JSON.

Return JSON in this exact schema:
{_SCHEMA}

{_RULES}
"""

_FENCED = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def text_prompt(ocr_text: str) -> str:
    return TEXT_PROMPT + ocr_text


def parse_receipt_json(text: str) -> dict[str, Any]:
    """Recover the JSON object from a model response.

    Tries, in order: the text with code fences stripped, the span from the
    first ``{`` to the last ``}``, and that span with trailing commas removed.

    Raises:
        NonJsonResponse: If no JSON object can be recovered.
    """
    cleaned = _strip_fences(text or "")

    candidates = [cleaned]
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        span = cleaned[start : end + 1]
        candidates.append(span)
        candidates.append(_TRAILING_COMMA.sub(r"\1", span))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data

    preview = " ".join(cleaned.split())[:120]
    raise NonJsonResponse(f"Model did not return a JSON object: {preview!r}")


def receipt_from_response(text: str) -> ExtractedReceipt:
    return ExtractedReceipt.from_dict(parse_receipt_json(text))


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    m = _FENCED.search(cleaned)
    if m:
        return m.group(1).strip()
    # Unterminated fence
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned.strip()
