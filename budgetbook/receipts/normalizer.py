"""Line-item normalization for structured receipt extraction.

Everything here is pure: raw item mappings in, ``NormalizedItem`` values out.

Scale-weighed produce usually prints as two receipt lines, the item name
followed by a weight-detail line such as ``0.690 lb @ 1 lb /0.50``. The
detail line has no name of its own, so it is folded into the item before it.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from .models import NormalizedItem

_NUMBER = re.compile(r"-?(?:\d+(?:\.\d+)?|\.\d+)")
_THOUSANDS = re.compile(r"(?<=\d),(?=\d{3}(?!\d))")
_WEIGHT_TOKEN = re.compile(r"(?<![a-z])(?:lbs?|kg|oz|g)(?![a-z])", re.IGNORECASE)
_QUANTITY_UNIT = re.compile(r"(\d+(?:\.\d+)?|\.\d+)\s*(lbs?|kg|oz|g)(?![a-z])", re.IGNORECASE)
_PER_UNIT_PRICE = re.compile(r"/\s*\$?(\d+(?:\.\d+)?|\.\d+)")
_AT_PRICE = re.compile(r"@\s*\$?(\d+(?:\.\d+)?|\.\d+)")
_NUMERIC_TOKEN = re.compile(r"\d+(?:\.\d+)?|\.\d+")

# Minimum gap between the last number and the unit price for the last number
# to count as a line total.
_TOTAL_EPSILON = 0.001


@dataclass
class WeightDetail:
    quantity: float
    unit: str | None
    unit_price: float
    line_total: float | None = None


def parse_number(value: Any) -> float:
    """Coerce ``value`` to a float, or NaN.

    Strings yield the first signed decimal found in them, so ``"$3.49"``
    becomes ``3.49``. Booleans and non-finite numbers are NaN.
    """
    if value is None or isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else math.nan
    m = _NUMBER.search(_THOUSANDS.sub("", str(value)))
    if not m:
        return math.nan
    return float(m.group(0))


def round_money(value: float) -> float:
    """Round half-up to cents, as printed on a receipt."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _item_text(raw: dict[str, Any]) -> str:
    return str(raw.get("raw_description") or raw.get("description") or "").strip()


def _is_positive(value: float) -> bool:
    return math.isfinite(value) and value > 0


def parse_weight_detail(text: str) -> WeightDetail | None:
    """Parse a weight-detail line, or return None if ``text`` is not one.

    The line total is the last number on the line, but only when it differs
    from the unit price; ``0.69 lb @ 1 lb /0.50`` therefore has no total.
    Lines carrying more numbers than that (a count and a weight, say) can be
    misread; this is a best-effort heuristic.
    """
    if "@" not in text and "/" not in text:
        return None

    qu = _QUANTITY_UNIT.search(text)
    quantity = float(qu.group(1)) if qu else math.nan
    unit = _canonical_unit(qu.group(2)) if qu else None

    per_unit = _PER_UNIT_PRICE.findall(text)
    if per_unit:
        unit_price = float(per_unit[-1])
    else:
        at = _AT_PRICE.search(text)
        unit_price = float(at.group(1)) if at else math.nan

    if not _is_positive(quantity) or not math.isfinite(unit_price):
        return None

    line_total = None
    numbers = _NUMERIC_TOKEN.findall(text)
    if numbers:
        last = float(numbers[-1])
        if abs(last - unit_price) > _TOTAL_EPSILON:
            line_total = last

    return WeightDetail(
        quantity=quantity, unit=unit, unit_price=unit_price, line_total=line_total
    )


def _canonical_unit(unit: str) -> str:
    unit = unit.lower()
    return "lb" if unit == "lbs" else unit


def _merge_detail(previous: NormalizedItem, detail: WeightDetail) -> None:
    previous.quantity = detail.quantity
    previous.quantity_unit = detail.unit or previous.quantity_unit or "ea"
    previous.unit_price = detail.unit_price

    if detail.line_total is not None:
        previous.total_price = round_money(detail.line_total)
    elif not previous.total_price:
        previous.total_price = round_money(detail.quantity * detail.unit_price)


def normalize_item(raw: dict[str, Any]) -> NormalizedItem:
    """Normalize one standalone item, back-filling whichever price is missing."""
    quantity = parse_number(raw.get("quantity"))
    if not _is_positive(quantity):
        quantity = 1.0

    unit = str(raw.get("quantity_unit") or "").strip().lower() or "ea"

    unit_price = parse_number(raw.get("unit_price"))
    if not math.isfinite(unit_price) or unit_price < 0:
        unit_price = 0.0

    total_price = parse_number(raw.get("total_price"))
    if not math.isfinite(total_price) or total_price < 0:
        total_price = 0.0

    if total_price == 0 and unit_price > 0:
        total_price = round_money(quantity * unit_price)
    elif unit_price == 0 and total_price > 0:
        unit_price = round_money(total_price / quantity)

    raw_description = " ".join(str(raw.get("raw_description") or "").split())
    description = (
        " ".join(str(raw.get("description") or "").split())
        or raw_description
        or "Unknown Item"
    )

    return NormalizedItem(
        description=description,
        quantity=quantity,
        quantity_unit=unit,
        unit_price=unit_price,
        total_price=total_price,
        raw_description=raw_description,
    )


def normalize_items(raw_items: Iterable[Any]) -> list[NormalizedItem]:
    """Normalize extracted items in order, merging weight-detail lines.

    Every numeric field of the result is finite and non-negative, and every
    quantity is positive.
    """
    out: list[NormalizedItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue

        text = _item_text(raw)
        if out and _WEIGHT_TOKEN.search(text):
            detail = parse_weight_detail(text)
            if detail is not None:
                _merge_detail(out[-1], detail)
                continue

        out.append(normalize_item(raw))
    return out
