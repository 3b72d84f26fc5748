"""Expense id resolution for webhook and client trigger payloads."""

from __future__ import annotations

from typing import Any

from .errors import InvalidTriggerPayload

_DIRECT_KEYS = ("expense_id", "expenseId")
_NESTED_KEYS = ("record", "new", "new_record", "data")
_NESTED_ID_KEYS = ("id", "expense_id", "expenseId")


def _first_id(mapping: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = mapping.get(key)
        if value is None or isinstance(value, (dict, list, bool)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def resolve_expense_id(payload: Any) -> str:
    """Find the expense id in a trigger payload.

    Accepts a direct ``expense_id``/``expenseId``, a database-change webhook
    body with the row under ``record``, ``new``, ``new_record`` or ``data``,
    or a bare ``id``. The first non-empty match wins.

    Raises:
        InvalidTriggerPayload: No identifier was found.
    """
    if not isinstance(payload, dict):
        raise InvalidTriggerPayload("Trigger payload must be a JSON object")

    found = _first_id(payload, _DIRECT_KEYS)
    if found:
        return found

    for key in _NESTED_KEYS:
        nested = payload.get(key)
        if isinstance(nested, dict):
            found = _first_id(nested, _NESTED_ID_KEYS)
            if found:
                return found

    found = _first_id(payload, ("id",))
    if found:
        return found
    raise InvalidTriggerPayload("Missing expense_id")
