"""Receipt line item storage."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from ..models import ProcessingStatus, ReceiptLineItem
from .expenses import _FINISH_SQL
from .schema import ensure_schema


class ReceiptItemDB:
    """Manages the receipt_items table."""

    def __init__(self, db_path: str | Path = "~/.config/budgetbook/budget.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def replace_items(self, expense_id: str, items: list[ReceiptLineItem]) -> int:
        """Delete every item of the expense and insert ``items`` in one transaction.

        Returns:
            Number of inserted rows.
        """
        conn = self._get_conn()
        with conn:
            _write_items(conn, expense_id, items)
        return len(items)

    def replace_and_complete(
        self, expense_id: str, items: list[ReceiptLineItem], lock_token: str
    ) -> bool:
        """Replace the expense's items and mark it completed, atomically.

        Nothing is written unless ``lock_token`` still owns the expense.

        Returns:
            False if the lock was lost; the items are left untouched.
        """
        conn = self._get_conn()
        with conn:
            cur = conn.execute(
                _FINISH_SQL,
                (ProcessingStatus.COMPLETED.value, None, 1, expense_id, lock_token),
            )
            if cur.rowcount != 1:
                return False
            _write_items(conn, expense_id, items)
        return True

    def list_items(self, expense_id: str) -> list[dict]:
        """Return the items of an expense in insertion order."""
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT * FROM receipt_items WHERE expense_id = ? ORDER BY id",
            (expense_id,),
        ).fetchall()
        return [dict(r) for r in rows]


def _write_items(
    conn: sqlite3.Connection, expense_id: str, items: list[ReceiptLineItem]
) -> None:
    conn.execute("DELETE FROM receipt_items WHERE expense_id = ?", (expense_id,))
    conn.executemany(
        """INSERT INTO receipt_items
           (expense_id, item_name, quantity, quantity_unit,
            unit_price, total_price, store, purchase_date)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        [
            (
                expense_id,
                item.item_name,
                item.quantity,
                item.quantity_unit,
                item.unit_price,
                item.total_price,
                item.store,
                item.purchase_date,
            )
            for item in items
        ],
    )
