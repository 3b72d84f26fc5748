"""Expense records and the processing-status lock."""

from __future__ import annotations

import json
import sqlite3
import uuid
from pathlib import Path
from typing import Any

from ..models import ExpenseRecord, ProcessingStatus
from .schema import ensure_schema

# Statuses from which a new attempt may take the lock
_ACQUIRABLE = ("", "unset", "pending", "failed")

# Releases the lock held by one attempt; a reclaimed lock carries a new token
_FINISH_SQL = """UPDATE expenses
   SET receipt_processing_status = ?,
       receipt_processing_error = ?,
       receipt_scanned = ?,
       processing_started_at = NULL,
       lock_token = NULL,
       updated_at = datetime('now')
   WHERE id = ?
     AND receipt_processing_status = 'processing'
     AND lock_token = ?"""


class ExpenseDB:
    """Manages the expenses table.

    Taking the lock stamps the row with a fresh token, and every later
    status write is a conditional update against that token. A worker whose
    lock was reclaimed as stale therefore cannot touch the new owner's row.
    """

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

    def add_expense(
        self,
        expense_id: str,
        *,
        item: str = "",
        category: str = "",
        amount: float | None = None,
        year: int | None = None,
        month: int | None = None,
        day: int | None = None,
        receipt: Any = None,
        has_receipt: bool | None = None,
        receipt_scanned: bool = False,
        status: str | None = None,
    ) -> None:
        """Insert an expense row. Structured receipts are stored as JSON."""
        conn = self._get_conn()
        if has_receipt is None:
            has_receipt = bool(receipt)
        conn.execute(
            """INSERT INTO expenses
               (id, item, category, amount, year, month, day, receipt,
                has_receipt, receipt_scanned, receipt_processing_status,
                processing_started_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                       CASE WHEN ? = 'processing' THEN datetime('now') END)""",
            (
                expense_id,
                item,
                category,
                amount,
                year,
                month,
                day,
                _encode_receipt(receipt),
                int(has_receipt),
                int(receipt_scanned),
                status,
                status,
            ),
        )
        conn.commit()

    def set_receipt(self, expense_id: str, receipt: Any) -> None:
        """Attach (or replace) the stored receipt pointer."""
        conn = self._get_conn()
        conn.execute(
            """UPDATE expenses
               SET receipt = ?, has_receipt = 1,
                   updated_at = datetime('now')
               WHERE id = ?""",
            (_encode_receipt(receipt), expense_id),
        )
        conn.commit()

    def get(self, expense_id: str) -> ExpenseRecord | None:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM expenses WHERE id = ?", (expense_id,)
        ).fetchone()
        if row is None:
            return None
        return ExpenseRecord(
            id=row["id"],
            item=row["item"] or "",
            category=row["category"] or "",
            year=row["year"],
            month=row["month"],
            day=row["day"],
            receipt=row["receipt"],
            has_receipt=bool(row["has_receipt"]),
            receipt_scanned=bool(row["receipt_scanned"]),
            processing_status=ProcessingStatus.from_db(row["receipt_processing_status"]),
            processing_error=row["receipt_processing_error"],
        )

    def try_acquire(
        self, expense_id: str, *, stale_after_s: int | None = 300
    ) -> str | None:
        """Move the expense to 'processing' if no other attempt owns it.

        Succeeds only for an expense that has a receipt, has not been
        scanned yet and is unset/pending/failed. A 'processing' lock older
        than ``stale_after_s`` seconds counts as abandoned and is taken over;
        pass None to never reclaim.

        Returns:
            The lock token identifying this attempt, or None if the lock
            was not taken.
        """
        conn = self._get_conn()
        placeholders = ", ".join("?" for _ in _ACQUIRABLE)
        token = uuid.uuid4().hex
        params: list[Any] = [token, expense_id, *_ACQUIRABLE]

        stale_clause = ""
        if stale_after_s is not None:
            stale_clause = """
                     OR (receipt_processing_status = 'processing'
                         AND (processing_started_at IS NULL
                              OR processing_started_at <= datetime('now', ?)))"""
            params.append(f"-{int(stale_after_s)} seconds")

        cur = conn.execute(
            f"""UPDATE expenses
               SET receipt_processing_status = 'processing',
                   receipt_processing_error = NULL,
                   processing_started_at = datetime('now'),
                   lock_token = ?,
                   updated_at = datetime('now')
               WHERE id = ?
                 AND has_receipt = 1
                 AND receipt_scanned = 0
                 AND (receipt_processing_status IS NULL
                      OR receipt_processing_status IN ({placeholders}){stale_clause})""",
            params,
        )
        conn.commit()
        return token if cur.rowcount == 1 else None

    def mark_skipped(self, expense_id: str, lock_token: str) -> bool:
        return self._finish(expense_id, lock_token, ProcessingStatus.SKIPPED, scanned=True)

    def mark_failed(self, expense_id: str, lock_token: str, error: str) -> bool:
        return self._finish(
            expense_id, lock_token, ProcessingStatus.FAILED, scanned=False, error=error
        )

    def mark_pending(self, expense_id: str, lock_token: str, error: str) -> bool:
        return self._finish(
            expense_id, lock_token, ProcessingStatus.PENDING, scanned=False, error=error
        )

    def _finish(
        self,
        expense_id: str,
        lock_token: str,
        status: ProcessingStatus,
        *,
        scanned: bool,
        error: str | None = None,
    ) -> bool:
        """Release the lock into ``status``.

        Returns:
            False if ``lock_token`` no longer owns the row (the lock was lost).
        """
        conn = self._get_conn()
        cur = conn.execute(_FINISH_SQL, (status.value, error, int(scanned), expense_id, lock_token))
        conn.commit()
        return cur.rowcount == 1

    def list_retryable(
        self,
        *,
        include_failed: bool = False,
        stale_after_s: int | None = 300,
        limit: int = 50,
    ) -> list[str]:
        """Return ids of expenses a scheduler should re-invoke, oldest first."""
        conn = self._get_conn()
        statuses = list(_ACQUIRABLE)
        if not include_failed:
            statuses.remove("failed")
        placeholders = ", ".join("?" for _ in statuses)
        params: list[Any] = list(statuses)

        stale_clause = ""
        if stale_after_s is not None:
            stale_clause = """
                      OR (receipt_processing_status = 'processing'
                          AND (processing_started_at IS NULL
                               OR processing_started_at <= datetime('now', ?)))"""
            params.append(f"-{int(stale_after_s)} seconds")
        params.append(limit)

        rows = conn.execute(
            f"""SELECT id FROM expenses
               WHERE has_receipt = 1
                 AND receipt_scanned = 0
                 AND (receipt_processing_status IS NULL
                      OR receipt_processing_status IN ({placeholders}){stale_clause})
               ORDER BY updated_at, id
               LIMIT ?""",
            params,
        ).fetchall()
        return [r["id"] for r in rows]


def _encode_receipt(receipt: Any) -> str | None:
    if receipt is None or isinstance(receipt, str):
        return receipt
    return json.dumps(receipt, ensure_ascii=False)
