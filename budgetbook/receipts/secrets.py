"""Secret lookup capability injected into every adapter."""

from __future__ import annotations

import os
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from .db.schema import ensure_schema
from .errors import SecretNotFound

if TYPE_CHECKING:
    from .config import ReceiptsConfig


class SecretStore(ABC):
    """Look up credentials by name."""

    @abstractmethod
    def get(self, name: str) -> str:
        """Return the secret value.

        Raises:
            SecretNotFound: If the secret is missing or empty.
        """
        ...

    def close(self) -> None:
        pass


class EnvSecretStore(SecretStore):
    """Secrets from process environment variables, read at lookup time."""

    def __init__(self, prefix: str = "") -> None:
        self._prefix = prefix

    def get(self, name: str) -> str:
        value = os.environ.get(f"{self._prefix}{name}", "")
        if not value:
            raise SecretNotFound(name)
        return value


class MappingSecretStore(SecretStore):
    """Secrets from an in-memory mapping."""

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values = dict(values or {})

    def get(self, name: str) -> str:
        value = self._values.get(name, "")
        if not value:
            raise SecretNotFound(name)
        return str(value)


class DatabaseSecretStore(SecretStore):
    """Secrets from the ``app_secrets`` table."""

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

    def get(self, name: str) -> str:
        row = self._get_conn().execute(
            "SELECT value FROM app_secrets WHERE name = ?", (name,)
        ).fetchone()
        if row is None or not row["value"]:
            raise SecretNotFound(name)
        return str(row["value"])

    def put(self, name: str, value: str) -> None:
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO app_secrets (name, value) VALUES (?, ?)
               ON CONFLICT(name) DO UPDATE SET value = excluded.value""",
            (name, value),
        )
        conn.commit()


def create_secret_store(config: ReceiptsConfig) -> SecretStore:
    """Create the secret store selected by ``[secrets] source``."""
    source = config.secrets.source

    match source:
        case "env":
            return EnvSecretStore()
        case "database":
            return DatabaseSecretStore(config.database.path)
        case _:
            raise ValueError(
                f"Unknown secret source: {source!r} (choose env or database)"
            )
