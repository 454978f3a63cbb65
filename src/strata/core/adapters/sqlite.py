"""SQLite database adapter."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from strata.core.errors import DatabaseConnectionError, IntegrityError, QueryError
from strata.core.protocols import Params

from .base import DatabaseAdapter, RunResult
from .types import DatabaseConfig, DatabaseType


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite database adapter.

    Uses the built-in sqlite3 module in autocommit mode
    (``isolation_level=None``); transaction boundaries are issued
    explicitly by :class:`~strata.core.transaction.Transaction`, which is
    what lets DDL take part in migration transactions.
    """

    def __init__(
        self,
        path: str = ":memory:",
        *,
        timeout: float = 5.0,
        **kwargs: Any,
    ):
        config = DatabaseConfig(
            db_type=DatabaseType.SQLITE,
            path=path,
            options=kwargs,
        )
        super().__init__(config)
        self._timeout = timeout
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Connect to SQLite database."""
        if self._conn is not None:
            return
        path = self._config.path or ":memory:"
        uri = path.startswith("file:")
        if path != ":memory:" and not uri:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = sqlite3.connect(
                path,
                timeout=self._timeout,
                isolation_level=None,
                uri=uri,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._connected = True
        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to SQLite: {e}",
                cause=e,
            ) from e

    def disconnect(self) -> None:
        """Close SQLite connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._connected = False

    def get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    @property
    def server_version(self) -> tuple[int, ...]:
        return sqlite3.sqlite_version_info

    @property
    def in_transaction(self) -> bool:
        return self._conn is not None and self._conn.in_transaction

    def _run(self, sql: str, params: Params, fetch: bool) -> RunResult:
        conn = self.get_connection()
        try:
            cursor = conn.execute(sql, params)
            rows = [dict(row) for row in cursor.fetchall()] if fetch else None
        except sqlite3.IntegrityError as e:
            raise IntegrityError(str(e), cause=e).with_context(sql=sql) from e
        except sqlite3.Error as e:
            raise QueryError(str(e), cause=e).with_context(sql=sql) from e
        return RunResult(rowcount=cursor.rowcount, lastrowid=cursor.lastrowid, rows=rows)

    def begin(self) -> None:
        self.execute("BEGIN")

    def commit(self) -> None:
        self.execute("COMMIT")

    def rollback(self) -> None:
        self.execute("ROLLBACK")


__all__ = [
    "SQLiteAdapter",
]
