"""Database adapter base class.

Manifesto:
    Every adapter shares the same lifecycle (connect/disconnect), statement
    logging, prepared-statement wrapper, literal quoting and error
    translation.  Concrete adapters only supply the driver calls, so the
    mapper sees one :class:`~strata.core.protocols.Driver` shape and one
    error hierarchy regardless of engine.

Features:
    - Abstract ``connect()``, ``disconnect()`` and ``_run()``
    - ``execute()`` / ``query()`` / ``prepare()`` with debug logging
    - Driver exceptions wrapped as ``QueryError`` / ``IntegrityError``
    - Context-manager protocol for connection lifecycle

Tags:
    strata, database, abstract-base, adapter-pattern

Doc-Types:
    api-reference
"""

from __future__ import annotations

import datetime as dt
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from strata.core.dialect import Dialect, get_dialect
from strata.core.logging import get_logger
from strata.core.protocols import Params

from .types import DatabaseConfig, DatabaseType

logger = get_logger(__name__)


@dataclass
class RunResult:
    """What one driver round-trip produced."""

    rowcount: int
    lastrowid: int | None
    rows: list[dict[str, Any]] | None = None


class PreparedStatement:
    """Statement text bound to an adapter.

    Both drivers cache compiled statements by text, so holding the SQL is
    enough to reuse the engine's plan.
    """

    def __init__(self, adapter: DatabaseAdapter, sql: str):
        self.sql = sql
        self._adapter = adapter

    def execute(self, params: Params = ()) -> int:
        return self._adapter.execute(self.sql, params)

    def query(self, params: Params = ()) -> list[dict[str, Any]]:
        return self._adapter.query(self.sql, params)

    def __repr__(self) -> str:
        return f"PreparedStatement({self.sql!r})"


class DatabaseAdapter(ABC):
    """
    Abstract base class for database adapters.

    Provides common functionality and defines the interface
    that all adapters must implement.
    """

    #: Whether string literals need backslashes doubled.
    escape_backslashes = False

    def __init__(self, config: DatabaseConfig):
        self._config = config
        self._connected = False
        self._dialect: Dialect = get_dialect(config.db_type.value)
        self._last_insert_id = 0

    @property
    def dialect(self) -> Dialect:
        """SQL dialect for this adapter's database type."""
        return self._dialect

    @property
    def db_type(self) -> DatabaseType:
        return self._config.db_type

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._connected

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to database."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        """Close connection to database."""
        ...

    @property
    @abstractmethod
    def server_version(self) -> tuple[int, ...]: ...

    @property
    @abstractmethod
    def in_transaction(self) -> bool:
        """Whether the engine currently has an open transaction."""
        ...

    @abstractmethod
    def _run(self, sql: str, params: Params, fetch: bool) -> RunResult:
        """Execute one statement on the driver, translating driver errors."""
        ...

    @abstractmethod
    def begin(self) -> None: ...

    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...

    # -- Statements ---------------------------------------------------------

    def execute(self, sql: str, params: Params = ()) -> int:
        """Execute a statement and return the affected row count."""
        logger.debug("sql.execute", sql=sql, params=_loggable(params))
        result = self._run(sql, params, fetch=False)
        if result.lastrowid:
            self._last_insert_id = result.lastrowid
        return max(result.rowcount, 0)

    def query(self, sql: str, params: Params = ()) -> list[dict[str, Any]]:
        """Execute a query and return rows as dicts."""
        logger.debug("sql.query", sql=sql, params=_loggable(params))
        result = self._run(sql, params, fetch=True)
        return result.rows or []

    def query_one(self, sql: str, params: Params = ()) -> dict[str, Any] | None:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def prepare(self, sql: str) -> PreparedStatement:
        return PreparedStatement(self, sql)

    def last_insert_id(self) -> int:
        return self._last_insert_id

    def quote(self, value: Any) -> str:
        """Render a Python scalar as a SQL literal."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, int | float):
            return repr(value)
        if isinstance(value, bytes | bytearray | memoryview):
            return "X'" + bytes(value).hex().upper() + "'"
        if isinstance(value, dt.datetime):
            value = value.strftime("%Y-%m-%d %H:%M:%S")
        text = str(value)
        if self.escape_backslashes:
            text = text.replace("\\", "\\\\")
        return "'" + text.replace("'", "''") + "'"

    def __enter__(self) -> DatabaseAdapter:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()


def _loggable(params: Params) -> Any:
    """Truncate blob parameters so debug logs stay readable."""
    if isinstance(params, dict):
        return {k: _short(v) for k, v in params.items()}
    return [_short(v) for v in params]


def _short(value: Any) -> Any:
    if isinstance(value, bytes | bytearray):
        return f"<{len(value)} bytes>"
    return value


__all__ = [
    "DatabaseAdapter",
    "PreparedStatement",
    "RunResult",
]
