"""
Driver boundary protocols for strata.

The mapping layer and the migration engine never touch ``sqlite3`` or
``mysql.connector`` directly.  They talk to a :class:`Driver`: a single
logical connection that executes statements, prepares reusable ones, and
exposes the transaction primitives the :class:`~strata.core.transaction.Transaction`
scope builds on.

Architecture:
    ::

        protocols.py
        ├── Statement  : prepared statement bound to one driver
        └── Driver     : execute / query / prepare / quote / transactions

    Implementations:
        adapters/sqlite.py (SQLiteAdapter), adapters/mysql.py (MySQLAdapter)

Guardrails:
    ❌ DON'T: Call ``commit()`` on a driver from mapper code
    ✅ DO: Open a ``Transaction`` via ``Database.begin()``

Tags:
    protocol, driver, connection, strata, contracts

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from .dialect import Dialect

Params = Sequence[Any] | Mapping[str, Any]


@runtime_checkable
class Statement(Protocol):
    """A prepared statement.

    ``params`` are positional for ``?``/``%s`` statements and a mapping for
    named (``:name``) statements.
    """

    sql: str

    def execute(self, params: Params = ()) -> int:
        """Run the statement and return the affected row count."""
        ...

    def query(self, params: Params = ()) -> list[dict[str, Any]]:
        """Run the statement and return rows as dicts."""
        ...


@runtime_checkable
class Driver(Protocol):
    """Single logical database connection."""

    @property
    def dialect(self) -> Dialect: ...

    @property
    def server_version(self) -> tuple[int, ...]: ...

    @property
    def in_transaction(self) -> bool:
        """Whether the engine has an open transaction right now."""
        ...

    def execute(self, sql: str, params: Params = ()) -> int:
        """Run a statement and return the affected row count."""
        ...

    def query(self, sql: str, params: Params = ()) -> list[dict[str, Any]]:
        """Run a query and return rows as dicts (column name → value)."""
        ...

    def prepare(self, sql: str) -> Statement: ...

    def quote(self, value: Any) -> str:
        """Render ``value`` as a SQL literal."""
        ...

    def last_insert_id(self) -> int: ...

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


__all__ = ["Params", "Statement", "Driver"]
