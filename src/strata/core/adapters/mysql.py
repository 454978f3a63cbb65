"""MySQL database adapter.

Uses ``mysql.connector`` from the ``mysql-connector-python`` package.
MySQL uses **format** (``%s``) placeholder style.

Install the driver::

    pip install mysql-connector-python
    # or:  pip install strata[mysql]

This adapter is import-guarded: if ``mysql.connector`` is not installed
a clear :class:`~strata.core.errors.ConfigError` is raised at
``connect()`` time.

DDL statements commit implicitly on MySQL, so a failing migration batch
cannot undo DDL that already ran; :class:`~strata.core.transaction.Transaction`
detects the closed transaction and logs it instead of issuing a stale
``RELEASE SAVEPOINT``.
"""

from __future__ import annotations

from typing import Any

from strata.core.errors import (
    ConfigError,
    DatabaseConnectionError,
    IntegrityError,
    QueryError,
)
from strata.core.protocols import Params

from .base import DatabaseAdapter, RunResult
from .types import DatabaseConfig, DatabaseType


class MySQLAdapter(DatabaseAdapter):
    """MySQL / MariaDB database adapter over one autocommit connection."""

    escape_backslashes = True

    def __init__(
        self,
        host: str = "localhost",
        port: int = 3306,
        database: str = "",
        username: str | None = None,
        password: str | None = None,
        *,
        charset: str = "utf8mb4",
        **kwargs: Any,
    ):
        config = DatabaseConfig(
            db_type=DatabaseType.MYSQL,
            host=host,
            port=port,
            database=database,
            username=username,
            password=password,
            options={**(kwargs or {}), "charset": charset},
        )
        super().__init__(config)
        self._conn: Any = None
        self._errors: Any = None

    def connect(self) -> None:
        """Connect to MySQL database."""
        if self._conn is not None:
            return
        try:
            import mysql.connector
        except ImportError:
            raise ConfigError(
                "mysql-connector-python is required for MySQL. "
                "Install with: pip install mysql-connector-python"
            ) from None

        self._errors = mysql.connector.errors
        try:
            self._conn = mysql.connector.connect(
                host=self._config.host,
                port=self._config.port,
                database=self._config.database,
                user=self._config.username,
                password=self._config.password,
                charset=self._config.options.get("charset", "utf8mb4"),
                connect_timeout=self._config.connect_timeout,
                autocommit=True,
            )
            self._connected = True
        except mysql.connector.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to MySQL: {e}",
                cause=e,
            ) from e

    def disconnect(self) -> None:
        """Close MySQL connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._connected = False

    def get_connection(self) -> Any:
        if self._conn is None:
            self.connect()
        return self._conn

    @property
    def server_version(self) -> tuple[int, ...]:
        return tuple(self.get_connection().get_server_version() or ())

    @property
    def in_transaction(self) -> bool:
        return self._conn is not None and bool(self._conn.in_transaction)

    def _run(self, sql: str, params: Params, fetch: bool) -> RunResult:
        conn = self.get_connection()
        cursor = conn.cursor(dictionary=True, buffered=True)
        try:
            cursor.execute(sql, params or None)
            rows = list(cursor.fetchall()) if fetch else None
            return RunResult(rowcount=cursor.rowcount, lastrowid=cursor.lastrowid, rows=rows)
        except self._errors.IntegrityError as e:
            raise IntegrityError(str(e), cause=e).with_context(sql=sql) from e
        except self._errors.Error as e:
            raise QueryError(str(e), cause=e).with_context(sql=sql) from e
        finally:
            cursor.close()

    def begin(self) -> None:
        self.get_connection().start_transaction()

    def commit(self) -> None:
        self.get_connection().commit()

    def rollback(self) -> None:
        self.get_connection().rollback()


__all__ = [
    "MySQLAdapter",
]
