"""SQL dialect abstraction for the mapper and the schema manager.

Every fragment of engine-specific SQL lives here: placeholders, identifier
quoting, insert-ignore and upsert statements, column definitions, and the
introspection queries used to diff a live schema against declarations.
Callers above this module work only with :class:`~strata.core.orm.types.ColumnSpec`.

Manifesto:
    - **One interface:** ``Dialect`` protocol for all SQL generation
    - **Closed vocabulary:** Seven storage types, one definition each per dialect
    - **Explicit gaps:** Operations an engine cannot do are reported by
      ``supports_*`` checks, never silently skipped

Architecture::

    ┌──────────────────────────────────────────────────────────────────┐
    │                Record / EAV / Junction / Schema                   │
    └──────────────────────────────────────────────────────────────────┘
                              │  ColumnSpec, table/column names
                              ▼
            ┌───────────────────────┐   ┌───────────────────────────┐
            │ SQLiteDialect         │   │ MySQLDialect              │
            │ ?  "ident"            │   │ %s  `ident`               │
            │ INSERT OR IGNORE      │   │ INSERT IGNORE             │
            │ ON CONFLICT DO UPDATE │   │ ON DUPLICATE KEY UPDATE   │
            │ CREATE UNIQUE INDEX   │   │ inline UNIQUE constraints │
            │ PRAGMA table_info     │   │ information_schema        │
            └───────────────────────┘   └───────────────────────────┘

Examples:
    >>> from strata.core.dialect import get_dialect
    >>> from strata.core.orm.types import ColumnSpec, StorageType
    >>> d = get_dialect("sqlite")
    >>> d.placeholders(3)
    '?, ?, ?'
    >>> d.column_definition(ColumnSpec(StorageType.INT))
    'INTEGER NOT NULL DEFAULT 0'

Tags:
    dialect, sql, ddl, sqlite, mysql, strata

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

from .errors import UnsupportedOperationError
from .orm.types import ColumnSpec, StorageType

# Native column types reported by either engine, mapped back to storage types.
NATIVE_TYPES: dict[str, StorageType] = {
    "BOOLEAN": StorageType.BOOL,
    "BOOL": StorageType.BOOL,
    "TINYINT(1)": StorageType.BOOL,
    "BIGINT": StorageType.INT,
    "INTEGER": StorageType.INT,
    "INT": StorageType.INT,
    "DOUBLE PRECISION": StorageType.FLOAT,
    "DOUBLE": StorageType.FLOAT,
    "REAL": StorageType.FLOAT,
    "VARCHAR(255)": StorageType.STRING,
    "TEXT": StorageType.TEXT,
    "BLOB": StorageType.BLOB,
    "LONGBLOB": StorageType.BLOB,
    "DATETIME": StorageType.DATETIME,
}

_INT_DISPLAY_WIDTH = re.compile(r"^(BIGINT|INT|INTEGER)\(\d+\)")


def native_storage_type(native: str) -> StorageType | None:
    """Map an engine-reported column type onto a storage type.

    Returns ``None`` for types this package never emits.
    """
    key = _INT_DISPLAY_WIDTH.sub(r"\1", native.strip().upper())
    key = key.replace(" UNSIGNED", "")
    return NATIVE_TYPES.get(key)


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a SQL fragment or statement valid for the target
    engine.  Statements use the dialect's own placeholder style.
    """

    @property
    def name(self) -> str:
        """Dialect name (``'sqlite'`` or ``'mysql'``)."""
        ...

    # -- Placeholders / identifiers -----------------------------------------

    def placeholder(self) -> str: ...

    def placeholders(self, count: int) -> str: ...

    def quote_identifier(self, name: str) -> str: ...

    # -- DML ------------------------------------------------------------------

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        """Insert that silently skips primary/unique key collisions."""
        ...

    def upsert(self, table: str, columns: list[str], key_columns: list[str]) -> str:
        """Insert that updates the non-key columns on key collision."""
        ...

    # -- DDL ------------------------------------------------------------------

    def column_definition(self, spec: ColumnSpec) -> str:
        """Type, nullability and default for a non-autoincrement column."""
        ...

    def added_column_definition(self, spec: ColumnSpec) -> str:
        """Like :meth:`column_definition`, for ``ALTER TABLE ... ADD COLUMN``."""
        ...

    def autoincrement_definition(self) -> str: ...

    @property
    def inline_unique_constraints(self) -> bool:
        """Whether unique keys are declared inside ``CREATE TABLE``."""
        ...

    def add_unique_key(self, table: str, name: str, columns: list[str]) -> str: ...

    def drop_unique_key(self, table: str, name: str) -> str: ...

    def rename_table(self, old: str, new: str) -> str: ...

    def supports_drop_column(self, server_version: tuple[int, ...]) -> bool: ...

    def supports_foreign_key_alter(self) -> bool: ...

    def drop_foreign_key(self, table: str, name: str) -> str: ...

    # -- Introspection --------------------------------------------------------

    def table_names_query(self) -> str: ...

    def column_info_query(self) -> str:
        """Query taking the table name as its one parameter.

        Rows carry ``name``, ``native_type`` and ``nullable``.
        """
        ...


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class SQLiteDialect:
    """SQLite dialect: ``?`` placeholders, ``"double-quoted"`` identifiers."""

    _DEFINITIONS = {
        StorageType.BOOL: ("BOOLEAN", "0"),
        StorageType.INT: ("INTEGER", "0"),
        StorageType.FLOAT: ("DOUBLE PRECISION", "0"),
        StorageType.DATETIME: ("DATETIME", "CURRENT_TIMESTAMP"),
        StorageType.STRING: ("VARCHAR(255)", "''"),
        StorageType.TEXT: ("TEXT", "''"),
        StorageType.BLOB: ("BLOB", "X''"),
    }

    @property
    def name(self) -> str:
        return "sqlite"

    def placeholder(self) -> str:
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    # -- DML ---------------------------------------------------------------

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(self.quote_identifier(c) for c in columns)
        ph = self.placeholders(len(columns))
        return f"INSERT OR IGNORE INTO {self.quote_identifier(table)} ({cols}) VALUES ({ph})"

    def upsert(self, table: str, columns: list[str], key_columns: list[str]) -> str:
        q = self.quote_identifier
        cols = ", ".join(q(c) for c in columns)
        ph = self.placeholders(len(columns))
        keys = ", ".join(q(c) for c in key_columns)
        updates = ", ".join(f"{q(c)} = excluded.{q(c)}" for c in columns if c not in key_columns)
        return (
            f"INSERT INTO {q(table)} ({cols}) VALUES ({ph}) "
            f"ON CONFLICT ({keys}) DO UPDATE SET {updates}"
        )

    # -- DDL ---------------------------------------------------------------

    def column_definition(self, spec: ColumnSpec) -> str:
        native, default = self._DEFINITIONS[spec.type]
        if spec.nullable:
            return f"{native} DEFAULT NULL"
        return f"{native} NOT NULL DEFAULT {default}"

    def added_column_definition(self, spec: ColumnSpec) -> str:
        # existing rows need a constant default
        if spec.type is StorageType.DATETIME and not spec.nullable:
            return "DATETIME NOT NULL DEFAULT '1970-01-01 00:00:00'"
        return self.column_definition(spec)

    def autoincrement_definition(self) -> str:
        return "INTEGER PRIMARY KEY AUTOINCREMENT"

    @property
    def inline_unique_constraints(self) -> bool:
        return False

    def add_unique_key(self, table: str, name: str, columns: list[str]) -> str:
        cols = ", ".join(self.quote_identifier(c) for c in columns)
        return f"CREATE UNIQUE INDEX {self.quote_identifier(name)} ON {self.quote_identifier(table)} ({cols})"

    def drop_unique_key(self, table: str, name: str) -> str:  # noqa: ARG002
        return f"DROP INDEX {self.quote_identifier(name)}"

    def rename_table(self, old: str, new: str) -> str:
        return f"ALTER TABLE {self.quote_identifier(old)} RENAME TO {self.quote_identifier(new)}"

    def supports_drop_column(self, server_version: tuple[int, ...]) -> bool:
        return tuple(server_version) >= (3, 35, 0)

    def supports_foreign_key_alter(self) -> bool:
        return False

    def drop_foreign_key(self, table: str, name: str) -> str:
        raise UnsupportedOperationError("drop_foreign_key", self.name)

    # -- Introspection -----------------------------------------------------

    def table_names_query(self) -> str:
        return "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"

    def column_info_query(self) -> str:
        return (
            "SELECT name AS name, type AS native_type, "
            "CASE WHEN \"notnull\" = 0 AND pk = 0 THEN 1 ELSE 0 END AS nullable "
            "FROM pragma_table_info(?) ORDER BY cid"
        )


class MySQLDialect:
    """MySQL / MariaDB dialect: ``%s`` placeholders, backtick identifiers.

    Compatible with ``mysql.connector`` (``format`` paramstyle).  ``TEXT``
    and ``LONGBLOB`` columns carry no literal default, which the engine
    rejects.
    """

    _DEFINITIONS = {
        StorageType.BOOL: ("BOOLEAN", "0"),
        StorageType.INT: ("BIGINT", "0"),
        StorageType.FLOAT: ("DOUBLE PRECISION", "0"),
        StorageType.DATETIME: ("DATETIME", "CURRENT_TIMESTAMP"),
        StorageType.STRING: ("VARCHAR(255)", "''"),
        StorageType.TEXT: ("TEXT", None),
        StorageType.BLOB: ("LONGBLOB", None),
    }

    @property
    def name(self) -> str:
        return "mysql"

    def placeholder(self) -> str:
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def quote_identifier(self, name: str) -> str:
        return "`" + name.replace("`", "``") + "`"

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(self.quote_identifier(c) for c in columns)
        ph = self.placeholders(len(columns))
        return f"INSERT IGNORE INTO {self.quote_identifier(table)} ({cols}) VALUES ({ph})"

    def upsert(self, table: str, columns: list[str], key_columns: list[str]) -> str:
        q = self.quote_identifier
        cols = ", ".join(q(c) for c in columns)
        ph = self.placeholders(len(columns))
        updates = ", ".join(f"{q(c)} = VALUES({q(c)})" for c in columns if c not in key_columns)
        return (
            f"INSERT INTO {q(table)} ({cols}) VALUES ({ph}) "
            f"ON DUPLICATE KEY UPDATE {updates}"
        )

    def column_definition(self, spec: ColumnSpec) -> str:
        native, default = self._DEFINITIONS[spec.type]
        if spec.nullable:
            return f"{native} NULL DEFAULT NULL"
        if default is None:
            return f"{native} NOT NULL"
        return f"{native} NOT NULL DEFAULT {default}"

    def added_column_definition(self, spec: ColumnSpec) -> str:
        return self.column_definition(spec)

    def autoincrement_definition(self) -> str:
        return "BIGINT NOT NULL PRIMARY KEY AUTO_INCREMENT"

    @property
    def inline_unique_constraints(self) -> bool:
        return True

    def add_unique_key(self, table: str, name: str, columns: list[str]) -> str:
        cols = ", ".join(self.quote_identifier(c) for c in columns)
        return (
            f"ALTER TABLE {self.quote_identifier(table)} "
            f"ADD CONSTRAINT {self.quote_identifier(name)} UNIQUE ({cols})"
        )

    def drop_unique_key(self, table: str, name: str) -> str:
        return f"ALTER TABLE {self.quote_identifier(table)} DROP INDEX {self.quote_identifier(name)}"

    def rename_table(self, old: str, new: str) -> str:
        return f"RENAME TABLE {self.quote_identifier(old)} TO {self.quote_identifier(new)}"

    def supports_drop_column(self, server_version: tuple[int, ...]) -> bool:  # noqa: ARG002
        return True

    def supports_foreign_key_alter(self) -> bool:
        return True

    def drop_foreign_key(self, table: str, name: str) -> str:
        return f"ALTER TABLE {self.quote_identifier(table)} DROP FOREIGN KEY {self.quote_identifier(name)}"

    def table_names_query(self) -> str:
        return (
            "SELECT TABLE_NAME AS name FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = DATABASE() ORDER BY TABLE_NAME"
        )

    def column_info_query(self) -> str:
        return (
            "SELECT COLUMN_NAME AS name, UPPER(COLUMN_TYPE) AS native_type, "
            "IS_NULLABLE = 'YES' AS nullable "
            "FROM information_schema.COLUMNS "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s ORDER BY ORDINAL_POSITION"
        )


# =========================================================================
# Registry / Factory
# =========================================================================

_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "mysql": MySQLDialect(),
    "mariadb": MySQLDialect(),  # alias
}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by name.

    Raises:
        ValueError: If ``db_type`` is not recognised.
    """
    key = db_type.lower()
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{db_type}'. Supported: {sorted(set(_DIALECTS) - {'mariadb'})}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation (test doubles, forks)."""
    _DIALECTS[name.lower()] = dialect


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "MySQLDialect",
    "NATIVE_TYPES",
    "native_storage_type",
    "get_dialect",
    "register_dialect",
]
