"""
Schema control and introspection.

:class:`Schema` turns portable :class:`~strata.core.orm.types.ColumnSpec`
definitions into DDL through the connection's dialect, and reads live
column metadata back so migrations can be generated and verified.

Manifesto:
    - **Stable DDL:** Columns are emitted in :func:`column_sort_key` order and
      constraints carry deterministic names, so the same logical schema
      always produces the same statements.
    - **Named constraints:** ``PK_<table>__<cols>``, ``UQ_<table>__<cols>``,
      ``FK_<table>__<col>`` (columns sorted, ``__``-joined).
    - **Say no loudly:** Operations the engine cannot perform raise
      :class:`~strata.core.errors.UnsupportedOperationError`.

Architecture::

    Migrator / MigrationGenerator / user code
                    │  ColumnSpec, TableConstraints
                    ▼
                 Schema  ──────►  Dialect (DDL fragments)
                    │
                    ▼
              Database.execute

Examples:
    >>> schema = db.schema
    >>> schema.create_table("tags", {
    ...     "id": ColumnSpec.autoincrement(),
    ...     "label": ColumnSpec(StorageType.STRING, index=IndexRole.UNIQUE),
    ... })
    >>> schema.get_column_info("tags")["label"].type
    <StorageType.STRING: 'string'>

Tags:
    schema, ddl, migrations, introspection, strata

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from .dialect import native_storage_type
from .errors import AccessError, SchemaError, UnsupportedOperationError
from .logging import get_logger
from .orm.metadata import EntityDescriptor, JunctionDescriptor, describe_junction, describe_record
from .orm.sql import ColumnRef
from .orm.table import Table
from .orm.types import ColumnSpec, IndexRole, StorageType, sort_columns

if TYPE_CHECKING:
    from .database import Database

logger = get_logger(__name__)


@dataclass(frozen=True)
class ColumnInfo:
    """A live column as the engine reports it.

    ``type`` is ``None`` when the native type is outside the storage
    vocabulary (a table not created by strata).
    """

    name: str
    type: StorageType | None
    native_type: str
    nullable: bool

    @property
    def spec(self) -> ColumnSpec | None:
        if self.type is None:
            return None
        return ColumnSpec(self.type, nullable=self.nullable)


@dataclass(frozen=True)
class TableConstraints:
    """Table-level constraints for :meth:`Schema.create_table`.

    Attributes:
        primary: Columns composing a multi-column primary key.
        unique: Groups of columns unique together.
        foreign: Local column → referenced column.
    """

    primary: Sequence[str] = ()
    unique: Sequence[Sequence[str]] = ()
    foreign: Mapping[str, ColumnRef] = field(default_factory=lambda: MappingProxyType({}))


def primary_key_name(table: str, columns: Iterable[str]) -> str:
    return f"PK_{table}__" + "__".join(sorted(columns))


def unique_key_name(table: str, columns: Iterable[str]) -> str:
    return f"UQ_{table}__" + "__".join(sorted(columns))


def foreign_key_name(table: str, column: str) -> str:
    return f"FK_{table}__{column}"


class Schema(Mapping[str, Table]):
    """DDL and introspection for one database.

    Reading ``schema["authors"]`` returns a read-only :class:`Table`
    (``KeyError`` when it does not exist); assignment and deletion raise
    :class:`AccessError`.
    """

    def __init__(self, db: Database):
        self.db = db
        self._tables: dict[str, Table] = {}

    @property
    def dialect(self):
        return self.db.dialect

    def _q(self, name: str) -> str:
        return self.dialect.quote_identifier(name)

    def _exec(self, sql: str, params: Sequence[Any] = ()) -> None:
        self.db.execute(sql, params)

    def _forget(self, *tables: str) -> None:
        for table in tables:
            self._tables.pop(table, None)

    def clear_cache(self) -> None:
        """Forget cached table views (after a rollback undid DDL)."""
        self._tables.clear()

    # -- Mapping access -----------------------------------------------------

    def __getitem__(self, name: str) -> Table:
        table = self.get_table(name)
        if table is None:
            raise KeyError(name)
        return table

    def __setitem__(self, name: str, value: Any) -> None:
        raise AccessError("The schema cannot be altered by assignment")

    def __delitem__(self, name: str) -> None:
        raise AccessError("The schema cannot be altered by deletion")

    def __iter__(self) -> Iterator[str]:
        return iter(self.table_names())

    def __len__(self) -> int:
        return len(self.table_names())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get_table(name) is not None

    # -- Introspection ------------------------------------------------------

    def table_names(self) -> list[str]:
        return [row["name"] for row in self.db.query(self.dialect.table_names_query())]

    def get_column_info(self, table: str) -> dict[str, ColumnInfo]:
        """Live columns of ``table`` in ordinal order (empty when missing)."""
        info: dict[str, ColumnInfo] = {}
        for row in self.db.query(self.dialect.column_info_query(), (table,)):
            native = str(row["native_type"] or "")
            info[row["name"]] = ColumnInfo(
                name=row["name"],
                type=native_storage_type(native),
                native_type=native,
                nullable=bool(row["nullable"]),
            )
        return info

    def get_table(self, name: str) -> Table | None:
        table = self._tables.get(name)
        if table is None:
            columns = self.get_column_info(name)
            if not columns:
                return None
            table = self._tables[name] = Table(self.db, name, columns)
        return table

    # -- Tables ---------------------------------------------------------------

    def create_table(
        self,
        table: str,
        columns: Mapping[str, ColumnSpec],
        constraints: TableConstraints | None = None,
    ) -> Schema:
        """``CREATE TABLE`` with sorted columns and named constraints.

        Primary-role columns plus ``constraints.primary`` form one primary
        key.  Unique keys are declared inline where the dialect allows it,
        otherwise created right after the table as named unique indexes.

        Raises:
            SchemaError: No columns, or an autoincrement column combined
                with another primary key.
        """
        if not columns:
            raise SchemaError(f"Table {table!r} needs at least one column").with_context(table=table)
        constraints = constraints or TableConstraints()
        ordered = sort_columns(dict(columns))

        definitions: list[str] = []
        autoincrement: list[str] = []
        primary: list[str] = []
        unique: list[list[str]] = []
        for name, spec in ordered:
            if spec.index is IndexRole.AUTOINCREMENT:
                autoincrement.append(name)
                definitions.append(f"{self._q(name)} {self.dialect.autoincrement_definition()}")
                continue
            definitions.append(f"{self._q(name)} {self.dialect.column_definition(spec)}")
            if spec.index is IndexRole.PRIMARY:
                primary.append(name)
            elif spec.index is IndexRole.UNIQUE:
                unique.append([name])

        primary.extend(c for c in constraints.primary if c not in primary)
        unique.extend(list(group) for group in constraints.unique)
        if autoincrement and (primary or len(autoincrement) > 1):
            raise SchemaError(
                f"Table {table!r} cannot combine an autoincrement column with another primary key"
            ).with_context(table=table)

        if primary:
            cols = ", ".join(self._q(c) for c in primary)
            definitions.append(f"CONSTRAINT {self._q(primary_key_name(table, primary))} PRIMARY KEY ({cols})")
        if self.dialect.inline_unique_constraints:
            for group in unique:
                cols = ", ".join(self._q(c) for c in group)
                definitions.append(f"CONSTRAINT {self._q(unique_key_name(table, group))} UNIQUE ({cols})")
        for local, target in constraints.foreign.items():
            spec = columns.get(local)
            if spec is None:
                raise SchemaError(
                    f"Foreign key column {local!r} is not a column of {table!r}"
                ).with_context(table=table, column=local)
            definitions.append(self._foreign_key_clause(table, local, spec, target))

        self._exec(f"CREATE TABLE {self._q(table)} (" + ", ".join(definitions) + ")")
        if not self.dialect.inline_unique_constraints:
            for group in unique:
                self._exec(self.dialect.add_unique_key(table, unique_key_name(table, group), group))
        self._forget(table)
        logger.info("schema.table_created", table=table, columns=[name for name, _ in ordered])
        return self

    def _foreign_key_clause(self, table: str, local: str, spec: ColumnSpec, target: ColumnRef) -> str:
        on_delete = "SET NULL" if spec.nullable else "CASCADE"
        return (
            f"CONSTRAINT {self._q(foreign_key_name(table, local))} FOREIGN KEY ({self._q(local)}) "
            f"REFERENCES {self._q(target.qualifier or '')}({self._q(target.name)}) "
            f"ON UPDATE CASCADE ON DELETE {on_delete}"
        )

    def drop_table(self, table: str) -> Schema:
        self._exec(f"DROP TABLE IF EXISTS {self._q(table)}")
        self._forget(table)
        logger.info("schema.table_dropped", table=table)
        return self

    def rename_table(self, old: str, new: str) -> Schema:
        self._exec(self.dialect.rename_table(old, new))
        self._forget(old, new)
        return self

    # -- Convenience builders -------------------------------------------------

    def create_record_table(self, record: type | EntityDescriptor) -> Schema:
        """Table for a ``@record`` class: its columns, unique groups and foreign keys."""
        descriptor = record if isinstance(record, EntityDescriptor) else describe_record(record)
        foreign = {
            column: ColumnRef(self.dialect, describe_record(target).table, "id")
            for column, target in descriptor.foreign.items()
        }
        return self.create_table(
            descriptor.table,
            descriptor.column_specs(),
            TableConstraints(unique=tuple(descriptor.unique_groups.values()), foreign=foreign),
        )

    def create_eav_table(self, record: type | EntityDescriptor, property: str) -> Schema:  # noqa: A002
        """Attribute table for one EAV field of a ``@record`` class."""
        descriptor = record if isinstance(record, EntityDescriptor) else describe_record(record)
        try:
            eav = descriptor.eav[property]
        except KeyError:
            raise SchemaError(
                f"{descriptor.cls.__name__} has no attribute-overflow field {property!r}"
            ).with_context(entity=descriptor.cls.__name__) from None
        return self.create_table(
            eav.table,
            eav_columns(eav.value_type),
            TableConstraints(foreign={"entity": ColumnRef(self.dialect, descriptor.table, "id")}),
        )

    def create_junction_table(self, junction: type | JunctionDescriptor) -> Schema:
        """Link table: every column a non-null primary-key part referencing its record."""
        descriptor = junction if isinstance(junction, JunctionDescriptor) else describe_junction(junction)
        foreign = {
            column: ColumnRef(self.dialect, describe_record(target).table, "id")
            for column, target in descriptor.foreign.items()
        }
        return self.create_table(descriptor.table, descriptor.column_specs(), TableConstraints(foreign=foreign))

    # -- Columns --------------------------------------------------------------

    def add_column(self, table: str, column: str, spec: ColumnSpec | None = None) -> Schema:
        """``ALTER TABLE ... ADD COLUMN`` (nullable string by default).

        Index roles are ignored here; add unique keys with :meth:`add_unique_key`.
        """
        spec = spec or ColumnSpec(StorageType.STRING, nullable=True)
        if spec.index is IndexRole.AUTOINCREMENT or spec.index is IndexRole.PRIMARY:
            raise SchemaError(
                f"Cannot add {spec.index.value} column {column!r} to existing table {table!r}"
            ).with_context(table=table, column=column)
        self._exec(
            f"ALTER TABLE {self._q(table)} ADD COLUMN {self._q(column)} {self.dialect.added_column_definition(spec)}"
        )
        self._forget(table)
        return self

    def drop_column(self, table: str, column: str) -> Schema:
        if not self.dialect.supports_drop_column(self.db.server_version):
            raise UnsupportedOperationError(
                "drop_column",
                self.dialect.name,
                f"{self.dialect.name} {'.'.join(map(str, self.db.server_version))} cannot drop columns",
            )
        self._exec(f"ALTER TABLE {self._q(table)} DROP COLUMN {self._q(column)}")
        self._forget(table)
        return self

    def rename_column(self, table: str, old: str, new: str) -> Schema:
        self._exec(f"ALTER TABLE {self._q(table)} RENAME COLUMN {self._q(old)} TO {self._q(new)}")
        self._forget(table)
        return self

    # -- Keys -----------------------------------------------------------------

    def add_unique_key(self, table: str, columns: Sequence[str]) -> Schema:
        self._exec(self.dialect.add_unique_key(table, unique_key_name(table, columns), list(columns)))
        return self

    def drop_unique_key(self, table: str, columns: Sequence[str]) -> Schema:
        self._exec(self.dialect.drop_unique_key(table, unique_key_name(table, columns)))
        return self

    def add_foreign_key(self, table: str, column: str, target: ColumnRef, *, nullable: bool = False) -> Schema:
        """Add ``FK_<table>__<column>`` referencing ``target`` (MySQL only)."""
        if not self.dialect.supports_foreign_key_alter():
            raise UnsupportedOperationError("add_foreign_key", self.dialect.name)
        spec = ColumnSpec(StorageType.INT, nullable=nullable)
        self._exec(f"ALTER TABLE {self._q(table)} ADD {self._foreign_key_clause(table, column, spec, target)}")
        return self

    def drop_foreign_key(self, table: str, column: str) -> Schema:
        """Drop ``FK_<table>__<column>`` (MySQL only)."""
        if not self.dialect.supports_foreign_key_alter():
            raise UnsupportedOperationError("drop_foreign_key", self.dialect.name)
        self._exec(self.dialect.drop_foreign_key(table, foreign_key_name(table, column)))
        return self


def eav_columns(value_type: StorageType) -> dict[str, ColumnSpec]:
    return {
        "entity": ColumnSpec(StorageType.INT, index=IndexRole.PRIMARY),
        "attribute": ColumnSpec(StorageType.STRING, index=IndexRole.PRIMARY),
        "value": ColumnSpec(value_type),
    }


__all__ = [
    "ColumnInfo",
    "Schema",
    "TableConstraints",
    "eav_columns",
    "primary_key_name",
    "unique_key_name",
    "foreign_key_name",
]
