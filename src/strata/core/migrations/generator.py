"""
Migration source generation from declarations.

Compares a ``@record`` or ``@junction`` class with the live schema and
writes a migration file whose ``up`` brings the database in line and whose
``down`` replays the inverse operations in reverse order.

Manifesto:
    Generated files are plain source checked into the repository.  They
    preserve history: regenerating later never rewrites an old migration,
    it only adds the next difference.

Output::

    migrations/20261019T120000123456Z_Author.py

    from strata.core.orm.types import ColumnSpec, IndexRole, StorageType
    from strata.core.schema import TableConstraints

    SEQUENCE = "20261019T120000123456Z"


    def up(schema):
        schema.create_table(
            "authors",
            {
                "id": ColumnSpec.autoincrement(),
                "name": ColumnSpec(StorageType.STRING, index=IndexRole.UNIQUE),
            },
        )


    def down(schema):
        schema.drop_table("authors")

Tags:
    migrations, codegen, schema-diff, strata

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from strata.core.logging import get_logger
from strata.core.orm.metadata import EntityDescriptor, describe_junction, describe_record
from strata.core.orm.types import ColumnSpec, IndexRole
from strata.core.schema import eav_columns

if TYPE_CHECKING:
    from strata.core.database import Database

logger = get_logger(__name__)

SEQUENCE_FORMAT = "%Y%m%dT%H%M%S%fZ"

_INDENT = "    "


@dataclass
class _Plan:
    up: list[str] = field(default_factory=list)
    down: list[str] = field(default_factory=list)

    def add(self, up: str, down: str) -> None:
        self.up.append(up)
        self.down.append(down)

    def __bool__(self) -> bool:
        return bool(self.up)


def spec_source(spec: ColumnSpec) -> str:
    """Python source that rebuilds ``spec``."""
    if spec.index is IndexRole.AUTOINCREMENT:
        return "ColumnSpec.autoincrement()"
    args = [f"StorageType.{spec.type.name}"]
    if spec.nullable:
        args.append("nullable=True")
    if spec.index is not IndexRole.NONE:
        args.append(f"index=IndexRole.{spec.index.name}")
    return f"ColumnSpec({', '.join(args)})"


def _columns_source(columns: dict[str, ColumnSpec]) -> str:
    inner = _INDENT * 3
    lines = "".join(f"{inner}{name!r}: {spec_source(spec)},\n" for name, spec in columns.items())
    return "{\n" + lines + _INDENT * 2 + "}"


def _constraints_source(unique: list[tuple[str, ...]], foreign: dict[str, str]) -> str | None:
    parts = []
    if unique:
        groups = ", ".join(repr(list(group)) for group in unique)
        parts.append(f"unique=[{groups}]")
    if foreign:
        refs = ", ".join(f"{col!r}: schema[{table!r}]['id']" for col, table in foreign.items())
        parts.append(f"foreign={{{refs}}}")
    if not parts:
        return None
    return f"TableConstraints({', '.join(parts)})"


def _create_table_source(table: str, columns: dict[str, ColumnSpec], constraints: str | None) -> str:
    args = [repr(table), _columns_source(columns)]
    if constraints:
        args.append(constraints)
    body = "".join(f"{_INDENT * 2}{arg},\n" for arg in args)
    return f"schema.create_table(\n{body}{_INDENT})"


class MigrationGenerator:
    """Writes migration files for declaration changes into ``directory``."""

    def __init__(self, db: Database, directory: Path | str):
        self.db = db
        self.directory = Path(directory)

    @property
    def schema(self):
        return self.db.schema

    def for_record(self, cls: type) -> Path | None:
        """Create or alter the record's table and its attribute tables.

        Returns the written file, or ``None`` when nothing changed.
        """
        descriptor = describe_record(cls)
        plan = _Plan()
        if self.schema.get_table(descriptor.table) is None:
            self._create_record(descriptor, plan)
        else:
            self._alter_record(descriptor, plan)
        self._create_eav(descriptor, plan)
        return self._write(cls.__name__, plan)

    def for_junction(self, cls: type) -> Path | None:
        """Create the junction table when it does not exist yet."""
        descriptor = describe_junction(cls)
        plan = _Plan()
        if self.schema.get_table(descriptor.table) is None:
            foreign = {column: describe_record(target).table for column, target in descriptor.foreign.items()}
            plan.add(
                _create_table_source(
                    descriptor.table,
                    descriptor.column_specs(),
                    _constraints_source([], foreign),
                ),
                f"schema.drop_table({descriptor.table!r})",
            )
        return self._write(cls.__name__, plan)

    # ------------------------------------------------------------------

    def _create_record(self, descriptor: EntityDescriptor, plan: _Plan) -> None:
        foreign = {column: describe_record(target).table for column, target in descriptor.foreign.items()}
        plan.add(
            _create_table_source(
                descriptor.table,
                descriptor.column_specs(),
                _constraints_source(list(descriptor.unique_groups.values()), foreign),
            ),
            f"schema.drop_table({descriptor.table!r})",
        )

    def _alter_record(self, descriptor: EntityDescriptor, plan: _Plan) -> None:
        table = descriptor.table
        live = self.schema.get_column_info(table)

        added = [name for name in descriptor.columns if name not in live]
        for name in added:
            spec = descriptor[name].spec
            plain = ColumnSpec(spec.type, nullable=spec.nullable)
            plan.add(
                f"schema.add_column({table!r}, {name!r}, {spec_source(plain)})",
                f"schema.drop_column({table!r}, {name!r})",
            )
            if descriptor[name].unique:
                plan.add(
                    f"schema.add_unique_key({table!r}, [{name!r}])",
                    f"schema.drop_unique_key({table!r}, [{name!r}])",
                )
            target = descriptor.foreign.get(name)
            if target is None:
                continue
            if not self.schema.dialect.supports_foreign_key_alter():
                logger.warning("migration.foreign_key_skipped", table=table, column=name, dialect=self.schema.dialect.name)
                continue
            ref = f"schema[{describe_record(target).table!r}]['id']"
            nullable = ", nullable=True" if spec.nullable else ""
            plan.add(
                f"schema.add_foreign_key({table!r}, {name!r}, {ref}{nullable})",
                f"schema.drop_foreign_key({table!r}, {name!r})",
            )
        for group in descriptor.unique_groups.values():
            if any(name in added for name in group):
                plan.add(
                    f"schema.add_unique_key({table!r}, {list(group)!r})",
                    f"schema.drop_unique_key({table!r}, {list(group)!r})",
                )

        for name, info in live.items():
            if name in descriptor.column_info:
                continue
            spec = info.spec
            if spec is None:
                logger.warning("migration.unknown_column_type", table=table, column=name, native=info.native_type)
                continue
            plan.add(
                f"schema.drop_column({table!r}, {name!r})",
                f"schema.add_column({table!r}, {name!r}, {spec_source(spec)})",
            )

    def _create_eav(self, descriptor: EntityDescriptor, plan: _Plan) -> None:
        for info in descriptor.eav.values():
            if self.schema.get_table(info.table) is not None:
                continue
            plan.add(
                _create_table_source(
                    info.table,
                    eav_columns(info.value_type),
                    _constraints_source([], {"entity": descriptor.table}),
                ),
                f"schema.drop_table({info.table!r})",
            )

    def _write(self, identifier: str, plan: _Plan) -> Path | None:
        if not plan:
            logger.info("migration.nothing_to_generate", identifier=identifier)
            return None
        sequence = dt.datetime.now(dt.timezone.utc).strftime(SEQUENCE_FORMAT)
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{sequence}_{identifier}.py"
        path.write_text(render(sequence, identifier, plan.up, list(reversed(plan.down))), encoding="utf-8")
        logger.info("migration.generated", path=str(path), sequence=sequence, identifier=identifier)
        return path


def render(sequence: str, identifier: str, up: list[str], down: list[str]) -> str:
    """Source of a migration module."""

    def body(statements: list[str]) -> str:
        return "".join(f"{_INDENT}{statement}\n" for statement in statements)

    return (
        f'"""{sequence}_{identifier}"""\n'
        "\n"
        "from strata.core.orm.types import ColumnSpec, IndexRole, StorageType  # noqa: F401\n"
        "from strata.core.schema import TableConstraints  # noqa: F401\n"
        "\n"
        f"SEQUENCE = {sequence!r}\n"
        "\n"
        "\n"
        "def up(schema):\n"
        f"{body(up)}"
        "\n"
        "\n"
        "def down(schema):\n"
        f"{body(down)}"
    )


__all__ = ["MigrationGenerator", "SEQUENCE_FORMAT", "render", "spec_source"]
