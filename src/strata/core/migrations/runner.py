"""Applies and reverts registered migration units.

Tracks applied sequence ids in a ledger table (``__migrations__`` by
default) with a single ``sequence`` primary-key column.  Every invocation
runs in one outer transaction with a nested scope per unit, so a failing
unit rolls back the whole run.

On MySQL, DDL commits implicitly; the transaction scopes notice that the
engine already closed the transaction and log it instead of failing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from strata.core.errors import MigrationError
from strata.core.logging import get_logger
from strata.core.orm.table import Table
from strata.core.orm.types import ColumnSpec, IndexRole, StorageType

from .registry import MigrationRegistry, MigrationSpec

if TYPE_CHECKING:
    from strata.core.database import Database

logger = get_logger(__name__)

#: Sequence id of the empty state, before any migration.
BASE = ""


@dataclass
class MigrationResult:
    """Outcome of :meth:`Migrator.up` or :meth:`Migrator.down`."""

    previous: str
    current: str
    applied: list[str] = field(default_factory=list)
    reverted: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied or self.reverted)


@dataclass(frozen=True)
class MigrationStatus:
    sequence: str
    identifier: str | None
    applied: bool


class Migrator:
    """Sequences migration units against one database.

    Parameters
    ----------
    db
        The target :class:`~strata.core.database.Database`.
    registry
        Units to apply, e.g. from :meth:`MigrationRegistry.from_directory`.
    table
        Ledger table name.  Defaults to ``settings.migrations_table``.

    Example::

        registry = MigrationRegistry.from_directory("migrations")
        result = Migrator(db, registry).up()
        print(f"{result.previous or 'BASE'} -> {result.current}")
    """

    def __init__(self, db: Database, registry: MigrationRegistry, table: str | None = None) -> None:
        self.db = db
        self.registry = registry
        self.table_name = table or db.settings.migrations_table
        self._ledger: Table | None = None

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    @property
    def ledger(self) -> Table:
        """The ledger table, created on first use."""
        if self._ledger is None:
            table = self.db.schema.get_table(self.table_name)
            if table is None:
                self.db.schema.create_table(
                    self.table_name,
                    {"sequence": ColumnSpec(StorageType.STRING, index=IndexRole.PRIMARY)},
                )
                table = Table(self.db, self.table_name, ("sequence",))
            self._ledger = table
        return self._ledger

    def applied(self) -> list[str]:
        """Applied sequence ids, ascending."""
        ledger = self.ledger
        return [row["sequence"] for row in ledger.select(ledger["sequence"]).order(ledger["sequence"]).rows()]

    def get_current(self) -> str:
        """The highest applied sequence id, or :data:`BASE`."""
        ledger = self.ledger
        return ledger.select(ledger["sequence"].max()).get_result() or BASE

    def status(self) -> list[MigrationStatus]:
        """Every registered unit, plus ledger entries with no unit."""
        applied = set(self.applied())
        rows = {spec.sequence: MigrationStatus(spec.sequence, spec.identifier, spec.sequence in applied) for spec in self.registry}
        for sequence in applied - rows.keys():
            rows[sequence] = MigrationStatus(sequence, None, True)
        return [rows[s] for s in sorted(rows)]

    def pending(self) -> list[MigrationSpec]:
        applied = set(self.applied())
        return [spec for spec in self.registry if spec.sequence not in applied]

    # ------------------------------------------------------------------
    # Sequencing
    # ------------------------------------------------------------------

    def up(self, to: str | None = None) -> MigrationResult:
        """Apply pending units in ascending order, up to and including ``to``."""
        applied = self.applied()
        self._check_gaps(applied)
        if to is not None and to not in self.registry:
            raise MigrationError(f"Unknown migration target {to!r}").with_context(sequence=to)

        previous = applied[-1] if applied else BASE
        done = set(applied)
        todo = [s for s in self.registry if s.sequence not in done and (to is None or s.sequence <= to)]
        result = MigrationResult(previous=previous, current=previous)
        if not todo:
            logger.info("migration.nothing_to_do", direction="up", current=previous)
            return result

        with self.db.begin() as tx:
            for spec in todo:
                self._run(spec, "up")
                result.applied.append(spec.sequence)
            tx.commit()
        result.current = self.get_current()
        return result

    def down(self, to: str | None = None) -> MigrationResult:
        """Revert applied units in descending order.

        ``to=None`` reverts exactly one unit; ``to=BASE`` reverts them all;
        otherwise every unit above ``to`` is reverted.
        """
        applied = self.applied()
        self._check_gaps(applied)
        if to is not None and to != BASE and to not in self.registry:
            raise MigrationError(f"Unknown migration target {to!r}").with_context(sequence=to)

        previous = applied[-1] if applied else BASE
        if to is None:
            todo = applied[-1:]
        else:
            todo = [s for s in reversed(applied) if s > to]
        result = MigrationResult(previous=previous, current=previous)
        if not todo:
            logger.info("migration.nothing_to_do", direction="down", current=previous)
            return result

        with self.db.begin() as tx:
            for sequence in todo:
                self._run(self.registry.get(sequence), "down")
                result.reverted.append(sequence)
            tx.commit()
        result.current = self.get_current()
        return result

    def _run(self, spec: MigrationSpec, direction: str) -> None:
        log = logger.bind(sequence=spec.sequence, identifier=spec.identifier, direction=direction)
        try:
            with self.db.begin() as tx:
                getattr(spec.unit, direction)(self.db.schema)
                if direction == "up":
                    self.ledger.insert({"sequence": spec.sequence})
                else:
                    self.ledger.delete({"sequence": spec.sequence})
                tx.commit()
        except Exception as e:
            log.error("migration.failed", error=str(e))
            self.db.schema.clear_cache()
            raise MigrationError(
                f"Migration {spec.sequence} ({spec.identifier}) failed during {direction}: {e}",
                cause=e,
            ).with_context(sequence=spec.sequence, identifier=spec.identifier) from e
        log.info("migration.applied" if direction == "up" else "migration.reverted")

    def _check_gaps(self, applied: list[str]) -> None:
        missing = [s for s in applied if s not in self.registry]
        if missing:
            raise MigrationError(
                f"Applied migrations have no registered unit: {', '.join(missing)}"
            ).with_context(sequence=missing[0], missing=missing)


__all__ = ["BASE", "MigrationResult", "MigrationStatus", "Migrator"]
