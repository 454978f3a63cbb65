"""Read-only view of one table, plus the row-level helpers the mappers share."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from strata.core.errors import AccessError

from .sql import ColumnRef, Predicate, Select

if TYPE_CHECKING:
    from strata.core.database import Database
    from strata.core.protocols import Statement

Match = Mapping[str, Any] | Predicate | Iterable[Predicate]


class Table:
    """A named table and its known columns.

    ``table["col"]`` yields a :class:`ColumnRef` for building predicates.
    The view itself is immutable: item assignment and deletion raise
    :class:`AccessError`.
    """

    def __init__(self, db: Database, name: str, columns: Iterable[str] = ()):
        self.db = db
        self.name = name
        self.columns: tuple[str, ...] = tuple(columns)
        self._statements: dict[str, Statement] = {}

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, columns={list(self.columns)!r})"

    def __getitem__(self, column: str) -> ColumnRef:
        return ColumnRef(self.db.dialect, self.name, column)

    def __setitem__(self, column: str, value: Any) -> None:
        raise AccessError(f"Table {self.name!r} is read-only")

    def __delitem__(self, column: str) -> None:
        raise AccessError(f"Table {self.name!r} is read-only")

    def __contains__(self, column: object) -> bool:
        return column in self.columns

    def as_alias(self, alias: str) -> Table:
        """A view of the same table under another name (for self-joins)."""
        return Table(self.db, alias, self.columns)

    def cache(self, key: str, factory: Callable[[], Statement]) -> Statement:
        """Prepared statement cached on this instance under ``key``."""
        statement = self._statements.get(key)
        if statement is None:
            statement = self._statements[key] = factory()
        return statement

    # -- Row helpers ---------------------------------------------------------

    def select(self, *columns: str | ColumnRef) -> Select:
        """Select ``columns`` (default: this table's known columns)."""
        if not columns:
            columns = tuple(self[c] for c in self.columns) if self.columns else (f"{self._quoted}.*",)
        return Select(self.db, self.name, list(columns))

    def where(self, match: Match) -> Predicate:
        """Turn a match specification into one predicate.

        A mapping is matched key by key through
        :meth:`~strata.core.database.Database.match`; predicates are ANDed.
        """
        if isinstance(match, Predicate):
            return match
        if isinstance(match, Mapping):
            return Predicate.all(self.db.match(self[k], v) for k, v in match.items())
        return Predicate.all(match)

    def count(self, match: Match | None = None) -> int:
        select = Select(self.db, self.name, ["COUNT(*) AS n"])
        if match:
            select.where(self.where(match))
        return int(select.get_result() or 0)

    def insert(self, values: Mapping[str, Any]) -> int:
        q = self.db.dialect.quote_identifier
        columns = ", ".join(q(c) for c in values)
        marks = self.db.dialect.placeholders(len(values))
        return self.db.execute(f"INSERT INTO {self._quoted} ({columns}) VALUES ({marks})", tuple(values.values()))

    def update(self, values: Mapping[str, Any], match: Match) -> int:
        q = self.db.dialect.quote_identifier
        ph = self.db.dialect.placeholder()
        assignments = ", ".join(f"{q(c)} = {ph}" for c in values)
        predicate = self.where(match)
        return self.db.execute(
            f"UPDATE {self._quoted} SET {assignments} WHERE {predicate.sql}",
            tuple(values.values()) + predicate.params,
        )

    def delete(self, match: Match) -> int:
        predicate = self.where(match)
        return self.db.execute(f"DELETE FROM {self._quoted} WHERE {predicate.sql}", predicate.params)

    @property
    def _quoted(self) -> str:
        return self.db.dialect.quote_identifier(self.name)


__all__ = ["Table", "Match"]
