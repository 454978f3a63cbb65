"""Minimal SQL selection builder used by the mapper.

Only what the record, EAV and junction mappers need: column references with
comparison predicates, and a :class:`Select` supporting joins (including
aliased subqueries), filters, grouping, ordering, limits and a lazy fetcher
that turns rows into entities.

Predicates carry their parameters, so user values never get spliced into
SQL text::

    ref = table["name"]
    ref.is_in(["Alice", "Bob"])        # Predicate('"authors"."name" IN (?, ?)', ('Alice', 'Bob'))
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from strata.core.dialect import Dialect

Fetcher = Callable[[Iterator[dict[str, Any]]], Iterator[Any]]


class QueryRunner(Protocol):
    """What a :class:`Select` needs from the database (for type checkers)."""

    dialect: Dialect

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class Predicate:
    """A boolean SQL condition with its bound parameters."""

    sql: str
    params: tuple[Any, ...] = ()

    def __and__(self, other: Predicate) -> Predicate:
        return Predicate(f"({self.sql}) AND ({other.sql})", self.params + other.params)

    def __or__(self, other: Predicate) -> Predicate:
        return Predicate(f"({self.sql}) OR ({other.sql})", self.params + other.params)

    def __invert__(self) -> Predicate:
        return Predicate(f"NOT ({self.sql})", self.params)

    def __str__(self) -> str:
        return self.sql

    @classmethod
    def all(cls, predicates: Iterable[Predicate]) -> Predicate:
        """Conjunction of ``predicates``; an empty conjunction is true."""
        items = list(predicates)
        if not items:
            return cls("1 = 1")
        if len(items) == 1:
            return items[0]
        return cls(
            " AND ".join(f"({p.sql})" for p in items),
            tuple(param for p in items for param in p.params),
        )


class ColumnRef:
    """A (possibly qualified) column usable in predicates and column lists."""

    def __init__(self, dialect: Dialect, qualifier: str | None, name: str):
        self.dialect = dialect
        self.qualifier = qualifier
        self.name = name

    @property
    def sql(self) -> str:
        quoted = self.dialect.quote_identifier(self.name)
        if self.qualifier is None:
            return quoted
        return f"{self.dialect.quote_identifier(self.qualifier)}.{quoted}"

    def __str__(self) -> str:
        return self.sql

    def __repr__(self) -> str:
        return f"ColumnRef({self.sql})"

    # -- Comparisons ---------------------------------------------------------

    def _compare(self, operator: str, value: Any) -> Predicate:
        if isinstance(value, ColumnRef):
            return Predicate(f"{self.sql} {operator} {value.sql}")
        return Predicate(f"{self.sql} {operator} {self.dialect.placeholder()}", (value,))

    def is_equal(self, value: Any) -> Predicate:
        if value is None:
            return self.is_null()
        return self._compare("=", value)

    def is_not_equal(self, value: Any) -> Predicate:
        if value is None:
            return self.is_not_null()
        return self._compare("<>", value)

    def is_less(self, value: Any) -> Predicate:
        return self._compare("<", value)

    def is_greater(self, value: Any) -> Predicate:
        return self._compare(">", value)

    def is_null(self) -> Predicate:
        return Predicate(f"{self.sql} IS NULL")

    def is_not_null(self) -> Predicate:
        return Predicate(f"{self.sql} IS NOT NULL")

    def is_in(self, values: Iterable[Any] | Select) -> Predicate:
        if isinstance(values, Select):
            return Predicate(f"{self.sql} IN ({values.sql})", values.params)
        items = tuple(values)
        if not items:
            return Predicate("0 = 1")
        return Predicate(f"{self.sql} IN ({self.dialect.placeholders(len(items))})", items)

    def is_not_in(self, values: Iterable[Any] | Select) -> Predicate:
        if isinstance(values, Select):
            return Predicate(f"{self.sql} NOT IN ({values.sql})", values.params)
        items = tuple(values)
        if not items:
            return Predicate("1 = 1")
        return Predicate(f"{self.sql} NOT IN ({self.dialect.placeholders(len(items))})", items)

    # -- Aggregates ----------------------------------------------------------

    def max(self) -> str:
        return f"MAX({self.sql})"

    def count(self) -> str:
        return f"COUNT({self.sql})"


@dataclass(frozen=True)
class _Join:
    kind: str
    source: str
    params: tuple[Any, ...]
    on: Predicate


class Select:
    """A lazily executed ``SELECT``.

    Iterating runs the query.  Without a fetcher each item is a row dict;
    with one (see :meth:`set_fetcher`) the fetcher receives the row iterator
    and yields whatever it builds, such as hydrated entities.
    """

    def __init__(
        self,
        db: QueryRunner,
        source: str | Select,
        columns: Sequence[str | ColumnRef] | None = None,
        *,
        alias: str | None = None,
    ):
        self.db = db
        self.dialect = db.dialect
        if isinstance(source, Select):
            self.alias = alias or "_subquery"
            self._source = f"({source.sql}) AS {self.dialect.quote_identifier(self.alias)}"
            self._source_params = source.params
        else:
            self.alias = alias or source
            quoted = self.dialect.quote_identifier(source)
            if alias and alias != source:
                quoted = f"{quoted} AS {self.dialect.quote_identifier(alias)}"
            self._source = quoted
            self._source_params = ()
        self._columns: list[str | ColumnRef] = list(columns) if columns else ["*"]
        self._joins: list[_Join] = []
        self._where: list[Predicate] = []
        self._group: list[str | ColumnRef] = []
        self._order: list[str | ColumnRef] = []
        self._limit: int | None = None
        self._offset = 0
        self._fetcher: Fetcher | None = None

    def __getitem__(self, column: str) -> ColumnRef:
        return ColumnRef(self.dialect, self.alias, column)

    # -- Builders ------------------------------------------------------------

    def columns(self, *columns: str | ColumnRef) -> Select:
        self._columns = list(columns)
        return self

    def join(
        self,
        source: str | Select | Any,
        on: Predicate,
        *,
        alias: str | None = None,
        kind: str = "INNER",
    ) -> Select:
        """Join a table (by name or :class:`~strata.core.orm.table.Table`) or a subquery."""
        q = self.dialect.quote_identifier
        params: tuple[Any, ...] = ()
        if isinstance(source, Select):
            name = alias or source.alias
            rendered = f"({source.sql}) AS {q(name)}"
            params = source.params
        else:
            table = str(source)
            rendered = q(table) if not alias or alias == table else f"{q(table)} AS {q(alias)}"
        self._joins.append(_Join(kind.upper(), rendered, params, on))
        return self

    def where(self, condition: Predicate | str, *params: Any) -> Select:
        if isinstance(condition, str):
            condition = Predicate(condition, params)
        self._where.append(condition)
        return self

    def group(self, *columns: str | ColumnRef) -> Select:
        self._group.extend(columns)
        return self

    def order(self, *columns: str | ColumnRef) -> Select:
        self._order.extend(columns)
        return self

    def limit(self, limit: int | None, offset: int = 0) -> Select:
        self._limit = limit
        self._offset = offset
        return self

    def set_fetcher(self, fetcher: Fetcher | None) -> Select:
        self._fetcher = fetcher
        return self

    # -- Rendering -----------------------------------------------------------

    @staticmethod
    def _render(item: str | ColumnRef) -> str:
        return item.sql if isinstance(item, ColumnRef) else item

    @property
    def sql(self) -> str:
        parts = [
            "SELECT " + ", ".join(self._render(c) for c in self._columns),
            f"FROM {self._source}",
        ]
        for join in self._joins:
            parts.append(f"{join.kind} JOIN {join.source} ON {join.on.sql}")
        if self._where:
            parts.append(f"WHERE {Predicate.all(self._where).sql}")
        if self._group:
            parts.append("GROUP BY " + ", ".join(self._render(c) for c in self._group))
        if self._order:
            parts.append("ORDER BY " + ", ".join(self._render(c) for c in self._order))
        if self._limit is not None:
            parts.append(f"LIMIT {int(self._limit)}")
            if self._offset:
                parts.append(f"OFFSET {int(self._offset)}")
        return " ".join(parts)

    @property
    def params(self) -> tuple[Any, ...]:
        params = list(self._source_params)
        for join in self._joins:
            params.extend(join.params)
            params.extend(join.on.params)
        for predicate in self._where:
            params.extend(predicate.params)
        return tuple(params)

    def __str__(self) -> str:
        return self.sql

    def __repr__(self) -> str:
        return f"Select({self.sql!r}, params={self.params!r})"

    # -- Execution -----------------------------------------------------------

    def rows(self) -> list[dict[str, Any]]:
        return self.db.query(self.sql, self.params)

    def __iter__(self) -> Iterator[Any]:
        rows = iter(self.rows())
        if self._fetcher is None:
            return rows
        return iter(self._fetcher(rows))

    def get_all(self) -> list[Any]:
        return list(self)

    def get_first(self) -> Any | None:
        return next(iter(self), None)

    def get_result(self) -> Any | None:
        """First column of the first row, unfetched."""
        rows = self.rows()
        if not rows:
            return None
        return next(iter(rows[0].values()))

    def count(self) -> int:
        """Number of rows this selection yields."""
        sql = f"SELECT COUNT(*) AS n FROM ({self.sql}) AS {self.dialect.quote_identifier('_count')}"
        rows = self.db.query(sql, self.params)
        return int(rows[0]["n"]) if rows else 0


__all__ = ["ColumnRef", "Predicate", "Select", "Fetcher"]
