"""Many-to-many link tables between record classes."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from strata.core.errors import AccessError, TypeCodecError

from .metadata import JunctionDescriptor, describe_junction
from .sql import Select
from .table import Table

if TYPE_CHECKING:
    from strata.core.database import Database

    from .records import Record


class Junction(Table):
    """Links entities through a table whose every column is a foreign id.

    Values passed to :meth:`link`, :meth:`unlink`, :meth:`find_all` and
    :meth:`count` may be ids or saved entities.
    """

    def __init__(self, db: Database, cls: type):
        descriptor = describe_junction(cls)
        super().__init__(db, descriptor.table, descriptor.columns)
        self.descriptor: JunctionDescriptor = descriptor
        self.cls = cls

    def get_records(self) -> dict[str, Record]:
        """The record mapper behind each column."""
        return {column: self.db.get_record(target) for column, target in self.descriptor.foreign.items()}

    def link(self, ids: Mapping[str, Any]) -> int:
        """Link entities; already-linked tuples are ignored.

        Returns the number of rows inserted (``0`` or ``1``).
        """
        values = self._ids(ids)
        missing = [c for c in self.columns if c not in values]
        if missing:
            raise AccessError(f"link() on {self.name!r} needs values for {missing}")
        statement = self.cache(
            "link",
            lambda: self.db.prepare(self.db.dialect.insert_or_ignore(self.name, list(self.columns))),
        )
        return statement.execute(tuple(values[c] for c in self.columns))

    def unlink(self, ids: Mapping[str, Any]) -> int:
        """Delete links matching ``ids``; a partial mapping unlinks in bulk."""
        return self.delete(self._ids(ids))

    def find_all(self, key: str, match: Mapping[str, Any] | None = None) -> Select:
        """Entities referenced by column ``key`` in links matching ``match``.

        >>> junction.find_all("book", {"author": author})
        """
        if key not in self.descriptor.foreign:
            raise AccessError(f"{self.name!r} has no column {key!r}")
        record = self.db.get_record(self.descriptor.foreign[key])
        select = record.load_all().join(self, self[key].is_equal(record["id"]))
        if match:
            select.where(self.where(self._ids(match)))
        return select

    def find_first(self, key: str, match: Mapping[str, Any] | None = None) -> Any | None:
        return self.find_all(key, match).limit(1).get_first()

    def count(self, match: Mapping[str, Any] | None = None) -> int:
        return super().count(self._ids(match) if match else None)

    def _ids(self, values: Mapping[str, Any]) -> dict[str, Any]:
        converted: dict[str, Any] = {}
        for column, value in values.items():
            if column not in self.descriptor.foreign:
                raise AccessError(f"{self.name!r} has no column {column!r}")
            if isinstance(value, list | tuple | set | frozenset):
                converted[column] = [_entity_id(v) for v in value]
            elif value is None or isinstance(value, Select):
                converted[column] = value
            else:
                converted[column] = _entity_id(value)
        return converted


def _entity_id(value: Any) -> int:
    entity_id = value if isinstance(value, int) else getattr(value, "id", None)
    if isinstance(entity_id, bool) or not isinstance(entity_id, int) or entity_id <= 0:
        raise TypeCodecError(
            f"Expected a saved entity or a positive id, got {value!r}",
            value=value,
        )
    return entity_id


__all__ = ["Junction"]
