"""Attribute-overflow storage: one ``(entity, attribute, value)`` row per pair."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from strata.core.logging import get_logger

from .codec import coerce
from .sql import Predicate, Select
from .table import Table
from .types import StorageType

if TYPE_CHECKING:
    from strata.core.database import Database

logger = get_logger(__name__)

COLUMNS = ("entity", "attribute", "value")


class EAV(Table):
    """Typed attribute store keyed by ``(entity, attribute)``.

    Values are coerced to ``value_type`` both when written and when read
    back, so a store of ints never hands out ``"5"``.
    """

    def __init__(self, db: Database, name: str, value_type: StorageType = StorageType.STRING):
        super().__init__(db, name, COLUMNS)
        self.value_type = value_type

    def exists(self, entity_id: int, attribute: str) -> bool:
        statement = self.cache(
            "exists",
            lambda: self.db.prepare(
                f"SELECT COUNT(*) AS n FROM {self._quoted} "
                f"WHERE {self['entity']} = {self.db.dialect.placeholder()} "
                f"AND {self['attribute']} = {self.db.dialect.placeholder()}"
            ),
        )
        rows = statement.query((entity_id, attribute))
        return bool(rows and rows[0]["n"])

    def load(self, entity_id: int) -> dict[str, Any]:
        """Attributes of one entity, ordered by name."""
        statement = self.cache(
            "load",
            lambda: self.db.prepare(
                f"SELECT {self['attribute']}, {self['value']} FROM {self._quoted} "
                f"WHERE {self['entity']} = {self.db.dialect.placeholder()} "
                f"ORDER BY {self['attribute']}"
            ),
        )
        return {row["attribute"]: self._read(row["value"]) for row in statement.query((entity_id,))}

    def load_all(self, entity_ids: Iterable[int]) -> dict[int, dict[str, Any]]:
        """Attributes of several entities in a single query.

        Every requested id is present in the result; entities without
        attributes map to ``{}``.
        """
        ids = list(dict.fromkeys(int(i) for i in entity_ids))
        if not ids:
            return {}
        if len(ids) == 1:
            return {ids[0]: self.load(ids[0])}

        values: dict[int, dict[str, Any]] = {i: {} for i in ids}
        select = (
            self.select()
            .where(self["entity"].is_in(ids))
            .order(self["entity"], self["attribute"])
        )
        for row in select.rows():
            values[int(row["entity"])][row["attribute"]] = self._read(row["value"])
        return values

    def save(self, entity_id: int, values: Mapping[str, Any]) -> None:
        """Make the stored attributes of ``entity_id`` equal ``values``.

        Attributes missing from ``values`` or set to ``None`` are deleted;
        the rest are upserted.
        """
        rows = {
            coerce(StorageType.STRING, attribute): coerce(self.value_type, value)
            for attribute, value in values.items()
            if value is not None
        }
        pruned = self.delete([self["entity"].is_equal(entity_id), self["attribute"].is_not_in(list(rows))])

        statement = self.cache(
            "save",
            lambda: self.db.prepare(self.db.dialect.upsert(self.name, list(COLUMNS), ["entity", "attribute"])),
        )
        for attribute, value in rows.items():
            statement.execute((entity_id, attribute, value))
        logger.debug("eav.saved", table=self.name, entity=entity_id, written=len(rows), pruned=pruned)

    def find(self, match: Mapping[str, Any]) -> Select:
        """Ids of entities whose attributes satisfy every entry of ``match``.

        Each attribute is matched through its own self-join aliased
        ``<table>__<attribute>``; the result is grouped by entity.
        """
        select = self.select(self["entity"])
        prior = self["entity"]
        for attribute, value in match.items():
            alias = self.as_alias(f"{self.name}__{attribute}")
            on = Predicate.all([
                alias["entity"].is_equal(prior),
                alias["attribute"].is_equal(attribute),
                self.db.match(alias["value"], self._match_value(value)),
            ])
            select.join(self.name, on, alias=alias.name)
            prior = alias["entity"]
        return select.group(self["entity"])

    find_all = find

    def _read(self, stored: Any) -> Any:
        return coerce(self.value_type, stored, strict=False)

    def _match_value(self, value: Any) -> Any:
        if value is None or callable(value) or isinstance(value, Select):
            return value
        if isinstance(value, list | tuple | set | frozenset):
            return [coerce(self.value_type, v) for v in value]
        return coerce(self.value_type, value)


__all__ = ["EAV"]
