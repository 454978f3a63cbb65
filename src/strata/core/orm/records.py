"""
Entity mapper: loads, saves and finds instances of one ``@record`` class.

Manifesto:
    - **Lazy selections:** ``load_all`` and ``find_all`` return a
      :class:`~strata.core.orm.sql.Select`; nothing runs until iteration.
    - **Batched overflow:** Rows are hydrated in chunks and each EAV table
      is read once per chunk, never once per entity.
    - **Prototype clones:** Fetched entities are shallow copies of a
      prototype built without ``__init__``.

Lifecycle::

    new (id == 0) ──save()──► persisted (id > 0) ──save()──► updated
                                      │
                                  delete()
                                      ▼
                                  new (id == 0)

Examples:
    >>> authors = db.get_record(Author)
    >>> author = Author(name="Ursula")
    >>> author["genre"] = "fantasy"
    >>> authors.save(author)
    1
    >>> [a.name for a in authors.find_all({}, {"attributes": {"genre": "fantasy"}})]
    ['Ursula']

Tags:
    orm, record, mapper, crud, strata

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from strata.core.errors import MetadataError
from strata.core.logging import get_logger

from .attributes import EAV
from .metadata import EntityDescriptor, describe_record
from .sql import ColumnRef, Select
from .table import Match, Table

if TYPE_CHECKING:
    from strata.core.database import Database

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 256


class Record(Table):
    """Mapper for one entity class.

    Prepared insert/update/load statements are cached on the instance, so
    a record is bound to its :class:`~strata.core.database.Database` and is
    not safe to share between threads.
    """

    def __init__(self, db: Database, cls: type, *, chunk_size: int | None = None):
        descriptor = describe_record(cls)
        super().__init__(db, descriptor.table, descriptor.columns)
        self.descriptor: EntityDescriptor = descriptor
        self.cls = cls
        self.chunk_size = chunk_size or getattr(db, "fetch_chunk_size", DEFAULT_CHUNK_SIZE)
        self._proto = cls.__new__(cls)
        self.eav: dict[str, EAV] = {
            name: db.get_eav(info.table, info.value_type) for name, info in descriptor.eav.items()
        }

    # -- Loading --------------------------------------------------------------

    def load(self, entity_id: int | None) -> Any | None:
        """Load one entity by id, or ``None`` when no such row exists."""
        if not entity_id:
            return None
        statement = self.cache(
            "load",
            lambda: self.db.prepare(
                self.select().where(f"{self['id']} = {self.db.dialect.placeholder()}").sql
            ),
        )
        rows = statement.query((int(entity_id),))
        return next(self.fetch_each(rows), None)

    def load_all(self) -> Select:
        """Every entity, as a lazy selection."""
        return self.select().set_fetcher(self.fetch_each)

    def find_all(self, match: Match | None = None, eav_match: Mapping[str, Mapping[str, Any]] | None = None) -> Select:
        """Entities whose columns satisfy ``match`` and whose attributes satisfy ``eav_match``.

        ``match`` maps column names to values (see
        :meth:`~strata.core.database.Database.match`); values are dehydrated
        through the codec first, so entities compare by id.  ``eav_match``
        maps an EAV property to its own attribute match.
        """
        select = self.load_all()
        for name, attributes in (eav_match or {}).items():
            store = self._store(name)
            alias = f"{store.name}__match"
            on = ColumnRef(self.db.dialect, alias, "entity").is_equal(self["id"])
            select.join(store.find(attributes), on, alias=alias)
        if match:
            select.where(self.where(self._dehydrate_match(match)))
        return select

    def find_first(self, match: Match | None = None, eav_match: Mapping[str, Mapping[str, Any]] | None = None) -> Any | None:
        return self.find_all(match, eav_match).limit(1).get_first()

    def count(self, match: Match | None = None, eav_match: Mapping[str, Mapping[str, Any]] | None = None) -> int:
        return self.find_all(match, eav_match).count()

    def fetch_each(self, rows: Iterable[Mapping[str, Any]] | Select) -> Iterator[Any]:
        """Hydrate rows lazily, ``chunk_size`` at a time."""
        if isinstance(rows, Select):
            rows = rows.rows()
        chunk: list[Mapping[str, Any]] = []
        for row in rows:
            chunk.append(row)
            if len(chunk) >= self.chunk_size:
                yield from self._fetch_chunk(chunk)
                chunk = []
        if chunk:
            yield from self._fetch_chunk(chunk)

    def fetch_all(self, rows: Iterable[Mapping[str, Any]] | Select) -> list[Any]:
        return list(self.fetch_each(rows))

    def _fetch_chunk(self, rows: list[Mapping[str, Any]]) -> list[Any]:
        entities = [self._hydrate_row(row) for row in rows]
        ids = [e.id for e in entities if e.id]
        for name, store in self.eav.items():
            loaded = store.load_all(ids)
            for entity in entities:
                setattr(entity, name, loaded.get(entity.id, {}) if entity.id else None)
        return entities

    def _hydrate_row(self, row: Mapping[str, Any]) -> Any:
        entity = copy.copy(self._proto)
        codec = self.db.codec
        for key, stored in row.items():
            info = self.descriptor.column_info.get(key)
            if info is not None:
                setattr(entity, key, codec.hydrate(info, stored))
            elif key not in self.descriptor.eav:
                setattr(entity, key, stored)
        return entity

    # -- Writing --------------------------------------------------------------

    def save(self, entity: Any) -> int:
        """Insert or update ``entity`` and its loaded attribute maps.

        Returns the entity id.  Runs inside its own transaction scope (a
        savepoint when the caller already holds one).
        """
        self._check_instance(entity)
        values = self._dehydrate(entity)
        inserting = not entity.id
        try:
            with self.db.begin() as tx:
                if inserting:
                    self._insert(values)
                    entity.id = self.db.last_insert_id()
                else:
                    self._update(entity.id, values)
                for name, store in self.eav.items():
                    attributes = getattr(entity, name)
                    if attributes is not None:
                        store.save(entity.id, attributes)
                tx.commit()
        except Exception:
            if inserting:
                entity.id = 0
            raise
        logger.debug("record.saved", table=self.name, id=entity.id)
        return entity.id

    def delete(self, entity: Any) -> int:
        """Delete ``entity``'s row (attribute rows cascade).  Resets its id."""
        entity_id = entity if isinstance(entity, int) else entity.id
        if not entity_id:
            return 0
        deleted = super().delete([self["id"].is_equal(entity_id)])
        if not isinstance(entity, int):
            entity.id = 0
        return deleted

    def _insert(self, values: dict[str, Any]) -> None:
        q = self.db.dialect.quote_identifier

        def prepare():
            if not values:
                return self.db.prepare(f"INSERT INTO {self._quoted} ({q('id')}) VALUES (NULL)")
            columns = ", ".join(q(c) for c in values)
            return self.db.prepare(
                f"INSERT INTO {self._quoted} ({columns}) VALUES ({self.db.dialect.placeholders(len(values))})"
            )

        self.cache("insert", prepare).execute(tuple(values.values()))

    def _update(self, entity_id: int, values: dict[str, Any]) -> None:
        if not values:
            return
        q = self.db.dialect.quote_identifier
        ph = self.db.dialect.placeholder()

        def prepare():
            assignments = ", ".join(f"{q(c)} = {ph}" for c in values)
            return self.db.prepare(f"UPDATE {self._quoted} SET {assignments} WHERE {q('id')} = {ph}")

        self.cache("update", prepare).execute((*values.values(), entity_id))

    def _dehydrate(self, entity: Any) -> dict[str, Any]:
        codec = self.db.codec
        return {
            name: codec.dehydrate(self.descriptor[name], getattr(entity, name))
            for name in self.descriptor.columns
            if name != "id"
        }

    def _dehydrate_match(self, match: Match) -> Match:
        if not isinstance(match, Mapping):
            return match
        converted: dict[str, Any] = {}
        for key, value in match.items():
            info = self.descriptor.column_info.get(key)
            if info is None or value is None or callable(value) or isinstance(value, Select):
                converted[key] = value
            elif isinstance(value, list | tuple | set | frozenset):
                converted[key] = [self.db.codec.dehydrate(info, v) for v in value]
            else:
                converted[key] = self.db.codec.dehydrate(info, value)
        return converted

    def _store(self, name: str) -> EAV:
        try:
            return self.eav[name]
        except KeyError:
            raise MetadataError(
                f"{self.cls.__name__} has no attribute-overflow field {name!r}"
            ).with_context(entity=self.cls.__name__, table=self.name) from None

    def _check_instance(self, entity: Any) -> None:
        if not isinstance(entity, self.cls):
            raise TypeError(f"Expected {self.cls.__name__}, got {type(entity).__name__}")


__all__ = ["Record", "DEFAULT_CHUNK_SIZE"]
