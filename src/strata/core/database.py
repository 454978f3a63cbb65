"""
Central access point: one connection, its dialect, mappers and schema.

Examples:
    >>> from strata import Database
    >>> with Database.from_url("sqlite:///:memory:") as db:
    ...     db.schema.create_record_table(Author)
    ...     authors = db.get_record(Author)
    ...     authors.save(Author(name="Ursula"))
    1

Tags:
    database, connection, mapper, transactions, strata

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable
from functools import cached_property
from typing import Any, TypeVar

from .adapters import DatabaseAdapter, create_adapter
from .dialect import Dialect
from .logging import get_logger
from .orm.codec import TypeCodec
from .orm.attributes import EAV
from .orm.junctions import Junction
from .orm.records import Record
from .orm.sql import ColumnRef, Predicate, Select
from .orm.types import StorageType
from .protocols import Params, Statement
from .schema import Schema
from .settings import StrataSettings, get_settings
from .transaction import Transaction, TransactionManager

logger = get_logger(__name__)

T = TypeVar("T")


class Database:
    """Wraps a :class:`DatabaseAdapter` with mapper and schema access.

    Mappers are cached per class (records, junctions) or per table (EAV
    stores), so their prepared statements are reused.
    """

    def __init__(self, adapter: DatabaseAdapter, *, settings: StrataSettings | None = None):
        self.adapter = adapter
        self.settings = settings or get_settings()
        if not adapter.is_connected:
            adapter.connect()
        self._transactions = TransactionManager(adapter)
        self._records: dict[type, Record] = {}
        self._junctions: dict[type, Junction] = {}
        self._eav: dict[str, EAV] = {}

    @classmethod
    def from_url(cls, url: str | None = None, *, settings: StrataSettings | None = None) -> Database:
        """Connect to ``url`` (default: ``settings.database_url``)."""
        settings = settings or get_settings()
        adapter = create_adapter(url or settings.database_url)
        adapter.connect()
        logger.debug("database.connected", dialect=adapter.dialect.name)
        return cls(adapter, settings=settings)

    def close(self) -> None:
        self.adapter.disconnect()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Database({self.dialect.name}, records={len(self._records)})"

    # -- Driver passthrough -------------------------------------------------

    @property
    def dialect(self) -> Dialect:
        return self.adapter.dialect

    @property
    def server_version(self) -> tuple[int, ...]:
        return self.adapter.server_version

    @property
    def fetch_chunk_size(self) -> int:
        return self.settings.fetch_chunk_size

    def execute(self, sql: str, params: Params = ()) -> int:
        return self.adapter.execute(sql, params)

    def query(self, sql: str, params: Params = ()) -> list[dict[str, Any]]:
        return self.adapter.query(sql, params)

    def prepare(self, sql: str) -> Statement:
        return self.adapter.prepare(sql)

    def quote(self, value: Any) -> str:
        return self.adapter.quote(value)

    def last_insert_id(self) -> int:
        return self.adapter.last_insert_id()

    # -- Transactions -------------------------------------------------------

    def begin(self) -> Transaction:
        """Open a transaction scope (a savepoint when one is already open)."""
        return self._transactions.begin()

    @property
    def in_transaction(self) -> bool:
        return self._transactions.active

    def transact(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call ``fn`` inside a scope; commit on return, roll back on error."""
        with self.begin() as tx:
            result = fn(*args, **kwargs)
            tx.commit()
        return result

    # -- Matching -----------------------------------------------------------

    def match(self, ref: ColumnRef, value: Any) -> Predicate:
        """Predicate comparing ``ref`` with ``value``.

        - callable: ``value(ref, db)`` builds the predicate
        - list / tuple / set: ``IN``
        - :class:`Select`: ``IN (subquery)``
        - ``None``: ``IS NULL``
        - anything else: equality
        """
        if callable(value) and not isinstance(value, type):
            result = value(ref, self)
            return result if isinstance(result, Predicate) else Predicate(str(result))
        if isinstance(value, list | tuple | set | frozenset):
            return ref.is_in(list(value))
        if isinstance(value, Select):
            return ref.is_in(value)
        return ref.is_equal(value)

    # -- Mappers ------------------------------------------------------------

    def get_record(self, cls: type) -> Record:
        record = self._records.get(cls)
        if record is None:
            record = self._records[cls] = Record(self, cls)
        return record

    def get_junction(self, cls: type) -> Junction:
        junction = self._junctions.get(cls)
        if junction is None:
            junction = self._junctions[cls] = Junction(self, cls)
        return junction

    def get_eav(self, table: str, value_type: StorageType = StorageType.STRING) -> EAV:
        store = self._eav.get(table)
        if store is None:
            store = self._eav[table] = EAV(self, table, value_type)
        return store

    @cached_property
    def codec(self) -> TypeCodec:
        return TypeCodec(self)

    @cached_property
    def schema(self) -> Schema:
        return Schema(self)


__all__ = ["Database"]
