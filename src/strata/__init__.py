"""
strata - declaration-driven entity mapping and schema migrations.

Usage::

    from strata import Database, Entity, column, eav, record

    @record("authors")
    class Author(Entity):
        name: str = column(unique=True)
        attributes: dict[str, str] | None = eav("authors_eav")

    db = Database.from_url("sqlite:///app.db")
"""

__version__ = "0.1.0"

from strata.core import *  # noqa: F403
from strata.core import __all__ as _core_all
from strata.core.orm import (
    EAV,
    AttributesMixin,
    ColumnSpec,
    Entity,
    IndexRole,
    Junction,
    Predicate,
    Record,
    Select,
    StorageType,
    Table,
    Text,
    column,
    describe,
    eav,
    junction,
    record,
)

__all__ = [
    *_core_all,
    "EAV",
    "AttributesMixin",
    "ColumnSpec",
    "Entity",
    "IndexRole",
    "Junction",
    "Predicate",
    "Record",
    "Select",
    "StorageType",
    "Table",
    "Text",
    "column",
    "describe",
    "eav",
    "junction",
    "record",
    "__version__",
]
