"""Declaration-driven relational mapping.

Modules
-------
types         StorageType, IndexRole, ColumnSpec and the DDL column order
declarations  column() / eav() / @record / @junction markers, Entity base
metadata      Reflection of declarations into cached descriptors
codec         Conversion between declared values and storage scalars
sql           Select / Predicate / ColumnRef builder
table         Read-only table view with row helpers
attributes    Attribute-overflow store (EAV)
records       Entity mapper
junctions     Many-to-many link mapper
"""

from strata.core.orm.codec import TypeCodec
from strata.core.orm.declarations import (
    AttributesMixin,
    Entity,
    column,
    eav,
    junction,
    record,
)
from strata.core.orm.attributes import EAV
from strata.core.orm.junctions import Junction
from strata.core.orm.metadata import (
    ColumnDescriptor,
    EavDescriptor,
    EntityDescriptor,
    JunctionDescriptor,
    describe,
    describe_junction,
    describe_record,
)
from strata.core.orm.records import Record
from strata.core.orm.sql import ColumnRef, Predicate, Select
from strata.core.orm.table import Table
from strata.core.orm.types import ColumnSpec, IndexRole, StorageType, Text

__all__ = [
    "AttributesMixin",
    "ColumnDescriptor",
    "ColumnRef",
    "ColumnSpec",
    "EAV",
    "EavDescriptor",
    "Entity",
    "EntityDescriptor",
    "IndexRole",
    "Junction",
    "JunctionDescriptor",
    "Predicate",
    "Record",
    "Select",
    "StorageType",
    "Table",
    "Text",
    "TypeCodec",
    "column",
    "describe",
    "describe_junction",
    "describe_record",
    "eav",
    "junction",
    "record",
]
