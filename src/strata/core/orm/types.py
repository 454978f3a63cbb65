"""Column vocabulary shared by the mapper, the schema manager and migrations.

A column is described by a :class:`ColumnSpec`: one of seven storage types,
a nullability flag, and an index role.  Dialects turn specs into DDL; the
mapper turns declared Python types into specs.

DDL column order is fixed by :func:`column_sort_key`, so regenerating a
table from the same declarations always produces the same statement.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import NewType

#: Annotation marker for long strings (``TEXT`` instead of ``VARCHAR(255)``).
Text = NewType("Text", str)

#: Maximum length of a ``STRING`` column value.
SHORT_STRING_LENGTH = 255


class StorageType(str, Enum):
    """Storage-safe scalar types, in descending DDL priority."""

    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    DATETIME = "datetime"
    STRING = "string"
    TEXT = "text"
    BLOB = "blob"

    @classmethod
    def parse(cls, name: str | StorageType) -> StorageType:
        """Resolve a type name case-insensitively.

        >>> StorageType.parse("INTEGER")
        <StorageType.INT: 'int'>
        """
        if isinstance(name, StorageType):
            return name
        try:
            return _TYPE_ALIASES[name.strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown storage type: {name!r}") from None


_TYPE_ALIASES: dict[str, StorageType] = {
    "bool": StorageType.BOOL,
    "boolean": StorageType.BOOL,
    "int": StorageType.INT,
    "integer": StorageType.INT,
    "bigint": StorageType.INT,
    "float": StorageType.FLOAT,
    "double": StorageType.FLOAT,
    "real": StorageType.FLOAT,
    "datetime": StorageType.DATETIME,
    "str": StorageType.STRING,
    "string": StorageType.STRING,
    "varchar": StorageType.STRING,
    "text": StorageType.TEXT,
    "blob": StorageType.BLOB,
    "bytes": StorageType.BLOB,
}

_TYPE_RANK = {t: rank for rank, t in enumerate(StorageType)}


class IndexRole(str, Enum):
    """Index participation of a column, in descending DDL priority."""

    AUTOINCREMENT = "autoincrement"
    PRIMARY = "primary"
    UNIQUE = "unique"
    NONE = "none"


_ROLE_RANK = {r: rank for rank, r in enumerate(IndexRole)}


@dataclass(frozen=True)
class ColumnSpec:
    """Portable column definition handed to :class:`~strata.core.schema.Schema`."""

    type: StorageType
    nullable: bool = False
    index: IndexRole = IndexRole.NONE

    def __post_init__(self) -> None:
        if self.index is IndexRole.AUTOINCREMENT and (self.type is not StorageType.INT or self.nullable):
            raise ValueError("autoincrement columns must be non-null INT")

    @classmethod
    def autoincrement(cls) -> ColumnSpec:
        return cls(StorageType.INT, nullable=False, index=IndexRole.AUTOINCREMENT)


def column_sort_key(item: tuple[str, ColumnSpec]) -> tuple[int, int, int, str]:
    """Sort key for ``(name, spec)`` pairs.

    Index role first (autoincrement, primary, unique, none), then storage
    type (bool … blob) with NOT NULL ahead of nullable, then name.
    """
    name, spec = item
    return (_ROLE_RANK[spec.index], _TYPE_RANK[spec.type], int(spec.nullable), name)


def sort_columns(columns: dict[str, ColumnSpec]) -> list[tuple[str, ColumnSpec]]:
    return sorted(columns.items(), key=column_sort_key)


__all__ = [
    "Text",
    "SHORT_STRING_LENGTH",
    "StorageType",
    "IndexRole",
    "ColumnSpec",
    "column_sort_key",
    "sort_columns",
]
