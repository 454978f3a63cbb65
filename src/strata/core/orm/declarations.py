"""
Declaration markers for mapped entities and junction tables.

Entities are plain classes whose mapped fields are descriptors::

    from strata import Entity, Text, column, eav, junction, record

    @record("authors")
    class Author(Entity):
        name: str = column(unique=True)
        bio: Text | None = column()
        attributes: dict[str, str] | None = eav("authors_eav")

    @record("books")
    class Book(Entity):
        title: str = column(unique="title_author")
        author: Author = column(unique="title_author")

    @junction("authors_to_books", author=Author, book=Book)
    class AuthorsToBooks:
        pass

Markers only record what was declared.  Interpretation (storage types,
nullability, unique groups, foreign targets) happens once per class in
:func:`strata.core.orm.metadata.describe`, which is where malformed
declarations are rejected.

Tags:
    orm, declarations, descriptors, decorators, strata

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .types import StorageType

RECORD_MARKER = "__strata_record__"
JUNCTION_MARKER = "__strata_junction__"


class Column:
    """Descriptor for one mapped column.

    Values live in the instance ``__dict__``.  Reading an unset field
    returns the declared default (a ``default_factory`` result is stored
    on first read so mutations stick).
    """

    def __init__(
        self,
        type: StorageType | str | type | None = None,  # noqa: A002
        *,
        nullable: bool | None = None,
        unique: bool | str = False,
        default: Any = None,
        default_factory: Callable[[], Any] | None = None,
    ):
        if default is not None and default_factory is not None:
            raise ValueError("cannot specify both default and default_factory")
        self.type = type
        self.nullable = nullable
        self.unique = unique
        self.default = default
        self.default_factory = default_factory
        self.name: str = ""
        self.owner: type | None = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.owner = owner
        self.name = name

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        try:
            return obj.__dict__[self.name]
        except KeyError:
            if self.default_factory is None:
                return self.default
            value = obj.__dict__[self.name] = self.default_factory()
            return value

    def __set__(self, obj: Any, value: Any) -> None:
        obj.__dict__[self.name] = value

    def __repr__(self) -> str:
        return f"Column({self.name!r}, type={self.type!r}, nullable={self.nullable!r}, unique={self.unique!r})"


class Eav:
    """Descriptor for an attribute-overflow (EAV) field.

    Unset until loaded or assigned: ``None`` means "never loaded", ``{}``
    means "loaded, no attributes".  A ``None`` field is skipped on save so
    stored attributes are never pruned by accident.
    """

    def __init__(self, table: str, value_type: type | str | StorageType = str):
        self.table = table
        self.value_type = value_type
        self.name: str = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return obj.__dict__.get(self.name)

    def __set__(self, obj: Any, value: dict[str, Any] | None) -> None:
        if value is not None and not isinstance(value, dict):
            value = dict(value)
        obj.__dict__[self.name] = value

    def __repr__(self) -> str:
        return f"Eav({self.table!r}, value_type={self.value_type!r})"


def column(
    type: StorageType | str | type | None = None,  # noqa: A002
    *,
    nullable: bool | None = None,
    unique: bool | str = False,
    default: Any = None,
    default_factory: Callable[[], Any] | None = None,
) -> Any:
    """Declare a mapped column.

    Args:
        type: Explicit storage declaration: a :class:`StorageType`, a type
            name (``"int"``, ``"INTEGER"``, ``"double"``, ``"text"``...) or
            a Python type.  Wins over the annotation.
        nullable: Explicit nullability.
        unique: ``True`` for a standalone unique key, or a group name
            shared by the fields of one multi-column unique key.
        default: Value returned while the field is unset.
        default_factory: Called to produce the default instead.
    """
    return Column(
        type,
        nullable=nullable,
        unique=unique,
        default=default,
        default_factory=default_factory,
    )


def eav(table: str, value_type: type | str | StorageType = str) -> Any:
    """Declare an attribute-overflow field backed by ``table``."""
    return Eav(table, value_type)


def record(table: str) -> Callable[[type], type]:
    """Class decorator naming the table an entity class maps to."""

    def decorate(cls: type) -> type:
        setattr(cls, RECORD_MARKER, table)
        return cls

    return decorate


def junction(table: str, **foreign: type | str) -> Callable[[type], type]:
    """Class decorator declaring a junction table.

    Keyword arguments map junction columns to the record classes they
    reference, in column order.  Targets may be given as classes or as
    names resolvable from the decorated class's module.
    """

    def decorate(cls: type) -> type:
        setattr(cls, JUNCTION_MARKER, (table, dict(foreign)))
        return cls

    return decorate


def is_record_class(value: Any) -> bool:
    return isinstance(value, type) and getattr(value, RECORD_MARKER, None) is not None


class Entity:
    """Base class for mapped entities.

    ``id`` is ``0`` until the entity is first saved.
    """

    id: int = column(int, default=0)

    def __init__(self, **values: Any):
        cls = type(self)
        for name, value in values.items():
            if not isinstance(getattr(cls, name, None), Column | Eav):
                raise TypeError(f"{cls.__name__} has no mapped field {name!r}")
            setattr(self, name, value)

    def get_id(self) -> int:
        return self.id or 0

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.get_id()}>"


class AttributesMixin:
    """Item access forwarding to an ``attributes`` EAV field.

    Assigning an attribute on an unloaded entity starts an empty map, so
    the next save writes exactly what was assigned.
    """

    attributes: dict[str, Any] | None

    def __getitem__(self, attribute: str) -> Any:
        return (self.attributes or {}).get(attribute)

    def __setitem__(self, attribute: str, value: Any) -> None:
        if self.attributes is None:
            self.attributes = {}
        self.attributes[attribute] = value

    def __delitem__(self, attribute: str) -> None:
        if self.attributes is not None:
            self.attributes.pop(attribute, None)

    def __contains__(self, attribute: str) -> bool:
        return self.attributes is not None and self.attributes.get(attribute) is not None

    def get_attributes(self) -> dict[str, Any]:
        return dict(self.attributes or {})

    def set_attributes(self, attributes: dict[str, Any] | None) -> None:
        self.attributes = None if attributes is None else dict(attributes)


__all__ = [
    "Column",
    "Eav",
    "Entity",
    "AttributesMixin",
    "column",
    "eav",
    "record",
    "junction",
    "is_record_class",
    "RECORD_MARKER",
    "JUNCTION_MARKER",
]
