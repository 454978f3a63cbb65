"""
Reflection of entity and junction declarations into immutable descriptors.

:func:`describe` reads the markers from :mod:`strata.core.orm.declarations`
once per class and caches the result for the life of the process.  Every
consumer (the record mapper, the codec, the schema builders, the migration
generator) reads the same descriptor.

Manifesto:
    - **Describe once:** Descriptors are built on first use and never change.
    - **Fail at declaration:** Malformed markers raise
      :class:`~strata.core.errors.MetadataError` here, not as broken DDL later.
    - **One priority order:** Storage type comes from the explicit ``type=``,
      then the annotation, then the default's type, then nullable string.

Examples:
    >>> from strata.core.orm.metadata import describe
    >>> descriptor = describe(Author)
    >>> descriptor.table
    'authors'
    >>> descriptor.columns
    ('id', 'name', 'bio')

Tags:
    orm, metadata, reflection, descriptors, strata

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import importlib
import re
import sys
import threading
import types
import typing
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from strata.core.errors import MetadataError

from .codec import ValueKind, classify, python_type
from .declarations import JUNCTION_MARKER, RECORD_MARKER, Column, Eav, is_record_class
from .types import ColumnSpec, IndexRole, StorageType

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_EAV_VALUE_TYPES = frozenset({StorageType.BOOL, StorageType.INT, StorageType.FLOAT, StorageType.STRING, StorageType.TEXT})

# Storage types each non-scalar kind may be explicitly stored as.
_ALLOWED_STORAGE = {
    ValueKind.ENTITY: {StorageType.INT},
    ValueKind.DATETIME: {StorageType.DATETIME, StorageType.STRING},
    ValueKind.COMPLEX: {StorageType.BLOB},
}


@dataclass(frozen=True)
class ColumnDescriptor:
    """One mapped column."""

    name: str
    owner_name: str
    declared_type: Any
    kind: ValueKind
    storage_type: StorageType
    nullable: bool
    unique: bool = False
    unique_group: str | None = None
    autoincrement: bool = False

    @property
    def spec(self) -> ColumnSpec:
        if self.autoincrement:
            return ColumnSpec.autoincrement()
        index = IndexRole.UNIQUE if self.unique else IndexRole.NONE
        return ColumnSpec(self.storage_type, nullable=self.nullable, index=index)


@dataclass(frozen=True)
class EavDescriptor:
    """An attribute-overflow binding."""

    property: str
    table: str
    value_type: StorageType
    python_type: type


@dataclass(frozen=True)
class EntityDescriptor:
    """Everything the mapper needs to know about one ``@record`` class."""

    cls: type
    table: str
    columns: tuple[str, ...]
    column_info: Mapping[str, ColumnDescriptor]
    eav: Mapping[str, EavDescriptor] = field(default_factory=lambda: MappingProxyType({}))
    foreign: Mapping[str, type] = field(default_factory=lambda: MappingProxyType({}))
    unique_groups: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))

    def __getitem__(self, name: str) -> ColumnDescriptor:
        return self.column_info[name]

    @property
    def unique(self) -> tuple[str, ...]:
        """Columns with their own standalone unique key."""
        return tuple(name for name in self.columns if self.column_info[name].unique)

    def column_specs(self) -> dict[str, ColumnSpec]:
        return {name: self.column_info[name].spec for name in self.columns}


@dataclass(frozen=True)
class JunctionDescriptor:
    """A many-to-many link table: every column is a non-null foreign id."""

    cls: type
    table: str
    foreign: Mapping[str, type]

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(self.foreign)

    def column_specs(self) -> dict[str, ColumnSpec]:
        return {name: ColumnSpec(StorageType.INT, nullable=False, index=IndexRole.PRIMARY) for name in self.foreign}


_cache: dict[type, EntityDescriptor | JunctionDescriptor] = {}
_lock = threading.RLock()


def describe(cls: type) -> EntityDescriptor | JunctionDescriptor:
    """Describe a ``@record`` or ``@junction`` class (cached).

    Raises:
        MetadataError: The class carries neither marker, or its declarations
            are malformed.
    """
    if not isinstance(cls, type):
        cls = type(cls)
    if getattr(cls, JUNCTION_MARKER, None) is not None:
        return describe_junction(cls)
    return describe_record(cls)


def describe_record(cls: type) -> EntityDescriptor:
    """Describe an entity class (cached)."""
    with _lock:
        cached = _cache.get(cls)
        if cached is None:
            cached = _cache[cls] = _build_entity(cls)
    if not isinstance(cached, EntityDescriptor):
        raise MetadataError(f"{cls.__name__} is a junction, not a record").with_context(entity=cls.__name__)
    return cached


def describe_junction(cls: type) -> JunctionDescriptor:
    """Describe a junction marker class (cached)."""
    with _lock:
        cached = _cache.get(cls)
        if cached is None:
            cached = _cache[cls] = _build_junction(cls)
    if not isinstance(cached, JunctionDescriptor):
        raise MetadataError(f"{cls.__name__} is a record, not a junction").with_context(entity=cls.__name__)
    return cached


def clear_cache() -> None:
    """Forget all descriptors (primarily for testing)."""
    with _lock:
        _cache.clear()


# =============================================================================
# ENTITIES
# =============================================================================


def _build_entity(cls: type) -> EntityDescriptor:
    owner = cls.__name__
    table = getattr(cls, RECORD_MARKER, None)
    if table is None:
        raise MetadataError(f"{owner} has no @record declaration").with_context(entity=owner)
    _check_identifier(table, "table name", owner)

    fields, eav_fields = _declared_fields(cls)
    if "id" not in fields:
        raise MetadataError(f"{owner} has no 'id' column; derive it from Entity").with_context(entity=owner)

    hints = _type_hints(cls)
    column_info: dict[str, ColumnDescriptor] = {}
    groups: dict[str, list[str]] = {}
    foreign: dict[str, type] = {}

    for name, declared in fields.items():
        info = _describe_column(owner, name, declared, hints.get(name))
        column_info[name] = info
        if info.unique_group is not None:
            groups.setdefault(info.unique_group, []).append(name)
        if info.kind is ValueKind.ENTITY:
            foreign[name] = info.declared_type

    eav = {name: _describe_eav(owner, name, marker) for name, marker in eav_fields.items()}

    columns = ("id", *(name for name in fields if name != "id"))
    return EntityDescriptor(
        cls=cls,
        table=table,
        columns=columns,
        column_info=MappingProxyType(column_info),
        eav=MappingProxyType(eav),
        foreign=MappingProxyType(foreign),
        unique_groups=MappingProxyType({k: tuple(v) for k, v in groups.items()}),
    )


def _declared_fields(cls: type) -> tuple[dict[str, Column], dict[str, Eav]]:
    """Collect column and EAV descriptors, base classes first."""
    columns: dict[str, Column] = {}
    eav: dict[str, Eav] = {}
    for klass in reversed(cls.__mro__):
        for name, value in vars(klass).items():
            if isinstance(value, Column):
                columns[name] = value
                eav.pop(name, None)
            elif isinstance(value, Eav):
                eav[name] = value
                columns.pop(name, None)
    return columns, eav


def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError, AttributeError) as e:
        raise MetadataError(
            f"Cannot resolve annotations of {cls.__name__}: {e}", cause=e
        ).with_context(entity=cls.__name__) from e


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Split ``X | None`` into ``(X, True)``.  ``Any`` means "not annotated"."""
    if annotation is None or annotation is Any or annotation is typing.ClassVar:
        return None, False
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = typing.get_args(annotation)
        rest = tuple(arg for arg in args if arg is not type(None))
        nullable = len(rest) != len(args)
        if len(rest) == 1:
            inner, _ = _unwrap_optional(rest[0])
            return inner, nullable
        # A union of several types is stored as a structure.
        return object, nullable
    return annotation, False


def _describe_column(owner: str, name: str, declared: Column, annotation: Any) -> ColumnDescriptor:
    annotated, annotated_nullable = _unwrap_optional(annotation)

    # (a) explicit type, (b) annotation, (c) default's type, (d) nullable string
    explicit: StorageType | None = None
    declared_type: Any = annotated
    if declared.type is not None:
        if isinstance(declared.type, StorageType | str):
            try:
                explicit = StorageType.parse(declared.type)
            except ValueError as e:
                raise MetadataError(
                    f"{owner}.{name}: unknown column type {declared.type!r}", cause=e
                ).with_context(entity=owner, column=name) from e
            if declared_type is None:
                declared_type = python_type(explicit)
        else:
            declared_type = declared.type
    if declared_type is None and declared.default is not None:
        declared_type = type(declared.default)
    if declared_type is None:
        declared_type = str

    kind, storage = classify(declared_type)
    if explicit is not None:
        allowed = _ALLOWED_STORAGE.get(kind)
        if allowed is not None and explicit not in allowed:
            raise MetadataError(
                f"{owner}.{name}: {getattr(declared_type, '__name__', declared_type)} "
                f"cannot be stored as {explicit.value}"
            ).with_context(entity=owner, column=name)
        storage = explicit

    if declared.nullable is not None:
        nullable = declared.nullable
    elif annotated is not None:
        nullable = annotated_nullable
    else:
        nullable = declared.default is None and declared.default_factory is None

    unique, group = _unique(owner, name, declared.unique)

    if name == "id":
        if storage is not StorageType.INT:
            raise MetadataError(f"{owner}.id must be an int column").with_context(entity=owner, column=name)
        return ColumnDescriptor(
            name=name,
            owner_name=owner,
            declared_type=int,
            kind=ValueKind.SCALAR,
            storage_type=StorageType.INT,
            nullable=False,
            autoincrement=True,
        )

    return ColumnDescriptor(
        name=name,
        owner_name=owner,
        declared_type=declared_type,
        kind=kind,
        storage_type=storage,
        nullable=nullable,
        unique=unique,
        unique_group=group,
    )


def _unique(owner: str, name: str, value: bool | str) -> tuple[bool, str | None]:
    if isinstance(value, bool):
        return value, None
    if isinstance(value, str) and _IDENTIFIER.match(value):
        return False, value
    raise MetadataError(
        f"{owner}.{name}: unique must be True or a group name, got {value!r}"
    ).with_context(entity=owner, column=name)


def _describe_eav(owner: str, name: str, marker: Eav) -> EavDescriptor:
    _check_identifier(marker.table, "EAV table name", owner)
    value_type = marker.value_type
    try:
        if isinstance(value_type, StorageType | str):
            storage = StorageType.parse(value_type)
        else:
            kind, storage = classify(value_type)
            if kind is not ValueKind.SCALAR:
                storage = None
    except ValueError:
        storage = None
    if storage not in _EAV_VALUE_TYPES:
        raise MetadataError(
            f"{owner}.{name}: EAV values must be bool, int, float or str, got {value_type!r}"
        ).with_context(entity=owner, column=name)
    return EavDescriptor(property=name, table=marker.table, value_type=storage, python_type=python_type(storage))


def _check_identifier(value: Any, what: str, owner: str) -> None:
    if not isinstance(value, str) or not _IDENTIFIER.match(value):
        raise MetadataError(f"{owner}: invalid {what} {value!r}").with_context(entity=owner)


# =============================================================================
# JUNCTIONS
# =============================================================================


def _build_junction(cls: type) -> JunctionDescriptor:
    owner = cls.__name__
    marker = getattr(cls, JUNCTION_MARKER, None)
    if marker is None:
        raise MetadataError(f"{owner} has no @junction declaration").with_context(entity=owner)
    table, targets = marker
    _check_identifier(table, "table name", owner)
    if not targets:
        raise MetadataError(f"{owner}: a junction needs at least one foreign column").with_context(
            entity=owner, table=table
        )

    foreign: dict[str, type] = {}
    for column, target in targets.items():
        _check_identifier(column, "column name", owner)
        resolved = _resolve_target(cls, target)
        if not is_record_class(resolved):
            raise MetadataError(
                f"{owner}.{column}: {target!r} is not a @record class"
            ).with_context(entity=owner, column=column)
        foreign[column] = resolved
    return JunctionDescriptor(cls=cls, table=table, foreign=MappingProxyType(foreign))


def _resolve_target(cls: type, target: type | str) -> Any:
    """Resolve a class reference, given directly or by (dotted) name."""
    if not isinstance(target, str):
        return target
    module = sys.modules.get(cls.__module__)
    if module is not None and target in vars(module):
        return vars(module)[target]
    module_name, sep, attr = target.replace(":", ".").rpartition(".")
    if sep:
        try:
            return getattr(importlib.import_module(module_name), attr)
        except (ImportError, AttributeError) as e:
            raise MetadataError(
                f"{cls.__name__}: cannot resolve {target!r}", cause=e
            ).with_context(entity=cls.__name__) from e
    raise MetadataError(f"{cls.__name__}: cannot resolve {target!r}").with_context(entity=cls.__name__)


__all__ = [
    "ColumnDescriptor",
    "EavDescriptor",
    "EntityDescriptor",
    "JunctionDescriptor",
    "describe",
    "describe_record",
    "describe_junction",
    "clear_cache",
]
