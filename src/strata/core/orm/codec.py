"""
Bidirectional conversion between declared Python values and storage scalars.

Manifesto:
    A value either converts exactly or fails.  ``"abc"`` for an int column,
    ``3.7`` for an int column, or 300 characters for a ``VARCHAR(255)``
    column raise :class:`~strata.core.errors.TypeCodecError`; nothing is
    truncated or nulled behind the caller's back.

Mapping table:
    ::

        declared type                 kind       storage
        ────────────────────────────  ─────────  ────────
        bool / int / float            scalar     BOOL / INT / FLOAT
        str                           scalar     STRING
        Text                          scalar     TEXT
        bytes                         scalar     BLOB
        datetime (and subclasses)     datetime   DATETIME   'YYYY-MM-DD HH:MM:SS' UTC
        @record entity class          entity     INT        referenced id
        anything else                 complex    BLOB       pickle

``None`` passes through both directions untouched.

Tags:
    orm, codec, hydration, serialization, strata

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import datetime as dt
import pickle
import typing
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from strata.core.errors import TypeCodecError

from .declarations import is_record_class
from .types import SHORT_STRING_LENGTH, StorageType, Text

if TYPE_CHECKING:
    from .metadata import ColumnDescriptor

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
TEXT_MAX_BYTES = 65535

_SCALAR_TYPES: dict[Any, StorageType] = {
    bool: StorageType.BOOL,
    int: StorageType.INT,
    float: StorageType.FLOAT,
    str: StorageType.STRING,
    Text: StorageType.TEXT,
    bytes: StorageType.BLOB,
    bytearray: StorageType.BLOB,
}

_PYTHON_TYPES: dict[StorageType, type] = {
    StorageType.BOOL: bool,
    StorageType.INT: int,
    StorageType.FLOAT: float,
    StorageType.DATETIME: dt.datetime,
    StorageType.STRING: str,
    StorageType.TEXT: str,
    StorageType.BLOB: bytes,
}

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off", ""})


class ValueKind(str, Enum):
    SCALAR = "scalar"
    DATETIME = "datetime"
    ENTITY = "entity"
    COMPLEX = "complex"


def classify(declared: Any) -> tuple[ValueKind, StorageType]:
    """Map a declared type to its conversion kind and storage type."""
    if typing.get_origin(declared) is not None:
        return ValueKind.COMPLEX, StorageType.BLOB
    if declared in _SCALAR_TYPES:
        return ValueKind.SCALAR, _SCALAR_TYPES[declared]
    if isinstance(declared, type) and issubclass(declared, dt.datetime):
        return ValueKind.DATETIME, StorageType.DATETIME
    if is_record_class(declared):
        return ValueKind.ENTITY, StorageType.INT
    return ValueKind.COMPLEX, StorageType.BLOB


def python_type(storage: StorageType) -> type:
    """The Python type a storage type hydrates to when nothing richer is declared."""
    return _PYTHON_TYPES[storage]


# =============================================================================
# SCALAR COERCION
# =============================================================================


def coerce(storage: StorageType, value: Any, *, strict: bool = True) -> Any:
    """Coerce a scalar to the canonical Python value for ``storage``.

    ``strict`` enforces the short-string and ``TEXT`` length limits; it is
    off when reading values the engine already accepted.

    Raises:
        TypeCodecError: The value cannot represent the storage type exactly.
    """
    if value is None:
        return None
    try:
        match storage:
            case StorageType.BOOL:
                return _to_bool(value)
            case StorageType.INT:
                return _to_int(value)
            case StorageType.FLOAT:
                return _to_float(value)
            case StorageType.STRING | StorageType.TEXT:
                text = _to_str(value)
                if strict:
                    _check_length(storage, text)
                return text
            case StorageType.BLOB:
                return _to_bytes(value)
            case StorageType.DATETIME:
                return dehydrate_datetime(value)
    except (TypeError, ValueError, UnicodeDecodeError) as e:
        raise TypeCodecError(
            f"Cannot coerce {type(value).__name__} value to {storage.value}: {e}",
            value=value,
            cause=e,
        ) from e
    raise TypeCodecError(f"Unknown storage type: {storage!r}")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"{value!r} is not a boolean")


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value!r} is not integral")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return _to_int(float(text))
    raise TypeError(f"{type(value).__name__} is not an integer")


def _to_float(value: Any) -> float:
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise TypeError(f"{type(value).__name__} is not a number")


def _to_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).decode("utf-8")
    if isinstance(value, dt.datetime):
        return dehydrate_datetime(value)
    raise TypeError(f"{type(value).__name__} is not a string")


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, bytearray | memoryview):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"{type(value).__name__} is not binary")


def _check_length(storage: StorageType, text: str) -> None:
    if storage is StorageType.STRING and len(text) > SHORT_STRING_LENGTH:
        raise ValueError(f"{len(text)} characters exceeds {SHORT_STRING_LENGTH}")
    if storage is StorageType.TEXT and len(text.encode("utf-8")) > TEXT_MAX_BYTES:
        raise ValueError(f"{len(text.encode('utf-8'))} bytes exceeds {TEXT_MAX_BYTES}")


# =============================================================================
# DATETIME
# =============================================================================


def dehydrate_datetime(value: Any) -> str:
    """Format a datetime as UTC ``YYYY-MM-DD HH:MM:SS``; naive values are UTC.

    The stored text keeps neither the zone nor sub-second digits, so a
    value reads back as the same instant, aware and in UTC, truncated to
    whole seconds.  Declare datetimes aware when equality after a round
    trip matters.
    """
    if isinstance(value, str):
        value = dt.datetime.strptime(value, DATETIME_FORMAT)
    if not isinstance(value, dt.datetime):
        raise TypeError(f"{type(value).__name__} is not a datetime")
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc).strftime(DATETIME_FORMAT)


def hydrate_datetime(stored: Any, cls: type[dt.datetime] = dt.datetime) -> dt.datetime:
    """Parse a stored UTC datetime into an aware instance of ``cls``."""
    if isinstance(stored, dt.datetime):
        parsed = stored.replace(tzinfo=dt.timezone.utc) if stored.tzinfo is None else stored
        parsed = parsed.astimezone(dt.timezone.utc)
    else:
        if isinstance(stored, bytes | bytearray):
            stored = bytes(stored).decode("ascii")
        parsed = dt.datetime.strptime(str(stored), DATETIME_FORMAT).replace(tzinfo=dt.timezone.utc)
    if type(parsed) is cls:
        return parsed
    return cls(
        parsed.year, parsed.month, parsed.day,
        parsed.hour, parsed.minute, parsed.second,
        tzinfo=dt.timezone.utc,
    )


# =============================================================================
# CODEC
# =============================================================================


class RecordLoader(Protocol):
    """What the codec needs to hydrate entity references."""

    def get_record(self, cls: type) -> Any: ...


class TypeCodec:
    """Converts column values between declared types and storage scalars.

    Bound to a :class:`RecordLoader` (the :class:`~strata.core.database.Database`)
    so entity-valued columns can hydrate through the target's record.
    """

    def __init__(self, loader: RecordLoader | None = None):
        self._loader = loader

    def dehydrate(self, column: ColumnDescriptor, value: Any) -> Any:
        """Convert a declared value to a storage scalar."""
        if value is None:
            return None
        try:
            match column.kind:
                case ValueKind.ENTITY:
                    return self._dehydrate_entity(column, value)
                case ValueKind.DATETIME:
                    return coerce(column.storage_type, value)
                case ValueKind.COMPLEX:
                    return coerce(column.storage_type, _serialize(value))
                case _:
                    return coerce(column.storage_type, value)
        except TypeCodecError as e:
            raise e.with_context(column=column.name, entity=column.owner_name)

    def hydrate(self, column: ColumnDescriptor, stored: Any) -> Any:
        """Convert a storage scalar back to the declared type."""
        if stored is None:
            return None
        try:
            match column.kind:
                case ValueKind.ENTITY:
                    return self._hydrate_entity(column, stored)
                case ValueKind.DATETIME:
                    return self._hydrate_datetime(column, stored)
                case ValueKind.COMPLEX:
                    return _unserialize(column.declared_type, stored)
                case _:
                    return _hydrate_scalar(column.declared_type, column.storage_type, stored)
        except TypeCodecError as e:
            raise e.with_context(column=column.name, entity=column.owner_name)

    def _dehydrate_entity(self, column: ColumnDescriptor, value: Any) -> int:
        if isinstance(value, int) and not isinstance(value, bool):
            if value <= 0:
                raise TypeCodecError(f"Invalid {column.declared_type.__name__} id: {value}", value=value)
            return value
        if not isinstance(value, column.declared_type):
            raise TypeCodecError(
                f"Expected {column.declared_type.__name__}, got {type(value).__name__}",
                value=value,
            )
        entity_id = value.id
        if not entity_id:
            raise TypeCodecError(
                f"{column.declared_type.__name__} must be saved before it can be referenced",
                value=value,
            )
        return entity_id

    def _hydrate_entity(self, column: ColumnDescriptor, stored: Any) -> Any:
        if self._loader is None:
            raise TypeCodecError("Entity references need a database to hydrate", value=stored)
        return self._loader.get_record(column.declared_type).load(coerce(StorageType.INT, stored))

    @staticmethod
    def _hydrate_datetime(column: ColumnDescriptor, stored: Any) -> dt.datetime:
        try:
            return hydrate_datetime(stored, column.declared_type)
        except (TypeError, ValueError) as e:
            raise TypeCodecError(f"Invalid stored datetime: {stored!r}", value=stored, cause=e) from e


def _hydrate_scalar(declared: Any, storage: StorageType, stored: Any) -> Any:
    value = coerce(storage, stored, strict=False)
    target = python_type(storage) if declared is Text else declared
    if target is str and isinstance(value, bytes):
        return value.decode("utf-8")
    if target in (bytes, bytearray) and isinstance(value, str):
        return target(value.encode("utf-8"))
    if target in (bool, int, float) and not isinstance(value, target):
        return coerce(_SCALAR_TYPES[target], value, strict=False)
    return value


def _serialize(value: Any) -> bytes:
    try:
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
    except (pickle.PicklingError, TypeError, AttributeError) as e:
        raise TypeCodecError(
            f"Cannot serialize {type(value).__name__} value",
            value=value,
            cause=e,
        ) from e


def _unserialize(declared: Any, stored: Any) -> Any:
    try:
        value = pickle.loads(coerce(StorageType.BLOB, stored))
    except (pickle.UnpicklingError, EOFError, AttributeError, ImportError, TypeError, ValueError) as e:
        raise TypeCodecError("Stored value is not a valid serialized structure", cause=e) from e

    if value is None or isinstance(value, bool | int | float | str | bytes):
        raise TypeCodecError(
            f"Expected a structure, unserialized a bare {type(value).__name__}",
            value=value,
        )
    expected = typing.get_origin(declared) or declared
    if isinstance(expected, type) and expected is not object and not isinstance(value, expected):
        raise TypeCodecError(
            f"Expected {expected.__name__}, unserialized {type(value).__name__}",
            value=value,
        )
    return value


__all__ = [
    "DATETIME_FORMAT",
    "ValueKind",
    "TypeCodec",
    "classify",
    "coerce",
    "python_type",
    "dehydrate_datetime",
    "hydrate_datetime",
]
