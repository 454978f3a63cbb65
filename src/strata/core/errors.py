"""
Structured error types for strata.

Every failure raised by the mapping layer and the migration engine is a
:class:`StrataError`.  Each carries a category, an :class:`ErrorContext`
with the table/column/sequence involved, and the chained driver exception
when one exists.

Manifesto:
    - **Fail where the problem is:** Declaration errors surface when the
      descriptor is built, codec errors when a value is converted, never
      later at query time.
    - **Keep the engine's words:** Driver failures are wrapped, not
      rephrased.  The original message and exception travel with the error.
    - **Programmer errors are loud:** Misusing a read-only view or closing
      transactions out of order is an :class:`AccessError`, not a warning.

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────┐
        │                        StrataError                         │
        │            (category, context, cause, to_dict)            │
        ├───────────────────────────────────────────────────────────┤
        │  MetadataError     TypeCodecError      MigrationError     │
        │  (METADATA)        (TYPE)              (MIGRATION)        │
        │                                                            │
        │  DatabaseError     SchemaError         ConfigError        │
        │  (DATABASE)        (SCHEMA)            (CONFIG)           │
        │      │                 │                                   │
        │  QueryError        UnsupportedOperationError               │
        │  IntegrityError                                            │
        │  DatabaseConnectionError (retryable)   AccessError        │
        └───────────────────────────────────────────────────────────┘

Examples:
    >>> error = QueryError("no such table: authors")
    >>> error.with_context(table="authors").to_dict()["context"]
    {'table': 'authors'}

Tags:
    error-handling, exception-hierarchy, strata, orm, migrations

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    DATABASE = "DATABASE"         # Driver, connection, constraint
    METADATA = "METADATA"         # Entity / junction declarations
    TYPE = "TYPE"                 # Hydration / dehydration
    SCHEMA = "SCHEMA"             # DDL generation and introspection
    MIGRATION = "MIGRATION"       # Sequencing, discovery, unit failures
    ACCESS = "ACCESS"             # Contract violations
    CONFIG = "CONFIG"             # Settings, profiles, optional drivers
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only the fields that are set are serialized by :meth:`to_dict`, so a
    codec error reports its column and a migration error its sequence
    without either carrying empty keys.

    Attributes:
        table: Table the operation targeted
        column: Column or property involved
        entity: Entity class name
        sequence: Migration sequence identifier
        identifier: Migration unit identifier
        sql: Statement that failed
        metadata: Additional key-value pairs
    """

    table: str | None = None
    column: str | None = None
    entity: str | None = None
    sequence: str | None = None
    identifier: str | None = None
    sql: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["table", "column", "entity", "sequence", "identifier", "sql"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StrataError(Exception):
    """
    Base exception for all strata errors.

    Subclasses set ``default_category`` (and ``default_retryable`` where the
    failure is transient) so call sites only pass a message and whatever
    context they know.

    Examples:
        >>> error = StrataError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> try:
        ...     raise ValueError("bad literal")
        ... except ValueError as e:
        ...     error = TypeCodecError("cannot coerce", cause=e)
        >>> error.cause
        ValueError('bad literal')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StrataError:
        """
        Add context to this error (fluent API).

        Usage:
            raise MigrationError("unit failed").with_context(
                sequence="20240101T000000000000Z",
                identifier="Author",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# DECLARATION / CONVERSION ERRORS
# =============================================================================


class MetadataError(StrataError):
    """Missing or malformed entity / junction declaration."""

    default_category = ErrorCategory.METADATA


class TypeCodecError(StrataError):
    """
    A value could not be converted to or from its storage type.

    Raised for unsupported complex values, failed scalar coercion, and
    hydrated values that fail their shape check.
    """

    default_category = ErrorCategory.TYPE

    def __init__(self, message: str, *, value: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(StrataError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE


class QueryError(DatabaseError):
    """SQL statement rejected by the engine."""

    pass


class IntegrityError(DatabaseError):
    """Uniqueness or foreign-key violation reported by the engine."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Database connection could not be established."""

    default_retryable = True


# =============================================================================
# SCHEMA / MIGRATION ERRORS
# =============================================================================


class SchemaError(StrataError):
    """DDL generation or introspection error."""

    default_category = ErrorCategory.SCHEMA


class UnsupportedOperationError(SchemaError):
    """The active dialect cannot perform the requested schema change."""

    def __init__(self, operation: str, dialect: str, message: str | None = None):
        self.operation = operation
        self.dialect = dialect
        super().__init__(message or f"{operation} is not supported by the {dialect} dialect")


class MigrationError(StrataError):
    """Migration discovery, sequencing, or unit failure."""

    default_category = ErrorCategory.MIGRATION


# =============================================================================
# CONTRACT / CONFIGURATION ERRORS
# =============================================================================


class AccessError(StrataError):
    """Contract violation: read-only view mutated, scope misuse, etc."""

    default_category = ErrorCategory.ACCESS


class ConfigError(StrataError):
    """Configuration error.  Never retryable."""

    default_category = ErrorCategory.CONFIG


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StrataError",
    "MetadataError",
    "TypeCodecError",
    "DatabaseError",
    "QueryError",
    "IntegrityError",
    "DatabaseConnectionError",
    "SchemaError",
    "UnsupportedOperationError",
    "MigrationError",
    "AccessError",
    "ConfigError",
    "MissingConfigError",
]
