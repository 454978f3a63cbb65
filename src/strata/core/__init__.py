"""strata core -- entity mapping and schema migrations over one connection.

Manifesto:
    Typed object persistence without hand-written SQL for CRUD paths, and
    incremental, auditable schema evolution.  Declarations are read once,
    every statement goes through a dialect, and every failure surfaces as a
    typed :class:`~strata.core.errors.StrataError`.

Architecture::

    Layer 1 -- Errors, Logging, Configuration
        errors.py          StrataError hierarchy with categories and context
        logging.py         structlog configuration
        settings.py        StrataSettings (pydantic-settings, STRATA_ prefix)
        config.py          Named connection profiles (strata.toml)

    Layer 2 -- Connection
        protocols.py       Driver / Statement protocols
        dialect.py         SQLite and MySQL SQL + DDL fragments
        adapters/          sqlite3 and mysql.connector adapters
        transaction.py     Nested transaction scopes (savepoints)

    Layer 3 -- Mapping
        orm/               Declarations, metadata, codec, Record, EAV, Junction

    Layer 4 -- Schema
        schema.py          DDL and introspection
        database.py        Central access point
        migrations/        Registry, Migrator, generator

Tags:
    strata, orm, migrations, schema, sqlite, mysql

Doc-Types:
    package-overview, architecture-map, module-index
"""

from strata.core.adapters import DatabaseAdapter, MySQLAdapter, SQLiteAdapter, create_adapter
from strata.core.config import ConnectionProfile, load_profiles, resolve_profile
from strata.core.database import Database
from strata.core.dialect import Dialect, MySQLDialect, SQLiteDialect, get_dialect, register_dialect
from strata.core.errors import (
    AccessError,
    ConfigError,
    DatabaseConnectionError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    IntegrityError,
    MetadataError,
    MigrationError,
    MissingConfigError,
    QueryError,
    SchemaError,
    StrataError,
    TypeCodecError,
    UnsupportedOperationError,
)
from strata.core.logging import configure_logging, get_logger
from strata.core.migrations import (
    BASE,
    MigrationGenerator,
    MigrationRegistry,
    MigrationResult,
    MigrationStatus,
    Migrator,
)
from strata.core.schema import ColumnInfo, Schema, TableConstraints
from strata.core.settings import StrataSettings, clear_settings_cache, get_settings
from strata.core.transaction import Transaction, TransactionManager

__all__ = [
    # Errors
    "AccessError",
    "ConfigError",
    "DatabaseConnectionError",
    "DatabaseError",
    "ErrorCategory",
    "ErrorContext",
    "IntegrityError",
    "MetadataError",
    "MigrationError",
    "MissingConfigError",
    "QueryError",
    "SchemaError",
    "StrataError",
    "TypeCodecError",
    "UnsupportedOperationError",
    # Connection
    "Database",
    "DatabaseAdapter",
    "Dialect",
    "MySQLAdapter",
    "MySQLDialect",
    "SQLiteAdapter",
    "SQLiteDialect",
    "Transaction",
    "TransactionManager",
    "create_adapter",
    "get_dialect",
    "register_dialect",
    # Schema / migrations
    "BASE",
    "ColumnInfo",
    "MigrationGenerator",
    "MigrationRegistry",
    "MigrationResult",
    "MigrationStatus",
    "Migrator",
    "Schema",
    "TableConstraints",
    # Configuration / logging
    "ConnectionProfile",
    "StrataSettings",
    "clear_settings_cache",
    "configure_logging",
    "get_logger",
    "get_settings",
    "load_profiles",
    "resolve_profile",
]
