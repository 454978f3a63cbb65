"""Schema migrations for strata.

Manifesto:
    A database's physical schema evolves through ordered, reversible units.
    Each unit knows how to go ``up`` and ``down``; the ledger table records
    which sequence ids are applied, so every run is incremental and auditable.

Modules
-------
registry   MigrationRegistry (explicit registration, directory discovery)
runner     Migrator with up() / down() / status() and the ledger table
generator  MigrationGenerator writing migration files from declarations

Tags:
    strata, migrations, schema, ddl, sequencing

Doc-Types:
    package-overview
"""

from strata.core.migrations.generator import MigrationGenerator
from strata.core.migrations.registry import MigrationRegistry, MigrationSpec, MigrationUnit
from strata.core.migrations.runner import BASE, MigrationResult, MigrationStatus, Migrator

__all__ = [
    "BASE",
    "MigrationGenerator",
    "MigrationRegistry",
    "MigrationResult",
    "MigrationSpec",
    "MigrationStatus",
    "MigrationUnit",
    "Migrator",
]
