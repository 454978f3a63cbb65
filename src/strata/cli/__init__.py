"""
CLI layer for strata.

Provides a Typer application whose ``migrate`` sub-commands drive
:class:`~strata.core.migrations.Migrator` and
:class:`~strata.core.migrations.MigrationGenerator` for one named
connection.  This package handles only terminal transport: argument
parsing, coloured output and table formatting.

Entry point::

    strata --help
"""

from strata.cli.app import app

__all__ = ["app"]
