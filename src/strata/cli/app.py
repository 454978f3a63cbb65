"""
Root Typer application for the strata CLI.

``strata migrate`` applies, reverts, inspects and generates migrations for
one named connection.
"""

from __future__ import annotations

import importlib
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from typer import Typer

from strata.core.config import resolve_profile
from strata.core.database import Database
from strata.core.errors import StrataError
from strata.core.logging import LogContext, configure_logging
from strata.core.migrations import BASE, MigrationGenerator, MigrationRegistry, Migrator
from strata.core.settings import get_settings

console = Console()
err_console = Console(stderr=True)

app = Typer(
    name="strata",
    help="strata: entity mapping and schema migrations.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
migrate_app = Typer(no_args_is_help=True)
app.add_typer(migrate_app, name="migrate", help="Apply, revert and generate migrations.")


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from strata import __version__

        typer.echo(f"strata {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """strata CLI: manage schema migrations."""


# ── Connection options ───────────────────────────────────────────────────

ConfigOption = typer.Option(None, "--config", "-c", help="Connection profiles file (TOML).")
ConnectionOption = typer.Option(None, "--connection", help="Connection name from the profiles file.")
DatabaseOption = typer.Option(None, "--database", "-d", help="Database URL (overrides the profile).")
MigrationsOption = typer.Option(None, "--migrations", "-m", help="Migrations directory (overrides the profile).")


@contextmanager
def _session(
    config: Path | None,
    connection: str | None,
    database: str | None,
    migrations: Path | None,
) -> Iterator[tuple[Database, Path]]:
    """Open the selected connection; report strata errors and exit 1."""
    settings = get_settings()
    configure_logging(settings.log_level, json_format=settings.json_logs)
    try:
        profile = resolve_profile(settings, connection, config)
        directory = migrations or profile.migrations_dir
        with LogContext(connection=profile.name), Database.from_url(database or profile.url, settings=settings) as db:
            yield db, directory
    except StrataError as e:
        err_console.print(f"[bold red]Error[/bold red] ({type(e).__name__}): {e.message}")
        raise typer.Exit(code=1) from e


def _migrator(db: Database, directory: Path) -> Migrator:
    return Migrator(db, MigrationRegistry.from_directory(directory))


def _import_target(target: str) -> type:
    module_name, sep, attr = target.replace("/", ".").partition(":")
    if not sep:
        module_name, _, attr = module_name.rpartition(".")
    if not module_name or not attr:
        raise typer.BadParameter(f"expected MODULE:CLASS, got {target!r}")
    try:
        return getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise typer.BadParameter(f"cannot import {target!r}: {e}") from e


def _label(sequence: str) -> str:
    return sequence or "BASE"


# ── Commands ─────────────────────────────────────────────────────────────


@migrate_app.command()
def status(
    config: Path | None = ConfigOption,
    connection: str | None = ConnectionOption,
    database: str | None = DatabaseOption,
    migrations: Path | None = MigrationsOption,
) -> None:
    """Show registered migrations and the current sequence."""
    with _session(config, connection, database, migrations) as (db, directory):
        migrator = _migrator(db, directory)
        rows = migrator.status()
        current = migrator.get_current()

    table = Table(title="Migrations")
    table.add_column("Sequence", style="cyan")
    table.add_column("Identifier")
    table.add_column("Applied")
    for row in rows:
        applied = "[green]yes[/green]" if row.applied else "[dim]no[/dim]"
        table.add_row(row.sequence, row.identifier or "[red]missing[/red]", applied)
    console.print(table)
    console.print(f"Current: [bold]{_label(current)}[/bold]")


@migrate_app.command()
def up(
    to: str | None = typer.Option(None, "--to", help="Stop after this sequence (default: all)."),
    config: Path | None = ConfigOption,
    connection: str | None = ConnectionOption,
    database: str | None = DatabaseOption,
    migrations: Path | None = MigrationsOption,
) -> None:
    """Apply pending migrations."""
    with _session(config, connection, database, migrations) as (db, directory):
        result = _migrator(db, directory).up(to)
    if not result.changed:
        console.print("Nothing to do.")
        return
    for sequence in result.applied:
        console.print(f"[green]applied[/green] {sequence}")
    console.print(f"Upgraded from {_label(result.previous)} to {_label(result.current)}")


@migrate_app.command()
def down(
    to: str | None = typer.Option(
        None, "--to", help="Revert everything above this sequence; BASE reverts all (default: one step)."
    ),
    config: Path | None = ConfigOption,
    connection: str | None = ConnectionOption,
    database: str | None = DatabaseOption,
    migrations: Path | None = MigrationsOption,
) -> None:
    """Revert applied migrations."""
    target = BASE if to == "BASE" else to
    with _session(config, connection, database, migrations) as (db, directory):
        result = _migrator(db, directory).down(target)
    if not result.changed:
        console.print("Nothing to do.")
        return
    for sequence in result.reverted:
        console.print(f"[yellow]reverted[/yellow] {sequence}")
    console.print(f"Downgraded from {_label(result.previous)} to {_label(result.current)}")


@migrate_app.command("generate-record")
def generate_record(
    target: str = typer.Argument(..., help="Entity class as MODULE:CLASS."),
    config: Path | None = ConfigOption,
    connection: str | None = ConnectionOption,
    database: str | None = DatabaseOption,
    migrations: Path | None = MigrationsOption,
) -> None:
    """Write a migration for a @record class's table and attribute tables."""
    cls = _import_target(target)
    with _session(config, connection, database, migrations) as (db, directory):
        path = MigrationGenerator(db, directory).for_record(cls)
    _report_generated(path)


@migrate_app.command("generate-junction")
def generate_junction(
    target: str = typer.Argument(..., help="Junction class as MODULE:CLASS."),
    config: Path | None = ConfigOption,
    connection: str | None = ConnectionOption,
    database: str | None = DatabaseOption,
    migrations: Path | None = MigrationsOption,
) -> None:
    """Write a migration creating a @junction class's table."""
    cls = _import_target(target)
    with _session(config, connection, database, migrations) as (db, directory):
        path = MigrationGenerator(db, directory).for_junction(cls)
    _report_generated(path)


def _report_generated(path: Path | None) -> None:
    if path is None:
        console.print("Nothing to do.")
    else:
        console.print(f"Wrote {path}")
