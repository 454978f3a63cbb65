"""
Shared pytest fixtures and configuration for strata tests.

This module provides:
- Settings cache cleanup for test isolation
- In-memory SQLite databases, bare and with the sample tables created
- Helpers for writing migration files into a temporary directory

Usage:
    def test_something(tables):
        authors = tables.get_record(Author)
        ...
"""

from __future__ import annotations

import textwrap
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog

from strata.core.adapters import SQLiteAdapter
from strata.core.database import Database
from strata.core.settings import StrataSettings, clear_settings_cache

from _support.models import Author, AuthorsToBooks, Book, Sample


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop cached settings and any STRATA_* variables from the environment."""
    import os

    for key in list(os.environ):
        if key.startswith("STRATA_"):
            monkeypatch.delenv(key)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo any structlog configuration a test (or the CLI) installed."""
    yield
    structlog.reset_defaults()


# =============================================================================
# Databases
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> StrataSettings:
    return StrataSettings(
        database_url="sqlite:///:memory:",
        migrations_dir=tmp_path / "migrations",
        config_file=tmp_path / "strata.toml",
    )


@pytest.fixture
def db(settings: StrataSettings) -> Generator[Database, None, None]:
    """Empty in-memory SQLite database."""
    database = Database(SQLiteAdapter(":memory:"), settings=settings)
    yield database
    database.close()


@pytest.fixture
def tables(db: Database) -> Database:
    """Database with the sample record, attribute and junction tables created."""
    schema = db.schema
    schema.create_record_table(Author)
    schema.create_eav_table(Author, "attributes")
    schema.create_record_table(Book)
    schema.create_junction_table(AuthorsToBooks)
    schema.create_record_table(Sample)
    schema.create_eav_table(Sample, "scores")
    return db


# =============================================================================
# Migration files
# =============================================================================


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    path = tmp_path / "migrations"
    path.mkdir()
    return path


@pytest.fixture
def write_migration(migrations_dir: Path) -> Callable[..., Path]:
    """Write ``<sequence>_<identifier>.py`` with the given up/down bodies."""

    def body(code: str) -> str:
        return textwrap.indent(textwrap.dedent(code).strip() or "pass", "    ")

    def write(sequence: str, identifier: str, up: str, down: str, *, declared: str | None = None) -> Path:
        source = "\n".join([
            "from strata.core.orm.types import ColumnSpec, IndexRole, StorageType",
            "",
            f"SEQUENCE = {(declared or sequence)!r}",
            "",
            "",
            "def up(schema):",
            body(up),
            "",
            "",
            "def down(schema):",
            body(down),
            "",
        ])
        path = migrations_dir / f"{sequence}_{identifier}.py"
        path.write_text(source, encoding="utf-8")
        return path

    return write
