"""Tests for migration unit registration and discovery."""

from __future__ import annotations

import types

import pytest

from strata.core.errors import MigrationError
from strata.core.migrations import MigrationRegistry


def unit(**overrides):
    namespace = {"up": lambda schema: None, "down": lambda schema: None, **overrides}
    return types.SimpleNamespace(**namespace)


class TestRegister:
    def test_iterates_in_sequence_order(self):
        registry = MigrationRegistry()
        registry.register("0003", "c", unit())
        registry.register("0001", "a", unit())
        registry.register("0002", "b", unit())
        assert [s.identifier for s in registry] == ["a", "b", "c"]
        assert registry.sequences == ["0001", "0002", "0003"]
        assert len(registry) == 3
        assert "0002" in registry
        assert registry.get("0009") is None

    @pytest.mark.parametrize("sequence", ["", "2024_01"])
    def test_invalid_sequence(self, sequence):
        with pytest.raises(MigrationError, match="Invalid migration sequence"):
            MigrationRegistry().register(sequence, "x", unit())

    def test_duplicate(self):
        registry = MigrationRegistry()
        registry.register("0001", "a", unit())
        with pytest.raises(MigrationError, match="Duplicate") as excinfo:
            registry.register("0001", "b", unit())
        assert excinfo.value.context.sequence == "0001"

    def test_unit_needs_up_and_down(self):
        with pytest.raises(MigrationError, match="must define"):
            MigrationRegistry().register("0001", "a", types.SimpleNamespace(up=lambda schema: None))


class TestFromDirectory:
    def test_missing_directory(self, tmp_path):
        assert len(MigrationRegistry.from_directory(tmp_path / "nope")) == 0

    def test_discovers_matching_files(self, migrations_dir, write_migration):
        write_migration("0002", "Books", "pass", "pass")
        write_migration("0001", "Authors", "pass", "pass")
        (migrations_dir / "README.md").write_text("not a migration")
        (migrations_dir / "helpers.py").write_text("x = 1")
        registry = MigrationRegistry.from_directory(migrations_dir)
        assert [(s.sequence, s.identifier) for s in registry] == [("0001", "Authors"), ("0002", "Books")]
        assert registry.get("0001").path == migrations_dir / "0001_Authors.py"

    def test_identifier_may_contain_underscores(self, migrations_dir, write_migration):
        write_migration("20240101T000000000000Z", "add_author_email", "pass", "pass")
        spec = next(iter(MigrationRegistry.from_directory(migrations_dir)))
        assert spec.sequence == "20240101T000000000000Z"
        assert spec.identifier == "add_author_email"

    def test_sequence_mismatch(self, migrations_dir, write_migration):
        write_migration("0001", "Authors", "pass", "pass", declared="0002")
        with pytest.raises(MigrationError, match="declares SEQUENCE"):
            MigrationRegistry.from_directory(migrations_dir)

    def test_import_failure(self, migrations_dir):
        (migrations_dir / "0001_Broken.py").write_text("def up(schema):\n    return (\n")
        with pytest.raises(MigrationError, match="Failed to import") as excinfo:
            MigrationRegistry.from_directory(migrations_dir)
        assert excinfo.value.context.identifier == "Broken"
