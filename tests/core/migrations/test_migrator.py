"""Tests for applying and reverting migrations."""

from __future__ import annotations

import pytest

from strata.core.errors import MigrationError
from strata.core.migrations import BASE, MigrationRegistry, Migrator

AUTHORS_UP = """
schema.create_table("authors", {
    "id": ColumnSpec.autoincrement(),
    "name": ColumnSpec(StorageType.STRING, index=IndexRole.UNIQUE),
})
"""

BOOKS_UP = """
from strata.core.schema import TableConstraints
schema.create_table(
    "books",
    {"id": ColumnSpec.autoincrement(), "author": ColumnSpec(StorageType.INT)},
    TableConstraints(foreign={"author": schema["authors"]["id"]}),
)
"""

EMAIL_UP = """
schema.add_column("authors", "email")
"""


@pytest.fixture
def three(write_migration):
    write_migration("0001", "Authors", AUTHORS_UP, 'schema.drop_table("authors")')
    write_migration("0002", "Books", BOOKS_UP, 'schema.drop_table("books")')
    write_migration("0003", "AuthorEmail", EMAIL_UP, 'schema.drop_column("authors", "email")')


def migrator(db, migrations_dir) -> Migrator:
    return Migrator(db, MigrationRegistry.from_directory(migrations_dir))


class TestUp:
    def test_applies_everything_in_order(self, db, migrations_dir, three):
        result = migrator(db, migrations_dir).up()
        assert result.previous == BASE
        assert result.current == "0003"
        assert result.applied == ["0001", "0002", "0003"]
        assert result.changed is True
        assert {"authors", "books"} <= set(db.schema.table_names())
        assert "email" in db.schema.get_column_info("authors")

    def test_ledger(self, db, migrations_dir, three):
        m = migrator(db, migrations_dir)
        m.up()
        assert db.query('SELECT "sequence" FROM "__migrations__" ORDER BY "sequence"') == [
            {"sequence": "0001"},
            {"sequence": "0002"},
            {"sequence": "0003"},
        ]
        assert m.applied() == ["0001", "0002", "0003"]

    def test_up_to_target(self, db, migrations_dir, three):
        m = migrator(db, migrations_dir)
        result = m.up("0002")
        assert result.applied == ["0001", "0002"]
        assert m.get_current() == "0002"
        assert [s.sequence for s in m.pending()] == ["0003"]

    def test_second_run_is_a_no_op(self, db, migrations_dir, three):
        m = migrator(db, migrations_dir)
        m.up()
        result = m.up()
        assert result.changed is False
        assert result.previous == result.current == "0003"

    def test_empty_registry(self, db, tmp_path):
        m = Migrator(db, MigrationRegistry.from_directory(tmp_path / "none"))
        assert m.get_current() == BASE
        assert m.up().changed is False
        assert m.down().changed is False

    def test_unknown_target(self, db, migrations_dir, three):
        with pytest.raises(MigrationError, match="Unknown migration target"):
            migrator(db, migrations_dir).up("9999")

    def test_late_arrival_is_applied(self, db, migrations_dir, write_migration):
        write_migration("0001", "Authors", AUTHORS_UP, 'schema.drop_table("authors")')
        write_migration("0003", "AuthorEmail", EMAIL_UP, 'schema.drop_column("authors", "email")')
        migrator(db, migrations_dir).up()
        write_migration("0002", "Books", BOOKS_UP, 'schema.drop_table("books")')
        result = migrator(db, migrations_dir).up()
        assert result.applied == ["0002"]
        assert result.current == "0003"

    def test_custom_ledger_table(self, db, migrations_dir, three):
        Migrator(db, MigrationRegistry.from_directory(migrations_dir), table="schema_history").up()
        assert "schema_history" in db.schema


class TestDown:
    def test_one_step(self, db, migrations_dir, three):
        m = migrator(db, migrations_dir)
        m.up()
        result = m.down()
        assert result.reverted == ["0003"]
        assert result.current == "0002"
        assert "email" not in db.schema.get_column_info("authors")

    def test_down_to_target(self, db, migrations_dir, three):
        m = migrator(db, migrations_dir)
        m.up()
        result = m.down("0001")
        assert result.reverted == ["0003", "0002"]
        assert m.get_current() == "0001"
        assert "books" not in db.schema

    def test_down_to_base(self, db, migrations_dir, three):
        m = migrator(db, migrations_dir)
        m.up()
        result = m.down(BASE)
        assert result.reverted == ["0003", "0002", "0001"]
        assert result.current == BASE
        assert set(db.schema.table_names()) == {"__migrations__"}

    def test_up_down_up_is_symmetric(self, db, migrations_dir, three):
        m = migrator(db, migrations_dir)
        m.up()
        before = {t: db.schema.get_column_info(t) for t in db.schema.table_names()}
        m.down(BASE)
        m.up()
        after = {t: db.schema.get_column_info(t) for t in db.schema.table_names()}
        assert before == after

    def test_unknown_target(self, db, migrations_dir, three):
        with pytest.raises(MigrationError, match="Unknown migration target"):
            migrator(db, migrations_dir).down("0000")


class TestGaps:
    def test_applied_unit_missing_from_registry(self, db, migrations_dir, three):
        migrator(db, migrations_dir).up()
        (migrations_dir / "0002_Books.py").unlink()
        m = migrator(db, migrations_dir)
        with pytest.raises(MigrationError, match="no registered unit") as excinfo:
            m.up()
        assert excinfo.value.context.sequence == "0002"
        with pytest.raises(MigrationError):
            m.down()

    def test_status_reports_orphans(self, db, migrations_dir, three):
        migrator(db, migrations_dir).up("0002")
        (migrations_dir / "0002_Books.py").unlink()
        rows = migrator(db, migrations_dir).status()
        assert [(r.sequence, r.identifier, r.applied) for r in rows] == [
            ("0001", "Authors", True),
            ("0002", None, True),
            ("0003", "AuthorEmail", False),
        ]


class TestFailure:
    def test_failing_unit_rolls_back_the_run(self, db, migrations_dir, write_migration):
        write_migration("0001", "Authors", AUTHORS_UP, 'schema.drop_table("authors")')
        write_migration("0002", "Broken", 'schema.add_column("missing_table", "x")', "pass")
        m = migrator(db, migrations_dir)
        with pytest.raises(MigrationError) as excinfo:
            m.up()
        error = excinfo.value
        assert error.context.sequence == "0002"
        assert error.context.identifier == "Broken"
        assert error.cause is not None
        assert m.get_current() == BASE
        assert "authors" not in db.schema
        assert db.in_transaction is False

    def test_failing_down_keeps_ledger(self, db, migrations_dir, write_migration):
        write_migration("0001", "Authors", AUTHORS_UP, 'raise RuntimeError("cannot revert")')
        m = migrator(db, migrations_dir)
        m.up()
        with pytest.raises(MigrationError, match="failed during down"):
            m.down()
        assert m.get_current() == "0001"
        assert "authors" in db.schema
