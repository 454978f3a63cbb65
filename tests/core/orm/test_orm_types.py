"""Tests for the column vocabulary and DDL ordering."""

import pytest

from strata.core.orm.types import ColumnSpec, IndexRole, StorageType, sort_columns


class TestStorageType:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("INTEGER", StorageType.INT),
            ("bigint", StorageType.INT),
            ("double", StorageType.FLOAT),
            ("Boolean", StorageType.BOOL),
            ("varchar", StorageType.STRING),
            (" text ", StorageType.TEXT),
            ("bytes", StorageType.BLOB),
            (StorageType.DATETIME, StorageType.DATETIME),
        ],
    )
    def test_parse(self, name, expected):
        assert StorageType.parse(name) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown storage type"):
            StorageType.parse("decimal")


class TestColumnSpec:
    def test_autoincrement(self):
        spec = ColumnSpec.autoincrement()
        assert spec == ColumnSpec(StorageType.INT, index=IndexRole.AUTOINCREMENT)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"type": StorageType.STRING, "index": IndexRole.AUTOINCREMENT},
            {"type": StorageType.INT, "nullable": True, "index": IndexRole.AUTOINCREMENT},
        ],
    )
    def test_autoincrement_must_be_non_null_int(self, kwargs):
        with pytest.raises(ValueError):
            ColumnSpec(**kwargs)


class TestSortColumns:
    def test_role_then_type_then_nullability_then_name(self):
        columns = {
            "zeta": ColumnSpec(StorageType.STRING, nullable=True),
            "bio": ColumnSpec(StorageType.TEXT),
            "alpha": ColumnSpec(StorageType.STRING),
            "flag": ColumnSpec(StorageType.BOOL),
            "email": ColumnSpec(StorageType.STRING, index=IndexRole.UNIQUE),
            "code": ColumnSpec(StorageType.INT, index=IndexRole.PRIMARY),
            "id": ColumnSpec.autoincrement(),
            "beta": ColumnSpec(StorageType.STRING),
        }
        assert [name for name, _ in sort_columns(columns)] == [
            "id",
            "code",
            "email",
            "flag",
            "alpha",
            "beta",
            "zeta",
            "bio",
        ]

    def test_stable_regardless_of_declaration_order(self):
        a = {"x": ColumnSpec(StorageType.INT), "y": ColumnSpec(StorageType.BOOL)}
        b = {"y": ColumnSpec(StorageType.BOOL), "x": ColumnSpec(StorageType.INT)}
        assert sort_columns(a) == sort_columns(b)
