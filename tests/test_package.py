"""Tests for the public package surface."""

from __future__ import annotations

import pytest

import strata
import strata.core.orm as orm
from strata.core.orm import declarations


@pytest.mark.parametrize("name", ["record", "eav", "junction", "column"])
def test_declaration_markers_are_exported(name):
    marker = getattr(declarations, name)
    assert getattr(strata, name) is marker
    assert getattr(orm, name) is marker
    assert callable(marker)


def test_mapper_classes_are_exported():
    assert strata.Record is orm.Record
    assert strata.EAV is orm.EAV
    assert strata.Junction is orm.Junction
    assert strata.Database.__name__ == "Database"
