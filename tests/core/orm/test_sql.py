"""Tests for the selection builder and the read-only table view."""

from __future__ import annotations

import pytest

from strata.core.errors import AccessError
from strata.core.orm.sql import Predicate, Select
from strata.core.orm.table import Table


@pytest.fixture
def people(db):
    db.execute('CREATE TABLE "people" ("id" INTEGER PRIMARY KEY AUTOINCREMENT, "name" VARCHAR(255), "age" INTEGER)')
    table = Table(db, "people", ("id", "name", "age"))
    for name, age in [("ann", 30), ("bob", 40), ("cid", None)]:
        table.insert({"name": name, "age": age})
    return table


class TestPredicate:
    def test_combinators(self):
        a = Predicate("a = ?", (1,))
        b = Predicate("b = ?", (2,))
        assert (a & b) == Predicate("(a = ?) AND (b = ?)", (1, 2))
        assert (a | b).sql == "(a = ?) OR (b = ?)"
        assert (~a).sql == "NOT (a = ?)"

    def test_all(self):
        assert Predicate.all([]).sql == "1 = 1"
        single = Predicate("x")
        assert Predicate.all([single]) is single


class TestColumnRef:
    def test_comparisons(self, people):
        ref = people["name"]
        assert ref.sql == '"people"."name"'
        assert ref.is_equal("ann") == Predicate('"people"."name" = ?', ("ann",))
        assert ref.is_equal(None).sql == '"people"."name" IS NULL'
        assert ref.is_not_equal(None).sql == '"people"."name" IS NOT NULL'
        assert ref.is_in(["a", "b"]).params == ("a", "b")
        assert ref.is_in([]).sql == "0 = 1"
        assert ref.is_not_in([]).sql == "1 = 1"

    def test_column_to_column(self, people):
        assert people["id"].is_equal(people.as_alias("p2")["id"]).sql == '"people"."id" = "p2"."id"'


class TestSelect:
    def test_rows_and_filters(self, people):
        select = people.select(people["name"]).where(people["age"].is_greater(35))
        assert select.rows() == [{"name": "bob"}]

    def test_order_and_limit(self, people):
        names = [r["name"] for r in people.select().order("\"people\".\"name\" DESC").limit(2)]
        assert names == ["cid", "bob"]
        offset = people.select(people["name"]).order(people["name"]).limit(1, 1)
        assert offset.rows() == [{"name": "bob"}]

    def test_count_and_result(self, people):
        assert people.select().count() == 3
        assert people.select(people["age"].max()).get_result() == 40
        assert people.select().where(people["id"].is_equal(99)).get_first() is None

    def test_fetcher(self, people):
        select = people.select(people["name"]).order(people["name"])
        select.set_fetcher(lambda rows: (row["name"].upper() for row in rows))
        assert select.get_all() == ["ANN", "BOB", "CID"]

    def test_subquery_join_params_in_order(self, people, db):
        inner = people.select(people["id"]).where(people["age"].is_less(35))
        outer = people.select(people["name"]).join(
            inner, Predicate('"young"."id" = "people"."id"'), alias="young"
        ).where(people["name"].is_not_equal("zed"))
        assert outer.params == (35, "zed")
        assert outer.rows() == [{"name": "ann"}]

    def test_subquery_source(self, people, db):
        inner = people.select(people["name"]).where(people["age"].is_not_equal(None))
        outer = Select(db, inner, alias="named")
        assert outer.count() == 2
        assert outer["name"].sql == '"named"."name"'

    def test_in_subquery(self, people):
        adults = people.select(people["id"]).where(people["age"].is_greater(35))
        assert [r["name"] for r in people.select(people["name"]).where(people["id"].is_in(adults))] == ["bob"]


class TestTable:
    def test_read_only(self, people):
        with pytest.raises(AccessError):
            people["name"] = "x"
        with pytest.raises(AccessError):
            del people["name"]

    def test_contains(self, people):
        assert "name" in people
        assert "nope" not in people

    def test_where_from_mapping(self, people):
        predicate = people.where({"name": ["ann", "bob"], "age": None})
        assert predicate.params == ("ann", "bob")
        assert "IS NULL" in predicate.sql

    def test_count_update_delete(self, people):
        assert people.count() == 3
        assert people.count({"age": None}) == 1
        assert people.update({"age": 31}, {"name": "ann"}) == 1
        assert people.count({"age": 31}) == 1
        assert people.delete({"name": ["ann", "bob"]}) == 2
        assert people.count() == 1

    def test_callable_match(self, people):
        assert people.count({"age": lambda ref, db: ref.is_greater(35)}) == 1

    def test_statement_cache(self, people, db):
        first = people.cache("k", lambda: db.prepare("SELECT 1"))
        assert people.cache("k", lambda: db.prepare("SELECT 2")) is first
