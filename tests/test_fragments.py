"""Tests for immutable query fragments."""

from datetime import date

import pytest

from drilldown.compiler.formatting import format_sql
from drilldown.compiler.fragments import (
    ParameterList,
    QueryParts,
    date_literal,
    date_range_condition,
)


class TestParameterList:
    def test_dollar_style(self):
        params = ParameterList()
        assert params.add("a") == "$1"
        assert params.extend(["b", "c"]) == ["$2", "$3"]
        assert params.values == ("a", "b", "c")
        assert len(params) == 3

    def test_qmark_style(self):
        params = ParameterList(style="qmark")
        assert params.add(1) == "?"
        assert params.add(2) == "?"
        assert params.values == (1, 2)

    def test_unknown_style(self):
        with pytest.raises(ValueError):
            ParameterList(style="named")


class TestQueryParts:
    def test_render_all_clauses(self):
        parts = QueryParts(
            select=("a", "COUNT(*) AS n"),
            from_="t",
            joins=("LEFT JOIN u ON u.id = t.id",),
            where=("x = 1", "y = 2"),
            group_by=("a",),
            having=("COUNT(*) > 1",),
            order_by=("n DESC",),
            limit=10,
        )
        assert parts.render() == (
            "SELECT\n"
            "  a,\n"
            "  COUNT(*) AS n\n"
            "FROM t\n"
            "LEFT JOIN u ON u.id = t.id\n"
            "WHERE x = 1\n"
            "  AND y = 2\n"
            "GROUP BY a\n"
            "HAVING COUNT(*) > 1\n"
            "ORDER BY n DESC\n"
            "LIMIT 10"
        )

    def test_render_cte_and_distinct(self):
        inner = QueryParts(select=("id",), from_="s")
        outer = QueryParts(select=("id",), from_="m", ctes=(("m", inner),), distinct=True)
        assert outer.render() == (
            "WITH m AS (\n  SELECT\n    id\n  FROM s\n)\nSELECT DISTINCT\n  id\nFROM m"
        )

    def test_frozen(self):
        parts = QueryParts(select=("1",), from_="t")
        with pytest.raises(AttributeError):
            parts.limit = 5


class TestDates:
    def test_literal(self):
        assert date_literal(date(2024, 3, 9)) == "DATE '2024-03-09'"

    def test_literal_rejects_text(self):
        with pytest.raises(TypeError):
            date_literal("2024-03-09'; --")

    def test_range_is_half_open(self):
        assert date_range_condition("ts", date(2024, 2, 28), date(2024, 2, 29)) == (
            "ts >= DATE '2024-02-28' AND ts < DATE '2024-03-01'"
        )


class TestFormatSql:
    def test_formats(self):
        assert "FROM" in format_sql("select a from t where b = 1")

    def test_unparseable_returned_as_is(self):
        assert format_sql("SELECT * FROM (((") == "SELECT * FROM ((("
