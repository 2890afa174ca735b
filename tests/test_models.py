"""Tests for Pydantic models."""

from datetime import date

import pytest
from pydantic import ValidationError

from drilldown.errors import UnknownDimension
from drilldown.models.dimension import (
    AnalyticsSource,
    DimensionDescriptor,
    DimensionKind,
    JoinLevel,
    Metric,
    TrackingColumns,
    TrackingRole,
    qualify,
)
from drilldown.models.request import (
    DateRange,
    FilterOperator,
    QueryRequest,
    SortDirection,
    TableFilter,
)


def _source(**overrides) -> AnalyticsSource:
    data = {
        "name": "events",
        "table": "events",
        "alias": "e",
        "timestamp_column": "ts",
        "visitor_column": "visitor",
        "session_column": "session",
        "url_column": "url",
        "tracking": {"source": "src", "campaign": "cmp", "adset": "ads", "ad": "ad"},
        "default_metric": "views",
        "metrics": [{"name": "views", "expr": "COUNT(*)"}],
        "dimensions": [{"name": "country"}],
    }
    data.update(overrides)
    return AnalyticsSource.model_validate(data)


class TestQualify:
    def test_bare_column_gets_prefix(self):
        assert qualify("country_code", "pv.") == "pv.country_code"

    def test_placeholder_replaced(self):
        assert qualify("LOWER({p}url_path)", "pv.") == "LOWER(pv.url_path)"

    def test_no_prefix(self):
        assert qualify("LOWER({p}url_path)", "") == "LOWER(url_path)"

    def test_lookup_columns_untouched(self):
        assert qualify("COALESCE(ap.name, 'Unknown')", "pv.") == "COALESCE(ap.name, 'Unknown')"


class TestDimensionDescriptor:
    def test_plain_defaults(self):
        dim = DimensionDescriptor(name="country")
        assert dim.kind == DimensionKind.PLAIN
        assert dim.raw_expr == "country"
        assert not dim.has_key
        assert not dim.is_time

    def test_enriched_requires_join_level(self):
        with pytest.raises(ValidationError, match="join_level"):
            DimensionDescriptor(name="campaign", kind="enriched", expr="utm_campaign")

    def test_enriched_has_key(self):
        dim = DimensionDescriptor(name="campaign", kind="enriched", join_level="campaign")
        assert dim.has_key

    def test_join_level_only_for_enriched(self):
        with pytest.raises(ValidationError, match="join_level"):
            DimensionDescriptor(name="country", join_level="ad")

    def test_enriched_cannot_be_time(self):
        with pytest.raises(ValidationError, match="time"):
            DimensionDescriptor(name="d", kind="enriched", type="time", join_level="campaign")

    def test_classification_requires_all_expressions(self):
        with pytest.raises(ValidationError, match="parent_filter_expr"):
            DimensionDescriptor(
                name="product",
                kind="classification",
                select_expr="ap.name",
                group_by_expr="ap.name",
                table_filter_expr="ap.name",
            )

    def test_classification_expressions_rejected_elsewhere(self):
        with pytest.raises(ValidationError, match="classification"):
            DimensionDescriptor(name="country", select_expr="x")

    def test_invalid_name(self):
        with pytest.raises(ValidationError):
            DimensionDescriptor(name="Bad Name")

    def test_frozen(self):
        dim = DimensionDescriptor(name="country")
        with pytest.raises(ValidationError):
            dim.name = "other"


class TestJoinLevel:
    def test_covered_levels(self):
        assert JoinLevel.CAMPAIGN.covered == [JoinLevel.CAMPAIGN]
        assert JoinLevel.AD.covered == [JoinLevel.CAMPAIGN, JoinLevel.ADSET, JoinLevel.AD]
        assert JoinLevel.NONE.covered == []

    def test_columns(self):
        assert JoinLevel.ADSET.id_column == "adset_id"
        assert JoinLevel.ADSET.name_column == "adset_name"
        assert JoinLevel.ADSET.tracking_role == TrackingRole.ADSET


class TestAnalyticsSource:
    def test_resolve(self):
        source = _source()
        assert source.resolve("country").name == "country"

    def test_resolve_unknown_raises(self):
        source = _source()
        with pytest.raises(UnknownDimension, match="nope"):
            source.resolve("nope")

    def test_unknown_dimension_is_key_error(self):
        with pytest.raises(KeyError):
            _source().resolve("nope")

    def test_duplicate_dimension(self):
        with pytest.raises(ValidationError, match="Duplicate dimension"):
            _source(dimensions=[{"name": "country"}, {"name": "country"}])

    def test_default_metric_must_exist(self):
        with pytest.raises(ValidationError, match="default_metric"):
            _source(default_metric="missing")

    def test_sort_alias_falls_back_to_default(self):
        source = _source(
            metrics=[{"name": "views", "expr": "COUNT(*)"}, {"name": "visitors", "expr": "1"}]
        )
        assert source.sort_alias("visitors") == "visitors"
        assert source.sort_alias("bogus") == "views"
        assert source.sort_alias(None) == "views"

    def test_tracking_column_for_role(self):
        tracking = TrackingColumns(source="s", campaign="c", adset="a", ad="d")
        assert tracking.column_for(TrackingRole.ADSET) == "a"

    def test_metric_name_validated(self):
        with pytest.raises(ValidationError):
            Metric(name="Page Views", expr="COUNT(*)")


class TestQueryRequest:
    def test_defaults(self):
        request = QueryRequest(
            date_range={"start": "2024-01-01", "end": "2024-01-31"}, dimensions=["country"]
        )
        assert request.depth == 0
        assert request.limit == 1000
        assert request.sort_direction == SortDirection.DESC
        assert request.current_dimension == "country"

    def test_date_range_order(self):
        with pytest.raises(ValidationError, match="before start"):
            DateRange(start=date(2024, 2, 1), end=date(2024, 1, 1))

    def test_single_day_range(self):
        day = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 1))
        assert day.start == day.end

    def test_dimensions_required(self):
        with pytest.raises(ValidationError):
            QueryRequest(date_range={"start": "2024-01-01", "end": "2024-01-31"}, dimensions=[])

    def test_dimensions_unique(self):
        with pytest.raises(ValidationError, match="unique"):
            QueryRequest(
                date_range={"start": "2024-01-01", "end": "2024-01-31"},
                dimensions=["country", "country"],
            )

    def test_direction_case_insensitive(self, make_request):
        assert make_request(["country"], sort_direction="asc").sort_direction == SortDirection.ASC

    @pytest.mark.parametrize(
        ("limit", "expected"), [(0, 1), (-5, 1), (50, 50), (10000, 10000), (99999, 10000)]
    )
    def test_clamped_limit(self, make_request, limit, expected):
        assert make_request(["country"], limit=limit).clamped_limit == expected

    def test_filter_fields_first_seen_order(self, make_request):
        request = make_request(
            ["country"],
            user_filters=[
                {"field": "device", "operator": "equals", "value": "mobile"},
                {"field": "campaign", "operator": "contains", "value": "sale"},
                {"field": "device", "operator": "equals", "value": "tablet"},
            ],
        )
        assert request.filter_fields == ["device", "campaign"]

    def test_frozen(self, make_request):
        request = make_request(["country"])
        with pytest.raises(ValidationError):
            request.depth = 1


class TestTableFilter:
    def test_operator_parsed(self):
        table_filter = TableFilter(field="country", operator="not_contains", value="d")
        assert table_filter.operator == FilterOperator.NOT_CONTAINS
        assert table_filter.operator.is_negated

    def test_invalid_operator(self):
        with pytest.raises(ValidationError):
            TableFilter(field="country", operator="starts_with", value="d")

    @pytest.mark.parametrize("value", [None, "", "   ", "Unknown"])
    def test_empty_values(self, value):
        assert TableFilter(field="country", operator="equals", value=value).is_empty

    def test_non_empty_value(self):
        assert not TableFilter(field="country", operator="equals", value="DK").is_empty
