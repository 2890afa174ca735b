"""Tests for in-memory attribution matching."""

import pytest

from drilldown.matching import (
    dimension_key,
    match_by_tracking,
    match_by_visitor,
    match_direct,
    merge_matches,
    tracking_key,
)
from drilldown.models.dimension import TrackingRole
from drilldown.models.query import (
    Conversions,
    CrmTrackingRow,
    CrmVisitorRow,
    TrackingMatchRow,
    VisitorMatchRow,
)


class TestKeys:
    def test_dimension_key(self):
        assert dimension_key("DK") == "dk"
        assert dimension_key(None) == dimension_key("Unknown") == "unknown"
        assert dimension_key(1001) == "1001"

    def test_tracking_key_cleans_null_strings(self):
        assert tracking_key("google", "null", None, "9") == ("google", "", "", "9")

    def test_tracking_key_collapses_source_spellings(self):
        assert tracking_key("AdWords", "1001", None, None) == ("google", "1001", "", "")
        assert tracking_key("null", None, None, None) == ("", "", "", "")

    def test_tracking_key_excludes_roles(self):
        key = tracking_key("google", "1001", "2001", "3001", exclude=[TrackingRole.CAMPAIGN])
        assert key == ("google", "2001", "3001")


class TestMatchDirect:
    def test_case_insensitive_merge(self):
        result = match_direct(
            [
                {"dimension_value": "Google", "trials": 2, "approved": 1},
                {"dimension_value": "google", "trials": 1, "approved": 1},
                {"dimension_value": None, "trials": 4, "approved": None},
            ]
        )
        assert result["google"] == Conversions(trials=3, approved=2)
        assert result["unknown"] == Conversions(trials=4, approved=0)


class TestMatchByTracking:
    def test_split_by_visitor_share(self):
        google = {"normalized_source": "google", "campaign_key": "1"}
        tracking = [
            TrackingMatchRow(dimension_value="DK", unique_visitor_count=3, **google),
            TrackingMatchRow(dimension_value="SE", unique_visitor_count=1, **google),
        ]
        crm = [CrmTrackingRow(normalized_source="google", campaign_key="1", trials=8, approved=4)]

        result = match_by_tracking(crm, tracking)

        assert result["dk"].trials == pytest.approx(6)
        assert result["se"].trials == pytest.approx(2)
        assert result["dk"].approved + result["se"].approved == pytest.approx(4)

    def test_unmatched_keys_ignored(self):
        tracking = [
            TrackingMatchRow(dimension_value="DK", normalized_source="bing", unique_visitor_count=2)
        ]
        crm = [CrmTrackingRow(normalized_source="google", trials=5)]
        assert match_by_tracking(crm, tracking) == {}

    def test_excluded_role_widens_key(self):
        tracking = [
            TrackingMatchRow(
                dimension_value="1001",
                normalized_source="google",
                campaign_key="1001",
                unique_visitor_count=1,
            ),
        ]
        crm = [CrmTrackingRow(normalized_source="google", campaign_key="", trials=2)]

        assert match_by_tracking(crm, tracking) == {}
        result = match_by_tracking(crm, tracking, exclude=[TrackingRole.CAMPAIGN])
        assert result["1001"].trials == 2

    def test_crm_rows_sharing_key_summed(self):
        tracking = [TrackingMatchRow(dimension_value="DK", ad_key="x", unique_visitor_count=1)]
        crm = [CrmTrackingRow(ad_key="x", trials=1), CrmTrackingRow(ad_key="x", trials=2)]
        assert match_by_tracking(crm, tracking)["dk"].trials == 3


class TestMatchByVisitor:
    def test_even_split_across_values(self):
        visitors = [
            VisitorMatchRow(dimension_value="mobile", visitor_id="v1"),
            VisitorMatchRow(dimension_value="desktop", visitor_id="v1"),
            VisitorMatchRow(dimension_value="desktop", visitor_id="v2"),
            VisitorMatchRow(dimension_value="tablet", visitor_id="v9"),
        ]
        crm = [
            CrmVisitorRow(visitor_id="v1", trials=2, approved=1),
            CrmVisitorRow(visitor_id="v2", trials=1, approved=1),
        ]

        result = match_by_visitor(crm, visitors)

        assert result["mobile"] == Conversions(trials=1, approved=0.5)
        assert result["desktop"] == Conversions(trials=2, approved=1.5)
        assert "tablet" not in result

    def test_empty(self):
        assert match_by_visitor([], []) == {}


class TestMergeMatches:
    def test_visitor_wins_when_it_found_trials(self):
        visitor = {"dk": Conversions(trials=1, approved=1), "se": Conversions()}
        tracking = {"dk": Conversions(trials=5, approved=2), "se": Conversions(trials=3)}

        merged = merge_matches(visitor, tracking)

        assert merged["dk"] == Conversions(trials=1, approved=1)
        assert merged["se"] == Conversions(trials=3)

    def test_visitor_only_values_kept(self):
        merged = merge_matches({"no": Conversions(trials=2)}, {})
        assert merged["no"].trials == 2
