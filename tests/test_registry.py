"""Tests for the YAML source registry."""

from pathlib import Path

import pytest

from drilldown.errors import UnknownDimension
from drilldown.models.dimension import DimensionKind, DimensionLevel, JoinLevel
from drilldown.parser.loader import DimensionRegistry

EXTRA_SOURCE = """
sources:
  - name: clicks
    table: clicks
    alias: c
    timestamp_column: clicked_at
    visitor_column: visitor_id
    session_column: session_id
    url_column: url
    default_metric: clicks
    tracking:
      source: src
      campaign: cmp
      adset: grp
      ad: creative
    metrics:
      - name: clicks
        expr: COUNT(*)
    dimensions:
      - name: button
"""


class TestBuiltinRegistry:
    def test_loads_packaged_sources(self, registry: DimensionRegistry):
        assert set(registry.sources) >= {"page_views", "sessions"}

    def test_enriched_dimensions(self, registry: DimensionRegistry):
        ad = registry.resolve("ad")
        assert ad.kind == DimensionKind.ENRICHED
        assert ad.join_level == JoinLevel.AD
        assert ad.raw_expr == "utm_medium"

    def test_classification_dimension(self, registry: DimensionRegistry):
        product = registry.resolve("classified_product")
        assert product.kind == DimensionKind.CLASSIFICATION
        assert product.parent_filter_expr != product.table_filter_expr

    def test_session_event_source(self, registry: DimensionRegistry):
        sessions = registry.get_source("sessions")
        assert registry.event_source_for(sessions).name == "page_views"
        assert registry.resolve("funnel_step", "sessions").level == DimensionLevel.EVENT

    def test_resolve_unknown(self, registry: DimensionRegistry):
        with pytest.raises(UnknownDimension, match="bogus"):
            registry.resolve("bogus")

    def test_resolve_unknown_source(self, registry: DimensionRegistry):
        with pytest.raises(UnknownDimension):
            registry.resolve("country", "nowhere")

    def test_get_unknown_source(self, registry: DimensionRegistry):
        with pytest.raises(KeyError, match="Unknown source"):
            registry.get_source("nowhere")

    def test_event_source_for_source_without_one(self, registry: DimensionRegistry):
        with pytest.raises(KeyError):
            registry.event_source_for(registry.get_source("page_views"))


class TestLoadDirectory:
    def test_extra_source(self, tmp_path: Path):
        (tmp_path / "clicks.yaml").write_text(EXTRA_SOURCE)
        registry = DimensionRegistry.builtin(tmp_path)
        assert registry.resolve("button", "clicks").name == "button"
        assert "page_views" in registry.sources

    def test_override_replaces_builtin(self, tmp_path: Path):
        override = EXTRA_SOURCE.replace("clicks\n    table", "page_views\n    table")
        (tmp_path / "pv.yaml").write_text(override)
        registry = DimensionRegistry.builtin(tmp_path)
        assert registry.get_source("page_views").table == "clicks"

    def test_duplicate_without_replace(self, tmp_path: Path):
        (tmp_path / "a.yaml").write_text(EXTRA_SOURCE)
        (tmp_path / "b.yaml").write_text(EXTRA_SOURCE)
        registry = DimensionRegistry()
        with pytest.raises(ValueError, match="Duplicate source"):
            registry.load_directory(tmp_path)

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            DimensionRegistry().load_directory(tmp_path / "nope")

    def test_empty_directory(self, tmp_path: Path):
        with pytest.raises(ValueError, match="No YAML files"):
            DimensionRegistry().load_directory(tmp_path)

    def test_empty_file_ignored(self, tmp_path: Path):
        (tmp_path / "empty.yaml").write_text("")
        (tmp_path / "clicks.yaml").write_text(EXTRA_SOURCE)
        registry = DimensionRegistry()
        registry.load_directory(tmp_path)
        assert list(registry.sources) == ["clicks"]

    def test_unknown_event_source(self, tmp_path: Path):
        dangling = EXTRA_SOURCE.replace("url_column: url", "url_column: url\n    event_source: x")
        (tmp_path / "clicks.yaml").write_text(dangling)
        with pytest.raises(ValueError, match="unknown event_source"):
            DimensionRegistry().load_directory(tmp_path)

    def test_event_dimension_needs_event_source(self, tmp_path: Path):
        (tmp_path / "clicks.yaml").write_text(
            EXTRA_SOURCE + "      - name: step\n        level: event\n"
        )
        with pytest.raises(ValueError, match="no event_source"):
            DimensionRegistry().load_directory(tmp_path)

    def test_invalid_definition(self, tmp_path: Path):
        broken = EXTRA_SOURCE.replace("default_metric: clicks", "default_metric: x")
        (tmp_path / "clicks.yaml").write_text(broken)
        with pytest.raises(ValueError):
            DimensionRegistry().load_directory(tmp_path)
