"""YAML loader and dimension registry for drilldown.

the registry is populated once at startup from the source definitions shipped
with the package, optionally overlaid with a directory of extra yaml files.
everything is validated on load so a typo in a dimension definition blows up
at startup instead of in the middle of a report.
"""

import logging
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from drilldown.errors import UnknownDimension
from drilldown.models.dimension import (
    AnalyticsSource,
    DimensionDescriptor,
    DimensionKind,
    DimensionLevel,
)

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "page_views"
SESSION_SOURCE = "sessions"


class DimensionRegistry:
    """All analytics sources and their dimensions.

    read-only after loading - compilers hold a reference and never mutate it.
    """

    def __init__(self) -> None:
        self.sources: dict[str, AnalyticsSource] = {}

    @classmethod
    def builtin(cls, overrides: Path | None = None) -> "DimensionRegistry":
        """Registry with the packaged sources, plus any override directory."""
        registry = cls()
        registry.load_builtin()
        if overrides is not None:
            registry.load_directory(overrides, replace=True)
        return registry

    def load_builtin(self) -> None:
        package_dir = resources.files("drilldown") / "sources"
        for entry in sorted(package_dir.iterdir(), key=lambda p: p.name):
            if entry.name.endswith((".yaml", ".yml")):
                self._load_data(yaml.safe_load(entry.read_text()), origin=entry.name)
        self._validate_references()

    def load_directory(self, path: Path, replace: bool = False) -> None:
        """Load every YAML file in a directory.

        with `replace`, a source defined here wins over one already loaded -
        that's how deployments point the packaged sources at their own tables.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Sources directory not found: {path}")

        yaml_files = sorted(list(path.glob("**/*.yaml")) + list(path.glob("**/*.yml")))
        if not yaml_files:
            raise ValueError(f"No YAML files found in {path}")

        for yaml_file in yaml_files:
            with open(yaml_file) as f:
                self._load_data(yaml.safe_load(f), origin=str(yaml_file), replace=replace)

        self._validate_references()

    def _load_data(self, data: dict[str, Any] | None, origin: str, replace: bool = False) -> None:
        if data is None:
            return  # empty file

        for source_data in data.get("sources", []):
            source = AnalyticsSource.model_validate(source_data)
            if source.name in self.sources and not replace:
                raise ValueError(f"Duplicate source: {source.name} ({origin})")
            self.sources[source.name] = source
            logger.debug(
                "loaded source %s from %s (%d dimensions)",
                source.name,
                origin,
                len(source.dimensions),
            )

    def _validate_references(self) -> None:
        """Cross-source checks that a single model can't do on its own."""
        for source in self.sources.values():
            has_event_dims = any(d.level == DimensionLevel.EVENT for d in source.dimensions)
            if source.event_source is not None and source.event_source not in self.sources:
                raise ValueError(
                    f"Source '{source.name}' references unknown event_source "
                    f"'{source.event_source}'"
                )
            if has_event_dims and source.event_source is None:
                raise ValueError(
                    f"Source '{source.name}' has event-level dimensions but no event_source"
                )
            for dim in source.dimensions:
                # funnel mode resolves lookups inside the matching-sessions sub-query,
                # so an event-level dimension has to be a plain column expression
                if dim.level == DimensionLevel.EVENT and dim.kind != DimensionKind.PLAIN:
                    raise ValueError(
                        f"Event-level dimension '{dim.name}' in '{source.name}' must be plain"
                    )

    # --- lookup methods ---

    def get_source(self, name: str) -> AnalyticsSource:
        if name not in self.sources:
            raise KeyError(f"Unknown source: {name}")
        return self.sources[name]

    def resolve(self, dimension_id: str, source: str = DEFAULT_SOURCE) -> DimensionDescriptor:
        """Look up a dimension in a source. Raises UnknownDimension."""
        if source not in self.sources:
            raise UnknownDimension(dimension_id, source)
        return self.sources[source].resolve(dimension_id)

    def event_source_for(self, source: AnalyticsSource) -> AnalyticsSource:
        if source.event_source is None:
            raise KeyError(f"Source '{source.name}' has no event source")
        return self.get_source(source.event_source)
