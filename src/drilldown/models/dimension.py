"""Pydantic models for dimension and source definitions.

a source is one analytics table plus everything the compilers need to know
about it: which raw columns carry the tracking ids, which aggregates count as
metrics, and how each dimension resolves. definitions live in yaml so the
registry is a fixed configuration table, never derived from user input.
"""

import re
from enum import Enum
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from drilldown.errors import UnknownDimension

IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")

# bare identifiers are shorthand for "{p}<identifier>" - see qualify()
_BARE_COLUMN_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def qualify(expr: str, prefix: str) -> str:
    """Apply a column prefix to a dimension/metric expression.

    expressions mark prefixable columns with {p}. a bare column name gets the
    prefix too so simple yaml entries can stay readable.
    """
    if _BARE_COLUMN_RE.match(expr):
        return f"{prefix}{expr}"
    return expr.replace("{p}", prefix)


class DimensionKind(str, Enum):
    """How a dimension's value is resolved."""

    PLAIN = "plain"
    ENRICHED = "enriched"  # raw tracking id + display name from the spend table
    CLASSIFICATION = "classification"  # derived from the curated url mapping


class DimensionType(str, Enum):
    """Value type of a dimension.

    time dimensions truncate to a calendar day and always sort newest-first.
    """

    CATEGORICAL = "categorical"
    TIME = "time"


class DimensionLevel(str, Enum):
    """Where a session-source dimension lives.

    event-level dimensions read the individual page events and only make sense
    in flat funnel mode.
    """

    ENTRY = "entry"
    EVENT = "event"


class TrackingRole(str, Enum):
    """The four ids that make up an attribution key."""

    SOURCE = "source"
    CAMPAIGN = "campaign"
    ADSET = "adset"
    AD = "ad"


class JoinLevel(str, Enum):
    """Specificity of the spend-table join.

    each level implies the columns of every coarser level, so adset joins on
    campaign + adset and ad joins on all three.
    """

    NONE = "none"
    CAMPAIGN = "campaign"
    ADSET = "adset"
    AD = "ad"

    @property
    def rank(self) -> int:
        return _JOIN_RANK[self]

    @property
    def covered(self) -> list["JoinLevel"]:
        """Levels whose id columns are part of a join at this level."""
        return [level for level in _JOIN_ORDER[1:] if level.rank <= self.rank]

    @property
    def id_column(self) -> str:
        return f"{self.value}_id"

    @property
    def name_column(self) -> str:
        return f"{self.value}_name"

    @property
    def tracking_role(self) -> TrackingRole:
        return TrackingRole(self.value)


_JOIN_ORDER = [JoinLevel.NONE, JoinLevel.CAMPAIGN, JoinLevel.ADSET, JoinLevel.AD]
_JOIN_RANK = {level: i for i, level in enumerate(_JOIN_ORDER)}


class DimensionDescriptor(BaseModel):
    """How one dimension is resolved into sql.

    a tagged variant on `kind`. plain and enriched dimensions read `expr`
    (defaults to the dimension name). classification dimensions carry four
    expressions because a user-typed filter compares against the display name
    while an ancestor filter compares against the key the previous level returned.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: DimensionKind = DimensionKind.PLAIN
    type: DimensionType = DimensionType.CATEGORICAL
    level: DimensionLevel = DimensionLevel.ENTRY
    expr: str | None = None
    description: str | None = None
    tracking_role: TrackingRole | None = None

    # enriched only
    join_level: JoinLevel = JoinLevel.NONE

    # classification only
    id_expr: str | None = None
    select_expr: str | None = None
    group_by_expr: str | None = None
    parent_filter_expr: str | None = None
    table_filter_expr: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        # names double as column aliases in flat queries
        if not IDENTIFIER_RE.match(v):
            raise ValueError(f"Dimension name must be a lowercase identifier: {v!r}")
        return v

    @model_validator(mode="after")
    def validate_variant(self) -> Self:
        """Make sure each kind carries exactly what it needs."""
        if self.kind == DimensionKind.ENRICHED:
            if self.join_level == JoinLevel.NONE:
                raise ValueError(f"Enriched dimension '{self.name}' requires a join_level")
            if self.type == DimensionType.TIME:
                raise ValueError(f"Enriched dimension '{self.name}' cannot be a time dimension")
        elif self.join_level != JoinLevel.NONE:
            raise ValueError(f"Only enriched dimensions take a join_level ('{self.name}')")

        classification_fields = {
            "select_expr": self.select_expr,
            "group_by_expr": self.group_by_expr,
            "parent_filter_expr": self.parent_filter_expr,
            "table_filter_expr": self.table_filter_expr,
        }
        if self.kind == DimensionKind.CLASSIFICATION:
            missing = [k for k, v in classification_fields.items() if not v]
            if missing:
                raise ValueError(
                    f"Classification dimension '{self.name}' is missing: {', '.join(missing)}"
                )
        elif self.id_expr or any(classification_fields.values()):
            raise ValueError(
                f"Only classification dimensions take classification expressions ('{self.name}')"
            )
        return self

    @property
    def raw_expr(self) -> str:
        """The unjoined column expression (the raw id for enriched dimensions)."""
        return self.expr or self.name

    @property
    def is_time(self) -> bool:
        return self.type == DimensionType.TIME

    @property
    def has_key(self) -> bool:
        """Whether rows carry a separate id column next to the display value."""
        return self.kind == DimensionKind.ENRICHED or (
            self.kind == DimensionKind.CLASSIFICATION and self.id_expr is not None
        )


class Metric(BaseModel):
    """An aggregate reported next to every dimension value."""

    model_config = ConfigDict(frozen=True)

    name: str
    expr: str  # aggregate sql, columns marked with {p}
    description: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not IDENTIFIER_RE.match(v):
            raise ValueError(f"Metric name must be a lowercase identifier: {v!r}")
        return v


class TrackingColumns(BaseModel):
    """Raw columns holding the attribution ids."""

    model_config = ConfigDict(frozen=True)

    source: str
    campaign: str
    adset: str
    ad: str

    def column_for(self, role: TrackingRole) -> str:
        return getattr(self, role.value)


class SpendLookup(BaseModel):
    """The spend-tracking table that maps campaign/adset/ad ids to names."""

    model_config = ConfigDict(frozen=True)

    table: str = "merged_ads_spending"
    alias: str = "mas"
    date_column: str = "date"


class ClassificationLookup(BaseModel):
    """The curated url -> product/country mapping tables."""

    model_config = ConfigDict(frozen=True)

    table: str = "app_url_classifications"
    alias: str = "uc"
    products_table: str = "app_products"
    products_alias: str = "ap"


class AnalyticsSource(BaseModel):
    """One analytics table and the dimensions/metrics defined over it.

    `event_source` names the source whose table holds the individual page
    events; a session source needs it for funnel mode.
    """

    name: str
    description: str | None = None
    table: str
    alias: str
    timestamp_column: str
    visitor_column: str
    session_column: str
    url_column: str
    tracking: TrackingColumns
    default_metric: str
    metrics: list[Metric] = Field(default_factory=list)
    dimensions: list[DimensionDescriptor] = Field(default_factory=list)
    event_source: str | None = None
    spend: SpendLookup = Field(default_factory=SpendLookup)
    classification: ClassificationLookup = Field(default_factory=ClassificationLookup)

    @model_validator(mode="after")
    def validate_definitions(self) -> Self:
        """Catch duplicate names and a dangling default metric at load time."""
        for kind, names in (
            ("dimension", [d.name for d in self.dimensions]),
            ("metric", [m.name for m in self.metrics]),
        ):
            seen: set[str] = set()
            for name in names:
                if name in seen:
                    raise ValueError(f"Duplicate {kind} '{name}' in source '{self.name}'")
                seen.add(name)

        if self.default_metric not in {m.name for m in self.metrics}:
            raise ValueError(
                f"Source '{self.name}' default_metric '{self.default_metric}' is not a metric"
            )
        return self

    def get_dimension(self, name: str) -> DimensionDescriptor | None:
        for dimension in self.dimensions:
            if dimension.name == name:
                return dimension
        return None

    def resolve(self, dimension_id: str) -> DimensionDescriptor:
        """Look up a dimension, failing loudly for unknown ids."""
        dimension = self.get_dimension(dimension_id)
        if dimension is None:
            raise UnknownDimension(dimension_id, self.name)
        return dimension

    def get_metric(self, name: str) -> Metric | None:
        for metric in self.metrics:
            if metric.name == name:
                return metric
        return None

    def sort_alias(self, metric_name: str | None) -> str:
        """Map a requested sort metric to its column alias.

        unknown names fall back to the default metric - sorting is a display
        preference and never worth failing a report over.
        """
        if metric_name and self.get_metric(metric_name) is not None:
            return metric_name
        return self.default_metric
