"""Pydantic models for drilldown."""

from drilldown.models.dimension import (
    AnalyticsSource,
    ClassificationLookup,
    DimensionDescriptor,
    DimensionKind,
    DimensionLevel,
    DimensionType,
    JoinLevel,
    Metric,
    SpendLookup,
    TrackingColumns,
    TrackingRole,
)
from drilldown.models.query import (
    AttributedReport,
    CompiledQuery,
    Conversions,
    CrmTrackingRow,
    CrmVisitorRow,
    QueryResult,
    ReportRow,
    TrackingMatchRow,
    VisitorMatchRow,
)
from drilldown.models.request import (
    UNKNOWN,
    DateRange,
    FilterOperator,
    QueryRequest,
    SortDirection,
    TableFilter,
)

__all__ = [
    "UNKNOWN",
    "AnalyticsSource",
    "AttributedReport",
    "ClassificationLookup",
    "CompiledQuery",
    "Conversions",
    "CrmTrackingRow",
    "CrmVisitorRow",
    "DateRange",
    "DimensionDescriptor",
    "DimensionKind",
    "DimensionLevel",
    "DimensionType",
    "FilterOperator",
    "JoinLevel",
    "Metric",
    "QueryRequest",
    "QueryResult",
    "ReportRow",
    "SortDirection",
    "SpendLookup",
    "TableFilter",
    "TrackingColumns",
    "TrackingMatchRow",
    "TrackingRole",
    "VisitorMatchRow",
]
