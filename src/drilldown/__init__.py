"""drilldown - hierarchical report query compiler with cross-engine attribution."""

from drilldown.errors import (
    DrilldownError,
    ExecutionFailure,
    InvalidDepth,
    MalformedAncestorFilters,
    UnknownDimension,
)
from drilldown.models.request import DateRange, FilterOperator, QueryRequest, TableFilter
from drilldown.store import ReportStore

__version__ = "0.1.0"

__all__ = [
    "DateRange",
    "DrilldownError",
    "ExecutionFailure",
    "FilterOperator",
    "InvalidDepth",
    "MalformedAncestorFilters",
    "QueryRequest",
    "ReportStore",
    "TableFilter",
    "UnknownDimension",
]
