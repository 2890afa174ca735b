"""Query compilers: depth-recursive, flat, attribution and crm."""

from drilldown.compiler.attribution import AttributionQueryBuilder
from drilldown.compiler.crm import CrmQueryBuilder
from drilldown.compiler.depth import DepthQueryCompiler
from drilldown.compiler.flat import FlatQueryCompiler
from drilldown.compiler.formatting import format_sql
from drilldown.compiler.planner import JoinPlan, JoinPlanner

__all__ = [
    "AttributionQueryBuilder",
    "CrmQueryBuilder",
    "DepthQueryCompiler",
    "FlatQueryCompiler",
    "JoinPlan",
    "JoinPlanner",
    "format_sql",
]
