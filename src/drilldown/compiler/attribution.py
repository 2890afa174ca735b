"""Analytics-side queries for cross-engine attribution.

the crm lives in another database, so conversions can't be joined to page
views in sql. instead these queries return raw keys - the tracking id tuple
or the visitor id - per dimension value, and the matching module pairs them
with crm rows in memory. raw ids only: the crm knows nothing about display
names, so the enriched join is never planned here.
"""

import logging

from drilldown.compiler.filters import TableFilterBuilder, build_ancestor_conditions
from drilldown.compiler.fragments import ParameterList, QueryParts, date_range_condition
from drilldown.compiler.planner import JoinPlan, JoinPlanner, render_joins
from drilldown.compiler.render import DimensionRenderer
from drilldown.compiler.validation import validate_depth_request
from drilldown.models.dimension import AnalyticsSource, TrackingRole
from drilldown.models.query import CompiledQuery
from drilldown.models.request import QueryRequest

logger = logging.getLogger(__name__)

# canonical source -> spellings seen upstream. the crm side uses the same table
SOURCE_SYNONYMS: dict[str, tuple[str, ...]] = {
    "google": ("google", "adwords"),
    "facebook": ("facebook", "meta"),
}


def normalized_source_sql(column: str) -> str:
    """CASE expression collapsing known source synonyms to one lowercase token."""
    branches = []
    for canonical, spellings in SOURCE_SYNONYMS.items():
        quoted = ", ".join(f"'{s}'" for s in spellings)
        branches.append(f"WHEN LOWER({column}) IN ({quoted}) THEN '{canonical}'")
    return f"CASE {' '.join(branches)} ELSE LOWER(COALESCE({column}, '')) END"


def normalize_source(value: str | None) -> str:
    """Python twin of normalized_source_sql, for values that arrive outside sql."""
    lowered = (value or "").lower()
    for canonical, spellings in SOURCE_SYNONYMS.items():
        if lowered in spellings:
            return canonical
    return lowered


class AttributionQueryBuilder:
    """Builds the tracking-match and visitor-match queries for a drill-down level.

    both queries take the same request as the depth compiler and apply the
    same ancestor and user filters, so their dimension values line up with the
    depth query's keys (dimension_id when the level has one, dimension_value
    otherwise). an empty result is a normal "nothing attributed" outcome.
    """

    def __init__(self, source: AnalyticsSource) -> None:
        self.source = source
        self.planner = JoinPlanner(source)

    def build_tracking_match(self, request: QueryRequest) -> CompiledQuery:
        """Dimension value, normalized tracking key and unique visitors per key."""
        dimension = validate_depth_request(request, self.source)
        plan = self._plan(request)
        renderer = DimensionRenderer(self.source, plan)
        params = ParameterList()

        key = renderer.key_expr(dimension)
        tracking = self.source.tracking
        source_expr = normalized_source_sql(plan.column(tracking.source))
        id_exprs = [
            f"COALESCE(CAST({plan.column(tracking.column_for(role))} AS TEXT), '')"
            for role in (TrackingRole.CAMPAIGN, TrackingRole.ADSET, TrackingRole.AD)
        ]
        visitor = plan.column(self.source.visitor_column)

        parts = QueryParts(
            select=(
                f"{key} AS dimension_value",
                f"{source_expr} AS normalized_source",
                f"{id_exprs[0]} AS campaign_key",
                f"{id_exprs[1]} AS adset_key",
                f"{id_exprs[2]} AS ad_key",
                f"COUNT(DISTINCT {visitor}) AS unique_visitor_count",
            ),
            from_=plan.from_clause(self.source.table),
            joins=render_joins(plan, self.source, request.date_range),
            where=self._where(request, plan, renderer, params),
            group_by=(key, source_expr, *id_exprs),
        )
        compiled = CompiledQuery(text=parts.render(), parameters=params.values)
        logger.debug("compiled tracking match on %s", request.current_dimension)
        return compiled

    def build_visitor_match(self, request: QueryRequest) -> CompiledQuery:
        """Distinct (dimension value, visitor id) pairs."""
        dimension = validate_depth_request(request, self.source)
        plan = self._plan(request)
        renderer = DimensionRenderer(self.source, plan)
        params = ParameterList()

        visitor = plan.column(self.source.visitor_column)
        parts = QueryParts(
            select=(
                f"{renderer.key_expr(dimension)} AS dimension_value",
                f"{visitor} AS visitor_id",
            ),
            distinct=True,
            from_=plan.from_clause(self.source.table),
            joins=render_joins(plan, self.source, request.date_range),
            where=(*self._where(request, plan, renderer, params), f"{visitor} IS NOT NULL"),
        )
        compiled = CompiledQuery(text=parts.render(), parameters=params.values)
        logger.debug("compiled visitor match on %s", request.current_dimension)
        return compiled

    def _plan(self, request: QueryRequest) -> JoinPlan:
        return self.planner.plan(
            [request.current_dimension],
            ancestor_keys=request.dimensions[: request.depth],
            filter_fields=request.filter_fields,
            enriched=False,
        )

    def _where(
        self,
        request: QueryRequest,
        plan: JoinPlan,
        renderer: DimensionRenderer,
        params: ParameterList,
    ) -> tuple[str, ...]:
        return (
            date_range_condition(
                plan.column(self.source.timestamp_column),
                request.date_range.start,
                request.date_range.end,
            ),
            *build_ancestor_conditions(request, renderer, params),
            *TableFilterBuilder(renderer, request.date_range, params).build(request.user_filters),
        )
