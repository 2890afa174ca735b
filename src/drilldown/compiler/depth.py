"""Depth-recursive query compiler.

builds one query per drill-down level: group by the dimension at `depth`,
filter by every ancestor value already chosen, order by a metric, limit.
the caller runs it, lets the user pick a row, and comes back with depth + 1.

the flow mirrors every compiler in this package:
  1. validate (errors raise before any text exists)
  2. plan joins once for everything the request references
  3. build each clause as an immutable fragment
  4. render once
"""

import logging

from drilldown.compiler.filters import TableFilterBuilder, build_ancestor_conditions
from drilldown.compiler.fragments import ParameterList, QueryParts, date_range_condition
from drilldown.compiler.planner import JoinPlanner, render_joins
from drilldown.compiler.render import DimensionRenderer
from drilldown.compiler.validation import validate_depth_request
from drilldown.models.dimension import AnalyticsSource, DimensionDescriptor
from drilldown.models.query import CompiledQuery
from drilldown.models.request import QueryRequest, SortDirection

logger = logging.getLogger(__name__)


class DepthQueryCompiler:
    """Compiles one drill-down level into a single aggregated query.

    holds no per-request state, safe to share between threads.
    """

    def __init__(self, source: AnalyticsSource) -> None:
        self.source = source
        self.planner = JoinPlanner(source)

    def compile(self, request: QueryRequest) -> CompiledQuery:
        # step 1: reject bad input before generating anything
        dimension = validate_depth_request(request, self.source)

        # step 2: one join decision for grouped + ancestor + filter dimensions
        plan = self.planner.plan(
            [request.current_dimension],
            ancestor_keys=request.dimensions[: request.depth],
            filter_fields=request.filter_fields,
        )
        renderer = DimensionRenderer(self.source, plan)
        params = ParameterList()

        # step 3: clauses
        rendered = renderer.grouped(dimension, "dimension_value", "dimension_id")
        where = (
            date_range_condition(
                plan.column(self.source.timestamp_column),
                request.date_range.start,
                request.date_range.end,
            ),
            *build_ancestor_conditions(request, renderer, params),
            *TableFilterBuilder(renderer, request.date_range, params).build(request.user_filters),
        )

        parts = QueryParts(
            select=rendered.select + renderer.metrics(),
            from_=plan.from_clause(self.source.table),
            joins=render_joins(plan, self.source, request.date_range),
            where=where,
            group_by=rendered.group_by,
            order_by=self._order_by(dimension, request),
            limit=request.clamped_limit,
        )

        # step 4: render once
        compiled = CompiledQuery(text=parts.render(), parameters=params.values)
        logger.debug(
            "compiled depth %d query on %s (join=%s, classification=%s, %d params)",
            request.depth,
            request.current_dimension,
            plan.enriched_join_level.value,
            plan.needs_classification_join,
            len(params),
        )
        return compiled

    def _order_by(self, dimension: DimensionDescriptor, request: QueryRequest) -> tuple[str, ...]:
        # dates read as a timeline, newest first, whatever the requested sort
        if dimension.is_time:
            return (f"dimension_value {SortDirection.DESC.value}",)
        alias = self.source.sort_alias(request.sort_by)
        return (f"{alias} {request.sort_direction.value} NULLS LAST",)
