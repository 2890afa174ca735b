"""Flat multi-dimension compiler for session data.

groups by every requested dimension in one query so the caller can build the
whole tree from a single round trip. two shapes:

  entry mode   - one row per session, grouped straight off the session table
  funnel mode  - a matching_sessions sub-query picks sessions by their entry
                 values, then the outer query groups their individual page events

funnel mode kicks in when an event-level dimension (the funnel step) is
grouped or filtered, since the session table doesn't carry per-event urls.
"""

import logging

from drilldown.compiler.filters import TableFilterBuilder
from drilldown.compiler.fragments import ParameterList, QueryParts, date_range_condition
from drilldown.compiler.planner import JoinPlan, JoinPlanner, render_joins
from drilldown.compiler.render import DimensionRenderer
from drilldown.compiler.validation import validate_flat_request
from drilldown.models.dimension import (
    AnalyticsSource,
    DimensionDescriptor,
    DimensionLevel,
    JoinLevel,
)
from drilldown.models.query import CompiledQuery
from drilldown.models.request import QueryRequest, TableFilter

logger = logging.getLogger(__name__)


class FlatQueryCompiler:
    """Compiles a request into one query grouped by all of its dimensions.

    `event_source` is the source holding individual page events; only needed
    for funnel mode.
    """

    MATCHING_SESSIONS = "matching_sessions"
    MATCHING_ALIAS = "ms"

    def __init__(
        self, source: AnalyticsSource, event_source: AnalyticsSource | None = None
    ) -> None:
        self.source = source
        self.event_source = event_source
        self.planner = JoinPlanner(source)

    def compile(self, request: QueryRequest) -> CompiledQuery:
        dims = validate_flat_request(request, self.source)

        entry_filters, event_filters = self._partition_filters(request.user_filters)
        is_funnel = any(d.level == DimensionLevel.EVENT for d in dims) or bool(event_filters)

        params = ParameterList()
        if is_funnel:
            if self.event_source is None:
                raise ValueError(
                    f"Source '{self.source.name}' has no event source for funnel queries"
                )
            parts = self._funnel_parts(request, dims, entry_filters, event_filters, params)
        else:
            parts = self._entry_parts(request, dims, entry_filters, params)

        compiled = CompiledQuery(text=parts.render(), parameters=params.values)
        logger.debug(
            "compiled flat %s query on %s (%d params)",
            "funnel" if is_funnel else "entry",
            ", ".join(request.dimensions),
            len(params),
        )
        return compiled

    def _partition_filters(
        self, filters: tuple[TableFilter, ...]
    ) -> tuple[list[TableFilter], list[TableFilter]]:
        entry, event = [], []
        for table_filter in filters:
            dim = self.source.resolve(table_filter.field)
            (event if dim.level == DimensionLevel.EVENT else entry).append(table_filter)
        return entry, event

    def _entry_parts(
        self,
        request: QueryRequest,
        dims: list[DimensionDescriptor],
        filters: list[TableFilter],
        params: ParameterList,
    ) -> QueryParts:
        # one join covering every enriched dimension - no single dimension dominates here
        plan = self.planner.plan(request.dimensions, filter_fields=[f.field for f in filters])
        renderer = DimensionRenderer(self.source, plan)

        select: tuple[str, ...] = ()
        group_by: tuple[str, ...] = ()
        for dim in dims:
            rendered = renderer.grouped(dim, dim.name, f"_{dim.name}_id")
            select += rendered.select
            group_by += rendered.group_by

        return QueryParts(
            select=select + renderer.metrics(),
            from_=plan.from_clause(self.source.table),
            joins=render_joins(plan, self.source, request.date_range),
            where=(
                self._range(plan, self.source, request),
                *TableFilterBuilder(renderer, request.date_range, params).build(filters),
            ),
            group_by=group_by,
            # single-view sessions are degenerate for this report
            having=("COUNT(*) > 1",),
            order_by=self._order_by(self.source, request),
        )

    def _funnel_parts(
        self,
        request: QueryRequest,
        dims: list[DimensionDescriptor],
        entry_filters: list[TableFilter],
        event_filters: list[TableFilter],
        params: ParameterList,
    ) -> QueryParts:
        entry_dims = [d for d in dims if d.level == DimensionLevel.ENTRY]
        ms = self.MATCHING_ALIAS

        # stage 1: sessions whose entry values pass the entry filters
        entry_plan = self.planner.plan(
            [d.name for d in entry_dims],
            filter_fields=[f.field for f in entry_filters],
            always_qualify=True,
        )
        entry_renderer = DimensionRenderer(self.source, entry_plan)
        projected: tuple[str, ...] = (
            f"{entry_plan.column(self.source.session_column)} AS {self.source.session_column}",
        )
        for dim in entry_dims:
            projected += entry_renderer.projection(dim)

        matching = QueryParts(
            select=projected,
            from_=entry_plan.from_clause(self.source.table),
            joins=render_joins(entry_plan, self.source, request.date_range),
            where=(
                self._range(entry_plan, self.source, request),
                *TableFilterBuilder(entry_renderer, request.date_range, params).build(
                    entry_filters
                ),
            ),
        )

        # stage 2: every page event of those sessions, grouped by the full list
        event_source = self.event_source
        event_plan = JoinPlan(
            enriched_join_level=JoinLevel.NONE,
            needs_classification_join=False,
            alias=event_source.alias,
            always_qualify=True,
        )
        # event-level dimensions are defined on this source but read the event table
        event_renderer = DimensionRenderer(self.source, event_plan)
        metric_renderer = DimensionRenderer(event_source, event_plan)

        select: tuple[str, ...] = ()
        group_by: tuple[str, ...] = ()
        for dim in dims:
            if dim.level == DimensionLevel.EVENT:
                rendered = event_renderer.grouped(dim, dim.name, f"_{dim.name}_id")
            else:
                rendered = entry_renderer.projected(dim, ms, dim.name, f"_{dim.name}_id")
            select += rendered.select
            group_by += rendered.group_by

        join = (
            f"INNER JOIN {self.MATCHING_SESSIONS} {ms}"
            f" ON {event_plan.column(event_source.session_column)}"
            f" = {ms}.{self.source.session_column}"
        )
        return QueryParts(
            ctes=((self.MATCHING_SESSIONS, matching),),
            select=select + metric_renderer.metrics(),
            from_=event_plan.from_clause(event_source.table),
            joins=(join,),
            where=(
                self._range(event_plan, event_source, request),
                *TableFilterBuilder(event_renderer, request.date_range, params).build(
                    event_filters
                ),
            ),
            group_by=group_by,
            order_by=self._order_by(event_source, request),
        )

    def _range(self, plan: JoinPlan, source: AnalyticsSource, request: QueryRequest) -> str:
        return date_range_condition(
            plan.column(source.timestamp_column),
            request.date_range.start,
            request.date_range.end,
        )

    def _order_by(self, source: AnalyticsSource, request: QueryRequest) -> tuple[str, ...]:
        alias = source.sort_alias(request.sort_by)
        return (f"{alias} {request.sort_direction.value} NULLS LAST",)
