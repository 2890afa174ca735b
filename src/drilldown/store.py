"""Main ReportStore interface for drilldown.

ties the compilers to the two executors. a report request is compiled in
full first - every fatal input error surfaces before any database is touched -
then the analytics and crm queries run in parallel, each source independently
failable.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any

from drilldown.compiler.attribution import AttributionQueryBuilder
from drilldown.compiler.crm import CrmQueryBuilder
from drilldown.compiler.depth import DepthQueryCompiler
from drilldown.compiler.flat import FlatQueryCompiler
from drilldown.compiler.formatting import format_sql
from drilldown.errors import ExecutionFailure
from drilldown.executor.duckdb_executor import DuckDBExecutor
from drilldown.matching import (
    dimension_key,
    match_by_tracking,
    match_by_visitor,
    match_direct,
    merge_matches,
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
from drilldown.models.request import UNKNOWN, QueryRequest
from drilldown.parser.loader import DEFAULT_SOURCE, SESSION_SOURCE, DimensionRegistry

logger = logging.getLogger(__name__)

QUERY_MODES = ("depth", "flat", "tracking", "visitor", "crm")


def normalize_rows(result: QueryResult) -> QueryResult:
    """NULL dimension values come back as "Unknown", same as ancestor filters expect."""
    data = []
    for row in result.data:
        row = dict(row)
        for column in row:
            if column == "dimension_value" or _is_flat_value_column(column, result.columns):
                if row[column] is None:
                    row[column] = UNKNOWN
        data.append(row)
    return result.model_copy(update={"data": data})


def _is_flat_value_column(column: str, columns: list[str]) -> bool:
    # flat queries name value columns after the dimension; ids are _<dim>_id
    return f"_{column}_id" in columns


class ReportStore:
    """Main interface for drilldown reports."""

    def __init__(
        self,
        analytics_db: str | None = None,
        crm_db: str | None = None,
        sources_dir: str | Path | None = None,
        max_workers: int = 4,
        registry: DimensionRegistry | None = None,
    ) -> None:
        """Initialize the report store.

        Args:
            analytics_db: DuckDB file with page view/session tables, or None for in-memory.
            crm_db: DuckDB file with the crm subscription tables, or None for in-memory.
            sources_dir: Optional directory of source YAML overriding the packaged ones.
            max_workers: Thread pool size for parallel report queries.
            registry: Pre-built registry (mostly for tests).
        """
        # load and validate sources upfront - fail fast on broken definitions
        self.registry = registry or DimensionRegistry.builtin(
            Path(sources_dir) if sources_dir else None
        )
        self.analytics = DuckDBExecutor(analytics_db, name="analytics")
        self.crm = DuckDBExecutor(crm_db, name="crm")
        self.max_workers = max_workers

    # --- compilation ---

    def compile_depth(self, request: QueryRequest, source: str = DEFAULT_SOURCE) -> CompiledQuery:
        return DepthQueryCompiler(self.registry.get_source(source)).compile(request)

    def compile_flat(self, request: QueryRequest, source: str = SESSION_SOURCE) -> CompiledQuery:
        analytics_source = self.registry.get_source(source)
        event_source = (
            self.registry.event_source_for(analytics_source)
            if analytics_source.event_source
            else None
        )
        return FlatQueryCompiler(analytics_source, event_source).compile(request)

    def compile(
        self, request: QueryRequest, mode: str = "depth", source: str | None = None
    ) -> CompiledQuery:
        """Compile a request in any mode.

        crm mode compiles the grouped crm query when the drill-down path maps onto
        crm columns, and the tracking-keyed crm query otherwise.
        """
        if mode == "depth":
            return self.compile_depth(request, source or DEFAULT_SOURCE)
        if mode == "flat":
            return self.compile_flat(request, source or SESSION_SOURCE)

        analytics_source = self.registry.get_source(source or DEFAULT_SOURCE)
        if mode == "tracking":
            return AttributionQueryBuilder(analytics_source).build_tracking_match(request)
        if mode == "visitor":
            return AttributionQueryBuilder(analytics_source).build_visitor_match(request)
        if mode == "crm":
            crm = CrmQueryBuilder(analytics_source)
            if crm.supports_grouping(request):
                return crm.build_grouped(request)
            return crm.build_tracking(request)
        raise ValueError(f"Unknown query mode: {mode}. Use one of: {', '.join(QUERY_MODES)}")

    def get_sql(
        self, request: QueryRequest, mode: str = "depth", source: str | None = None
    ) -> str:
        """Get the formatted SQL without executing it."""
        return format_sql(self.compile(request, mode, source).text)

    # --- execution ---

    def query_depth(self, request: QueryRequest, source: str = DEFAULT_SOURCE) -> QueryResult:
        """One drill-down level against the analytics store."""
        return normalize_rows(self.analytics.execute(self.compile_depth(request, source)))

    def query_flat(self, request: QueryRequest, source: str = SESSION_SOURCE) -> QueryResult:
        """Every dimension at once against the analytics store."""
        return normalize_rows(self.analytics.execute(self.compile_flat(request, source)))

    def attributed_report(
        self, request: QueryRequest, source: str = DEFAULT_SOURCE
    ) -> AttributedReport:
        """A drill-down level with crm trials/approved attributed to each row.

        the crm query and the analytics queries run in parallel. if one engine
        fails its contribution is empty and it's listed in `failed_sources`;
        a failed analytics query still leaves crm-only rows when the crm could
        group by the dimension directly.
        """
        analytics_source = self.registry.get_source(source)
        attribution = AttributionQueryBuilder(analytics_source)
        crm = CrmQueryBuilder(analytics_source)

        # everything compiles before anything runs
        queries: dict[str, CompiledQuery] = {"analytics": self.compile_depth(request, source)}
        direct = crm.supports_grouping(request)
        if direct:
            queries["crm_grouped"] = crm.build_grouped(request)
        else:
            queries["tracking_match"] = attribution.build_tracking_match(request)
            queries["visitor_match"] = attribution.build_visitor_match(request)
            queries["crm_tracking"] = crm.build_tracking(request)
            queries["crm_visitor"] = crm.build_visitor(request)

        results, failed = self._run_parallel(queries)

        if direct:
            conversions = match_direct(results["crm_grouped"].data)
        else:
            exclude = [
                dim.tracking_role
                for dim in (
                    analytics_source.resolve(d) for d in request.dimensions[: request.depth + 1]
                )
                if dim.tracking_role is not None
            ]
            tracking = match_by_tracking(
                [CrmTrackingRow.model_validate(r) for r in results["crm_tracking"].data],
                [TrackingMatchRow.model_validate(r) for r in results["tracking_match"].data],
                exclude,
            )
            visitor = match_by_visitor(
                [CrmVisitorRow.model_validate(r) for r in results["crm_visitor"].data],
                [VisitorMatchRow.model_validate(r) for r in results["visitor_match"].data],
            )
            conversions = merge_matches(visitor, tracking)

        rows = self._build_rows(normalize_rows(results["analytics"]), conversions)
        if not rows and "analytics" in failed and direct:
            rows = [
                ReportRow(dimension_value=key, trials=c.trials, approved=c.approved)
                for key, c in conversions.items()
            ]

        return AttributedReport(rows=rows, queries=queries, failed_sources=sorted(failed))

    def _run_parallel(
        self, queries: dict[str, CompiledQuery]
    ) -> tuple[dict[str, QueryResult], set[str]]:
        """Run every query at once; a failing engine degrades to empty results."""
        results: dict[str, QueryResult] = {}
        failed: set[str] = set()

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures: dict[str, Future[QueryResult]] = {
                name: pool.submit(self._executor_for(query).execute, query)
                for name, query in queries.items()
            }
            for name, future in futures.items():
                try:
                    results[name] = future.result()
                except ExecutionFailure as e:
                    logger.warning("report source %s failed, continuing without it: %s", name, e)
                    failed.add(e.source or queries[name].engine)
                    results[name] = QueryResult.empty(queries[name].text)

        return results, failed

    def _executor_for(self, query: CompiledQuery) -> DuckDBExecutor:
        return self.crm if query.engine == "crm" else self.analytics

    def _build_rows(
        self, result: QueryResult, conversions: dict[str, Conversions]
    ) -> list[ReportRow]:
        # keyed levels match on the raw id, everything else on the display value
        keyed = "dimension_id" in result.columns
        rows = []
        for row in result.data:
            row = dict(row)
            dimension_id = row.pop("dimension_id", None)
            dimension_value = row.pop("dimension_value")
            key = dimension_key(dimension_id if keyed else dimension_value)
            matched = conversions.get(key, Conversions())
            rows.append(
                ReportRow(
                    dimension_id=dimension_id,
                    dimension_value=dimension_value,
                    metrics=row,
                    trials=round(matched.trials, 4),
                    approved=round(matched.approved, 4),
                )
            )
        return rows

    # --- introspection ---

    def list_dimensions(self, source: str | None = None) -> list[dict[str, Any]]:
        """List dimensions across sources (or one source)."""
        sources = [self.registry.get_source(source)] if source else self.registry.sources.values()
        dims = []
        for analytics_source in sources:
            for dim in analytics_source.dimensions:
                dims.append(
                    {
                        "name": dim.name,
                        "kind": dim.kind.value,
                        "type": dim.type.value,
                        "level": dim.level.value,
                        "source": analytics_source.name,
                        "description": dim.description,
                    }
                )
        return dims

    def close(self) -> None:
        """Close both database connections."""
        self.analytics.close()
        self.crm.close()

    def __enter__(self) -> "ReportStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
