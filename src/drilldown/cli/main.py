"""CLI for drilldown."""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from drilldown.config import get_settings
from drilldown.errors import DrilldownError
from drilldown.models.query import AttributedReport, QueryResult
from drilldown.models.request import QueryRequest, TableFilter
from drilldown.sample_data import generate_sample_data
from drilldown.store import QUERY_MODES, ReportStore

app = typer.Typer(
    name="drill",
    help="drilldown - hierarchical report queries",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


@app.callback()
def main(
    log_level: Annotated[
        str | None, typer.Option("--log-level", help="Logging level (default from settings)")
    ] = None,
) -> None:
    level = (log_level or get_settings().log_level).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def get_store(
    analytics_db: str | None = None, crm_db: str | None = None
) -> ReportStore:
    settings = get_settings()
    return ReportStore(
        analytics_db=analytics_db or settings.analytics_db,
        crm_db=crm_db or settings.crm_db,
        sources_dir=settings.sources_dir,
        max_workers=settings.max_workers,
    )


def parse_parent(raw: str) -> tuple[str, str]:
    """'country=DK' -> ('country', 'DK')."""
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise typer.BadParameter(f"Expected dimension=value, got {raw!r}")
    return key.strip(), value


def parse_filter(raw: str) -> TableFilter:
    """'campaign:contains:summer' -> TableFilter. the value may be empty."""
    parts = raw.split(":", 2)
    if len(parts) < 2:
        raise typer.BadParameter(f"Expected field:operator[:value], got {raw!r}")
    value = parts[2] if len(parts) == 3 else None
    try:
        return TableFilter(field=parts[0].strip(), operator=parts[1].strip(), value=value)
    except ValidationError as e:
        raise typer.BadParameter(f"Invalid filter {raw!r}: {e.errors()[0]['msg']}")


def build_request(
    dimensions: str,
    start: str,
    end: str,
    depth: int,
    parents: list[str] | None,
    filters: list[str] | None,
    sort_by: str | None,
    direction: str,
    limit: int | None,
) -> QueryRequest:
    return QueryRequest(
        date_range={"start": start, "end": end},
        dimensions=[d.strip() for d in dimensions.split(",") if d.strip()],
        depth=depth,
        ancestor_filters=dict(parse_parent(p) for p in parents or []),
        user_filters=[parse_filter(f) for f in filters or []],
        sort_by=sort_by,
        sort_direction=direction,
        limit=limit if limit is not None else get_settings().default_limit,
    )


# shared option types - every query-shaped command takes the same request options
DimensionsArg = Annotated[str, typer.Argument(help="Comma-separated dimensions, outermost first")]
StartOpt = Annotated[str, typer.Option("--start", help="Start date (YYYY-MM-DD)")]
EndOpt = Annotated[str, typer.Option("--end", help="End date (YYYY-MM-DD), inclusive")]
DepthOpt = Annotated[int, typer.Option("--depth", help="Drill-down depth (0-based)")]
ParentOpt = Annotated[
    list[str] | None, typer.Option("--parent", "-p", help="Ancestor value, dimension=value")
]
FilterOpt = Annotated[
    list[str] | None, typer.Option("--filter", "-f", help="User filter, field:operator:value")
]
SortOpt = Annotated[str | None, typer.Option("--sort", help="Metric to sort by")]
DirectionOpt = Annotated[str, typer.Option("--direction", help="ASC or DESC")]
LimitOpt = Annotated[int | None, typer.Option("--limit", "-l", help="Maximum rows (1-10000)")]
SourceOpt = Annotated[str | None, typer.Option("--source", help="Analytics source")]


@app.command("dimensions")
def list_dimensions(source: SourceOpt = None) -> None:
    """List available dimensions."""
    try:
        store = get_store()
        dims = store.list_dimensions(source)
    except (DrilldownError, KeyError, ValueError) as e:
        console.print(f"[red]Error loading sources: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Dimensions")
    table.add_column("Name", style="cyan")
    table.add_column("Kind", style="green")
    table.add_column("Type")
    table.add_column("Level")
    table.add_column("Source", style="yellow")
    table.add_column("Description")

    for dim in dims:
        table.add_row(
            dim["name"],
            dim["kind"],
            dim["type"],
            dim["level"],
            dim["source"],
            dim["description"] or "-",
        )

    console.print(table)


@app.command("show-sql")
def show_sql(
    dimensions: DimensionsArg,
    start: StartOpt,
    end: EndOpt,
    depth: DepthOpt = 0,
    parents: ParentOpt = None,
    filters: FilterOpt = None,
    sort_by: SortOpt = None,
    direction: DirectionOpt = "DESC",
    limit: LimitOpt = None,
    mode: Annotated[
        str, typer.Option("--mode", "-m", help=f"One of: {', '.join(QUERY_MODES)}")
    ] = "depth",
    source: SourceOpt = None,
) -> None:
    """Show the compiled SQL and its parameters without executing."""
    try:
        store = get_store()
        request = build_request(
            dimensions, start, end, depth, parents, filters, sort_by, direction, limit
        )
        compiled = store.compile(request, mode, source)
        sql = store.get_sql(request, mode, source)
    except (DrilldownError, ValidationError, KeyError, ValueError) as e:
        console.print(f"[red]Error generating SQL: {e}[/red]")
        raise typer.Exit(1)

    console.print(Syntax(sql, "sql", theme="monokai", line_numbers=True))
    if compiled.parameters:
        console.print()
        # crm text binds ? in order, so number them the same way
        for i, value in enumerate(compiled.parameters, 1):
            console.print(f"  [cyan]${i}[/cyan] = {escape(repr(value))}")


@app.command()
def query(
    dimensions: DimensionsArg,
    start: StartOpt,
    end: EndOpt,
    depth: DepthOpt = 0,
    parents: ParentOpt = None,
    filters: FilterOpt = None,
    sort_by: SortOpt = None,
    direction: DirectionOpt = "DESC",
    limit: LimitOpt = None,
    flat: Annotated[bool, typer.Option("--flat", help="Group by every dimension at once")] = False,
    attribute: Annotated[
        bool, typer.Option("--attribute", "-a", help="Attach crm trials/approved")
    ] = False,
    source: SourceOpt = None,
    analytics_db: Annotated[
        str | None, typer.Option("--analytics-db", help="Analytics DuckDB path")
    ] = None,
    crm_db: Annotated[str | None, typer.Option("--crm-db", help="CRM DuckDB path")] = None,
    output: Annotated[str, typer.Option("--output", "-o", help="table or json")] = "table",
) -> None:
    """Run a report query."""
    if flat and attribute:
        console.print("[red]Query error: --flat and --attribute can't be combined[/red]")
        raise typer.Exit(1)

    try:
        store = get_store(analytics_db, crm_db)
        request = build_request(
            dimensions, start, end, depth, parents, filters, sort_by, direction, limit
        )
        with store:
            if attribute:
                # a missing engine degrades the report instead of failing it
                result = store.attributed_report(request, source or "page_views")
            else:
                source = source or ("sessions" if flat else "page_views")
                table = store.registry.get_source(source).table
                if not store.analytics.table_exists(table):
                    console.print(
                        f"[red]Table '{table}' not found in the analytics database. "
                        "Run `drill init-sample` to create sample data.[/red]"
                    )
                    raise typer.Exit(1)
                if flat:
                    result = store.query_flat(request, source)
                else:
                    result = store.query_depth(request, source)
    except (DrilldownError, ValidationError, KeyError, ValueError) as e:
        console.print(f"[red]Query error: {e}[/red]")
        raise typer.Exit(1)

    if isinstance(result, AttributedReport):
        _output_report(result, output)
    else:
        _output_result(result, output)


def _output_result(result: QueryResult, output_format: str) -> None:
    if output_format == "json":
        console.print(json.dumps(result.data, indent=2, default=str))
        return

    table = Table(title=f"Query Results ({result.row_count} rows, {result.execution_time_ms}ms)")
    for col in result.columns:
        table.add_column(col)
    for row in result.data:
        table.add_row(*[str(row.get(c, "")) for c in result.columns])
    console.print(table)


def _output_report(report: AttributedReport, output_format: str) -> None:
    if report.failed_sources:
        console.print(
            f"[yellow]Partial report, failed sources: {', '.join(report.failed_sources)}[/yellow]"
        )

    if output_format == "json":
        rows = [row.model_dump() for row in report.rows]
        console.print(json.dumps(rows, indent=2, default=str))
        return

    metric_names = list(report.rows[0].metrics) if report.rows else []
    table = Table(title=f"Attributed Report ({len(report.rows)} rows)")
    table.add_column("dimension_value", style="cyan")
    for name in metric_names:
        table.add_column(name)
    table.add_column("trials", style="green")
    table.add_column("approved", style="green")
    for row in report.rows:
        table.add_row(
            str(row.dimension_value),
            *[str(row.metrics.get(name, "")) for name in metric_names],
            f"{row.trials:g}",
            f"{row.approved:g}",
        )
    console.print(table)


@app.command("init-sample")
def init_sample(
    analytics_db: Annotated[Path, typer.Option("--analytics-db")] = Path("data/analytics.duckdb"),
    crm_db: Annotated[Path, typer.Option("--crm-db")] = Path("data/crm.duckdb"),
    sessions: Annotated[int, typer.Option("--sessions", help="Sessions to generate")] = 500,
    start: Annotated[str, typer.Option("--start", help="First day (YYYY-MM-DD)")] = "2024-01-01",
    days: Annotated[int, typer.Option("--days")] = 30,
    seed: Annotated[int, typer.Option("--seed")] = 42,
) -> None:
    """Write sample analytics and crm databases."""
    for path in (analytics_db, crm_db):
        path.parent.mkdir(parents=True, exist_ok=True)

    counts = generate_sample_data(
        str(analytics_db),
        str(crm_db),
        sessions=sessions,
        start=date.fromisoformat(start),
        days=days,
        seed=seed,
    )
    for table, count in counts.items():
        console.print(f"  - {count} rows in [cyan]{table}[/cyan]")
    console.print(f"[green]Sample data written to {analytics_db} and {crm_db}[/green]")


if __name__ == "__main__":
    app()
