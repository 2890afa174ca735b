"""Dimension rendering shared by every compiler.

one function per role a dimension can play in a query (grouped column, key,
parent filter, table filter, sub-query projection). the depth, flat and
attribution compilers all go through here, so a dimension renders the same
way no matter which query it ends up in.
"""

from dataclasses import dataclass
from typing import Any

from drilldown.compiler.fragments import ParameterList
from drilldown.compiler.planner import JoinPlan
from drilldown.models.dimension import AnalyticsSource, DimensionDescriptor, DimensionKind
from drilldown.models.request import UNKNOWN


@dataclass(frozen=True)
class RenderedDimension:
    """SELECT items and the matching GROUP BY items for one dimension."""

    select: tuple[str, ...]
    group_by: tuple[str, ...]


def is_null_sentinel(value: Any) -> bool:
    return value is None or value == UNKNOWN


class DimensionRenderer:
    """Renders dimensions for one source under one join plan."""

    def __init__(self, source: AnalyticsSource, plan: JoinPlan) -> None:
        self.source = source
        self.plan = plan

    # --- row-level expressions ---

    def value_expr(self, dim: DimensionDescriptor) -> str:
        """The ungrouped value: raw column, day-truncated timestamp or classification."""
        if dim.kind == DimensionKind.CLASSIFICATION:
            return self.plan.column(dim.select_expr)
        expr = self.plan.column(dim.raw_expr)
        if dim.is_time:
            return f"CAST({expr} AS DATE)"
        if dim.kind == DimensionKind.ENRICHED:
            return f"CAST({expr} AS TEXT)"
        return expr

    def key_expr(self, dim: DimensionDescriptor) -> str:
        """The value a row is keyed by - what the next level gets as an ancestor value."""
        if dim.kind == DimensionKind.ENRICHED:
            return f"CAST({self.plan.column(dim.raw_expr)} AS TEXT)"
        if dim.kind == DimensionKind.CLASSIFICATION:
            if dim.id_expr:
                return f"CAST({self.plan.column(dim.id_expr)} AS TEXT)"
            return self.plan.column(dim.group_by_expr)
        return self.value_expr(dim)

    def name_expr(self, dim: DimensionDescriptor) -> str:
        """Aggregated display name of an enriched dimension, never NULL or empty."""
        name_column = f"{self.source.spend.alias}.{dim.join_level.name_column}"
        return (
            f"COALESCE(NULLIF(MAX({name_column}), ''), NULLIF({self.key_expr(dim)}, ''), "
            f"'{UNKNOWN}')"
        )

    def filter_expr(self, dim: DimensionDescriptor) -> str:
        """What a user-typed filter compares against (before text casting)."""
        if dim.kind == DimensionKind.CLASSIFICATION:
            return self.plan.column(dim.table_filter_expr)
        if dim.kind == DimensionKind.ENRICHED:
            return self.plan.column(dim.raw_expr)
        return self.value_expr(dim)

    # --- clause builders ---

    def grouped(
        self, dim: DimensionDescriptor, value_alias: str, id_alias: str
    ) -> RenderedDimension:
        """SELECT/GROUP BY pair for a grouped dimension.

        keyed dimensions (enriched, classification with an id) emit the key under
        `id_alias` and the display value under `value_alias`.
        """
        if dim.kind == DimensionKind.ENRICHED:
            key = self.key_expr(dim)
            return RenderedDimension(
                select=(f"{key} AS {id_alias}", f"{self.name_expr(dim)} AS {value_alias}"),
                group_by=(key,),
            )

        if dim.kind == DimensionKind.CLASSIFICATION:
            group_expr = self.plan.column(dim.group_by_expr)
            if dim.id_expr:
                key = self.key_expr(dim)
                return RenderedDimension(
                    select=(f"{key} AS {id_alias}", f"{self.value_expr(dim)} AS {value_alias}"),
                    group_by=(key, group_expr),
                )
            return RenderedDimension(
                select=(f"{self.value_expr(dim)} AS {value_alias}",),
                group_by=(group_expr,),
            )

        value = self.value_expr(dim)
        return RenderedDimension(select=(f"{value} AS {value_alias}",), group_by=(value,))

    def projection(self, dim: DimensionDescriptor) -> tuple[str, ...]:
        """Row-level columns for a sub-query that an outer query groups later.

        lookup names are resolved here so the outer query only reads aliased columns.
        """
        if dim.kind == DimensionKind.ENRICHED:
            name_column = f"{self.source.spend.alias}.{dim.join_level.name_column}"
            return (
                f"{self.key_expr(dim)} AS {dim.name}__id",
                f"NULLIF({name_column}, '') AS {dim.name}__name",
            )
        if dim.kind == DimensionKind.CLASSIFICATION and dim.id_expr:
            return (
                f"{self.key_expr(dim)} AS {dim.name}__id",
                f"{self.value_expr(dim)} AS {dim.name}",
            )
        return (f"{self.value_expr(dim)} AS {dim.name}",)

    def projected(
        self, dim: DimensionDescriptor, relation: str, value_alias: str, id_alias: str
    ) -> RenderedDimension:
        """SELECT/GROUP BY pair reading a dimension from a projection() sub-query."""
        if dim.kind == DimensionKind.ENRICHED:
            key = f"{relation}.{dim.name}__id"
            name = f"COALESCE(MAX({relation}.{dim.name}__name), NULLIF({key}, ''), '{UNKNOWN}')"
            return RenderedDimension(
                select=(f"{key} AS {id_alias}", f"{name} AS {value_alias}"),
                group_by=(key,),
            )
        value = f"{relation}.{dim.name}"
        if dim.kind == DimensionKind.CLASSIFICATION and dim.id_expr:
            key = f"{relation}.{dim.name}__id"
            return RenderedDimension(
                select=(f"{key} AS {id_alias}", f"{value} AS {value_alias}"),
                group_by=(key, value),
            )
        return RenderedDimension(select=(f"{value} AS {value_alias}",), group_by=(value,))

    def parent_filter(self, dim: DimensionDescriptor, value: Any, params: ParameterList) -> str:
        """Ancestor filter condition.

        compares against the key the previous level returned, so classification
        dimensions use their parent-filter expression here, not the table-filter one.
        "Unknown" and None both mean the previous level saw NULL.
        """
        if dim.kind == DimensionKind.CLASSIFICATION:
            expr = self.plan.column(dim.parent_filter_expr)
            if dim.id_expr:
                expr = f"CAST({expr} AS TEXT)"
        else:
            expr = self.key_expr(dim)

        if is_null_sentinel(value):
            return f"{expr} IS NULL"
        if dim.is_time:
            return f"{expr} = CAST({params.add(value)} AS DATE)"
        return f"{expr} = {params.add(value)}"

    def metrics(self) -> tuple[str, ...]:
        """SELECT items for the source's metric table."""
        return tuple(f"{self.plan.column(m.expr)} AS {m.name}" for m in self.source.metrics)
