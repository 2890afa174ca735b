"""Join planning.

decides once per request which lookup joins a query needs, and owns the
column-prefix decision every fragment builder uses. the rule: as soon as a
join puts a second table in the FROM list, every bare column of the base
table gets the base alias.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from drilldown.compiler.fragments import date_range_condition
from drilldown.models.dimension import (
    AnalyticsSource,
    DimensionKind,
    DimensionLevel,
    JoinLevel,
    qualify,
)
from drilldown.models.request import DateRange


@dataclass(frozen=True)
class JoinPlan:
    """Which joins a query needs and how columns must be written."""

    enriched_join_level: JoinLevel
    needs_classification_join: bool
    alias: str
    # some query shapes have a second table regardless of lookups (funnel mode)
    always_qualify: bool = False

    @property
    def has_joins(self) -> bool:
        return self.enriched_join_level != JoinLevel.NONE or self.needs_classification_join

    @property
    def column_prefix(self) -> str:
        if self.has_joins or self.always_qualify:
            return f"{self.alias}."
        return ""

    def column(self, expr: str) -> str:
        """The single place a base-table column gets its prefix."""
        return qualify(expr, self.column_prefix)

    def from_clause(self, table: str) -> str:
        if self.column_prefix:
            return f"{table} {self.alias}"
        return table


class JoinPlanner:
    """Picks the minimal-but-sufficient joins for a request.

    stateless apart from the source it plans for, so one planner can be shared
    by every request hitting that source.
    """

    def __init__(self, source: AnalyticsSource) -> None:
        self.source = source

    def plan(
        self,
        dimensions: Iterable[str],
        ancestor_keys: Iterable[str] = (),
        filter_fields: Iterable[str] = (),
        *,
        enriched: bool = True,
        always_qualify: bool = False,
    ) -> JoinPlan:
        """Plan joins for the union of grouped, ancestor and filter dimensions.

        the enriched join takes the most specific level anyone asked for - joining
        too coarse gives wrong names, joining too fine only costs a few columns.
        with `enriched=False` names are never needed (attribution queries
        carry raw ids), so only the classification join can be planned.
        event-level dimensions don't live on this source's table and are ignored.
        """
        level = JoinLevel.NONE
        needs_classification = False

        referenced = [*dimensions, *ancestor_keys, *filter_fields]
        for dimension_id in referenced:
            dim = self.source.resolve(dimension_id)
            if dim.level == DimensionLevel.EVENT:
                continue
            if dim.kind == DimensionKind.ENRICHED and enriched:
                if dim.join_level.rank > level.rank:
                    level = dim.join_level
            elif dim.kind == DimensionKind.CLASSIFICATION:
                needs_classification = True

        return JoinPlan(
            enriched_join_level=level,
            needs_classification_join=needs_classification,
            alias=self.source.alias,
            always_qualify=always_qualify,
        )


def render_joins(plan: JoinPlan, source: AnalyticsSource, date_range: DateRange) -> tuple[str, ...]:
    """JOIN clauses for a plan, enriched join first.

    the spend table has one row per id per day, so it's collapsed to one row per
    id combination before joining - otherwise every page view would fan out
    across the days in the range.
    """
    joins: list[str] = []

    if plan.enriched_join_level != JoinLevel.NONE:
        spend = source.spend
        levels = plan.enriched_join_level.covered
        id_columns = [level.id_column for level in levels]
        name_columns = [f"MAX({level.name_column}) AS {level.name_column}" for level in levels]
        spend_range = date_range_condition(spend.date_column, date_range.start, date_range.end)
        on_conditions = [
            f"CAST({plan.column(source.tracking.column_for(level.tracking_role))} AS TEXT)"
            f" = CAST({spend.alias}.{level.id_column} AS TEXT)"
            for level in levels
        ]
        joins.append(
            f"LEFT JOIN (SELECT {', '.join(id_columns + name_columns)}"
            f" FROM {spend.table} WHERE {spend_range}"
            f" GROUP BY {', '.join(id_columns)}) {spend.alias}"
            f" ON {' AND '.join(on_conditions)}"
        )

    if plan.needs_classification_join:
        lookup = source.classification
        joins.append(
            f"LEFT JOIN {lookup.table} {lookup.alias}"
            f" ON {plan.column(source.url_column)} = {lookup.alias}.url_path"
            f" AND {lookup.alias}.is_ignored = false"
        )
        joins.append(
            f"LEFT JOIN {lookup.products_table} {lookup.products_alias}"
            f" ON {lookup.alias}.product_id = {lookup.products_alias}.id"
        )

    return tuple(joins)
