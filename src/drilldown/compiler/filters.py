"""WHERE fragments for ancestor filters and user-typed table filters.

table filter rules:
  - filters on the same field are OR'ed, different fields are AND'ed
  - comparisons are case-insensitive (value lowered here, column lowered in sql)
  - enriched dimensions match either the raw id or the display name
  - negated operators keep NULL rows
  - an empty value means IS [NOT] NULL for equals/not_equals and is dropped otherwise
"""

import logging

from drilldown.compiler.fragments import ParameterList, date_range_condition
from drilldown.compiler.render import DimensionRenderer
from drilldown.models.dimension import DimensionDescriptor, DimensionKind
from drilldown.models.request import DateRange, FilterOperator, QueryRequest, TableFilter

logger = logging.getLogger(__name__)


def build_ancestor_conditions(
    request: QueryRequest, renderer: DimensionRenderer, params: ParameterList
) -> tuple[str, ...]:
    """One condition per ancestor, in dimension order."""
    conditions = []
    for dimension_id in request.dimensions[: request.depth]:
        dim = renderer.source.resolve(dimension_id)
        conditions.append(
            renderer.parent_filter(dim, request.ancestor_filters[dimension_id], params)
        )
    return tuple(conditions)


class TableFilterBuilder:
    """Translates user filters into WHERE conditions.

    returns one condition per field; the caller ANDs them with everything else.
    """

    def __init__(
        self, renderer: DimensionRenderer, date_range: DateRange, params: ParameterList
    ) -> None:
        self.renderer = renderer
        self.date_range = date_range
        self.params = params

    def build(self, filters: list[TableFilter] | tuple[TableFilter, ...]) -> tuple[str, ...]:
        by_field: dict[str, list[TableFilter]] = {}
        for table_filter in filters:
            by_field.setdefault(table_filter.field, []).append(table_filter)

        conditions = []
        for field, field_filters in by_field.items():
            dim = self.renderer.source.resolve(field)
            parts = [self._condition(dim, f) for f in field_filters]
            parts = [p for p in parts if p]
            if not parts:
                continue
            conditions.append(parts[0] if len(parts) == 1 else f"({' OR '.join(parts)})")
        return tuple(conditions)

    def _condition(self, dim: DimensionDescriptor, table_filter: TableFilter) -> str | None:
        expr = self.renderer.filter_expr(dim)
        operator = table_filter.operator

        if table_filter.is_empty:
            if operator == FilterOperator.EQUALS:
                return f"{expr} IS NULL"
            if operator == FilterOperator.NOT_EQUALS:
                return f"{expr} IS NOT NULL"
            logger.debug("dropping %s filter on %s with an empty value", operator.value, dim.name)
            return None

        placeholder = self.params.add(table_filter.value.lower())
        text = f"LOWER(CAST({expr} AS TEXT))"
        exact = operator in (FilterOperator.EQUALS, FilterOperator.NOT_EQUALS)
        if exact:
            match = f"{text} = {placeholder}"
        else:
            match = f"{text} LIKE '%' || {placeholder} || '%'"

        if dim.kind == DimensionKind.ENRICHED:
            lookup = self._name_lookup(dim, placeholder, exact)
            id_text = f"CAST({expr} AS TEXT)"
            if operator.is_negated:
                return f"({expr} IS NULL OR (NOT ({match}) AND {id_text} NOT IN ({lookup})))"
            return f"({match} OR {id_text} IN ({lookup}))"

        if operator.is_negated:
            return f"({expr} IS NULL OR NOT ({match}))"
        return match

    def _name_lookup(self, dim: DimensionDescriptor, placeholder: str, exact: bool) -> str:
        """Raw ids whose display name matches, within the request's date range."""
        spend = self.renderer.source.spend
        id_column = dim.join_level.id_column
        name_column = dim.join_level.name_column
        if exact:
            name_match = f"LOWER({name_column}) = {placeholder}"
        else:
            name_match = f"LOWER({name_column}) LIKE '%' || {placeholder} || '%'"
        spend_range = date_range_condition(
            spend.date_column, self.date_range.start, self.date_range.end
        )
        # NOT IN against a NULL would match nothing, so ids are never NULL here
        return (
            f"SELECT DISTINCT CAST({id_column} AS TEXT) FROM {spend.table}"
            f" WHERE {spend_range} AND {id_column} IS NOT NULL AND {name_match}"
        )
