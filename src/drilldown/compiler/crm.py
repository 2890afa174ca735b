"""CRM-side queries for attribution.

the crm is a separate transactional database with `?` placeholders, so every
value is added to the parameter list in the order it appears in the text.
ancestor filters are translated to crm columns where an equivalent exists
(source, the three tracking ids, date) and skipped otherwise - the crm has no
notion of country or device.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Any

from drilldown.compiler.attribution import SOURCE_SYNONYMS, normalized_source_sql
from drilldown.compiler.fragments import ParameterList, QueryParts
from drilldown.compiler.render import is_null_sentinel
from drilldown.compiler.validation import validate_depth_request
from drilldown.models.dimension import AnalyticsSource, DimensionDescriptor, TrackingRole
from drilldown.models.query import CompiledQuery
from drilldown.models.request import QueryRequest

logger = logging.getLogger(__name__)


class CrmQueryBuilder:
    """Builds trials/approved queries against the crm subscription tables.

    exclusion rules match the rest of the crm reporting: deleted subscriptions
    and upsells (tagged with a parent subscription) don't count, and only the
    primary invoice type is joined.
    """

    TRACKING_FIELDS = {
        TrackingRole.SOURCE: "sr.source",
        TrackingRole.CAMPAIGN: "s.tracking_id_4",
        TrackingRole.ADSET: "s.tracking_id_2",
        TrackingRole.AD: "s.tracking_id",
    }
    DATE_FIELD = "CAST(s.date_create AS DATE)"
    TRIALS = "COUNT(DISTINCT s.id)"
    APPROVED = "COUNT(DISTINCT CASE WHEN i.is_marked = 1 AND i.deleted = 0 THEN s.id END)"

    def __init__(self, source: AnalyticsSource) -> None:
        self.source = source

    def crm_field(self, dim: DimensionDescriptor) -> str | None:
        """The crm column equivalent to an analytics dimension, if any."""
        if dim.is_time:
            return self.DATE_FIELD
        if dim.tracking_role is not None:
            return self.TRACKING_FIELDS[dim.tracking_role]
        return None

    def supports_grouping(self, request: QueryRequest) -> bool:
        """Whether the crm can group by the current level with every ancestor applied.

        when true the grouped query gives exact numbers; otherwise the caller
        has to fall back to visitor/tracking correlation.
        """
        for dimension_id in request.dimensions[: request.depth + 1]:
            if self.crm_field(self.source.resolve(dimension_id)) is None:
                return False
        return True

    def build_grouped(self, request: QueryRequest) -> CompiledQuery | None:
        """Trials/approved grouped by the crm equivalent of the current dimension.

        returns None when the dimension has no crm equivalent.
        """
        dimension = validate_depth_request(request, self.source)
        field = self.crm_field(dimension)
        if field is None:
            return None

        if dimension.tracking_role == TrackingRole.SOURCE:
            # raw lowercase spelling, to line up with the analytics utm_source values
            group_expr = f"LOWER({field})"
        else:
            group_expr = field

        params = ParameterList(style="qmark")
        parts = QueryParts(
            select=(
                f"{group_expr} AS dimension_value",
                f"{self.TRIALS} AS trials",
                f"{self.APPROVED} AS approved",
            ),
            **self._base(request, params),
            group_by=(group_expr,),
        )
        return self._compiled(parts, params, "grouped")

    def build_tracking(self, request: QueryRequest) -> CompiledQuery:
        """Trials/approved per normalized (source, campaign, adset, ad) key."""
        validate_depth_request(request, self.source)
        source_expr = normalized_source_sql("sr.source")
        id_exprs = [
            f"COALESCE({self.TRACKING_FIELDS[role]}, '')"
            for role in (TrackingRole.CAMPAIGN, TrackingRole.ADSET, TrackingRole.AD)
        ]

        params = ParameterList(style="qmark")
        parts = QueryParts(
            select=(
                f"{source_expr} AS normalized_source",
                f"{id_exprs[0]} AS campaign_key",
                f"{id_exprs[1]} AS adset_key",
                f"{id_exprs[2]} AS ad_key",
                f"{self.TRIALS} AS trials",
                f"{self.APPROVED} AS approved",
            ),
            **self._base(request, params),
            group_by=(source_expr, *id_exprs),
        )
        return self._compiled(parts, params, "tracking")

    def build_visitor(self, request: QueryRequest) -> CompiledQuery:
        """Trials/approved per tracked visitor id."""
        validate_depth_request(request, self.source)
        params = ParameterList(style="qmark")
        base = self._base(request, params)
        base["where"] = (*base["where"], "s.ff_vid IS NOT NULL")
        parts = QueryParts(
            select=(
                "s.ff_vid AS visitor_id",
                f"{self.TRIALS} AS trials",
                f"{self.APPROVED} AS approved",
            ),
            **base,
            group_by=("s.ff_vid",),
        )
        return self._compiled(parts, params, "visitor")

    def _base(self, request: QueryRequest, params: ParameterList) -> dict[str, Any]:
        """FROM/JOIN/WHERE shared by every crm query. Adds parameters in text order."""
        start = datetime.combine(request.date_range.start, time.min)
        end = datetime.combine(request.date_range.end + timedelta(days=1), time.min)
        where = [
            f"s.date_create >= {params.add(start)}",
            f"s.date_create < {params.add(end)}",
            "s.deleted = 0",
            "(i.tag IS NULL OR i.tag NOT LIKE '%parent-sub-id=%')",
        ]
        for dimension_id in request.dimensions[: request.depth]:
            condition = self._parent_condition(
                self.source.resolve(dimension_id), request.ancestor_filters[dimension_id], params
            )
            if condition:
                where.append(condition)

        return {
            "from_": "subscription s",
            "joins": (
                "INNER JOIN invoice i ON i.subscription_id = s.id AND i.type = 1",
                "LEFT JOIN source sr ON sr.id = s.source_id",
            ),
            "where": tuple(where),
        }

    def _parent_condition(
        self, dim: DimensionDescriptor, value: Any, params: ParameterList
    ) -> str | None:
        field = self.crm_field(dim)
        if field is None:
            return None
        if is_null_sentinel(value):
            return f"{field} IS NULL"
        if dim.is_time:
            return f"{field} = CAST({params.add(value)} AS DATE)"
        if dim.tracking_role == TrackingRole.SOURCE:
            # "google" on the analytics side also means "adwords" in the crm
            variants = SOURCE_SYNONYMS.get(str(value).lower())
            if variants:
                placeholders = ", ".join(params.extend(list(variants)))
                return f"LOWER({field}) IN ({placeholders})"
            return f"LOWER({field}) = {params.add(str(value).lower())}"
        return f"{field} = {params.add(value)}"

    def _compiled(self, parts: QueryParts, params: ParameterList, kind: str) -> CompiledQuery:
        logger.debug("compiled crm %s query (%d params)", kind, len(params))
        return CompiledQuery(text=parts.render(), parameters=params.values, engine="crm")
