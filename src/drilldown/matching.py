"""In-memory correlation of analytics rows with crm rows.

the two engines can't be joined in sql, so this is the join. three flavours:

  direct   - the crm grouped by the same dimension; match on the value
  visitor  - crm subscriptions carry the tracker's visitor id; each one is
             split evenly over the dimension values that visitor appeared under
  tracking - both sides carry (source, campaign, adset, ad); each key's crm
             conversions are split over dimension values by visitor share

visitor matching is exact but coverage is patchy, so a dimension value with no
visitor-matched trials falls back to its tracking-matched numbers.
"""

from collections.abc import Iterable
from typing import Any

from drilldown.compiler.attribution import normalize_source
from drilldown.models.dimension import TrackingRole
from drilldown.models.query import (
    Conversions,
    CrmTrackingRow,
    CrmVisitorRow,
    TrackingMatchRow,
    VisitorMatchRow,
)
from drilldown.models.request import UNKNOWN

TRACKING_ORDER = (TrackingRole.SOURCE, TrackingRole.CAMPAIGN, TrackingRole.ADSET, TrackingRole.AD)


def dimension_key(value: Any) -> str:
    """Case-insensitive match key for a dimension value. NULL and "Unknown" agree."""
    if value is None:
        return UNKNOWN.lower()
    return str(value).lower()


def _clean(value: str | None) -> str:
    # the crm stores a literal 'null' string in untracked rows
    if value is None or value == "null":
        return ""
    return value


def tracking_key(
    source: str | None,
    campaign: str | None,
    adset: str | None,
    ad: str | None,
    exclude: Iterable[TrackingRole] = (),
) -> tuple[str, ...]:
    """Attribution key, minus any roles already fixed by the drill-down path.

    when grouping by campaign (or drilled into one), the campaign id is the
    dimension value itself - keeping it in the key would just re-match each
    value against itself.
    """
    excluded = set(exclude)
    # same collapsing as normalized_source_sql
    source = normalize_source(_clean(source))
    values = dict(zip(TRACKING_ORDER, (source, campaign, adset, ad)))
    return tuple(_clean(values[role]) for role in TRACKING_ORDER if role not in excluded)


def _row_key(
    row: CrmTrackingRow | TrackingMatchRow, exclude: tuple[TrackingRole, ...]
) -> tuple[str, ...]:
    return tracking_key(row.normalized_source, row.campaign_key, row.adset_key, row.ad_key, exclude)


def match_direct(rows: Iterable[dict[str, Any]]) -> dict[str, Conversions]:
    """Index crm rows already grouped by the dimension."""
    result: dict[str, Conversions] = {}
    for row in rows:
        key = dimension_key(row.get("dimension_value"))
        existing = result.setdefault(key, Conversions())
        existing.trials += float(row.get("trials") or 0)
        existing.approved += float(row.get("approved") or 0)
    return result


def match_by_tracking(
    crm_rows: Iterable[CrmTrackingRow],
    tracking_rows: Iterable[TrackingMatchRow],
    exclude: Iterable[TrackingRole] = (),
) -> dict[str, Conversions]:
    """Split each key's crm conversions across dimension values by visitor share."""
    exclude = tuple(exclude)
    tracking_rows = list(tracking_rows)

    crm_index: dict[tuple[str, ...], Conversions] = {}
    for row in crm_rows:
        key = _row_key(row, exclude)
        existing = crm_index.setdefault(key, Conversions())
        existing.trials += row.trials
        existing.approved += row.approved

    key_totals: dict[tuple[str, ...], int] = {}
    for row in tracking_rows:
        key = _row_key(row, exclude)
        key_totals[key] = key_totals.get(key, 0) + row.unique_visitor_count

    result: dict[str, Conversions] = {}
    for row in tracking_rows:
        key = _row_key(row, exclude)
        crm = crm_index.get(key)
        if crm is None:
            continue
        total = key_totals.get(key) or 1
        share = row.unique_visitor_count / total
        existing = result.setdefault(dimension_key(row.dimension_value), Conversions())
        existing.trials += crm.trials * share
        existing.approved += crm.approved * share
    return result


def match_by_visitor(
    crm_rows: Iterable[CrmVisitorRow], visitor_rows: Iterable[VisitorMatchRow]
) -> dict[str, Conversions]:
    """Split each crm visitor's conversions evenly over the values they appeared under."""
    visitor_rows = list(visitor_rows)
    crm_index = {row.visitor_id: row for row in crm_rows}

    values_per_visitor: dict[str, int] = {}
    for row in visitor_rows:
        if row.visitor_id in crm_index:
            values_per_visitor[row.visitor_id] = values_per_visitor.get(row.visitor_id, 0) + 1

    result: dict[str, Conversions] = {}
    for row in visitor_rows:
        crm = crm_index.get(row.visitor_id)
        if crm is None:
            continue
        count = values_per_visitor[row.visitor_id]
        existing = result.setdefault(dimension_key(row.dimension_value), Conversions())
        existing.trials += crm.trials / count
        existing.approved += crm.approved / count
    return result


def merge_matches(
    visitor_matched: dict[str, Conversions], tracking_matched: dict[str, Conversions]
) -> dict[str, Conversions]:
    """Visitor numbers where they found a trial, tracking numbers everywhere else."""
    merged = dict(tracking_matched)
    for key, conversions in visitor_matched.items():
        if conversions.trials > 0:
            merged[key] = conversions
    return merged
