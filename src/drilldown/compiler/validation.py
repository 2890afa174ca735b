"""Request checks that run before any sql text exists.

order matters only for which error a doubly-broken request reports: depth
first, then unknown ids, then ancestor/filter shape.
"""

from drilldown.errors import InvalidDepth, MalformedAncestorFilters, UnknownDimension
from drilldown.models.dimension import AnalyticsSource, DimensionDescriptor, DimensionLevel
from drilldown.models.request import QueryRequest


def validate_depth_request(
    request: QueryRequest, source: AnalyticsSource
) -> DimensionDescriptor:
    """Validate a depth-recursive request and return the dimension at `depth`."""
    if not 0 <= request.depth < len(request.dimensions):
        raise InvalidDepth(
            f"Depth {request.depth} is outside [0, {len(request.dimensions)}) "
            f"for dimensions {list(request.dimensions)}"
        )

    for dimension_id in [*request.dimensions, *request.ancestor_filters, *request.filter_fields]:
        dim = source.resolve(dimension_id)
        if dim.level == DimensionLevel.EVENT:
            raise UnknownDimension(
                dimension_id, source.name, detail="only available in flat funnel queries"
            )

    expected = list(request.dimensions[: request.depth])
    if set(request.ancestor_filters) != set(expected):
        raise MalformedAncestorFilters(
            f"Ancestor filters {sorted(request.ancestor_filters)} must cover exactly "
            f"the dimensions above depth {request.depth}: {expected}"
        )

    _reject_overlap(request)
    return source.resolve(request.current_dimension)


def validate_flat_request(
    request: QueryRequest, source: AnalyticsSource
) -> list[DimensionDescriptor]:
    """Validate a flat request and return its resolved dimensions in order."""
    dims = [source.resolve(dimension_id) for dimension_id in request.dimensions]
    for field in request.filter_fields:
        source.resolve(field)

    if request.ancestor_filters:
        raise MalformedAncestorFilters(
            "Flat queries group by every dimension at once and take no ancestor filters"
        )
    return dims


def _reject_overlap(request: QueryRequest) -> None:
    # no sane precedence between "drilled into X" and "filter X by Y"
    overlap = [f for f in request.filter_fields if f in request.ancestor_filters]
    if overlap:
        raise MalformedAncestorFilters(
            f"Fields used as both ancestor filter and user filter: {overlap}"
        )
