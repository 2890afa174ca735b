"""Pydantic models for report requests.

a QueryRequest is the already-parsed input to every compiler. it's frozen so
the same request can be compiled several times (depth query, attribution
queries, crm queries) without anything leaking between them.
"""

from datetime import date
from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

UNKNOWN = "Unknown"  # sentinel for NULL dimension values, both directions

DEFAULT_LIMIT = 1000
MIN_LIMIT = 1
MAX_LIMIT = 10000


class DateRange(BaseModel):
    """Inclusive date range."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode="after")
    def validate_order(self) -> Self:
        if self.end < self.start:
            raise ValueError(f"Date range end {self.end} is before start {self.start}")
        return self


class FilterOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"

    @property
    def is_negated(self) -> bool:
        return self in (FilterOperator.NOT_EQUALS, FilterOperator.NOT_CONTAINS)


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class TableFilter(BaseModel):
    """A user-typed filter: field, operator, value."""

    model_config = ConfigDict(frozen=True)

    field: str
    operator: FilterOperator
    value: str | None = None

    @property
    def is_empty(self) -> bool:
        # "Unknown" is how NULL shows up in the ui, so it means the same thing here
        return self.value is None or self.value.strip() == "" or self.value == UNKNOWN


class QueryRequest(BaseModel):
    """A single report request.

    `depth` only matters to the depth-recursive compiler; flat compilation
    groups by every dimension and ignores it. range checks on depth happen in
    the compiler so they surface as InvalidDepth rather than a validation error.
    """

    model_config = ConfigDict(frozen=True)

    date_range: DateRange
    dimensions: tuple[str, ...] = Field(min_length=1)
    depth: int = 0
    # values are whatever the previous level returned; "Unknown" or None mean NULL
    ancestor_filters: dict[str, Any] = Field(default_factory=dict)
    user_filters: tuple[TableFilter, ...] = ()
    sort_by: str | None = None  # None -> the source's default metric
    sort_direction: SortDirection = SortDirection.DESC
    limit: int = DEFAULT_LIMIT

    @field_validator("dimensions")
    @classmethod
    def validate_unique(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(v)) != len(v):
            raise ValueError(f"Dimensions must be unique: {list(v)}")
        return v

    @field_validator("sort_direction", mode="before")
    @classmethod
    def normalize_direction(cls, v: object) -> object:
        # "desc" from a query string is fine
        return v.upper() if isinstance(v, str) else v

    @property
    def current_dimension(self) -> str:
        return self.dimensions[self.depth]

    @property
    def clamped_limit(self) -> int:
        return max(MIN_LIMIT, min(MAX_LIMIT, int(self.limit)))

    @property
    def filter_fields(self) -> list[str]:
        """User filter fields in first-seen order."""
        return list(dict.fromkeys(f.field for f in self.user_filters))
