"""Pydantic models for compiled queries and their results."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CompiledQuery(BaseModel):
    """Query text plus positional parameters.

    `engine` says which store the text is written for - analytics text uses
    $n placeholders, crm text uses ? placeholders bound in textual order.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    parameters: tuple[Any, ...] = ()
    engine: str = "analytics"


class QueryResult(BaseModel):
    """Rows returned by an executor.

    keeps the sql alongside the data - the first question anyone asks about a
    weird number is "what query produced this".
    """

    sql: str
    parameters: list[Any] = Field(default_factory=list)
    columns: list[str]
    data: list[dict]
    row_count: int
    execution_time_ms: float

    @classmethod
    def empty(cls, sql: str = "") -> "QueryResult":
        return cls(sql=sql, columns=[], data=[], row_count=0, execution_time_ms=0.0)


class TrackingMatchRow(BaseModel):
    """A dimension value with the raw attribution key and its visitor count."""

    dimension_value: Any = None
    normalized_source: str = ""
    campaign_key: str = ""
    adset_key: str = ""
    ad_key: str = ""
    unique_visitor_count: int = 0


class VisitorMatchRow(BaseModel):
    """A (dimension value, visitor id) pair."""

    dimension_value: Any = None
    visitor_id: str


class CrmTrackingRow(BaseModel):
    """CRM conversions for one attribution key."""

    normalized_source: str = ""
    campaign_key: str = ""
    adset_key: str = ""
    ad_key: str = ""
    trials: int = 0
    approved: int = 0


class CrmVisitorRow(BaseModel):
    """CRM conversions for one tracked visitor."""

    visitor_id: str
    trials: int = 0
    approved: int = 0


class Conversions(BaseModel):
    """Trials/approved attributed to one dimension value.

    floats because proportional attribution splits a conversion across values.
    """

    trials: float = 0.0
    approved: float = 0.0


class ReportRow(BaseModel):
    """One row of an attributed report: analytics metrics plus crm conversions."""

    dimension_id: Any = None
    dimension_value: Any
    metrics: dict[str, Any] = Field(default_factory=dict)
    trials: float = 0.0
    approved: float = 0.0


class AttributedReport(BaseModel):
    """Result of a multi-source report.

    `failed_sources` lists the engines that errored - their part of the report
    is empty rather than the whole report failing.
    """

    rows: list[ReportRow]
    queries: dict[str, CompiledQuery] = Field(default_factory=dict)
    failed_sources: list[str] = Field(default_factory=list)
