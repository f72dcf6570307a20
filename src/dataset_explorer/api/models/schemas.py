"""Pydantic models for API request/response schemas.

These models define the API contracts between the chart UI and the engine.
All models use Pydantic v2 with strict validation.

Filters travel in their JSON wire shape (leaf / and / or / not) and are parsed
into the filter tree by the routes, so shape errors surface as InvalidFilter.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DisplayTypeName = Literal["categorical", "numeric", "id"]

MAX_REQUEST_BINS = 1000


# ============================================================================
# Filter Schemas
# ============================================================================


class FiltersRequest(BaseModel):
    """Request carrying the current filter selections."""

    model_config = ConfigDict(extra="forbid")

    filters: list[dict[str, Any]] = Field(
        default_factory=list,
        description='Filter trees, e.g. {"column": "status", "operator": "eq", "value": "Active", '
        '"tableName": "patients"}',
    )


class TableFilters(BaseModel):
    """Direct and propagated filters of one table."""

    model_config = ConfigDict(extra="forbid")

    direct: list[dict[str, Any]] = Field(default_factory=list, description="Filters declared on this table")
    propagated: list[dict[str, Any]] = Field(
        default_factory=list, description="Filters declared on a table one relationship away"
    )


class FilterWarningResponse(BaseModel):
    """A filter that was dropped instead of compiled."""

    model_config = ConfigDict(extra="forbid")

    filter: dict[str, Any] = Field(..., description="Dropped filter (or the filter a pruned column came from)")
    reason: str = Field(..., description="UnknownColumn or NoRelationshipPath")
    message: str = Field(..., description="Human-readable reason")


class ConditionResponse(BaseModel):
    """Compiled condition of one table (debug aid)."""

    model_config = ConfigDict(extra="forbid")

    table: str = Field(..., description="Table the condition restricts")
    sql: Optional[str] = Field(None, description="Condition with inline literals; null when unrestricted")
    parameterized_sql: Optional[str] = Field(None, description="Condition with ? placeholders")
    params: list[Any] = Field(default_factory=list, description="Placeholder values in order")
    warnings: list[FilterWarningResponse] = Field(default_factory=list, description="Dropped filters")


# ============================================================================
# Aggregation Schemas
# ============================================================================


class ColumnAggregationRequest(FiltersRequest):
    """Request to aggregate one column."""

    display_type: Optional[DisplayTypeName] = Field(
        None, description="Display type; detected from the column when omitted"
    )
    limit: Optional[int] = Field(None, ge=1, description="Maximum number of categories")
    bins: Optional[int] = Field(None, ge=1, description="Number of histogram bins")


class TableAggregationsRequest(FiltersRequest):
    """Request to aggregate several columns of a table."""

    columns: Optional[list[str]] = Field(None, description="Columns to aggregate; all columns when omitted")


class CategoryCountResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    value: str
    display_value: str
    count: int
    percentage: float


class NumericStatsSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min: float
    max: float
    mean: float
    median: float
    stddev: float
    q25: float
    q75: float


class HistogramBinSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    bin_start: float
    bin_end: float
    count: int = Field(..., ge=0)
    percentage: float


class ColumnAggregationResponse(BaseModel):
    """Summary of one column under the current filters."""

    model_config = ConfigDict(extra="forbid")

    column_name: str = Field(..., description="Aggregated column")
    display_type: DisplayTypeName = Field(..., description="categorical, numeric or id")
    total_rows: int = Field(..., description="Row count after filtering")
    null_count: int = Field(..., description="Null values after filtering")
    unique_count: int = Field(..., description="Exact distinct values after filtering")
    categories: Optional[list[CategoryCountResponse]] = Field(
        None, description="Value counts (categorical and id columns)"
    )
    numeric_stats: Optional[NumericStatsSchema] = Field(
        None, description="Summary statistics (numeric columns; null when no values)"
    )
    histogram: Optional[list[HistogramBinSchema]] = Field(None, description="Equal-width bins (numeric columns)")


class TableAggregationsResponse(BaseModel):
    """Per-column aggregations; columns that failed are listed separately."""

    model_config = ConfigDict(extra="forbid")

    aggregations: list[ColumnAggregationResponse] = Field(default_factory=list)
    failures: dict[str, str] = Field(default_factory=dict, description="Column -> error message")


# ============================================================================
# Rebinning Schemas
# ============================================================================


class RebinRequest(BaseModel):
    """Request to redistribute an existing histogram onto nice bin widths."""

    model_config = ConfigDict(extra="forbid")

    histogram: list[HistogramBinSchema] = Field(..., description="Existing bins")
    numeric_stats: NumericStatsSchema = Field(..., description="Stats of the same column")
    bins: int = Field(
        ..., ge=1, le=MAX_REQUEST_BINS, description="Desired number of bins (clamped to the rebin maximum)"
    )


class RebinResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    histogram: list[HistogramBinSchema]
