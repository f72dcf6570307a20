"""
Column aggregation under a compiled filter condition.

For one (table, column, display type) the aggregator runs a short sequence of
queries against DuckDB:

1. filtered row count (skipped when no filter is active: the cached row count is used)
2. null count and exact distinct count
3. categorical/id: normalized value counts, or
   numeric: min/max/mean/median/population stddev/quartiles plus an equal-width histogram
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Literal, Protocol

import structlog

from dataset_explorer.core.compiler import CompiledCondition
from dataset_explorer.core.filters import EMPTY_LABEL, NA_LABEL
from dataset_explorer.core.predicates import quote_identifier, sql_literal

logger = structlog.get_logger(__name__)

DisplayType = Literal["categorical", "numeric", "id"]
DISPLAY_TYPES: tuple[str, ...] = ("categorical", "numeric", "id")

DEFAULT_CATEGORY_LIMIT = 50
DEFAULT_HISTOGRAM_BINS = 20


class QueryRunner(Protocol):
    def query(self, sql: str, params: list[Any] | tuple[Any, ...] = ()) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class CategoryCount:
    value: str
    display_value: str
    count: int
    percentage: float


@dataclass(frozen=True)
class NumericStats:
    min: float
    max: float
    mean: float
    median: float
    stddev: float
    q25: float
    q75: float


@dataclass(frozen=True)
class HistogramBin:
    bin_start: float
    bin_end: float
    count: int
    percentage: float


@dataclass
class ColumnAggregation:
    column_name: str
    display_type: DisplayType
    total_rows: int
    null_count: int
    unique_count: int
    categories: list[CategoryCount] | None = None
    numeric_stats: NumericStats | None = None
    histogram: list[HistogramBin] | None = None

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        if self.categories is None:
            result.pop("categories")
        if self.display_type != "numeric":
            result.pop("numeric_stats")
            result.pop("histogram")
        return result


def percentage(count: int | float, total: int | float) -> float:
    """count * 100 / total, or 0 when total is 0."""
    if not total:
        return 0.0
    return count * 100.0 / total


def equal_width_bins(
    minimum: float, maximum: float, bin_counts: dict[int, int], bins: int, total: int
) -> list[HistogramBin]:
    """
    Shape bucket-index counts into histogram bins.

    Bucket ``i`` spans ``[min + i*w, min + (i+1)*w)`` with ``w = (max-min)/bins``;
    the last bucket ends exactly at ``max``. Empty buckets are omitted.
    When ``min == max`` a single bin spanning the value holds every row.
    """
    if minimum == maximum:
        return [HistogramBin(bin_start=minimum, bin_end=maximum, count=total, percentage=100.0 if total else 0.0)]

    width = (maximum - minimum) / bins
    result = []
    for index in sorted(bin_counts):
        count = bin_counts[index]
        if count <= 0:
            continue
        start = minimum + index * width
        end = maximum if index == bins - 1 else minimum + (index + 1) * width
        result.append(HistogramBin(bin_start=start, bin_end=end, count=count, percentage=percentage(count, total)))
    return result


class Aggregator:
    """
    Computes ColumnAggregation for one column of one table.

    Args:
        store: Anything with a parameterized ``query(sql, params)`` (DataStore)
        category_limit: Default cap on returned categories
        histogram_bins: Default number of equal-width histogram bins
    """

    def __init__(
        self,
        store: QueryRunner,
        category_limit: int = DEFAULT_CATEGORY_LIMIT,
        histogram_bins: int = DEFAULT_HISTOGRAM_BINS,
    ):
        self.store = store
        self.category_limit = category_limit
        self.histogram_bins = histogram_bins

    def aggregate(
        self,
        physical_table: str,
        column: str,
        display_type: DisplayType,
        condition: CompiledCondition,
        cached_row_count: int,
        limit: int | None = None,
        bins: int | None = None,
    ) -> ColumnAggregation:
        """
        Aggregate one column under ``condition``.

        Args:
            physical_table: Store table name
            column: Column to aggregate
            display_type: categorical, numeric or id
            condition: Compiled filter condition for the table
            cached_row_count: Unfiltered row count from table metadata
            limit: Category cap override
            bins: Histogram bin count override

        Raises:
            ValueError: For an unsupported display type
            StoreQueryFailed: If any query fails
        """
        if display_type not in DISPLAY_TYPES:
            raise ValueError(f"Unsupported display type: {display_type!r}")

        table_sql = quote_identifier(physical_table)
        col_sql = quote_identifier(column)

        total_rows = self.filtered_row_count(table_sql, condition, cached_row_count)
        null_count, unique_count = self.basic_stats(table_sql, col_sql, condition)

        aggregation = ColumnAggregation(
            column_name=column,
            display_type=display_type,
            total_rows=total_rows,
            null_count=null_count,
            unique_count=unique_count,
        )

        if display_type in ("categorical", "id"):
            aggregation.categories = self.categories(
                table_sql, col_sql, condition, total_rows, limit or self.category_limit
            )
        else:
            stats, non_null = self.numeric_stats(table_sql, col_sql, condition)
            aggregation.numeric_stats = stats
            aggregation.histogram = (
                self.histogram(table_sql, col_sql, condition, stats, non_null, bins or self.histogram_bins)
                if stats is not None
                else []
            )

        logger.debug(
            "column_aggregated",
            table=physical_table,
            column=column,
            display_type=display_type,
            total_rows=total_rows,
            filtered=not condition.is_empty,
        )
        return aggregation

    def filtered_row_count(self, table_sql: str, condition: CompiledCondition, cached_row_count: int) -> int:
        if condition.is_empty:
            return cached_row_count
        where = condition.where_clause()
        rows = self.store.query(f"SELECT COUNT(*) AS filtered_count FROM {table_sql}{where.sql}", where.params)
        return int(rows[0]["filtered_count"])

    def basic_stats(self, table_sql: str, col_sql: str, condition: CompiledCondition) -> tuple[int, int]:
        where = condition.where_clause()
        rows = self.store.query(
            f"SELECT COUNT(*) - COUNT({col_sql}) AS null_count, COUNT(DISTINCT {col_sql}) AS unique_count "
            f"FROM {table_sql}{where.sql}",
            where.params,
        )
        return int(rows[0]["null_count"] or 0), int(rows[0]["unique_count"] or 0)

    def categories(
        self,
        table_sql: str,
        col_sql: str,
        condition: CompiledCondition,
        total_rows: int,
        limit: int,
    ) -> list[CategoryCount]:
        """Value counts with blanks folded into (Empty) and any-case "n/a" into (N/A)."""
        text = f"TRIM(CAST({col_sql} AS VARCHAR))"
        bucket = (
            f"CASE WHEN {col_sql} IS NULL OR {text} = '' THEN {sql_literal(EMPTY_LABEL)} "
            f"WHEN LOWER({text}) = 'n/a' THEN {sql_literal(NA_LABEL)} "
            f"ELSE {text} END"
        )
        where = condition.where_clause()
        rows = self.store.query(
            f"SELECT {bucket} AS category, COUNT(*) AS value_count FROM {table_sql}{where.sql} "
            f"GROUP BY 1 ORDER BY value_count DESC, category LIMIT {int(limit)}",
            where.params,
        )
        return [
            CategoryCount(
                value=row["category"],
                display_value=row["category"],
                count=int(row["value_count"]),
                percentage=percentage(int(row["value_count"]), total_rows),
            )
            for row in rows
        ]

    def numeric_stats(
        self, table_sql: str, col_sql: str, condition: CompiledCondition
    ) -> tuple[NumericStats | None, int]:
        """
        Returns:
            (stats, non-null count); stats is None when no numeric value survives the filter
        """
        value = f"TRY_CAST({col_sql} AS DOUBLE)"
        where = condition.where_clause()
        rows = self.store.query(
            f"SELECT COUNT({value}) AS n, MIN({value}) AS min_value, MAX({value}) AS max_value, "
            f"AVG({value}) AS mean_value, MEDIAN({value}) AS median_value, STDDEV_POP({value}) AS stddev_value, "
            f"QUANTILE_CONT({value}, 0.25) AS q25, QUANTILE_CONT({value}, 0.75) AS q75 "
            f"FROM {table_sql}{where.sql}",
            where.params,
        )
        row = rows[0]
        non_null = int(row["n"] or 0)
        if non_null == 0:
            return None, 0

        return (
            NumericStats(
                min=float(row["min_value"]),
                max=float(row["max_value"]),
                mean=float(row["mean_value"]),
                median=float(row["median_value"]),
                stddev=float(row["stddev_value"] or 0.0),
                q25=float(row["q25"]),
                q75=float(row["q75"]),
            ),
            non_null,
        )

    def histogram(
        self,
        table_sql: str,
        col_sql: str,
        condition: CompiledCondition,
        stats: NumericStats,
        non_null: int,
        bins: int,
    ) -> list[HistogramBin]:
        if bins < 1:
            raise ValueError(f"Histogram needs at least one bin, got {bins}")
        if stats.min == stats.max:
            return equal_width_bins(stats.min, stats.max, {}, bins, non_null)

        width = (stats.max - stats.min) / bins
        if not math.isfinite(width) or width <= 0:
            return equal_width_bins(stats.min, stats.min, {}, bins, non_null)

        where = condition.where_clause()
        # Placeholders in the SELECT list precede the ones in the inner WHERE
        rows = self.store.query(
            "SELECT LEAST(CAST(FLOOR((v - ?) / ?) AS BIGINT), ?) AS bin_index, COUNT(*) AS bin_count "
            f"FROM (SELECT TRY_CAST({col_sql} AS DOUBLE) AS v FROM {table_sql}{where.sql}) AS filtered "
            "WHERE v IS NOT NULL GROUP BY bin_index ORDER BY bin_index",
            [stats.min, width, bins - 1, *where.params],
        )
        counts = {int(row["bin_index"]): int(row["bin_count"]) for row in rows}
        return equal_width_bins(stats.min, stats.max, counts, bins, non_null)
