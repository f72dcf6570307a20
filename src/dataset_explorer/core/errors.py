"""
Error taxonomy for the filter-aware aggregation engine.

Errors are scoped to the single column or single filter they originate from:
- InvalidFilterValue: malformed numeric input, fatal to one column's aggregation
- UnknownColumn: filter references a column the table does not have (dropped)
- NoRelationshipPath: cross-table filter without a relationship edge (dropped)
- StoreQueryFailed: DuckDB rejected or failed a query (propagated to caller)
"""

from typing import Any


class FilterEngineError(Exception):
    """Base class for all engine errors."""


class InvalidFilterValue(FilterEngineError, ValueError):
    """Raised when a filter value cannot be used (non-finite, malformed range)."""

    def __init__(self, message: str, column: str | None = None, value: Any = None):
        super().__init__(message)
        self.column = column
        self.value = value


class InvalidFilter(InvalidFilterValue):
    """Raised when a filter node does not have exactly one valid shape."""


class UnknownColumn(FilterEngineError, LookupError):
    """Filter or request references a column absent from the target table."""

    def __init__(self, table: str, columns: list[str] | set[str]):
        names = sorted(columns)
        super().__init__(f"Unknown column(s) {', '.join(names)} for table '{table}'")
        self.table = table
        self.columns = names


class NoRelationshipPath(FilterEngineError, LookupError):
    """A cross-table filter cannot be resolved to any relationship edge."""

    def __init__(self, table: str, owning_table: str):
        super().__init__(f"No relationship between '{table}' and '{owning_table}'")
        self.table = table
        self.owning_table = owning_table


class TableNotFound(FilterEngineError, LookupError):
    """Requested table is not registered for the dataset."""

    def __init__(self, dataset_id: str, table: str):
        super().__init__(f"Table '{table}' not found in dataset '{dataset_id}'")
        self.dataset_id = dataset_id
        self.table = table


class StoreQueryFailed(FilterEngineError, RuntimeError):
    """The columnar store rejected or failed a query."""

    def __init__(self, message: str, sql: str | None = None):
        super().__init__(message)
        self.sql = sql
