"""
Display type detection for columns aggregated without an explicit display type.
"""

from dataset_explorer.analysis.aggregator import DisplayType

_NUMERIC_TYPE_MARKERS = ("INT", "FLOAT", "DOUBLE", "DECIMAL", "REAL", "NUMERIC")


def is_numeric_type(column_type: str) -> bool:
    """True for DuckDB integer, floating point and decimal types."""
    upper = column_type.upper()
    if upper.startswith("INTERVAL"):
        return False
    return any(marker in upper for marker in _NUMERIC_TYPE_MARKERS)


def looks_like_identifier(column_name: str) -> bool:
    name = column_name.lower()
    return "_id" in name or name == "id" or name.endswith("identifier")


def detect_display_type(
    column_name: str,
    column_type: str,
    unique_count: int | None = None,
    total_count: int | None = None,
) -> DisplayType:
    """
    Pick categorical, numeric or id for a column.

    Rules, in order:
    1. id: identifier-like name, or a non-numeric column where every row is distinct
    2. numeric: integer/float/decimal store type
    3. categorical: everything else

    Args:
        column_name: Column name
        column_type: Store type name (e.g., "BIGINT", "VARCHAR", "DECIMAL(18,3)")
        unique_count: Distinct non-null values, if known
        total_count: Row count, if known
    """
    if looks_like_identifier(column_name):
        return "id"

    numeric = is_numeric_type(column_type)
    if not numeric and total_count and unique_count == total_count and total_count > 1:
        return "id"

    return "numeric" if numeric else "categorical"
