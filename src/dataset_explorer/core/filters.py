"""
Filter Expression Tree - AND/OR/NOT/leaf filters over table columns.

Filters are built by the UI from chart selections and arrive as JSON:

    {"column": "status", "operator": "eq", "value": "Active", "tableName": "patients"}
    {"or": [{...}, {...}]}
    {"and": [{...}, {...}]}
    {"not": {...}}

This module turns that wire shape into a closed set of frozen dataclasses so the
classifier and the compiler can dispatch on node kind with ``match`` instead of
probing dict keys.
"""

from dataclasses import dataclass
from typing import Any, Literal, TypeAlias, assert_never, get_args

from dataset_explorer.core.errors import InvalidFilter

Operator = Literal["eq", "in", "gt", "lt", "gte", "lte", "between"]
OPERATORS: frozenset[str] = frozenset(get_args(Operator))

# Missing-value sentinel: None, "" and "(Empty)" all mean "null or empty string"
EMPTY_LABEL = "(Empty)"
# Case-insensitive literal "n/a", bucketed separately from missing values
NA_LABEL = "(N/A)"

_TABLE_KEYS = ("tableName", "owningTable")


@dataclass(frozen=True)
class FilterLeaf:
    """Single column condition, optionally tagged with the table it was declared on."""

    column: str
    operator: Operator
    value: Any = None
    owning_table: str | None = None


@dataclass(frozen=True)
class FilterAnd:
    children: tuple["Filter", ...]


@dataclass(frozen=True)
class FilterOr:
    children: tuple["Filter", ...]


@dataclass(frozen=True)
class FilterNot:
    child: "Filter"


Filter: TypeAlias = FilterLeaf | FilterAnd | FilterOr | FilterNot


def is_missing_value(value: Any) -> bool:
    """True for every representation of the missing-value sentinel."""
    return value is None or value == "" or value == EMPTY_LABEL


def parse_filter(obj: Any, inherited_table: str | None = None) -> Filter:
    """
    Parse the JSON wire shape into a filter tree.

    Exactly one of {leaf fields, ``and``, ``or``, ``not``} must be present per node.
    A table tag on a compound node is inherited by leaves that carry none.

    Args:
        obj: Dict as produced by the UI (or an already-parsed Filter)
        inherited_table: Owning table of the enclosing compound node

    Returns:
        Filter tree

    Raises:
        InvalidFilter: If the node shape is ambiguous or malformed
    """
    if isinstance(obj, FilterLeaf | FilterAnd | FilterOr | FilterNot):
        return obj
    if not isinstance(obj, dict):
        raise InvalidFilter(f"Filter must be an object, got {type(obj).__name__}")

    owning_table = next((obj[key] for key in _TABLE_KEYS if obj.get(key)), inherited_table)
    kinds = [key for key in ("and", "or", "not") if obj.get(key) is not None]
    has_leaf = obj.get("column") is not None or obj.get("operator") is not None

    if len(kinds) + int(has_leaf) != 1:
        raise InvalidFilter(f"Filter node must have exactly one of leaf/and/or/not, got keys {sorted(obj)}")

    if has_leaf:
        column = obj.get("column")
        operator = obj.get("operator")
        if not isinstance(column, str) or not column:
            raise InvalidFilter("Filter leaf requires a non-empty 'column'")
        if operator not in OPERATORS:
            raise InvalidFilter(f"Unsupported filter operator: {operator!r}", column=column)
        value = obj.get("value")
        if isinstance(value, list):
            value = tuple(value)
        return FilterLeaf(column=column, operator=operator, value=value, owning_table=owning_table)

    kind = kinds[0]
    if kind == "not":
        return FilterNot(child=parse_filter(obj["not"], owning_table))

    children = obj[kind]
    if not isinstance(children, list | tuple):
        raise InvalidFilter(f"'{kind}' must be a list of filters")
    parsed = tuple(parse_filter(child, owning_table) for child in children)
    return FilterAnd(parsed) if kind == "and" else FilterOr(parsed)


def parse_filters(objs: list[Any] | None) -> list[Filter]:
    """Parse a flat list of top-level filters."""
    return [parse_filter(obj) for obj in objs or []]


def filter_to_dict(node: Filter) -> dict[str, Any]:
    """Serialize a filter tree back into the wire shape."""
    match node:
        case FilterLeaf(column=column, operator=operator, value=value, owning_table=owning_table):
            result: dict[str, Any] = {
                "column": column,
                "operator": operator,
                "value": list(value) if isinstance(value, tuple) else value,
            }
            if owning_table:
                result["tableName"] = owning_table
            return result
        case FilterAnd(children=children):
            return {"and": [filter_to_dict(child) for child in children]}
        case FilterOr(children=children):
            return {"or": [filter_to_dict(child) for child in children]}
        case FilterNot(child=child):
            return {"not": filter_to_dict(child)}
        case _:
            assert_never(node)


def filter_column(node: Filter) -> str | None:
    """Column of the first leaf (depth first), used for display."""
    match node:
        case FilterLeaf(column=column):
            return column
        case FilterAnd(children=children) | FilterOr(children=children):
            return filter_column(children[0]) if children else None
        case FilterNot(child=child):
            return filter_column(child)
        case _:
            assert_never(node)


def filter_table(node: Filter) -> str | None:
    """Owning table of a leaf, or of the first leaf under a compound node."""
    match node:
        case FilterLeaf(owning_table=owning_table):
            return owning_table
        case FilterAnd(children=children) | FilterOr(children=children):
            return filter_table(children[0]) if children else None
        case FilterNot(child=child):
            return filter_table(child)
        case _:
            assert_never(node)


def filter_columns(node: Filter) -> set[str]:
    """All columns referenced anywhere in the tree."""
    match node:
        case FilterLeaf(column=column):
            return {column}
        case FilterAnd(children=children) | FilterOr(children=children):
            columns: set[str] = set()
            for child in children:
                columns |= filter_columns(child)
            return columns
        case FilterNot(child=child):
            return filter_columns(child)
        case _:
            assert_never(node)


def filter_contains_column(node: Filter, column: str) -> bool:
    return column in filter_columns(node)


def prune_unknown_columns(node: Filter, known_columns: set[str] | frozenset[str]) -> Filter | None:
    """
    Drop leaves that reference columns outside ``known_columns``.

    ``and``/``or`` nodes keep their surviving children (a single survivor replaces
    the node), ``not`` disappears with its child.

    Returns:
        Pruned tree, or None when nothing survives
    """
    match node:
        case FilterLeaf(column=column):
            return node if column in known_columns else None
        case FilterAnd(children=children) | FilterOr(children=children):
            kept = tuple(
                pruned for child in children if (pruned := prune_unknown_columns(child, known_columns)) is not None
            )
            if not kept:
                return None
            if len(kept) == 1:
                return kept[0]
            return FilterAnd(kept) if isinstance(node, FilterAnd) else FilterOr(kept)
        case FilterNot(child=child):
            pruned_child = prune_unknown_columns(child, known_columns)
            return FilterNot(pruned_child) if pruned_child is not None else None
        case _:
            assert_never(node)
