"""
Condition Compiler - lower filter trees into one boolean condition per table.

For a target table, each incoming filter is either:
- local (no owning table, or owned by the target): lowered into a predicate
  over the target's own columns
- cross-table (owned by a related table): lowered into a correlated subquery
  ``local_col IN (SELECT remote_col FROM owning_table WHERE <predicate>)``
  through the foreign key joining the two tables

Final condition = AND of all local predicates AND every correlated subquery.

Columns are validated against the live column set of the table they are
evaluated on; unknown columns are pruned rather than failing the query. A
cross-table filter without a relationship edge is dropped with a warning.
Only malformed filter values raise (InvalidFilterValue).
"""

import math
from dataclasses import dataclass, field
from typing import Any, assert_never

import structlog

from dataset_explorer.core.catalog import TableCatalog
from dataset_explorer.core.errors import InvalidFilterValue, NoRelationshipPath, UnknownColumn
from dataset_explorer.core.filters import (
    NA_LABEL,
    Filter,
    FilterAnd,
    FilterLeaf,
    FilterNot,
    FilterOr,
    filter_columns,
    filter_table,
    filter_to_dict,
    is_missing_value,
    prune_unknown_columns,
)
from dataset_explorer.core.predicates import (
    Between,
    Comparison,
    InList,
    InSubquery,
    IsMissing,
    IsNotAvailable,
    Negation,
    Predicate,
    RenderedSql,
    conjunction,
    disjunction,
    render,
)
from dataset_explorer.core.relationships import RelationshipGraph

logger = structlog.get_logger(__name__)

_RANGE_OPERATORS = {"gt": ">", "lt": "<", "gte": ">=", "lte": "<="}


@dataclass(frozen=True)
class FilterWarning:
    """A filter (or part of one) that was dropped instead of compiled."""

    filter: Filter
    error: UnknownColumn | NoRelationshipPath

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass
class CompiledCondition:
    """Compiled restriction for one table."""

    table: str
    local_predicate: Predicate | None = None
    correlated_subqueries: list[Predicate] = field(default_factory=list)
    warnings: list[FilterWarning] = field(default_factory=list)

    @property
    def predicate(self) -> Predicate | None:
        terms = [self.local_predicate] if self.local_predicate is not None else []
        return conjunction([*terms, *self.correlated_subqueries])

    @property
    def is_empty(self) -> bool:
        return self.predicate is None

    def render(self, inline: bool = False) -> RenderedSql:
        predicate = self.predicate
        if predicate is None:
            return RenderedSql(sql="")
        return render(predicate, inline=inline)

    def where_clause(self, inline: bool = False) -> RenderedSql:
        """`` WHERE <condition>`` (or empty SQL when unrestricted)."""
        rendered = self.render(inline=inline)
        if not rendered.sql:
            return rendered
        return RenderedSql(sql=f" WHERE {rendered.sql}", params=rendered.params)


def coerce_number(value: Any, column: str | None = None) -> int | float:
    """
    Coerce a filter value to a finite number.

    Accepts ints, finite floats and numeric strings. Booleans, NaN, infinities
    and anything unparsable raise InvalidFilterValue; values are never truncated.
    """
    if isinstance(value, bool):
        raise InvalidFilterValue(f"Boolean is not a numeric filter value: {value!r}", column=column, value=value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number: int | float = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                raise InvalidFilterValue(
                    f"Filter value for '{column}' is not numeric: {value!r}", column=column, value=value
                ) from None
    else:
        raise InvalidFilterValue(f"Filter value for '{column}' is not numeric: {value!r}", column=column, value=value)

    if not math.isfinite(number):
        raise InvalidFilterValue(f"Filter value for '{column}' must be finite: {value!r}", column=column, value=value)
    return number


def _as_values(value: Any) -> list[Any]:
    if isinstance(value, list | tuple | set | frozenset):
        return list(value)
    return [value]


def lower_filter(node: Filter) -> Predicate | None:
    """
    Lower a filter tree into a predicate over one table's columns.

    ``and``/``or`` drop empty children and collapse singletons; ``not`` of an
    empty child yields nothing.

    Raises:
        InvalidFilterValue: For non-finite or malformed numeric values
    """
    match node:
        case FilterAnd(children=children):
            return conjunction([p for child in children if (p := lower_filter(child)) is not None])
        case FilterOr(children=children):
            return disjunction([p for child in children if (p := lower_filter(child)) is not None])
        case FilterNot(child=child):
            inner = lower_filter(child)
            return Negation(inner) if inner is not None else None
        case FilterLeaf():
            return _lower_leaf(node)
        case _:
            assert_never(node)


def _lower_leaf(leaf: FilterLeaf) -> Predicate | None:
    column = leaf.column

    if leaf.operator == "eq":
        if is_missing_value(leaf.value):
            return IsMissing(column)
        if leaf.value == NA_LABEL:
            return IsNotAvailable(column)
        if isinstance(leaf.value, list | tuple | dict):
            raise InvalidFilterValue(f"'eq' filter on '{column}' needs a scalar value", column=column, value=leaf.value)
        return Comparison(column, "=", _scalar(leaf.value))

    if leaf.operator == "in":
        values = _as_values(leaf.value)
        explicit = []
        terms: list[Predicate] = []
        include_missing = False
        include_na = False
        for value in values:
            if is_missing_value(value):
                include_missing = True
            elif value == NA_LABEL:
                include_na = True
            elif isinstance(value, list | tuple | dict):
                raise InvalidFilterValue(f"'in' filter on '{column}' has a nested value", column=column, value=value)
            elif _scalar(value) not in explicit:
                explicit.append(_scalar(value))
        if explicit:
            terms.append(InList(column, tuple(explicit)))
        if include_na:
            terms.append(IsNotAvailable(column))
        if include_missing:
            terms.append(IsMissing(column))
        if not terms:
            raise InvalidFilterValue(f"'in' filter on '{column}' has no values", column=column, value=leaf.value)
        return disjunction(terms)

    if leaf.operator in _RANGE_OPERATORS:
        return Comparison(column, _RANGE_OPERATORS[leaf.operator], coerce_number(leaf.value, column))

    if leaf.operator == "between":
        bounds = leaf.value
        if not isinstance(bounds, list | tuple) or len(bounds) != 2:
            raise InvalidFilterValue(
                f"'between' filter on '{column}' needs [low, high], got {bounds!r}", column=column, value=bounds
            )
        low, high = (coerce_number(bound, column) for bound in bounds)
        if low > high:
            raise InvalidFilterValue(
                f"'between' filter on '{column}' has low > high: {low} > {high}", column=column, value=bounds
            )
        return Between(column, low, high)

    raise InvalidFilterValue(f"Unsupported filter operator: {leaf.operator!r}", column=column)


def _scalar(value: Any) -> str | int | float:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidFilterValue(f"Filter value must be finite: {value!r}", value=value)
    if isinstance(value, int | float | str):
        return value
    return str(value)


class ConditionCompiler:
    """
    Compiles the effective filters of one table into a CompiledCondition.

    Args:
        graph: Relationship graph of the dataset
        catalog: Live column sets and physical table names
    """

    def __init__(self, graph: RelationshipGraph, catalog: TableCatalog):
        self.graph = graph
        self.catalog = catalog

    def compile(self, table: str, filters: list[Filter]) -> CompiledCondition:
        """
        Compile filters for ``table``.

        Args:
            table: Logical name of the table being aggregated
            filters: Effective filters (direct, propagated and untagged)

        Returns:
            CompiledCondition; empty when ``filters`` is empty

        Raises:
            InvalidFilterValue: If any surviving filter has a malformed value
        """
        condition = CompiledCondition(table=table)
        if not filters:
            return condition

        local_columns = self.catalog.column_names(table)
        local_terms: list[Predicate] = []

        for node in filters:
            owning_table = filter_table(node)
            if owning_table is None or owning_table == table:
                pruned = self._prune(node, table, local_columns, condition)
                if pruned is None:
                    continue
                predicate = lower_filter(pruned)
                if predicate is not None:
                    local_terms.append(predicate)
            else:
                subquery = self._cross_table(table, owning_table, node, local_columns, condition)
                if subquery is not None:
                    condition.correlated_subqueries.append(subquery)

        condition.local_predicate = conjunction(local_terms)

        if not condition.is_empty:
            logger.debug("condition_compiled", table=table, sql=condition.render(inline=True).sql)
        return condition

    def _prune(
        self,
        node: Filter,
        table: str,
        known_columns: set[str],
        condition: CompiledCondition,
    ) -> Filter | None:
        unknown = filter_columns(node) - known_columns
        if not unknown:
            return node
        condition.warnings.append(FilterWarning(node, UnknownColumn(table, unknown)))
        logger.debug("filter_columns_pruned", table=table, columns=sorted(unknown))
        return prune_unknown_columns(node, known_columns)

    def _cross_table(
        self,
        table: str,
        owning_table: str,
        node: Filter,
        local_columns: set[str],
        condition: CompiledCondition,
    ) -> Predicate | None:
        join = self.graph.join_columns(table, owning_table)
        if join is None:
            error = NoRelationshipPath(table, owning_table)
            condition.warnings.append(FilterWarning(node, error))
            logger.warning("filter_dropped", table=table, owning_table=owning_table, reason=str(error))
            return None

        if join.local_column not in local_columns:
            error = UnknownColumn(table, {join.local_column})
            condition.warnings.append(FilterWarning(node, error))
            logger.warning("filter_dropped", table=table, owning_table=owning_table, reason=str(error))
            return None

        remote_columns = self.catalog.column_names(owning_table)
        if join.remote_column not in remote_columns:
            error = UnknownColumn(owning_table, {join.remote_column})
            condition.warnings.append(FilterWarning(node, error))
            logger.warning("filter_dropped", table=table, owning_table=owning_table, reason=str(error))
            return None

        pruned = self._prune(node, owning_table, remote_columns, condition)
        if pruned is None:
            return None
        inner = lower_filter(pruned)
        if inner is None:
            return None

        return InSubquery(
            column=join.local_column,
            remote_table=self.catalog.physical_name(owning_table),
            remote_column=join.remote_column,
            predicate=inner,
        )


def describe_warnings(warnings: list[FilterWarning]) -> list[dict[str, Any]]:
    """JSON-friendly view of dropped filters."""
    return [
        {"filter": filter_to_dict(warning.filter), "reason": type(warning.error).__name__, "message": warning.message}
        for warning in warnings
    ]
