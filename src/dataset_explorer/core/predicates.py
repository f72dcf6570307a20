"""
Predicate AST - typed boolean expression nodes rendered to DuckDB SQL.

The compiler lowers filter trees into these nodes instead of concatenating SQL
text. Rendering is a separate step:

- parameterized (default): values become ``?`` placeholders plus an ordered
  parameter tuple, which is what gets executed
- inline: literals are embedded with quotes doubled, for logs and debugging only

Identifiers are never parameters, so they are validated against the SQL
identifier pattern and double-quoted when they do not match it.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, TypeAlias, assert_never

_SQL_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Words that must be quoted even though they match the identifier pattern
_RESERVED_WORDS = frozenset(
    {
        "all", "and", "as", "between", "by", "case", "cast", "distinct", "else", "end", "false",
        "from", "group", "having", "in", "is", "join", "like", "limit", "not", "null", "on",
        "or", "order", "select", "table", "then", "true", "union", "when", "where", "with",
    }
)  # fmt: skip

Scalar: TypeAlias = str | int | float


def quote_identifier(name: str) -> str:
    """
    Render a table or column name for SQL.

    Plain identifiers are emitted as-is; anything else (spaces, punctuation,
    reserved words) is double-quoted with embedded quotes doubled.
    """
    if not name:
        raise ValueError("Identifier cannot be empty")
    if _SQL_IDENTIFIER_PATTERN.match(name) and name.lower() not in _RESERVED_WORDS:
        return name
    escaped = name.replace('"', '""')
    return f'"{escaped}"'


def sql_literal(value: Scalar) -> str:
    """Inline literal for the debug rendering."""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Cannot render non-finite literal {value!r}")
        return str(int(value)) if value.is_integer() else repr(value)
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


@dataclass(frozen=True)
class Comparison:
    column: str
    op: str  # one of =, >, <, >=, <=
    value: Scalar


@dataclass(frozen=True)
class InList:
    column: str
    values: tuple[Scalar, ...]


@dataclass(frozen=True)
class IsMissing:
    """NULL or empty/whitespace-only text."""

    column: str


@dataclass(frozen=True)
class IsNotAvailable:
    """Case-insensitive literal "n/a" after trimming."""

    column: str


@dataclass(frozen=True)
class Between:
    column: str
    low: int | float
    high: int | float


@dataclass(frozen=True)
class Conjunction:
    terms: tuple["Predicate", ...]


@dataclass(frozen=True)
class Disjunction:
    terms: tuple["Predicate", ...]


@dataclass(frozen=True)
class Negation:
    term: "Predicate"


@dataclass(frozen=True)
class InSubquery:
    """local_column IN (SELECT remote_column FROM remote_table WHERE predicate)"""

    column: str
    remote_table: str
    remote_column: str
    predicate: "Predicate"


Predicate: TypeAlias = (
    Comparison | InList | IsMissing | IsNotAvailable | Between | Conjunction | Disjunction | Negation | InSubquery
)

COMPARISON_OPERATORS = frozenset({"=", ">", "<", ">=", "<="})


def conjunction(terms: list[Predicate]) -> Predicate | None:
    """AND together terms, collapsing empty and singleton lists."""
    if not terms:
        return None
    if len(terms) == 1:
        return terms[0]
    return Conjunction(tuple(terms))


def disjunction(terms: list[Predicate]) -> Predicate | None:
    """OR together terms, collapsing empty and singleton lists."""
    if not terms:
        return None
    if len(terms) == 1:
        return terms[0]
    return Disjunction(tuple(terms))


@dataclass(frozen=True)
class RenderedSql:
    sql: str
    params: tuple[Any, ...] = ()


class _Renderer:
    def __init__(self, inline: bool):
        self.inline = inline
        self.params: list[Any] = []

    def value(self, value: Scalar) -> str:
        if self.inline:
            return sql_literal(value)
        self.params.append(value)
        return "?"

    def render(self, node: Predicate) -> str:
        match node:
            case Comparison(column=column, op=op, value=value):
                if op not in COMPARISON_OPERATORS:
                    raise ValueError(f"Unsupported comparison operator: {op}")
                return f"{quote_identifier(column)} {op} {self.value(value)}"
            case InList(column=column, values=values):
                rendered = ", ".join(self.value(v) for v in values)
                return f"{quote_identifier(column)} IN ({rendered})"
            case IsMissing(column=column):
                col = quote_identifier(column)
                return f"({col} IS NULL OR TRIM(CAST({col} AS VARCHAR)) = '')"
            case IsNotAvailable(column=column):
                col = quote_identifier(column)
                return f"LOWER(TRIM(CAST({col} AS VARCHAR))) = 'n/a'"
            case Between(column=column, low=low, high=high):
                return f"{quote_identifier(column)} BETWEEN {self.value(low)} AND {self.value(high)}"
            case Conjunction(terms=terms):
                return "(" + " AND ".join(self.render(term) for term in terms) + ")"
            case Disjunction(terms=terms):
                return "(" + " OR ".join(self.render(term) for term in terms) + ")"
            case Negation(term=term):
                return f"NOT ({self.render(term)})"
            case InSubquery(column=column, remote_table=remote_table, remote_column=remote_column, predicate=inner):
                return (
                    f"{quote_identifier(column)} IN (SELECT {quote_identifier(remote_column)} "
                    f"FROM {quote_identifier(remote_table)} WHERE {self.render(inner)})"
                )
            case _:
                assert_never(node)


def render(predicate: Predicate, inline: bool = False) -> RenderedSql:
    """
    Render a predicate to SQL.

    Args:
        predicate: Root predicate node
        inline: Embed literals instead of emitting ``?`` placeholders

    Returns:
        RenderedSql with the SQL text and (when parameterized) ordered params
    """
    renderer = _Renderer(inline=inline)
    sql = renderer.render(predicate)
    return RenderedSql(sql=sql, params=tuple(renderer.params))
