"""
Relationship Graph - undirected graph over the tables of one dataset.

Relationships are declared child -> parent (the child holds the foreign key),
but reachability ignores direction: a filter on either endpoint can restrict the
other one. Path queries use BFS so the returned path is the shortest hop count.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Relationship:
    """Foreign key declared on a child table."""

    foreign_key_column: str
    referenced_table: str
    referenced_column: str
    kind: str | None = None  # e.g. "many-to-one"; informational only

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Relationship":
        """Accept both the snake_case storage shape and the camelCase API shape."""
        return cls(
            foreign_key_column=data.get("foreign_key_column") or data.get("foreign_key") or data["foreignKeyColumn"],
            referenced_table=data.get("referenced_table") or data["referencedTable"],
            referenced_column=data.get("referenced_column") or data["referencedColumn"],
            kind=data.get("kind") or data.get("type"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "foreign_key_column": self.foreign_key_column,
            "referenced_table": self.referenced_table,
            "referenced_column": self.referenced_column,
            "kind": self.kind,
        }


@dataclass(frozen=True)
class TableDescriptor:
    name: str
    row_count: int = 0
    relationships: tuple[Relationship, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class JoinColumns:
    """Column pair joining a table to a related one: local IN (SELECT remote FROM related)."""

    local_column: str
    remote_column: str


class RelationshipGraph:
    """
    Undirected adjacency over declared foreign keys.

    Built from the full set of TableDescriptors of one dataset. Tables that are
    referenced but not declared still get adjacency; absent tables have no edges.
    """

    def __init__(self, tables: list[TableDescriptor]):
        self.tables: dict[str, TableDescriptor] = {table.name: table for table in tables}
        self._adjacency: dict[str, set[str]] = {table.name: set() for table in tables}

        for table in tables:
            for rel in table.relationships:
                if rel.referenced_table == table.name:
                    continue
                self._adjacency.setdefault(table.name, set()).add(rel.referenced_table)
                self._adjacency.setdefault(rel.referenced_table, set()).add(table.name)

    def has_edge(self, a: str, b: str) -> bool:
        """True if ``a`` references ``b`` or ``b`` references ``a``."""
        return b in self._adjacency.get(a, ())

    def find_path(self, source: str, target: str) -> list[str] | None:
        """
        Shortest path between two tables over the undirected adjacency.

        Returns:
            Table names from ``source`` to ``target`` inclusive, or None when
            ``source == target`` or the tables are not connected
        """
        if source == target or source not in self._adjacency or target not in self._adjacency:
            return None

        previous: dict[str, str | None] = {source: None}
        queue = deque([source])

        while queue:
            current = queue.popleft()
            # Sorted for deterministic tie-breaking between equal-length paths
            for neighbor in sorted(self._adjacency[current]):
                if neighbor in previous:
                    continue
                previous[neighbor] = current
                if neighbor == target:
                    path = [target]
                    step = current
                    while step is not None:
                        path.append(step)
                        step = previous[step]
                    return path[::-1]
                queue.append(neighbor)

        return None

    def are_related(self, a: str, b: str) -> bool:
        """True if any chain of relationships connects the two tables."""
        return self.find_path(a, b) is not None

    def join_columns(self, table: str, related_table: str) -> JoinColumns | None:
        """
        Resolve the column pair for restricting ``table`` by ``related_table``.

        Checks both directions: ``table`` holding the foreign key to
        ``related_table`` (child -> parent), then ``related_table`` holding a
        foreign key to ``table`` (parent <- child).
        """
        local = self.tables.get(table)
        if local is not None:
            for rel in local.relationships:
                if rel.referenced_table == related_table:
                    return JoinColumns(local_column=rel.foreign_key_column, remote_column=rel.referenced_column)

        remote = self.tables.get(related_table)
        if remote is not None:
            for rel in remote.relationships:
                if rel.referenced_table == table:
                    return JoinColumns(local_column=rel.referenced_column, remote_column=rel.foreign_key_column)

        return None

    def summary(self) -> str:
        """Human-readable list of declared relationships."""
        lines = []
        for table in sorted(self.tables.values(), key=lambda t: t.name):
            for rel in table.relationships:
                kind = f" ({rel.kind})" if rel.kind else ""
                lines.append(
                    f"{table.name}.{rel.foreign_key_column} -> {rel.referenced_table}.{rel.referenced_column}{kind}"
                )
        return "\n".join(lines) if lines else "No relationships declared"
