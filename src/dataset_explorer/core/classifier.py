"""
Filter Classifier - split tagged filters into direct and propagated sets per table.

A filter is *direct* for the table it was declared on and *propagated* to every
table one relationship hop away from it. Propagation stops after one hop: a
filter on patients reaches samples but not the lab results hanging off samples.
"""

from dataclasses import dataclass, field

import structlog

from dataset_explorer.core.filters import Filter, filter_table
from dataset_explorer.core.relationships import RelationshipGraph, TableDescriptor

logger = structlog.get_logger(__name__)


@dataclass
class EffectiveFilters:
    direct: list[Filter] = field(default_factory=list)
    propagated: list[Filter] = field(default_factory=list)

    @property
    def all(self) -> list[Filter]:
        return [*self.direct, *self.propagated]

    def __bool__(self) -> bool:
        return bool(self.direct or self.propagated)


def classify(
    filters: list[Filter],
    tables: list[TableDescriptor],
    graph: RelationshipGraph | None = None,
) -> dict[str, EffectiveFilters]:
    """
    Compute direct and propagated filters for every table.

    Every declared table gets an entry, even with no filters. Filters without an
    owning table cannot be placed and are ignored.

    Args:
        filters: Flat list of top-level filters
        tables: All tables of the dataset
        graph: Prebuilt graph for ``tables`` (built on demand when omitted)

    Returns:
        Mapping of table name -> EffectiveFilters
    """
    graph = graph or RelationshipGraph(tables)
    result = {table.name: EffectiveFilters() for table in tables}

    for node in filters:
        owning_table = filter_table(node)
        if not owning_table:
            logger.debug("filter_unplaced", reason="no owning table")
            continue

        for table in tables:
            if table.name == owning_table:
                result[table.name].direct.append(node)
            elif graph.has_edge(table.name, owning_table):
                result[table.name].propagated.append(node)

    return result
