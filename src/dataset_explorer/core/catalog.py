"""
Table metadata contracts consumed by the compiler and the aggregator.

The metadata service answers three questions per dataset: which tables exist
(with row counts and declared relationships), which live columns a table has,
and under which physical name the store keeps it. ``DataStore`` implements this
against DuckDB; ``StaticCatalog`` is an in-memory implementation for callers
that already hold the metadata.
"""

from dataclasses import dataclass
from typing import Protocol

from dataset_explorer.core.errors import TableNotFound
from dataset_explorer.core.relationships import Relationship, TableDescriptor


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str
    nullable: bool = True


class TableCatalog(Protocol):
    """Read-only view of one dataset's tables."""

    def column_names(self, table: str) -> set[str]: ...

    def physical_name(self, table: str) -> str: ...


class MetadataService(Protocol):
    def get_tables(self, dataset_id: str) -> list[TableDescriptor]: ...

    def get_columns(self, dataset_id: str, table: str) -> list[ColumnInfo]: ...

    def get_relationships(self, dataset_id: str, table: str) -> list[Relationship]: ...


class StaticCatalog:
    """In-memory TableCatalog built from known column sets."""

    def __init__(self, columns: dict[str, list[str] | set[str]], physical_names: dict[str, str] | None = None):
        self._columns = {table: set(cols) for table, cols in columns.items()}
        self._physical_names = physical_names or {}

    def column_names(self, table: str) -> set[str]:
        return set(self._columns.get(table, ()))

    def physical_name(self, table: str) -> str:
        return self._physical_names.get(table, table)


class DatasetCatalog:
    """TableCatalog view over a MetadataService for one dataset."""

    def __init__(self, metadata: "MetadataService", dataset_id: str, physical_names: dict[str, str]):
        self.metadata = metadata
        self.dataset_id = dataset_id
        self._physical_names = physical_names
        self._columns: dict[str, set[str]] = {}

    def column_names(self, table: str) -> set[str]:
        if table not in self._columns:
            try:
                columns = self.metadata.get_columns(self.dataset_id, table)
            except TableNotFound:
                columns = []
            self._columns[table] = {col.name for col in columns}
        return set(self._columns[table])

    def physical_name(self, table: str) -> str:
        return self._physical_names.get(table, table)
