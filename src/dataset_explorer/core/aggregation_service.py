"""
AggregationService - the two downstream operations the UI calls, plus helpers.

- get_effective_filters: classify tagged filters into direct/propagated per table
- get_column_aggregation: classify -> compile -> aggregate one column
- get_table_aggregations: every visible column of a table, concurrently

The service holds no filter state; filters are passed in on every call. The only
shared state is the relationship graph cache, keyed on the store's catalog
version so re-registering a table invalidates it.
"""

import math
import threading
import time
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any

import structlog

from dataset_explorer.analysis.aggregator import Aggregator, ColumnAggregation, DisplayType, HistogramBin, NumericStats
from dataset_explorer.analysis.display_types import detect_display_type, looks_like_identifier
from dataset_explorer.analysis.histogram import rebin_histogram
from dataset_explorer.core.catalog import ColumnInfo
from dataset_explorer.core.classifier import EffectiveFilters, classify
from dataset_explorer.core.compiler import CompiledCondition, ConditionCompiler
from dataset_explorer.core.config_loader import EngineConfig
from dataset_explorer.core.errors import FilterEngineError, TableNotFound, UnknownColumn
from dataset_explorer.core.filters import Filter, filter_table
from dataset_explorer.core.predicates import quote_identifier
from dataset_explorer.core.relationships import RelationshipGraph, TableDescriptor
from dataset_explorer.storage.datastore import DataStore

logger = structlog.get_logger(__name__)


@dataclass
class TableAggregations:
    """Per-column results of one table; failed or timed-out columns are listed in ``failures``."""

    aggregations: list[ColumnAggregation] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "aggregations": [aggregation.to_dict() for aggregation in self.aggregations],
            "failures": dict(self.failures),
        }


@dataclass(frozen=True)
class _TableContext:
    dataset_id: str
    catalog_version: int
    descriptor: TableDescriptor
    physical_name: str
    columns: dict[str, ColumnInfo]
    condition: CompiledCondition


class AggregationService:
    """
    Filter-aware column aggregation over one DataStore.

    Args:
        store: DuckDB store and metadata service
        config: Engine configuration (defaults when omitted)
    """

    def __init__(self, store: DataStore, config: EngineConfig | None = None):
        self.store = store
        self.config = config or EngineConfig()
        self.aggregator = Aggregator(
            store,
            category_limit=self.config.category_limit,
            histogram_bins=self.config.histogram_bins,
        )
        self._graphs: dict[tuple[str, int], tuple[list[TableDescriptor], RelationshipGraph]] = {}
        self._graph_lock = threading.Lock()
        self._display_types: dict[tuple[str, int, str, str], DisplayType] = {}
        self._display_type_lock = threading.Lock()

    # =========================================================================
    # Relationship graph
    # =========================================================================

    def get_graph(self, dataset_id: str) -> tuple[list[TableDescriptor], RelationshipGraph]:
        """Tables and relationship graph of a dataset, cached per catalog version."""
        key = (dataset_id, self.store.catalog_version)
        with self._graph_lock:
            cached = self._graphs.get(key)
            if cached is not None:
                return cached

        tables = self.store.get_tables(dataset_id)
        graph = RelationshipGraph(tables)

        with self._graph_lock:
            for stale in [k for k in self._graphs if k[0] == dataset_id and k != key]:
                del self._graphs[stale]
            self._graphs[key] = (tables, graph)

        logger.debug(
            "relationship_graph_built",
            dataset_id=dataset_id,
            tables=len(tables),
            version=key[1],
            relationships=graph.summary(),
        )
        return tables, graph

    # =========================================================================
    # Downstream operations
    # =========================================================================

    def get_effective_filters(
        self, filters: list[Filter], tables: list[TableDescriptor]
    ) -> dict[str, EffectiveFilters]:
        """Direct and propagated filters for every table in ``tables``."""
        return classify(filters, tables)

    def get_dataset_effective_filters(self, dataset_id: str, filters: list[Filter]) -> dict[str, EffectiveFilters]:
        tables, graph = self.get_graph(dataset_id)
        return classify(filters, tables, graph)

    def compile_condition(self, dataset_id: str, table: str, filters: list[Filter]) -> CompiledCondition:
        """
        Compile the filters that apply to ``table``.

        Applicable filters are the table's direct and propagated ones plus
        untagged filters, which are treated as local. Original order is kept.

        Raises:
            TableNotFound: If the table is not part of the dataset
            InvalidFilterValue: If an applicable filter has a malformed value
        """
        tables, graph = self.get_graph(dataset_id)
        if table not in graph.tables:
            raise TableNotFound(dataset_id, table)

        effective = classify(filters, tables, graph)[table]
        selected = {id(node) for node in effective.all}
        applicable = [node for node in filters if filter_table(node) is None or id(node) in selected]

        skipped = len(filters) - len(applicable)
        if skipped:
            logger.debug("filters_not_applicable", dataset_id=dataset_id, table=table, count=skipped)

        return ConditionCompiler(graph, self.store.catalog(dataset_id)).compile(table, applicable)

    def get_column_aggregation(
        self,
        dataset_id: str,
        table: str,
        column: str,
        filters: list[Filter],
        display_type: DisplayType | None = None,
        limit: int | None = None,
        bins: int | None = None,
    ) -> ColumnAggregation:
        """
        Aggregate one column under the filters that apply to its table.

        Raises:
            TableNotFound: If the table is not part of the dataset
            UnknownColumn: If the table has no such column
            InvalidFilterValue: If an applicable filter has a malformed value
            StoreQueryFailed: If the store fails a query
        """
        context = self._table_context(dataset_id, table, filters)
        if column not in context.columns:
            raise UnknownColumn(table, [column])
        return self._aggregate_column(context, column, display_type, limit, bins)

    def get_table_aggregations(
        self,
        dataset_id: str,
        table: str,
        filters: list[Filter],
        columns: list[str] | None = None,
    ) -> TableAggregations:
        """
        Aggregate every requested column (all columns by default) concurrently.

        Columns are independent: a column whose filter value is invalid, whose
        query fails, or which does not finish in time is reported in
        ``failures`` and the others are still returned. Nothing is retried.

        Raises:
            TableNotFound: If the table is not part of the dataset
        """
        started = time.perf_counter()
        _, graph = self.get_graph(dataset_id)
        if table not in graph.tables:
            raise TableNotFound(dataset_id, table)

        live_columns = {col.name: col for col in self.store.get_columns(dataset_id, table)}
        names = list(columns) if columns is not None else list(live_columns)
        result = TableAggregations()

        for name in names:
            if name not in live_columns:
                result.failures[name] = str(UnknownColumn(table, [name]))
        names = [name for name in names if name in live_columns]

        try:
            context = self._table_context(dataset_id, table, filters, live_columns)
        except FilterEngineError as e:
            logger.warning("table_condition_failed", dataset_id=dataset_id, table=table, error=str(e))
            for name in names:
                result.failures[name] = str(e)
            return result

        if not names:
            return result

        timeout = self.config.column_timeout_seconds * math.ceil(len(names) / self.config.max_workers)
        executor = ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="aggregation")
        try:
            futures = {executor.submit(self._aggregate_column, context, name): name for name in names}
            done, not_done = wait(futures, timeout=timeout, return_when=ALL_COMPLETED)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        completed: dict[str, ColumnAggregation] = {}
        for future in done:
            name = futures[future]
            try:
                completed[name] = future.result()
            except (FilterEngineError, ValueError) as e:
                logger.warning("column_aggregation_failed", table=table, column=name, error=str(e))
                result.failures[name] = str(e)

        for future in not_done:
            name = futures[future]
            future.cancel()
            logger.warning("column_aggregation_timed_out", table=table, column=name, timeout_seconds=timeout)
            result.failures[name] = f"Aggregation of '{name}' timed out after {timeout:g}s"

        result.aggregations = [completed[name] for name in names if name in completed]
        logger.info(
            "table_aggregations_completed",
            dataset_id=dataset_id,
            table=table,
            columns=len(result.aggregations),
            failures=len(result.failures),
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return result

    def rebin(self, histogram: list[HistogramBin], stats: NumericStats, bins: int) -> list[HistogramBin]:
        """Rebin an existing histogram to a nice width without querying the store."""
        return rebin_histogram(
            histogram,
            stats,
            bins,
            max_bins=self.config.rebin_max_bins,
            max_iterations=self.config.rebin_max_iterations,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _table_context(
        self,
        dataset_id: str,
        table: str,
        filters: list[Filter],
        columns: dict[str, ColumnInfo] | None = None,
    ) -> _TableContext:
        version = self.store.catalog_version
        _, graph = self.get_graph(dataset_id)
        descriptor = graph.tables.get(table)
        if descriptor is None:
            raise TableNotFound(dataset_id, table)

        if columns is None:
            columns = {col.name: col for col in self.store.get_columns(dataset_id, table)}

        return _TableContext(
            dataset_id=dataset_id,
            catalog_version=version,
            descriptor=descriptor,
            physical_name=self.store.physical_name(dataset_id, table),
            columns=columns,
            condition=self.compile_condition(dataset_id, table, filters),
        )

    def _aggregate_column(
        self,
        context: _TableContext,
        column: str,
        display_type: DisplayType | None = None,
        limit: int | None = None,
        bins: int | None = None,
    ) -> ColumnAggregation:
        if display_type is None:
            display_type = self._detect_display_type(context, column)

        return self.aggregator.aggregate(
            context.physical_name,
            column,
            display_type,
            context.condition,
            cached_row_count=context.descriptor.row_count,
            limit=limit,
            bins=bins,
        )

    def _detect_display_type(self, context: _TableContext, column: str) -> DisplayType:
        """Detected display type, cached per (dataset, catalog version, table, column)."""
        if looks_like_identifier(column):
            return "id"

        key = (context.dataset_id, context.catalog_version, context.descriptor.name, column)
        with self._display_type_lock:
            cached = self._display_types.get(key)
        if cached is not None:
            return cached

        col_sql = quote_identifier(column)
        rows = self.store.query(
            f"SELECT COUNT(DISTINCT {col_sql}) AS unique_count FROM {quote_identifier(context.physical_name)}"
        )
        display_type = detect_display_type(
            column,
            context.columns[column].type,
            unique_count=int(rows[0]["unique_count"] or 0),
            total_count=context.descriptor.row_count,
        )

        with self._display_type_lock:
            for stale in [k for k in self._display_types if k[0] == context.dataset_id and k[1] < key[1]]:
                del self._display_types[stale]
            self._display_types[key] = display_type
        return display_type
