"""
DataStore Class - DuckDB columnar store and table metadata service.

Holds every uploaded table of every dataset in one DuckDB database and answers
the metadata questions the engine asks (tables, live columns, relationships).

INVARIANT:
    Tables are persisted as: {dataset_id}_{table_name} (both sanitized),
    with a numeric suffix when that name is already taken
    Catalog rows live in dataset_tables / table_relationships

Reads go through a bounded ConnectionPool so concurrent column aggregations
share a fixed set of cursors.
"""

import logging
import re
import threading
from pathlib import Path
from typing import Any

import duckdb
import polars as pl

from dataset_explorer.core.catalog import ColumnInfo, DatasetCatalog
from dataset_explorer.core.errors import StoreQueryFailed, TableNotFound
from dataset_explorer.core.relationship_detector import RelationshipDetector
from dataset_explorer.core.relationships import Relationship, TableDescriptor
from dataset_explorer.storage.connection_pool import ConnectionPool

logger = logging.getLogger(__name__)

_CATALOG_DDL = (
    """
    CREATE TABLE IF NOT EXISTS dataset_tables (
        dataset_id VARCHAR NOT NULL,
        table_name VARCHAR NOT NULL,
        physical_name VARCHAR NOT NULL,
        row_count BIGINT NOT NULL,
        PRIMARY KEY (dataset_id, table_name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS table_relationships (
        dataset_id VARCHAR NOT NULL,
        table_name VARCHAR NOT NULL,
        foreign_key_column VARCHAR NOT NULL,
        referenced_table VARCHAR NOT NULL,
        referenced_column VARCHAR NOT NULL,
        kind VARCHAR
    )
    """,
)


def _sanitize_table_name(name: str) -> str:
    """
    Sanitize table name to SQL-safe identifier.

    Replaces spaces, hyphens, and special characters with underscores.
    Ensures identifier starts with letter/underscore (not number).

    Args:
        name: Original table name (can contain spaces, hyphens, etc.)

    Returns:
        SQL-safe identifier (e.g., "statin_use_deidentified")
    """
    sanitized = re.sub(r"[^0-9a-zA-Z_]+", "_", name).strip("_").lower()

    if not sanitized or sanitized[0].isdigit():
        sanitized = f"t_{sanitized}" if sanitized else "t"

    return sanitized


class DataStore:
    """
    Manages DuckDB storage for uploaded datasets.

    Features:
    - Save Polars tables with their declared (or detected) relationships
    - Table/column/relationship metadata per dataset
    - Parameterized read queries over a shared cursor pool
    """

    def __init__(self, db_path: Path | str = ":memory:", pool_size: int = 4):
        """
        Initialize DuckDB connection and catalog tables.

        Args:
            db_path: Path to DuckDB database file, or ":memory:" for an in-process store
            pool_size: Number of cursors shared by concurrent readers
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = duckdb.connect(self.db_path)
        for ddl in _CATALOG_DDL:
            self.conn.execute(ddl)

        self.pool = ConnectionPool(self.conn, size=pool_size)
        self._write_lock = threading.Lock()
        # Bumped on every catalog change; consumers key caches on it
        self.catalog_version = 0
        logger.info(f"Initialized DataStore with DuckDB at {self.db_path} (pool_size={pool_size})")

    # =========================================================================
    # Writes
    # =========================================================================

    def save_table(
        self,
        dataset_id: str,
        table_name: str,
        data: pl.DataFrame,
        relationships: list[Relationship] | None = None,
    ) -> str:
        """
        Save table to DuckDB and register it in the catalog.

        Re-saving the same (dataset_id, table_name) replaces data and relationships.

        Args:
            dataset_id: Dataset identifier
            table_name: Logical table name (e.g., "patients", "samples")
            data: Polars DataFrame (eager - IO boundary)
            relationships: Foreign keys declared on this table

        Returns:
            Physical table name in DuckDB
        """
        with self._write_lock:
            physical_name = self._allocate_physical_name(dataset_id, table_name)
            self.conn.register("incoming_frame", data.to_arrow())
            try:
                self.conn.execute(f'CREATE OR REPLACE TABLE "{physical_name}" AS SELECT * FROM incoming_frame')
            finally:
                self.conn.unregister("incoming_frame")

            self.conn.execute(
                "DELETE FROM dataset_tables WHERE dataset_id = ? AND table_name = ?", [dataset_id, table_name]
            )
            self.conn.execute(
                "INSERT INTO dataset_tables VALUES (?, ?, ?, ?)", [dataset_id, table_name, physical_name, data.height]
            )
            self.conn.execute(
                "DELETE FROM table_relationships WHERE dataset_id = ? AND table_name = ?", [dataset_id, table_name]
            )
            for rel in relationships or []:
                self.conn.execute(
                    "INSERT INTO table_relationships VALUES (?, ?, ?, ?, ?, ?)",
                    [
                        dataset_id,
                        table_name,
                        rel.foreign_key_column,
                        rel.referenced_table,
                        rel.referenced_column,
                        rel.kind,
                    ],
                )
            self.catalog_version += 1

        logger.info(
            f"Saved table '{table_name}' ({data.height:,} rows) for dataset '{dataset_id}' as '{physical_name}'"
        )
        return physical_name

    def save_dataset(
        self,
        dataset_id: str,
        tables: dict[str, pl.DataFrame],
        relationships: dict[str, list[Relationship]] | None = None,
        detect_relationships: bool = False,
    ) -> list[TableDescriptor]:
        """
        Save several tables at once.

        Args:
            dataset_id: Dataset identifier
            tables: Table name -> data
            relationships: Declared relationships per child table
            detect_relationships: Detect foreign keys for tables without declarations

        Returns:
            TableDescriptors of the dataset after saving
        """
        declared = dict(relationships or {})
        if detect_relationships:
            detected = RelationshipDetector().detect_declarations(tables)
            for name, rels in detected.items():
                if not declared.get(name):
                    declared[name] = rels

        for name, data in tables.items():
            self.save_table(dataset_id, name, data, declared.get(name))

        return self.get_tables(dataset_id)

    def _allocate_physical_name(self, dataset_id: str, table_name: str) -> str:
        """
        Physical name for a (dataset_id, table_name), stable across re-saves.

        Sanitizing can map different pairs onto the same name (("a_b", "c") and
        ("a", "b_c") both give "a_b_c"), so a taken name gets a numeric suffix.
        Caller holds the write lock.
        """
        existing = self.conn.execute(
            "SELECT physical_name FROM dataset_tables WHERE dataset_id = ? AND table_name = ?",
            [dataset_id, table_name],
        ).fetchone()
        if existing:
            return existing[0]

        taken = set(self.list_tables())
        base = f"{_sanitize_table_name(dataset_id)}_{_sanitize_table_name(table_name)}"
        candidate = base
        suffix = 2
        while candidate in taken:
            candidate = f"{base}_{suffix}"
            suffix += 1
        if candidate != base:
            logger.warning(f"Physical name {base} already taken; saving {dataset_id}.{table_name} as {candidate}")
        return candidate

    # =========================================================================
    # Metadata service
    # =========================================================================

    def get_tables(self, dataset_id: str) -> list[TableDescriptor]:
        """All tables of a dataset with row counts and declared relationships."""
        rows = self.query(
            "SELECT table_name, row_count FROM dataset_tables WHERE dataset_id = ? ORDER BY table_name",
            [dataset_id],
        )
        relationships = self._relationships_by_table(dataset_id)
        return [
            TableDescriptor(
                name=row["table_name"],
                row_count=int(row["row_count"]),
                relationships=tuple(relationships.get(row["table_name"], [])),
            )
            for row in rows
        ]

    def get_relationships(self, dataset_id: str, table: str) -> list[Relationship]:
        return self._relationships_by_table(dataset_id).get(table, [])

    def get_columns(self, dataset_id: str, table: str) -> list[ColumnInfo]:
        """
        Live column metadata of a table (name, type, nullability).

        Raises:
            TableNotFound: If the table is not registered for the dataset
        """
        physical_name = self.physical_name(dataset_id, table)
        rows = self.query(
            """
            SELECT column_name, data_type, is_nullable
            FROM information_schema.columns
            WHERE table_name = ?
            ORDER BY ordinal_position
            """,
            [physical_name],
        )
        return [
            ColumnInfo(name=row["column_name"], type=row["data_type"], nullable=row["is_nullable"] == "YES")
            for row in rows
        ]

    def physical_name(self, dataset_id: str, table: str) -> str:
        """
        Raises:
            TableNotFound: If the table is not registered for the dataset
        """
        rows = self.query(
            "SELECT physical_name FROM dataset_tables WHERE dataset_id = ? AND table_name = ?",
            [dataset_id, table],
        )
        if not rows:
            raise TableNotFound(dataset_id, table)
        return rows[0]["physical_name"]

    def physical_names(self, dataset_id: str) -> dict[str, str]:
        rows = self.query("SELECT table_name, physical_name FROM dataset_tables WHERE dataset_id = ?", [dataset_id])
        return {row["table_name"]: row["physical_name"] for row in rows}

    def catalog(self, dataset_id: str) -> DatasetCatalog:
        """TableCatalog view used by the condition compiler."""
        return DatasetCatalog(self, dataset_id, self.physical_names(dataset_id))

    def _relationships_by_table(self, dataset_id: str) -> dict[str, list[Relationship]]:
        rows = self.query(
            """
            SELECT table_name, foreign_key_column, referenced_table, referenced_column, kind
            FROM table_relationships
            WHERE dataset_id = ?
            ORDER BY table_name, foreign_key_column, referenced_table
            """,
            [dataset_id],
        )
        result: dict[str, list[Relationship]] = {}
        for row in rows:
            result.setdefault(row["table_name"], []).append(
                Relationship(
                    foreign_key_column=row["foreign_key_column"],
                    referenced_table=row["referenced_table"],
                    referenced_column=row["referenced_column"],
                    kind=row["kind"],
                )
            )
        return result

    # =========================================================================
    # Queries
    # =========================================================================

    def query(self, sql: str, params: list[Any] | tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        """
        Run a parameterized read query on a pooled cursor.

        Returns:
            Rows as dicts keyed by column name

        Raises:
            StoreQueryFailed: If DuckDB rejects or fails the query
        """
        with self.pool.connection() as cursor:
            try:
                cursor.execute(sql, list(params))
                columns = [desc[0] for desc in cursor.description]
                rows = cursor.fetchall()
            except duckdb.Error as e:
                logger.warning(f"Store query failed: {type(e).__name__}: {e}")
                raise StoreQueryFailed(f"{type(e).__name__}: {e}", sql=sql) from e
        return [dict(zip(columns, row, strict=True)) for row in rows]

    def list_tables(self) -> list[str]:
        """
        List all physical tables in DuckDB (catalog tables included).

        Returns:
            List of table names
        """
        result = self.conn.execute("SHOW TABLES").fetchall()
        return [row[0] for row in result]

    def close(self) -> None:
        """Close pooled cursors and the DuckDB connection."""
        self.pool.close()
        if self.conn:
            self.conn.close()
            logger.debug(f"Closed DuckDB connection to {self.db_path}")
