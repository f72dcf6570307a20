"""Storage module for the DuckDB columnar store and its cursor pool."""

from dataset_explorer.storage.connection_pool import ConnectionPool
from dataset_explorer.storage.datastore import DataStore

__all__ = ["ConnectionPool", "DataStore"]
