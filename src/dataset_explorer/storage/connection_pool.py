"""
Bounded pool of DuckDB cursors shared by aggregation worker threads.

A DuckDB connection object must not be used from several threads at once;
``connection.cursor()`` opens another handle on the same database that can.
The pool opens its cursors once and hands them out for the duration of one
query, so concurrent column aggregations never open a connection per query.
"""

import queue
from collections.abc import Iterator
from contextlib import contextmanager

import duckdb
import structlog

from dataset_explorer.core.errors import StoreQueryFailed

logger = structlog.get_logger(__name__)


class ConnectionPool:
    def __init__(self, connection: duckdb.DuckDBPyConnection, size: int = 4):
        if size < 1:
            raise ValueError(f"Pool size must be >= 1, got {size}")
        self.size = size
        self._idle: queue.Queue[duckdb.DuckDBPyConnection] = queue.Queue(maxsize=size)
        for _ in range(size):
            self._idle.put(connection.cursor())
        self._closed = False
        logger.debug("connection_pool_opened", size=size)

    @contextmanager
    def connection(self, timeout: float | None = None) -> Iterator[duckdb.DuckDBPyConnection]:
        """
        Borrow a cursor for one unit of work.

        Args:
            timeout: Seconds to wait for a free cursor (None waits indefinitely)

        Raises:
            StoreQueryFailed: If the pool is closed or no cursor frees up in time
        """
        if self._closed:
            raise StoreQueryFailed("Connection pool is closed")
        try:
            cursor = self._idle.get(timeout=timeout)
        except queue.Empty:
            raise StoreQueryFailed(f"Timed out after {timeout}s waiting for a store connection") from None
        try:
            yield cursor
        finally:
            self._idle.put(cursor)

    def close(self) -> None:
        self._closed = True
        while True:
            try:
                cursor = self._idle.get_nowait()
            except queue.Empty:
                break
            cursor.close()
        logger.debug("connection_pool_closed")
