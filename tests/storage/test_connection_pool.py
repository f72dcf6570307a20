"""Tests for the bounded DuckDB cursor pool."""

from concurrent.futures import ThreadPoolExecutor

import duckdb
import pytest

from dataset_explorer.core.errors import StoreQueryFailed
from dataset_explorer.storage.connection_pool import ConnectionPool


@pytest.fixture
def connection():
    conn = duckdb.connect(":memory:")
    conn.execute("CREATE TABLE numbers AS SELECT range AS n FROM range(100)")
    yield conn
    conn.close()


class TestConnectionPool:
    def test_pool_size_below_one_raises(self, connection):
        with pytest.raises(ValueError, match="Pool size"):
            ConnectionPool(connection, size=0)

    def test_connection_returned_to_pool_after_use(self, connection):
        # Arrange
        pool = ConnectionPool(connection, size=1)

        # Act: borrow more times than the pool holds
        results = []
        for _ in range(3):
            with pool.connection(timeout=1) as cursor:
                results.append(cursor.execute("SELECT COUNT(*) FROM numbers").fetchone()[0])

        # Assert
        assert results == [100, 100, 100]

    def test_connection_exhausted_pool_times_out(self, connection):
        # Arrange
        pool = ConnectionPool(connection, size=1)

        # Act & Assert
        with pool.connection():
            with pytest.raises(StoreQueryFailed, match="Timed out"):
                with pool.connection(timeout=0.05):
                    pass

    def test_connection_closed_pool_raises(self, connection):
        pool = ConnectionPool(connection, size=2)
        pool.close()

        with pytest.raises(StoreQueryFailed, match="closed"):
            with pool.connection():
                pass

    def test_connection_concurrent_readers_share_bounded_cursors(self, connection):
        # Arrange
        pool = ConnectionPool(connection, size=2)

        def total(lower):
            with pool.connection(timeout=5) as cursor:
                return cursor.execute("SELECT SUM(n) FROM numbers WHERE n >= ?", [lower]).fetchone()[0]

        # Act
        with ThreadPoolExecutor(max_workers=6) as executor:
            sums = list(executor.map(total, [0, 50, 90, 99, 0, 50]))

        # Assert
        assert sums == [4950, 3725, 945, 99, 4950, 3725]
