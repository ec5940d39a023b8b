"""DuckDB query executor.

embedded duckdb stands in for the analytics store during local work and in
tests - same query shapes, no server to run. queries must be compiled with the
duckdb dialect so placeholders come out as $name.
"""

import logging
import threading
import time
from typing import Any

import duckdb

from querygate.errors import QueryExecutionError

logger = logging.getLogger(__name__)


class DuckDBExecutor:
    """Execute compiled queries against DuckDB.

    the batch orchestrator calls execute from worker threads, so every call
    gets its own cursor - a duckdb connection must not be shared across threads.
    """

    dialect = "duckdb"

    def __init__(self, database_path: str | None = None) -> None:
        """Initialize DuckDB connection.

        Args:
            database_path: Path to DuckDB file, or None for in-memory.
        """
        self.database_path = database_path
        self._conn: duckdb.DuckDBPyConnection | None = None  # lazy init
        self._lock = threading.Lock()

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create the DuckDB connection."""
        with self._lock:
            if self._conn is None:
                self._conn = duckdb.connect(self.database_path or ":memory:")
            return self._conn

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Execute SQL with named parameters and return rows as dicts."""
        start = time.perf_counter()
        cursor = self.conn.cursor()
        try:
            result = cursor.execute(sql, params) if params else cursor.execute(sql)
            columns = [desc[0] for desc in result.description]
            rows = result.fetchall()
        except duckdb.Error as e:
            raise QueryExecutionError(str(e)) from e
        finally:
            cursor.close()

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug("DuckDB returned %d rows in %.2fms", len(rows), elapsed_ms)
        return [dict(zip(columns, row)) for row in rows]

    def execute_raw(self, sql: str) -> list[tuple[Any, ...]]:
        """Execute trusted SQL (setup, fixtures) and return raw tuples."""
        return self.conn.execute(sql).fetchall()

    def table_exists(self, table_name: str, schema: str | None = None) -> bool:
        query = "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?"
        params: list[Any] = [table_name]
        if schema:
            query += " AND table_schema = ?"
            params.append(schema)
        return self.conn.execute(query, params).fetchone()[0] > 0

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "DuckDBExecutor":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
