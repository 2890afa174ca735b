"""DuckDB query executor for drilldown.

both engines (analytics and crm) are reached through one of these. a report
runs several queries at once, so every execute() borrows its own cursor off
the shared connection and closes it before returning - duckdb connections
aren't meant to be used from two threads at the same time.
"""

import logging
import threading
import time
from typing import Any

import duckdb

from drilldown.errors import ExecutionFailure
from drilldown.models.query import CompiledQuery, QueryResult

logger = logging.getLogger(__name__)


class DuckDBExecutor:
    """Execute compiled queries against a DuckDB database.

    thin wrapper that handles connection management, parameter binding and
    result shaping. no retries - a failed query raises ExecutionFailure and the
    caller decides what that means for the report.
    """

    def __init__(self, database_path: str | None = None, name: str = "analytics") -> None:
        """Initialize the executor.

        Args:
            database_path: Path to a DuckDB file, or None for in-memory.
            name: Engine name used in logs and errors.
        """
        self.database_path = database_path
        self.name = name
        self._conn: duckdb.DuckDBPyConnection | None = None  # lazy init
        self._lock = threading.Lock()

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create the DuckDB connection.

        lazy so nothing opens a database until a query actually runs. the lock
        keeps two report threads from racing to connect.
        """
        with self._lock:
            if self._conn is None:
                self._conn = duckdb.connect(self.database_path or ":memory:")
            return self._conn

    def execute(self, query: CompiledQuery) -> QueryResult:
        """Run a compiled query and return rows as dicts.

        timing covers execution and fetch, which is what a slow report feels like.
        """
        start = time.perf_counter()
        cursor = None
        try:
            # connecting happens here too, so an unreachable database fails like a query
            cursor = self.conn.cursor()
            result = cursor.execute(query.text, list(query.parameters))
            columns = [desc[0] for desc in result.description]
            rows = result.fetchall()
        except duckdb.Error as e:
            logger.error("%s query failed: %s", self.name, e)
            raise ExecutionFailure(f"{self.name} query failed: {e}", source=self.name) from e
        finally:
            if cursor is not None:
                cursor.close()

        elapsed_ms = (time.perf_counter() - start) * 1000
        data = [dict(zip(columns, row)) for row in rows]
        logger.debug("%s query returned %d rows in %.2fms", self.name, len(data), elapsed_ms)

        return QueryResult(
            sql=query.text,
            parameters=list(query.parameters),
            columns=columns,
            data=data,
            row_count=len(data),
            execution_time_ms=round(elapsed_ms, 2),
        )

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        cursor = None
        try:
            cursor = self.conn.cursor()
            result = cursor.execute(
                "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?",
                [table_name],
            )
            return result.fetchone()[0] > 0
        except duckdb.Error as e:
            raise ExecutionFailure(f"{self.name} lookup failed: {e}", source=self.name) from e
        finally:
            if cursor is not None:
                cursor.close()

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "DuckDBExecutor":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
