"""Read-only, time-bounded query execution.

Each query runs in its own transaction which is always rolled back:

- PostgreSQL: ``SET TRANSACTION READ ONLY`` and ``SET LOCAL statement_timeout``
- SQLite: ``PRAGMA query_only`` plus a progress handler that interrupts the
  statement once the deadline passes
- Other dialects: rollback-only transaction

Usage:
    executor = SQLAlchemyQueryExecutor(engine, statement_timeout_ms=100)
    rows = executor.execute(descriptor)
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from metricgraph.core.logging import get_logger
from metricgraph.errors import QueryExecutionError
from metricgraph.query.models import QueryDescriptor
from metricgraph.query.sql import render

logger = get_logger(__name__)

# SQLite virtual machine instructions between deadline checks
_PROGRESS_INTERVAL = 1000


class QueryExecutor(Protocol):
    """Runs one descriptor and returns its rows."""

    def execute(self, descriptor: QueryDescriptor) -> list[dict[str, Any]]: ...


class SQLAlchemyQueryExecutor:
    """Executes descriptors against a SQLAlchemy engine."""

    def __init__(self, engine: Engine, statement_timeout_ms: int = 100):
        self.engine = engine
        self.statement_timeout_ms = statement_timeout_ms

    def execute(self, descriptor: QueryDescriptor) -> list[dict[str, Any]]:
        """Run a descriptor inside a read-only, time-bounded transaction.

        Raises:
            QueryExecutionError: On any database failure, including timeouts
        """
        statement = render(descriptor)
        started = time.monotonic()
        try:
            with self.read_only_connection() as conn:
                rows = [dict(row) for row in conn.execute(statement).mappings()]
        except SQLAlchemyError as e:
            logger.warning(
                "query_failed",
                kind=descriptor.kind,
                entity=descriptor.entity,
                error=str(e.orig) if getattr(e, "orig", None) else str(e),
            )
            raise QueryExecutionError(f"Query for {descriptor.entity} failed: {e}") from e

        logger.debug(
            "query_executed",
            kind=descriptor.kind,
            entity=descriptor.entity,
            rows=len(rows),
            elapsed_ms=round((time.monotonic() - started) * 1000, 2),
        )
        return rows

    @contextmanager
    def read_only_connection(self) -> Iterator[Connection]:
        """Connection inside a read-only transaction that is rolled back on exit."""
        with self.engine.connect() as conn:
            transaction = conn.begin()
            try:
                dialect = conn.dialect.name
                if dialect == "postgresql":
                    conn.execute(text("SET TRANSACTION READ ONLY"))
                    timeout = int(self.statement_timeout_ms)
                    conn.execute(text(f"SET LOCAL statement_timeout = {timeout}"))
                    yield conn
                elif dialect == "sqlite":
                    with self._sqlite_guard(conn):
                        yield conn
                else:
                    logger.debug("read_only_guard_unavailable", dialect=dialect)
                    yield conn
            finally:
                transaction.rollback()

    @contextmanager
    def _sqlite_guard(self, conn: Connection) -> Iterator[None]:
        dbapi_conn = conn.connection.dbapi_connection
        deadline = time.monotonic() + self.statement_timeout_ms / 1000

        def interrupt_after_deadline() -> int:
            return 1 if time.monotonic() > deadline else 0

        conn.exec_driver_sql("PRAGMA query_only = ON")
        dbapi_conn.set_progress_handler(interrupt_after_deadline, _PROGRESS_INTERVAL)
        try:
            yield
        finally:
            dbapi_conn.set_progress_handler(None, 0)
            conn.exec_driver_sql("PRAGMA query_only = OFF")
