"""
Async boundary around the DuckDB engine.

DuckDB calls block, so every statement runs on a worker thread through
asyncio.to_thread. Connections are scoped: each operation opens a cursor,
runs its statements and closes it on every exit path.

Usage:
    engine = Engine(":memory:")
    async with engine.connect() as conn:
        await conn.execute(Drop("VIEW", "__work"))
        table = await conn.fetch_table(select)
    engine.close()
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator

import duckdb
import pyarrow as pa

from mergeview._constants import DEFAULT_DATABASE
from mergeview._exceptions import StatementError
from mergeview._logging import get_logger, statement_logger
from mergeview.sql import Statement, render

logger = get_logger(__name__)


class Connection:
    """One DuckDB cursor. Not shared between concurrent operations."""

    def __init__(self, cursor: duckdb.DuckDBPyConnection):
        self._cursor = cursor

    def _run(self, statement: Statement) -> duckdb.DuckDBPyConnection:
        sql = render(statement)
        statement_logger.debug(sql)
        try:
            return self._cursor.execute(sql)
        except duckdb.Error as e:
            raise StatementError(f"Statement failed: {e}\n  {sql}") from e

    async def execute(self, statement: Statement) -> None:
        await asyncio.to_thread(self._run, statement)

    async def fetch_table(self, statement: Statement) -> pa.Table:
        """Run a query and materialize the result as a PyArrow table."""

        def run() -> pa.Table:
            return self._run(statement).fetch_arrow_table()

        return await asyncio.to_thread(run)

    async def fetch_scalar(self, statement: Statement) -> Any:
        """First column of the first row, or None for an empty result."""

        def run() -> Any:
            row = self._run(statement).fetchone()
            return row[0] if row else None

        return await asyncio.to_thread(run)

    async def register(self, name: str, table: pa.Table) -> None:
        """Expose an in-memory Arrow table to this cursor under name."""
        await asyncio.to_thread(self._cursor.register, name, table)

    async def unregister(self, name: str) -> None:
        await asyncio.to_thread(self._cursor.unregister, name)

    def close(self) -> None:
        with suppress(duckdb.Error):
            self._cursor.close()


class Engine:
    """
    Owns the DuckDB database for a session.

    The database is opened lazily on first connect() and lives until close().
    Tables and views created through any connection are visible to all others.
    """

    def __init__(self, database: str = DEFAULT_DATABASE):
        self.database = database
        self._db: duckdb.DuckDBPyConnection | None = None

    def _get_db(self) -> duckdb.DuckDBPyConnection:
        if self._db is None:
            self._db = duckdb.connect(self.database)
            logger.debug(f"Opened DuckDB database: {self.database}")
        return self._db

    @property
    def is_open(self) -> bool:
        return self._db is not None

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[Connection]:
        """Acquire a connection; it is released on every exit path."""
        conn = Connection(self._get_db().cursor())
        try:
            yield conn
        finally:
            conn.close()

    def close(self) -> None:
        if self._db is None:
            return
        with suppress(duckdb.Error):
            self._db.close()
        self._db = None
        logger.debug(f"Closed DuckDB database: {self.database}")
