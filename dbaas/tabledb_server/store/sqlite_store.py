"""
SQLite storage execution client for TableDB.

This module runs parameterized statements produced by the SQL builder
against a single SQLite database holding one physical table per
user-defined table, plus the engine's counter table.

Invariants:
    - Every statement is executed with bound parameters
    - Writers use BEGIN IMMEDIATE, so conflicting batches serialize on the
      database write lock instead of interleaving
    - Any sqlite3 failure surfaces as StorageExecutionError with the
      driver error chained as __cause__
    - Callers may pass an open connection to run inside their transaction

How to change safely:
    - Keep pragmas in _get_connection in sync with StorageConfig
    - Never retry inside this module; callers decide
    - Monitor SQLite file size and busy-timeout errors in production
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

from ..errors import StorageExecutionError
from ..meta.types import FieldMeta, TableMeta, ViewMeta
from ..record.sql import Statement, build_create_table, build_sequence_table

logger = logging.getLogger(__name__)


class SqliteStore:
    """Executes record statements against a SQLite database.

    Thread safety:
        Each operation opens its own connection.
        SQLite handles concurrent access via its file locks (WAL mode
        lets readers proceed during a write).

    Example:
        >>> store = SqliteStore("/var/lib/tabledb")
        >>> await store.provision_table(table, fields, views)
        >>> with store.transaction() as conn:
        ...     await store.execute(insert_stmt, conn=conn)
    """

    def __init__(
        self,
        data_dir: str,
        database_name: str = "tabledb.db",
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
    ) -> None:
        """Initialize the store.

        Args:
            data_dir: Directory holding the database file
            database_name: Database file name inside data_dir
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: How long a writer waits for the write lock
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.data_dir = Path(data_dir)
        self.database_name = database_name
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.database_name

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection in autocommit mode."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction.

        Takes the database write lock up front (BEGIN IMMEDIATE), so a
        read-then-insert inside the block cannot interleave with another
        writer. Commits on success, rolls back on any exception.

        Yields:
            Connection to pass as ``conn=`` to execute/fetch calls

        Raises:
            StorageExecutionError: If the lock cannot be taken or commit fails
        """
        with self._get_connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageExecutionError(f"Failed to begin transaction: {e}") from e

            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise

            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                raise StorageExecutionError(f"Failed to commit transaction: {e}") from e

    @contextmanager
    def _use(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
        else:
            with self._get_connection() as own:
                yield own

    def _run(self, conn: sqlite3.Connection, statement: Statement) -> sqlite3.Cursor:
        try:
            cursor = conn.execute(statement.sql, statement.params)
        except sqlite3.Error as e:
            logger.warning(
                "Statement failed",
                extra={"sql": statement.sql, "error": str(e)},
            )
            raise StorageExecutionError(str(e), sql=statement.sql) from e

        logger.debug(
            "Executed statement",
            extra={"sql": statement.sql, "param_count": len(statement.params)},
        )
        return cursor

    async def execute(
        self,
        statement: Statement,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Execute a write statement.

        Returns:
            Number of affected rows
        """
        with self._use(conn) as active:
            return self._run(active, statement).rowcount

    async def fetch_all(
        self,
        statement: Statement,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[dict[str, Any]]:
        """Execute a query and return every row as a column-keyed dict."""
        with self._use(conn) as active:
            cursor = self._run(active, statement)
            return [dict(row) for row in cursor.fetchall()]

    async def fetch_value(
        self,
        statement: Statement,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Any:
        """Execute a query and return the first column of the first row."""
        with self._use(conn) as active:
            # Drain the cursor so an upsert ... RETURNING is finished before COMMIT
            rows = self._run(active, statement).fetchall()
            return rows[0][0] if rows else None

    async def provision_table(
        self,
        table: TableMeta,
        fields: Sequence[FieldMeta],
        views: Sequence[ViewMeta],
    ) -> None:
        """Create the physical table for a user-defined table.

        Table administration lives outside the record engine; this exists
        so tests, the CLI and local setups can materialize metadata.
        Idempotent (CREATE ... IF NOT EXISTS).
        """
        statements = build_create_table(
            table.db_table_name,
            [f.db_field_name for f in fields],
            [v.order_column for v in views],
        )
        statements.append(build_sequence_table())

        with self.transaction() as conn:
            for statement in statements:
                self._run(conn, statement)

        logger.info(
            f"Provisioned physical table: {table.db_table_name}",
            extra={
                "table_id": table.table_id,
                "fields": len(fields),
                "views": len(views),
            },
        )

    async def table_exists(self, db_table_name: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                (db_table_name,),
            )
            return cursor.fetchone() is not None
