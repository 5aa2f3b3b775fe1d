"""
Row order allocation for record creation.

An allocator reserves a contiguous block of auto-numbers for one batch and
returns its base. Record i of the batch gets base + i as its auto-number
and as its order value in every view of the table.

Invariants:
    - allocate() must run on the same connection, inside the same
      transaction, as the INSERT that consumes the block
    - An empty table starts at 0, never None
    - Blocks never overlap while writers serialize at the storage layer

How to change safely:
    - New allocators must honor the same base/contiguity contract
    - Switching allocators on a live table must not reuse values; both
      implementations below start from MAX(auto_number) + 1
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from .sql import build_advance_sequence, build_next_auto_number, build_sequence_table

if TYPE_CHECKING:
    from ..store.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


@runtime_checkable
class SequenceAllocator(Protocol):
    """Reserves auto-number blocks for creation batches."""

    async def allocate(
        self,
        store: SqliteStore,
        conn: sqlite3.Connection,
        db_table_name: str,
        count: int,
    ) -> int:
        """Reserve ``count`` consecutive values and return the first one."""
        ...


class MaxAutoNumberAllocator:
    """Read-then-insert allocator based on MAX(auto_number).

    One aggregate read per batch. Safe only because the caller holds the
    write lock (BEGIN IMMEDIATE) until the INSERT commits.
    """

    async def allocate(
        self,
        store: SqliteStore,
        conn: sqlite3.Connection,
        db_table_name: str,
        count: int,
    ) -> int:
        base = await store.fetch_value(build_next_auto_number(db_table_name), conn=conn)
        return int(base or 0)


class CounterTableAllocator:
    """Allocator backed by a persisted per-table counter.

    Advances the counter with a single atomic upsert, the SQLite analogue of
    a native sequence. The counter table is created on demand in the batch
    transaction, and every advance starts no lower than the table's
    MAX(auto_number) + 1.
    """

    async def allocate(
        self,
        store: SqliteStore,
        conn: sqlite3.Connection,
        db_table_name: str,
        count: int,
    ) -> int:
        if count <= 0:
            raise ValueError(f"count must be positive, got {count}")
        await store.execute(build_sequence_table(), conn=conn)
        next_value = await store.fetch_value(
            build_advance_sequence(db_table_name, count), conn=conn
        )
        base = int(next_value) - count
        logger.debug(
            "Advanced sequence",
            extra={"table": db_table_name, "base": base, "count": count},
        )
        return base


ALLOCATORS = {
    "max": MaxAutoNumberAllocator,
    "counter": CounterTableAllocator,
}


def create_allocator(name: str) -> SequenceAllocator:
    """Create an allocator by configuration name.

    Raises:
        ValueError: If the name is unknown
    """
    try:
        return ALLOCATORS[name]()
    except KeyError:
        raise ValueError(
            f"Invalid allocator '{name}'. Must be one of: {', '.join(sorted(ALLOCATORS))}"
        ) from None
