"""
Record service for TableDB.

The RecordService is the public surface of the record engine:
- create_records: atomic batch insert with order/auto-number allocation
- list_records: paginated listing in a view's order, with total count
- get_snapshots: bulk fetch of sync snapshots in request order
- query_record_ids / query_records: filtered, sorted document queries

Invariants:
    - All physical names come from the metadata repository; caller input
      is only ever matched against that allow-list
    - Allocation and INSERT of one batch share one transaction
    - Writes are all-or-nothing; reads never fail on missing ids
    - The view order column is always the primary sort key

How to change safely:
    - Keep allocation inside the same transaction as the INSERT
    - Route every new query shape through _to_physical_filter so caller
      strings never reach SQL as identifiers
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional, Union

from ..errors import InvalidQueryError, TableNotFoundError, ViewNotFoundError
from ..meta.registry import MetadataRepository
from ..meta.types import FieldMeta, TableMeta, ViewMeta
from ..naming import (
    AUTO_NUMBER_COLUMN,
    CREATED_BY_COLUMN,
    CREATED_TIME_COLUMN,
    ID_COLUMN,
    LAST_MODIFIED_BY_COLUMN,
    LAST_MODIFIED_TIME_COLUMN,
    SYSTEM_COLUMNS,
    VERSION_COLUMN,
    generate_record_id,
)
from .allocator import MaxAutoNumberAllocator, SequenceAllocator
from .matrix import build_columns, build_value_matrix
from .models import (
    CreateRecordsRo,
    InsertOutcome,
    Record,
    RecordsPage,
    RecordsQuery,
    SnapshotQuery,
)
from .resolver import FieldResolver, ResolvedField
from .snapshot import RecordSnapshot, assemble_snapshots
from .sql import (
    COMPARISON_OPERATORS,
    CONJUNCTIONS,
    Condition,
    Conjunction,
    Filter,
    SelectSpec,
    SortKey,
    build_count,
    build_insert,
    build_select,
)

if TYPE_CHECKING:
    from ..store.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


class RecordService:
    """Creates and reads records of user-defined tables.

    Attributes:
        metadata: Source of table/field/view definitions
        store: Storage execution client
        allocator: Auto-number/order allocator
        default_take: Page size when a query gives none
        max_take: Largest page size accepted
        default_actor: Created-by identity when the caller gives none

    Example:
        >>> service = RecordService(registry, store)
        >>> outcome = await service.create_records(
        ...     "tblTasks", {"records": [{"fields": {"fldTitle": "Write docs"}}]}
        ... )
        >>> page = await service.list_records("tblTasks")
        >>> snapshots = await service.get_snapshots("tblTasks", outcome.record_ids)
    """

    def __init__(
        self,
        metadata: MetadataRepository,
        store: SqliteStore,
        allocator: Optional[SequenceAllocator] = None,
        default_take: int = 10,
        max_take: int = 1000,
        default_actor: str = "admin",
        id_factory: Callable[[], str] = generate_record_id,
    ) -> None:
        self.metadata = metadata
        self.store = store
        self.allocator = allocator or MaxAutoNumberAllocator()
        self.default_take = default_take
        self.max_take = max_take
        self.default_actor = default_actor
        self.resolver = FieldResolver(metadata)
        self._id_factory = id_factory

    def _get_table(self, table_id: str) -> TableMeta:
        table = self.metadata.get_table(table_id)
        if table is None:
            raise TableNotFoundError(table_id)
        return table

    def _resolve_view(
        self,
        table_id: str,
        views: Sequence[ViewMeta],
        view_id: Optional[str],
    ) -> ViewMeta:
        """Pick the requested view, or the first view of the table."""
        if view_id is None:
            if not views:
                raise ViewNotFoundError("<default>", table_id)
            return views[0]
        for view in views:
            if view.view_id == view_id:
                return view
        raise ViewNotFoundError(view_id, table_id)

    def _check_take(self, take: int) -> None:
        if take > self.max_take:
            raise InvalidQueryError(f"take must be <= {self.max_take}, got {take}")

    async def create_records(
        self,
        table_id: str,
        batch: Union[CreateRecordsRo, Mapping[str, Any]],
        actor: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> InsertOutcome:
        """Insert a batch of records atomically.

        Args:
            table_id: Target table
            batch: CreateRecordsRo or its dict form
                ``{"records": [{"fields": {...}}, ...]}``
            actor: Created-by identity (defaults to default_actor)
            conn: Connection of an enclosing transaction; when omitted the
                batch runs in its own BEGIN IMMEDIATE transaction

        Returns:
            InsertOutcome with generated ids in batch order

        Raises:
            TableNotFoundError: If the table is unknown
            FieldNotFoundError: If any referenced field is unknown
            StorageExecutionError: If the INSERT fails (batch rolled back)
        """
        if not isinstance(batch, CreateRecordsRo):
            batch = CreateRecordsRo.model_validate(batch)

        table = self._get_table(table_id)
        records = [record.fields for record in batch.records]
        resolved = self.resolver.resolve(table_id, records)
        views = self.metadata.get_views(table_id)
        actor = actor or self.default_actor

        if conn is not None:
            return await self._insert_batch(table, resolved, views, records, actor, conn)

        with self.store.transaction() as tx:
            return await self._insert_batch(table, resolved, views, records, actor, tx)

    async def _insert_batch(
        self,
        table: TableMeta,
        resolved: list[ResolvedField],
        views: list[ViewMeta],
        records: list[dict[str, Any]],
        actor: str,
        conn: sqlite3.Connection,
    ) -> InsertOutcome:
        base = await self.allocator.allocate(
            self.store, conn, table.db_table_name, len(records)
        )

        columns = build_columns(resolved, [v.order_column for v in views])
        matrix = build_value_matrix(
            resolved,
            len(views),
            records,
            base=base,
            actor=actor,
            now_ms=int(time.time() * 1000),
            id_factory=self._id_factory,
        )
        row_count = await self.store.execute(
            build_insert(table.db_table_name, columns, matrix), conn=conn
        )

        id_index = columns.index(ID_COLUMN)
        record_ids = [row[id_index] for row in matrix]

        logger.info(
            "Created records",
            extra={
                "table_id": table.table_id,
                "count": row_count,
                "base": base,
                "actor": actor,
            },
        )
        return InsertOutcome(row_count=row_count, record_ids=record_ids, base=base)

    async def list_records(
        self,
        table_id: str,
        query: Union[RecordsQuery, Mapping[str, Any], None] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> RecordsPage:
        """List one page of records in a view's order.

        Args:
            table_id: Table to list
            query: RecordsQuery or its dict form (viewId, skip, take);
                defaults to the first view, skip 0, take default_take
            conn: Optional connection of an enclosing transaction

        Returns:
            RecordsPage with the page and the table's total row count

        Raises:
            TableNotFoundError: If the table is unknown
            ViewNotFoundError: If the view is unknown or the table has none
            InvalidQueryError: If take exceeds max_take
        """
        if query is None:
            query = RecordsQuery()
        elif not isinstance(query, RecordsQuery):
            query = RecordsQuery.model_validate(query)

        table = self._get_table(table_id)
        views = self.metadata.get_views(table_id)
        view = self._resolve_view(table_id, views, query.view_id)
        take = query.take if query.take is not None else self.default_take
        self._check_take(take)

        spec = SelectSpec(
            table=table.db_table_name,
            order_column=view.order_column,
            offset=query.skip,
            limit=take,
        )
        rows = await self.store.fetch_all(build_select(spec), conn=conn)
        total = await self.store.fetch_value(build_count(table.db_table_name), conn=conn)

        fields = self.metadata.get_fields(table_id)
        return RecordsPage(
            records=[_to_record(row, fields, views) for row in rows],
            total=int(total or 0),
        )

    async def get_snapshots(
        self,
        table_id: str,
        record_ids: Sequence[str],
        projection: Optional[Mapping[str, bool]] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[RecordSnapshot]:
        """Fetch sync snapshots for a list of record ids.

        Args:
            table_id: Table holding the records
            record_ids: Ids in the order the snapshots should come back
            projection: Field id -> include flag; None includes all fields
            conn: Optional connection of an enclosing transaction

        Returns:
            Snapshots in ``record_ids`` order; unknown ids are omitted

        Raises:
            TableNotFoundError: If the table is unknown
        """
        table = self._get_table(table_id)
        if not record_ids:
            return []

        all_fields = self.metadata.get_fields(table_id)
        views = self.metadata.get_views(table_id)
        if projection is None:
            fields = all_fields
        else:
            fields = [f for f in all_fields if projection.get(f.field_id)]

        columns = (
            tuple(f.db_field_name for f in fields)
            + SYSTEM_COLUMNS
            + tuple(v.order_column for v in views)
        )
        spec = SelectSpec(
            table=table.db_table_name,
            where=Condition(ID_COLUMN, "IN", tuple(dict.fromkeys(record_ids))),
            columns=columns,
        )
        rows = await self.store.fetch_all(build_select(spec), conn=conn)

        snapshots = assemble_snapshots(rows, fields, views, record_ids)
        if len(snapshots) < len(set(record_ids)):
            logger.debug(
                "Some snapshot ids not found",
                extra={
                    "table_id": table_id,
                    "requested": len(record_ids),
                    "found": len(snapshots),
                },
            )
        return snapshots

    def _build_query(
        self,
        table: TableMeta,
        query: SnapshotQuery,
        id_only: bool,
    ) -> tuple[SelectSpec, list[FieldMeta], list[ViewMeta]]:
        fields = self.metadata.get_fields(table.table_id)
        views = self.metadata.get_views(table.table_id)
        view = self._resolve_view(table.table_id, views, query.view_id)
        self._check_take(query.limit)

        allowed = {f.field_id: f.db_field_name for f in fields}
        allowed.update({c: c for c in SYSTEM_COLUMNS})

        spec = SelectSpec(
            table=table.db_table_name,
            order_column=view.order_column,
            where=_to_physical_filter(query.where, allowed) if query.where else None,
            order_by=tuple(
                SortKey(_to_physical_column(key.column, allowed), key.descending)
                for key in query.order_by
            ),
            offset=query.offset,
            limit=query.limit,
            id_only=id_only,
        )
        return spec, fields, views

    async def query_record_ids(
        self,
        table_id: str,
        query: Optional[SnapshotQuery] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[str]:
        """Ids of records matching a document query, in view order.

        Raises:
            TableNotFoundError: If the table is unknown
            ViewNotFoundError: If the view is unknown or the table has none
            InvalidQueryError: If a column or operator is not allowed
        """
        table = self._get_table(table_id)
        spec, _, _ = self._build_query(table, query or SnapshotQuery(), id_only=True)
        rows = await self.store.fetch_all(build_select(spec), conn=conn)
        return [row[ID_COLUMN] for row in rows]

    async def query_records(
        self,
        table_id: str,
        query: Optional[SnapshotQuery] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Record]:
        """Full records matching a document query, in view order."""
        table = self._get_table(table_id)
        spec, fields, views = self._build_query(table, query or SnapshotQuery(), id_only=False)
        rows = await self.store.fetch_all(build_select(spec), conn=conn)
        return [_to_record(row, fields, views) for row in rows]

    async def get_record_count(
        self,
        table_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        table = self._get_table(table_id)
        total = await self.store.fetch_value(build_count(table.db_table_name), conn=conn)
        return int(total or 0)


def _to_physical_column(column: str, allowed: Mapping[str, str]) -> str:
    try:
        return allowed[column]
    except KeyError:
        raise InvalidQueryError(f"Unknown column '{column}'", column=column) from None


def _to_physical_filter(node: Filter, allowed: Mapping[str, str]) -> Filter:
    """Rewrite a filter tree from logical to physical column names."""
    if isinstance(node, Conjunction):
        if node.operator.upper() not in CONJUNCTIONS:
            raise InvalidQueryError(f"Unsupported conjunction '{node.operator}'")
        return Conjunction(
            node.operator.upper(),
            tuple(_to_physical_filter(child, allowed) for child in node.children),
        )
    if node.operator.upper() not in COMPARISON_OPERATORS:
        raise InvalidQueryError(
            f"Unsupported operator '{node.operator}'", column=node.column
        )
    return Condition(
        _to_physical_column(node.column, allowed),
        node.operator.upper(),
        node.value,
    )


def _to_record(
    row: Mapping[str, Any],
    fields: Sequence[FieldMeta],
    views: Sequence[ViewMeta],
) -> Record:
    return Record(
        id=row[ID_COLUMN],
        version=row[VERSION_COLUMN],
        auto_number=row[AUTO_NUMBER_COLUMN],
        created_time=row[CREATED_TIME_COLUMN],
        created_by=row[CREATED_BY_COLUMN],
        fields={f.field_id: row.get(f.db_field_name) for f in fields},
        record_order={v.view_id: row.get(v.order_column) for v in views},
        last_modified_time=row.get(LAST_MODIFIED_TIME_COLUMN),
        last_modified_by=row.get(LAST_MODIFIED_BY_COLUMN),
    )
