"""
Integration tests for RecordService against SQLite.

Tests cover:
- Batch creation with uniform order allocation
- All-or-nothing rejection of bad batches
- Snapshot fetch ordering and projection
- Paginated listing in view order
- Document queries over the metadata allow-list
"""

import tempfile

import pytest

from dbaas.tabledb_server.errors import (
    FieldNotFoundError,
    InvalidQueryError,
    StorageExecutionError,
    TableNotFoundError,
    ViewNotFoundError,
)
from dbaas.tabledb_server.meta import MetadataRegistry, TableMeta, ViewMeta, field
from dbaas.tabledb_server.record import (
    Condition,
    CounterTableAllocator,
    RecordService,
    SnapshotQuery,
    SortKey,
    or_,
)
from dbaas.tabledb_server.record.sql import build_create_table
from dbaas.tabledb_server.store import SqliteStore


def batch(*fields_list):
    return {"records": [{"fields": fields} for fields in fields_list]}


class TestRecordService:
    """Integration tests for RecordService."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def registry(self):
        """Create metadata with one table and two views."""
        reg = MetadataRegistry()
        reg.register_table(TableMeta("tblTasks", "Tasks", "tasks"))
        reg.register_field(field("fldTitle", "tblTasks", "Title", "title"))
        reg.register_field(field("fldPoints", "tblTasks", "Points", "points"))
        reg.register_view(ViewMeta("viwGrid", "tblTasks", "Grid"))
        reg.register_view(ViewMeta("viwKanban", "tblTasks", "Kanban"))
        reg.register_table(TableMeta("tblEmpty", "No views", "no_views"))
        reg.freeze()
        return reg

    @pytest.fixture
    def store(self, data_dir):
        return SqliteStore(data_dir, wal_mode=False)

    @pytest.fixture
    def service(self, registry, store):
        return RecordService(registry, store)

    async def _provision(self, registry, store):
        for table in registry.tables():
            await store.provision_table(
                table,
                registry.get_fields(table.table_id),
                registry.get_views(table.table_id),
            )

    # =========================================================================
    # create_records
    # =========================================================================

    @pytest.mark.asyncio
    async def test_create_on_empty_table(self, registry, store, service):
        """First batch numbers 0..N-1, same order value in every view."""
        await self._provision(registry, store)

        outcome = await service.create_records(
            "tblTasks",
            batch({"fldTitle": "a"}, {"fldTitle": "b", "fldPoints": 3}, {}),
            actor="user:42",
        )

        assert outcome.row_count == 3
        assert outcome.base == 0
        assert len(set(outcome.record_ids)) == 3

        records = await service.query_records("tblTasks")
        assert [r.id for r in records] == outcome.record_ids
        for i, record in enumerate(records):
            assert record.auto_number == i
            assert record.record_order == {"viwGrid": i, "viwKanban": i}
            assert record.version == 1
            assert record.created_by == "user:42"
            assert record.created_time > 0
        assert records[1].fields == {"fldTitle": "b", "fldPoints": 3}
        assert records[2].fields == {"fldTitle": None, "fldPoints": None}

    @pytest.mark.asyncio
    async def test_second_batch_continues_numbering(self, registry, store, service):
        await self._provision(registry, store)
        await service.create_records("tblTasks", batch({}, {}))

        outcome = await service.create_records("tblTasks", batch({}, {}, {}))

        assert outcome.base == 2
        snapshots = await service.get_snapshots("tblTasks", outcome.record_ids)
        assert [s.record_order["viwKanban"] for s in snapshots] == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_default_actor(self, registry, store, service):
        await self._provision(registry, store)

        await service.create_records("tblTasks", batch({"fldTitle": "a"}))

        records = await service.query_records("tblTasks")
        assert records[0].created_by == "admin"

    @pytest.mark.asyncio
    async def test_unknown_field_rejects_whole_batch(self, registry, store, service):
        await self._provision(registry, store)

        with pytest.raises(FieldNotFoundError) as exc_info:
            await service.create_records(
                "tblTasks", batch({"fldTitle": "ok"}, {"fldGhost": 1})
            )

        assert exc_info.value.missing == ["fldGhost"]
        assert await service.get_record_count("tblTasks") == 0

    @pytest.mark.asyncio
    async def test_unknown_table(self, registry, store, service):
        await self._provision(registry, store)

        with pytest.raises(TableNotFoundError):
            await service.create_records("tblNope", batch({}))
        with pytest.raises(TableNotFoundError):
            await service.list_records("tblNope")
        with pytest.raises(TableNotFoundError):
            await service.get_snapshots("tblNope", [])

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, registry, store, service):
        await self._provision(registry, store)

        with pytest.raises(ValueError):
            await service.create_records("tblTasks", {"records": []})

    @pytest.mark.asyncio
    async def test_malformed_value_rolls_back(self, registry, store, service):
        """A value the storage cannot bind fails the batch with nothing written."""
        await self._provision(registry, store)

        with pytest.raises(StorageExecutionError):
            await service.create_records(
                "tblTasks", batch({"fldTitle": "fine"}, {"fldTitle": {"nested": True}})
            )

        assert await service.get_record_count("tblTasks") == 0

    @pytest.mark.asyncio
    async def test_create_inside_caller_transaction(self, registry, store, service):
        await self._provision(registry, store)

        with pytest.raises(RuntimeError):
            with store.transaction() as conn:
                await service.create_records("tblTasks", batch({}), conn=conn)
                raise RuntimeError("abort")

        assert await service.get_record_count("tblTasks") == 0

    @pytest.mark.asyncio
    async def test_counter_allocator(self, registry, store):
        await self._provision(registry, store)
        service = RecordService(registry, store, allocator=CounterTableAllocator())

        first = await service.create_records("tblTasks", batch({}, {}))
        second = await service.create_records("tblTasks", batch({}))

        assert first.base == 0
        assert second.base == 2
        records = await service.query_records("tblTasks")
        assert [r.auto_number for r in records] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_switching_allocators_never_reuses_numbers(self, registry, store):
        """Counter, then max, then counter again keeps numbering contiguous."""
        await self._provision(registry, store)
        counter = RecordService(registry, store, allocator=CounterTableAllocator())
        max_based = RecordService(registry, store)

        first = await counter.create_records("tblTasks", batch({}))
        second = await max_based.create_records("tblTasks", batch({}, {}))
        third = await counter.create_records("tblTasks", batch({}))
        fourth = await counter.create_records("tblTasks", batch({}))

        assert [first.base, second.base, third.base, fourth.base] == [0, 1, 3, 4]
        records = await counter.query_records("tblTasks")
        assert [r.auto_number for r in records] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_counter_allocator_on_externally_created_table(self, registry, store):
        """The counter table is created on demand, not only by provisioning."""
        for statement in build_create_table("tasks", ["title", "points"], ["__row_viwGrid", "__row_viwKanban"]):
            await store.execute(statement)
        service = RecordService(registry, store, allocator=CounterTableAllocator())

        first = await service.create_records("tblTasks", batch({"fldTitle": "a"}, {}))
        second = await service.create_records("tblTasks", batch({}))

        assert first.base == 0
        assert second.base == 2
        assert await service.get_record_count("tblTasks") == 3

    # =========================================================================
    # get_snapshots
    # =========================================================================

    @pytest.mark.asyncio
    async def test_snapshots_follow_request_order(self, registry, store, service):
        await self._provision(registry, store)
        outcome = await service.create_records(
            "tblTasks", batch({"fldTitle": "a"}, {"fldTitle": "b"}, {"fldTitle": "c"})
        )
        a, b, c = outcome.record_ids

        snapshots = await service.get_snapshots("tblTasks", [c, a, b])

        assert [s.id for s in snapshots] == [c, a, b]
        assert [s.fields["fldTitle"] for s in snapshots] == ["c", "a", "b"]
        assert all(s.document_type == "json0" for s in snapshots)

    @pytest.mark.asyncio
    async def test_snapshots_skip_missing_ids(self, registry, store, service):
        await self._provision(registry, store)
        outcome = await service.create_records("tblTasks", batch({}, {}))

        snapshots = await service.get_snapshots(
            "tblTasks", [outcome.record_ids[0], "recDoesNotExist", outcome.record_ids[1]]
        )

        assert [s.id for s in snapshots] == outcome.record_ids

    @pytest.mark.asyncio
    async def test_snapshot_projection(self, registry, store, service):
        await self._provision(registry, store)
        outcome = await service.create_records("tblTasks", batch({"fldTitle": "a", "fldPoints": 5}))

        snapshots = await service.get_snapshots(
            "tblTasks", outcome.record_ids, projection={"fldPoints": True, "fldTitle": False}
        )

        assert snapshots[0].fields == {"fldPoints": 5}
        assert snapshots[0].record_order == {"viwGrid": 0, "viwKanban": 0}

    @pytest.mark.asyncio
    async def test_snapshot_envelope_has_no_physical_names(self, registry, store, service):
        await self._provision(registry, store)
        outcome = await service.create_records("tblTasks", batch({"fldTitle": "a"}))

        envelope = (await service.get_snapshots("tblTasks", outcome.record_ids))[0].to_dict()

        assert envelope["type"] == "json0"
        assert envelope["v"] == 1
        assert set(envelope["data"]["record"]["fields"]) == {"fldTitle", "fldPoints"}
        assert set(envelope["data"]["recordOrder"]) == {"viwGrid", "viwKanban"}

    @pytest.mark.asyncio
    async def test_snapshots_empty_ids(self, registry, store, service):
        await self._provision(registry, store)

        assert await service.get_snapshots("tblTasks", []) == []

    # =========================================================================
    # list_records
    # =========================================================================

    @pytest.mark.asyncio
    async def test_list_defaults(self, registry, store, service):
        """No view, skip or take: first view, offset 0, default page size."""
        await self._provision(registry, store)
        await service.create_records("tblTasks", batch(*[{"fldPoints": i} for i in range(12)]))

        page = await service.list_records("tblTasks")

        assert page.total == 12
        assert len(page.records) == 10
        assert [r.record_order["viwGrid"] for r in page.records] == list(range(10))

    @pytest.mark.asyncio
    async def test_list_paging(self, registry, store, service):
        await self._provision(registry, store)
        await service.create_records("tblTasks", batch(*[{"fldPoints": i} for i in range(12)]))

        page = await service.list_records("tblTasks", {"viewId": "viwKanban", "skip": 10, "take": 5})

        assert page.total == 12
        assert [r.fields["fldPoints"] for r in page.records] == [10, 11]

    @pytest.mark.asyncio
    async def test_list_to_dict(self, registry, store, service):
        await self._provision(registry, store)
        await service.create_records("tblTasks", batch({"fldTitle": "a"}), actor="user:1")

        data = (await service.list_records("tblTasks")).to_dict()

        assert data["total"] == 1
        record = data["records"][0]
        assert record["autoNumber"] == 0
        assert record["createdBy"] == "user:1"
        assert record["fields"]["fldTitle"] == "a"

    @pytest.mark.asyncio
    async def test_list_unknown_view(self, registry, store, service):
        await self._provision(registry, store)

        with pytest.raises(ViewNotFoundError):
            await service.list_records("tblTasks", {"viewId": "viwNope"})

    @pytest.mark.asyncio
    async def test_list_table_without_views(self, registry, store, service):
        await self._provision(registry, store)

        with pytest.raises(ViewNotFoundError):
            await service.list_records("tblEmpty")

    @pytest.mark.asyncio
    async def test_list_take_above_max(self, registry, store):
        await self._provision(registry, store)
        service = RecordService(registry, store, max_take=50)

        with pytest.raises(InvalidQueryError):
            await service.list_records("tblTasks", {"take": 51})

    @pytest.mark.asyncio
    async def test_list_negative_skip_rejected(self, registry, store, service):
        await self._provision(registry, store)

        with pytest.raises(ValueError):
            await service.list_records("tblTasks", {"skip": -1})

    # =========================================================================
    # Document queries
    # =========================================================================

    @pytest.mark.asyncio
    async def test_query_record_ids_filter_and_sort(self, registry, store, service):
        await self._provision(registry, store)
        outcome = await service.create_records(
            "tblTasks",
            batch(
                {"fldTitle": "a", "fldPoints": 1},
                {"fldTitle": "b", "fldPoints": 8},
                {"fldTitle": "c", "fldPoints": 5},
                {"fldTitle": "d"},
            ),
        )
        ids = outcome.record_ids

        matched = await service.query_record_ids(
            "tblTasks",
            SnapshotQuery(
                where=or_(Condition("fldPoints", ">=", 5), Condition("fldPoints", "=", None)),
                limit=100,
            ),
        )

        assert matched == [ids[1], ids[2], ids[3]]

    @pytest.mark.asyncio
    async def test_query_on_system_column(self, registry, store, service):
        await self._provision(registry, store)
        outcome = await service.create_records("tblTasks", batch({}, {}, {}))

        matched = await service.query_record_ids(
            "tblTasks",
            SnapshotQuery(where=Condition("__auto_number", "<", 2), order_by=(SortKey("__id"),)),
        )

        assert sorted(matched) == sorted(outcome.record_ids[:2])

    @pytest.mark.asyncio
    async def test_query_unknown_column(self, registry, store, service):
        await self._provision(registry, store)

        with pytest.raises(InvalidQueryError) as exc_info:
            await service.query_record_ids(
                "tblTasks", SnapshotQuery(where=Condition("title", "=", "a"))
            )

        assert exc_info.value.column == "title"
        assert exc_info.value.__suppress_context__

    @pytest.mark.asyncio
    async def test_query_unknown_sort_column(self, registry, store, service):
        await self._provision(registry, store)

        with pytest.raises(InvalidQueryError):
            await service.query_records(
                "tblTasks", SnapshotQuery(order_by=(SortKey('title" DESC; --'),))
            )

    @pytest.mark.asyncio
    async def test_query_unknown_operator(self, registry, store, service):
        await self._provision(registry, store)

        with pytest.raises(InvalidQueryError):
            await service.query_record_ids(
                "tblTasks", SnapshotQuery(where=Condition("fldTitle", "REGEXP", ".*"))
            )

    @pytest.mark.asyncio
    async def test_record_count(self, registry, store, service):
        await self._provision(registry, store)
        await service.create_records("tblTasks", batch({}, {}))

        assert await service.get_record_count("tblTasks") == 2
