"""
Unit tests for snapshot assembly.

Tests cover:
- Output follows requested id order, not row order
- Missing ids are omitted silently
- Physical names never leak into snapshots
- Wire envelope shape and type tag
"""

import pytest

from dbaas.tabledb_server.meta.types import ViewMeta, field
from dbaas.tabledb_server.record.snapshot import (
    DOCUMENT_TYPE,
    RecordSnapshot,
    SnapshotFormatError,
    assemble_snapshots,
)

FIELDS = [
    field("fldTitle", "tblTasks", "Title", "title"),
    field("fldPoints", "tblTasks", "Points", "points"),
]
VIEWS = [ViewMeta("viwGrid", "tblTasks"), ViewMeta("viwKanban", "tblTasks")]


def make_row(record_id, version=1, title=None, points=None, grid=0, kanban=0):
    return {
        "__id": record_id,
        "__version": version,
        "title": title,
        "points": points,
        "__row_viwGrid": grid,
        "__row_viwKanban": kanban,
    }


class TestAssembleSnapshots:
    """Tests for assemble_snapshots."""

    def test_follows_requested_order(self):
        """Rows fetched as a, b, c come back as c, a, b."""
        rows = [make_row("recA"), make_row("recB"), make_row("recC")]

        snapshots = assemble_snapshots(rows, FIELDS, VIEWS, ["recC", "recA", "recB"])

        assert [s.id for s in snapshots] == ["recC", "recA", "recB"]

    def test_missing_ids_are_omitted(self):
        rows = [make_row("recA"), make_row("recB")]

        snapshots = assemble_snapshots(rows, FIELDS, VIEWS, ["recA", "recMissing", "recB"])

        assert [s.id for s in snapshots] == ["recA", "recB"]

    def test_duplicate_ids_yield_one_snapshot(self):
        snapshots = assemble_snapshots([make_row("recA")], FIELDS, VIEWS, ["recA", "recA"])

        assert len(snapshots) == 1

    def test_fields_keyed_by_field_id(self):
        rows = [make_row("recA", version=3, title="Write docs", points=5, grid=2, kanban=7)]

        snapshot = assemble_snapshots(rows, FIELDS, VIEWS, ["recA"])[0]

        assert snapshot.version == 3
        assert snapshot.fields == {"fldTitle": "Write docs", "fldPoints": 5}
        assert snapshot.record_order == {"viwGrid": 2, "viwKanban": 7}

    def test_projected_fields_only(self):
        rows = [{"__id": "recA", "__version": 1, "title": "x", "__row_viwGrid": 0, "__row_viwKanban": 0}]

        snapshot = assemble_snapshots(rows, FIELDS[:1], VIEWS, ["recA"])[0]

        assert snapshot.fields == {"fldTitle": "x"}


class TestRecordSnapshot:
    """Tests for the snapshot wire envelope."""

    def test_to_dict_envelope(self):
        snapshot = RecordSnapshot(
            id="recA",
            version=1,
            fields={"fldTitle": "x"},
            record_order={"viwGrid": 0},
        )

        assert snapshot.to_dict() == {
            "id": "recA",
            "v": 1,
            "type": "json0",
            "data": {
                "record": {"id": "recA", "fields": {"fldTitle": "x"}},
                "recordOrder": {"viwGrid": 0},
            },
        }
        assert snapshot.document_type == DOCUMENT_TYPE

    def test_round_trip(self):
        snapshot = RecordSnapshot("recA", 2, {"fldTitle": "x"}, {"viwGrid": 4})

        assert RecordSnapshot.from_dict(snapshot.to_dict()) == snapshot

    def test_wrong_type_rejected(self):
        envelope = RecordSnapshot("recA", 1).to_dict()
        envelope["type"] = "ot-text"

        with pytest.raises(SnapshotFormatError, match="Unsupported snapshot type"):
            RecordSnapshot.from_dict(envelope)

    def test_malformed_envelope_rejected(self):
        with pytest.raises(SnapshotFormatError, match="Malformed"):
            RecordSnapshot.from_dict({"type": "json0", "id": "recA", "v": 1})
