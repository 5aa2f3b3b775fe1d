"""
Record snapshots for realtime synchronization.

A snapshot is the versioned, field-id keyed document the realtime sync
collaborator stores and transforms. Its envelope is a wire contract:

    {
        "id": "<record id>",
        "v": <version>,
        "type": "json0",
        "data": {
            "record": {"id": "<record id>", "fields": {"<field id>": value}},
            "recordOrder": {"<view id>": position}
        }
    }

Invariants:
    - "type" is always DOCUMENT_TYPE for every record and version
    - Physical column names never appear in a snapshot
    - Output order follows the requested id list, never storage order
    - Requested ids without a fetched row are omitted, not errors

How to change safely:
    - Bump SNAPSHOT_FORMAT_VERSION and coordinate with the sync protocol
      before changing the envelope
    - Add keys inside "data", never rename existing ones
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..meta.types import FieldMeta, ViewMeta
from ..naming import ID_COLUMN, VERSION_COLUMN

DOCUMENT_TYPE = "json0"
SNAPSHOT_FORMAT_VERSION = 1


class SnapshotFormatError(ValueError):
    """Envelope does not match the snapshot wire format."""
    pass


@dataclass(frozen=True)
class RecordSnapshot:
    """Sync-facing projection of one record.

    Attributes:
        id: Record id
        version: Record version
        fields: Field-id keyed cell values
        record_order: View-id keyed order values
    """

    id: str
    version: int
    fields: dict[str, Any] = field(default_factory=dict)
    record_order: dict[str, Any] = field(default_factory=dict)

    @property
    def document_type(self) -> str:
        return DOCUMENT_TYPE

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire envelope."""
        return {
            "id": self.id,
            "v": self.version,
            "type": DOCUMENT_TYPE,
            "data": {
                "record": {
                    "id": self.id,
                    "fields": dict(self.fields),
                },
                "recordOrder": dict(self.record_order),
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RecordSnapshot:
        """Parse a wire envelope.

        Raises:
            SnapshotFormatError: If the type tag or shape is wrong
        """
        if data.get("type") != DOCUMENT_TYPE:
            raise SnapshotFormatError(
                f"Unsupported snapshot type {data.get('type')!r}, expected {DOCUMENT_TYPE!r}"
            )
        try:
            payload = data["data"]
            record = payload["record"]
            return cls(
                id=data["id"],
                version=data["v"],
                fields=dict(record.get("fields", {})),
                record_order=dict(payload.get("recordOrder", {})),
            )
        except (KeyError, TypeError) as e:
            raise SnapshotFormatError(f"Malformed snapshot envelope: {e}") from e


def assemble_snapshots(
    rows: Iterable[Mapping[str, Any]],
    fields: Sequence[FieldMeta],
    views: Sequence[ViewMeta],
    record_ids: Sequence[str],
) -> list[RecordSnapshot]:
    """Reshape fetched rows into snapshots ordered like ``record_ids``.

    Args:
        rows: Raw rows carrying user, system and view order columns
        fields: Fields to project (already filtered by any projection)
        views: All views of the table
        record_ids: Requested ids, defining output order

    Returns:
        One snapshot per distinct requested id that has a row
    """
    by_id = {row[ID_COLUMN]: row for row in rows}

    snapshots = []
    seen: set[str] = set()
    for record_id in record_ids:
        row = by_id.get(record_id)
        if row is None or record_id in seen:
            continue
        seen.add(record_id)
        snapshots.append(
            RecordSnapshot(
                id=record_id,
                version=row[VERSION_COLUMN],
                fields={f.field_id: row.get(f.db_field_name) for f in fields},
                record_order={v.view_id: row.get(v.order_column) for v in views},
            )
        )
    return snapshots
