"""
Request and result models for the record service.

Requests are pydantic models so malformed batches and queries are rejected
before any metadata or storage access. Results are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, Field

from .sql import Filter, SortKey


class RecordInput(BaseModel):
    """One record of a creation batch: field-id keyed cell values."""

    fields: dict[str, Any] = Field(default_factory=dict)


class CreateRecordsRo(BaseModel):
    """A creation batch, inserted atomically."""

    records: list[RecordInput] = Field(..., min_length=1)


class RecordsQuery(BaseModel):
    """Paging parameters for listing records."""

    view_id: Optional[str] = Field(default=None, alias="viewId")
    skip: int = Field(default=0, ge=0)
    take: Optional[int] = Field(default=None, ge=1)

    model_config = {"populate_by_name": True}


@dataclass(frozen=True)
class SnapshotQuery:
    """Document query issued by the realtime sync collaborator.

    Filter and sort columns are field ids or system column names; they are
    checked against table metadata before SQL is built.

    Attributes:
        view_id: View whose order applies first (default view if None)
        where: Optional filter tree over field ids / system columns
        order_by: Extra sort keys applied after the view order
        offset: Rows to skip
        limit: Maximum rows
    """

    view_id: Optional[str] = None
    where: Optional[Filter] = None
    order_by: tuple[SortKey, ...] = ()
    offset: int = 0
    limit: int = 10


@dataclass
class Record:
    """A record read back from storage, keyed by logical ids."""

    id: str
    version: int
    auto_number: int
    created_time: int
    created_by: str
    fields: dict[str, Any] = field(default_factory=dict)
    record_order: dict[str, Any] = field(default_factory=dict)
    last_modified_time: Optional[int] = None
    last_modified_by: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "version": self.version,
            "autoNumber": self.auto_number,
            "createdTime": self.created_time,
            "createdBy": self.created_by,
            "fields": dict(self.fields),
            "recordOrder": dict(self.record_order),
        }
        if self.last_modified_time is not None:
            result["lastModifiedTime"] = self.last_modified_time
        if self.last_modified_by is not None:
            result["lastModifiedBy"] = self.last_modified_by
        return result


@dataclass
class RecordsPage:
    records: list[Record]
    total: int

    def to_dict(self) -> dict[str, Any]:
        return {"records": [r.to_dict() for r in self.records], "total": self.total}


@dataclass
class InsertOutcome:
    """Result of a creation batch.

    Attributes:
        row_count: Rows written by the INSERT
        record_ids: Generated ids, in batch order
        base: First auto-number of the batch
    """

    row_count: int
    record_ids: list[str]
    base: int
