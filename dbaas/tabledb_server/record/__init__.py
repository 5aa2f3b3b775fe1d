"""
Record module for TableDB - the record engine.

This module handles:
- Field resolution (logical field ids -> physical columns)
- Auto-number/order allocation per creation batch
- Value matrix and SQL statement building
- Snapshot assembly for realtime sync
- The RecordService facade tying them together

Invariants:
    - A creation batch is one transaction and one multi-row INSERT
    - At creation, a record's order value is identical in every view
    - Snapshot envelopes keep the fixed "json0" document type

How to change safely:
    - Keep the SQL builder pure; execution belongs to the store
    - Coordinate snapshot envelope changes with the sync protocol
"""

from .allocator import (
    CounterTableAllocator,
    MaxAutoNumberAllocator,
    SequenceAllocator,
    create_allocator,
)
from .models import (
    CreateRecordsRo,
    InsertOutcome,
    Record,
    RecordInput,
    RecordsPage,
    RecordsQuery,
    SnapshotQuery,
)
from .resolver import FieldResolver, ResolvedField
from .service import RecordService
from .snapshot import DOCUMENT_TYPE, RecordSnapshot, SnapshotFormatError, assemble_snapshots
from .sql import Condition, Conjunction, SelectSpec, SortKey, Statement, and_, or_

__all__ = [
    "RecordService",
    # Allocation
    "SequenceAllocator",
    "MaxAutoNumberAllocator",
    "CounterTableAllocator",
    "create_allocator",
    # Resolution
    "FieldResolver",
    "ResolvedField",
    # Models
    "CreateRecordsRo",
    "RecordInput",
    "RecordsQuery",
    "SnapshotQuery",
    "Record",
    "RecordsPage",
    "InsertOutcome",
    # Snapshots
    "DOCUMENT_TYPE",
    "RecordSnapshot",
    "SnapshotFormatError",
    "assemble_snapshots",
    # SQL
    "Statement",
    "SelectSpec",
    "SortKey",
    "Condition",
    "Conjunction",
    "and_",
    "or_",
]
