"""
TableDB Server - record engine for user-defined tables.

This package stores the rows of user-defined tables (fields, views) in
SQLite, one physical table per logical table:
- Logical field/view metadata is mapped onto physical columns
- Every creation batch allocates auto-numbers and view order values
- Queries are built as parameterized SQL from structured specs
- Rows are reshaped into versioned snapshots for realtime sync

Architecture:
    ┌──────────────┐     ┌───────────────┐     ┌─────────────────┐
    │   Metadata   │────▶│ RecordService │────▶│   SqliteStore   │
    │  Repository  │     │   (facade)    │     │    (SQLite)     │
    └──────────────┘     └───────┬───────┘     └─────────────────┘
                                 │
             ┌──────────────┬────┴─────────┬──────────────┐
             ▼              ▼              ▼              ▼
       ┌──────────┐   ┌───────────┐  ┌───────────┐  ┌───────────┐
       │ Resolver │   │ Allocator │  │SQL builder│  │ Snapshot  │
       │          │   │ + matrix  │  │  (pure)   │  │ assembler │
       └──────────┘   └───────────┘  └───────────┘  └───────────┘

Invariants:
    - Field ids, view ids and physical names are immutable once assigned
    - A creation batch is atomic: one transaction, one INSERT
    - At creation, a record has the same order value in every view
    - Snapshot envelopes keep the fixed "json0" document type

How to change safely:
    - Never interpolate caller strings into SQL; resolve them via metadata
    - Keep allocation and INSERT in the same transaction
    - Coordinate snapshot envelope changes with the sync protocol
"""

from ._version import __version__

__all__ = ["__version__"]
