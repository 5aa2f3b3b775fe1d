"""
Metadata module for TableDB.

This module provides the logical descriptors of user-defined tables and
the repository the record engine reads them from:
- Definitions (TableMeta, FieldMeta, ViewMeta)
- MetadataRepository protocol and the in-memory MetadataRegistry

Invariants:
    - Ids are immutable once assigned
    - Physical table/column names come from here and nowhere else
    - The first view returned for a table is its default view
"""

from .registry import (
    DuplicateRegistrationError,
    MetadataRegistry,
    MetadataRepository,
    RegistryFrozenError,
    UnknownTableError,
)
from .types import FieldMeta, TableMeta, ViewMeta, field

__all__ = [
    # Types
    "TableMeta",
    "FieldMeta",
    "ViewMeta",
    "field",
    # Registry
    "MetadataRepository",
    "MetadataRegistry",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    "UnknownTableError",
]
