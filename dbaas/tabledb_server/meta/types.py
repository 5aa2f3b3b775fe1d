"""
Metadata type definitions for user-defined tables.

This module defines the logical descriptors the record engine consumes:
- TableMeta: A user-defined table and its physical table name
- FieldMeta: A field and its physical column name
- ViewMeta: A view; its order column is derived from the view id

Invariants:
    - Ids are canonical; names are labels only
    - db_table_name and db_field_name are immutable once assigned
    - Physical names are already persisted when metadata reaches the engine

How to change safely:
    - Add new optional attributes with defaults
    - Never change to_dict() keys without versioning the registry JSON

Example:
    >>> from dbaas.tabledb_server.meta.types import TableMeta, field
    >>> tasks = TableMeta(table_id="tblTasks", name="Tasks", db_table_name="tasks")
    >>> title = field("fldTitle", "tblTasks", "Title", "title")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..naming import view_order_column


@dataclass(frozen=True)
class TableMeta:
    """Definition of a user-defined table.

    Attributes:
        table_id: Stable table identifier
        name: Human-readable name
        db_table_name: Physical table backing the logical table
    """

    table_id: str
    name: str
    db_table_name: str

    def __post_init__(self) -> None:
        if not self.table_id:
            raise ValueError("table_id cannot be empty")
        if not self.db_table_name:
            raise ValueError(f"db_table_name required for table '{self.table_id}'")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation for serialization."""
        return {
            "table_id": self.table_id,
            "name": self.name,
            "db_table_name": self.db_table_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TableMeta:
        """Create from dictionary representation."""
        return cls(
            table_id=data["table_id"],
            name=data.get("name", data["table_id"]),
            db_table_name=data["db_table_name"],
        )


@dataclass(frozen=True)
class FieldMeta:
    """Definition of a single field within a table.

    Attributes:
        field_id: Stable field identifier (never reused)
        table_id: Owning table
        name: Human-readable name (can change, ID is canonical)
        db_field_name: Physical column name in the owning table
        description: Human-readable description
    """

    field_id: str
    table_id: str
    name: str
    db_field_name: str
    description: str = ""

    def __post_init__(self) -> None:
        if not self.field_id:
            raise ValueError("field_id cannot be empty")
        if not self.db_field_name:
            raise ValueError(f"db_field_name required for field '{self.field_id}'")
        if self.db_field_name.startswith("__"):
            raise ValueError(
                f"db_field_name '{self.db_field_name}' uses the reserved '__' prefix"
            )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "field_id": self.field_id,
            "table_id": self.table_id,
            "name": self.name,
            "db_field_name": self.db_field_name,
        }
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldMeta:
        return cls(
            field_id=data["field_id"],
            table_id=data["table_id"],
            name=data.get("name", data["field_id"]),
            db_field_name=data["db_field_name"],
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class ViewMeta:
    """Definition of a view over a table.

    Every view owns exactly one physical order column, named by
    convention from the view id.
    """

    view_id: str
    table_id: str
    name: str = ""

    def __post_init__(self) -> None:
        if not self.view_id:
            raise ValueError("view_id cannot be empty")

    @property
    def order_column(self) -> str:
        """Physical column storing each row's position in this view."""
        return view_order_column(self.view_id)

    def to_dict(self) -> dict[str, Any]:
        return {"view_id": self.view_id, "table_id": self.table_id, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ViewMeta:
        return cls(
            view_id=data["view_id"],
            table_id=data["table_id"],
            name=data.get("name", ""),
        )


def field(
    field_id: str,
    table_id: str,
    name: str,
    db_field_name: str,
    *,
    description: str = "",
) -> FieldMeta:
    """Convenience function to create a FieldMeta.

    Example:
        >>> title = field("fldTitle", "tblTasks", "Title", "title")
    """
    return FieldMeta(
        field_id=field_id,
        table_id=table_id,
        name=name,
        db_field_name=db_field_name,
        description=description,
    )
