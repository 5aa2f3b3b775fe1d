"""
Error types for the TableDB record engine.

This module defines all exception types raised by the engine:
- TableDbError: Base exception
- NotFoundError: Missing table or view
- FieldNotFoundError: Creation batch references unknown fields
- InvalidQueryError: Query references columns outside the allow-list
- StorageExecutionError: Failure reported by the storage execution client

Invariants:
    - All errors inherit from TableDbError
    - Errors include context for debugging
    - Storage failures keep the original driver error as __cause__
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class TableDbError(Exception):
    """Base exception for all TableDB errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "TABLEDB_ERROR"
        self.details = details or {}


class NotFoundError(TableDbError):
    """Resource not found.

    Raised when:
    - Table doesn't exist in the metadata repository
    - View doesn't exist or the table has no views
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class TableNotFoundError(NotFoundError):
    """Table is unknown to the metadata repository."""

    def __init__(self, table_id: str) -> None:
        super().__init__(f"Table not found: {table_id}", "table", table_id)
        self.table_id = table_id


class ViewNotFoundError(NotFoundError):
    """View is unknown, or the table has no view to fall back to."""

    def __init__(self, view_id: str, table_id: str) -> None:
        super().__init__(f"View not found: {view_id} (table {table_id})", "view", view_id)
        self.view_id = view_id
        self.table_id = table_id


class FieldNotFoundError(TableDbError):
    """Some field ids referenced by a creation batch do not exist.

    The whole batch is rejected; nothing is inserted.

    Attributes:
        table_id: Table the batch targeted
        missing: Field ids that could not be resolved
    """

    def __init__(self, table_id: str, missing: List[str]) -> None:
        super().__init__(
            f"Some fields not found in table '{table_id}': {', '.join(missing)}",
            code="FIELD_NOT_FOUND",
            details={"table_id": table_id, "missing": missing},
        )
        self.table_id = table_id
        self.missing = missing


class InvalidQueryError(TableDbError):
    """Query references a column or operator that is not allowed."""

    def __init__(self, message: str, column: Optional[str] = None) -> None:
        super().__init__(message, code="INVALID_QUERY", details={"column": column})
        self.column = column


class StorageExecutionError(TableDbError):
    """The storage execution client failed to run a statement.

    Raised when:
    - A value cannot be bound (malformed cell value)
    - A constraint is violated
    - The database is locked past the busy timeout
    """

    def __init__(self, message: str, sql: Optional[str] = None) -> None:
        super().__init__(message, code="STORAGE_ERROR", details={"sql": sql})
        self.sql = sql
