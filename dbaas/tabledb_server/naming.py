"""
Physical naming conventions for record storage.

Every physical table carries a fixed set of reserved system columns plus one
order column per view. User field columns never start with the reserved
``__`` prefix, so the two namespaces cannot collide.

Invariants:
    - System column names never change; snapshots and queries depend on them
    - Order column for a view is always ROW_ORDER_FIELD_PREFIX + "_" + view_id
    - Record ids are "rec" followed by 16 alphanumeric characters
"""

from __future__ import annotations

import secrets
import string

ID_COLUMN = "__id"
VERSION_COLUMN = "__version"
AUTO_NUMBER_COLUMN = "__auto_number"
CREATED_TIME_COLUMN = "__created_time"
CREATED_BY_COLUMN = "__created_by"
LAST_MODIFIED_TIME_COLUMN = "__last_modified_time"
LAST_MODIFIED_BY_COLUMN = "__last_modified_by"

SYSTEM_COLUMNS: tuple[str, ...] = (
    ID_COLUMN,
    VERSION_COLUMN,
    AUTO_NUMBER_COLUMN,
    CREATED_TIME_COLUMN,
    CREATED_BY_COLUMN,
    LAST_MODIFIED_TIME_COLUMN,
    LAST_MODIFIED_BY_COLUMN,
)

# Column order of the system block written for every inserted row
INSERT_SYSTEM_COLUMNS: tuple[str, ...] = (
    ID_COLUMN,
    AUTO_NUMBER_COLUMN,
    CREATED_TIME_COLUMN,
    CREATED_BY_COLUMN,
    VERSION_COLUMN,
)

ROW_ORDER_FIELD_PREFIX = "__row"

RECORD_ID_PREFIX = "rec"
RECORD_ID_LENGTH = 16
_ID_ALPHABET = string.digits + string.ascii_letters


def view_order_column(view_id: str) -> str:
    """Physical order column name for a view."""
    return f"{ROW_ORDER_FIELD_PREFIX}_{view_id}"


def is_system_column(column: str) -> bool:
    return column in SYSTEM_COLUMNS


def generate_record_id() -> str:
    """Generate a new globally unique record id.

    Example:
        >>> generate_record_id()
        'recA1b2C3d4E5f6G7h8'
    """
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(RECORD_ID_LENGTH))
    return f"{RECORD_ID_PREFIX}{suffix}"
