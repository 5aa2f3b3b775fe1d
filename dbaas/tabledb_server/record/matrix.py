"""
Bulk value matrix builder for record creation.

Builds the full column list and one value row per record before anything
is written, so a batch becomes exactly one multi-row INSERT.

Row layout:
    [user values in resolver order] + [one order value per view]
    + [id, auto_number, created_time, created_by, version]
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from ..naming import INSERT_SYSTEM_COLUMNS, generate_record_id
from .resolver import ResolvedField

INITIAL_VERSION = 1


def build_columns(
    resolved_fields: Sequence[ResolvedField],
    order_columns: Sequence[str],
) -> list[str]:
    """Full ordered column list matching build_value_matrix rows."""
    return [
        *(f.db_field_name for f in resolved_fields),
        *order_columns,
        *INSERT_SYSTEM_COLUMNS,
    ]


def build_value_matrix(
    resolved_fields: Sequence[ResolvedField],
    view_count: int,
    records: Sequence[Mapping[str, Any]],
    base: int,
    actor: str,
    now_ms: int,
    id_factory: Callable[[], str] = generate_record_id,
) -> list[list[Any]]:
    """Build one value row per record.

    Record i gets ``base + i`` as its auto-number and as its order value in
    every view. Absent fields become None. Values are not validated.

    Args:
        resolved_fields: Output of FieldResolver.resolve
        view_count: Number of views (order columns) of the table
        records: Per-record field-id keyed value maps
        base: First auto-number of the allocated block
        actor: Identity written to the created-by column
        now_ms: Creation time in epoch milliseconds, shared by the batch
        id_factory: Record id generator

    Returns:
        Value matrix ordered like build_columns()
    """
    matrix: list[list[Any]] = []
    for i, fields in enumerate(records):
        position = base + i
        user_values = [fields.get(f.field_id) for f in resolved_fields]
        order_values = [position] * view_count
        system_values = [id_factory(), position, now_ms, actor, INITIAL_VERSION]
        matrix.append(user_values + order_values + system_values)
    return matrix
