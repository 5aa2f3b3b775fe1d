"""
Field resolution for record creation.

Maps the field ids referenced anywhere in a creation batch onto physical
columns. Resolution is all-or-nothing: one unknown id rejects the batch.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ..errors import FieldNotFoundError
from ..meta.registry import MetadataRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedField:
    """A requested field id and the physical column that stores it."""

    field_id: str
    db_field_name: str


class FieldResolver:
    """Resolves batch field ids against a table's metadata.

    The returned order follows the metadata repository, not the order ids
    appear in the batch, so the same set of ids always yields the same
    column list.
    """

    def __init__(self, metadata: MetadataRepository) -> None:
        self.metadata = metadata

    def resolve(
        self,
        table_id: str,
        records: Sequence[Mapping[str, Any]],
    ) -> list[ResolvedField]:
        """Resolve every field id referenced by the batch.

        Args:
            table_id: Table the batch targets
            records: Per-record field-id keyed value maps

        Returns:
            Stable-ordered resolved fields

        Raises:
            FieldNotFoundError: If any referenced id is not a field of the table
        """
        requested: set[str] = set()
        for fields in records:
            requested.update(fields.keys())

        resolved = [
            ResolvedField(field_id=f.field_id, db_field_name=f.db_field_name)
            for f in self.metadata.get_fields(table_id)
            if f.field_id in requested
        ]

        if len(resolved) != len(requested):
            missing = sorted(requested - {f.field_id for f in resolved})
            logger.warning(
                "Rejecting batch with unknown fields",
                extra={"table_id": table_id, "missing": missing},
            )
            raise FieldNotFoundError(table_id, missing)

        return resolved
