"""
Metadata registry for user-defined tables.

The record engine never owns table, field or view definitions. It reads them
through the MetadataRepository protocol. MetadataRegistry is the in-process
implementation used by the engine factory, the CLI and the tests:
- Registration of tables, fields and views
- Lookup by table id, in registration order
- Metadata fingerprinting for consistency checks
- Freeze mechanism to prevent runtime modifications

Invariants:
    - get_fields() and get_views() return definitions in registration order;
      the first view returned is the table's default view
    - field_id and view_id are unique across the registry
    - db_field_name is unique within a table
    - Once frozen, nothing can be registered

How to change safely:
    - Keep the ordering contract of get_views(); default view resolution
      depends on it
    - Never modify registered definitions after freeze

Example:
    >>> registry = MetadataRegistry()
    >>> registry.register_table(TableMeta("tblTasks", "Tasks", "tasks"))
    >>> registry.register_field(field("fldTitle", "tblTasks", "Title", "title"))
    >>> registry.register_view(ViewMeta("viwGrid", "tblTasks", "Grid"))
    >>> [f.field_id for f in registry.get_fields("tblTasks")]
    ['fldTitle']
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Dict, Iterator, List, Optional, Protocol, runtime_checkable

from .types import FieldMeta, TableMeta, ViewMeta

logger = logging.getLogger(__name__)


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen registry."""
    pass


class DuplicateRegistrationError(Exception):
    """Raised when attempting to register a duplicate table/field/view."""
    pass


class UnknownTableError(Exception):
    """Raised when a field or view references an unregistered table."""
    pass


@runtime_checkable
class MetadataRepository(Protocol):
    """Source of table, field and view definitions.

    Implementations must return fields and views in a stable order; the
    record engine treats the first view as the default view.
    """

    def get_table(self, table_id: str) -> Optional[TableMeta]:
        ...

    def get_fields(self, table_id: str) -> List[FieldMeta]:
        ...

    def get_views(self, table_id: str) -> List[ViewMeta]:
        ...


class MetadataRegistry:
    """In-memory metadata repository.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free
        - Freeze is atomic and irreversible

    Attributes:
        frozen: Whether the registry is frozen (immutable)
        fingerprint: SHA-256 hash of the metadata (computed on freeze)
    """

    def __init__(self) -> None:
        """Initialize an empty, mutable registry."""
        self._tables: Dict[str, TableMeta] = {}
        self._fields: Dict[str, List[FieldMeta]] = {}
        self._views: Dict[str, List[ViewMeta]] = {}
        self._field_ids: set[str] = set()
        self._view_ids: set[str] = set()
        self._frozen = False
        self._fingerprint: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def fingerprint(self) -> Optional[str]:
        """Metadata fingerprint (available after freeze)."""
        return self._fingerprint

    def _check_mutable(self, what: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register {what}: registry is frozen")

    def _check_table(self, table_id: str, what: str) -> None:
        if table_id not in self._tables:
            raise UnknownTableError(f"{what} references unregistered table '{table_id}'")

    def register_table(self, table: TableMeta) -> None:
        """Register a table definition.

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If table_id or db_table_name is taken
        """
        with self._lock:
            self._check_mutable(f"table '{table.table_id}'")

            if table.table_id in self._tables:
                raise DuplicateRegistrationError(
                    f"table_id '{table.table_id}' already registered"
                )
            for existing in self._tables.values():
                if existing.db_table_name == table.db_table_name:
                    raise DuplicateRegistrationError(
                        f"db_table_name '{table.db_table_name}' already used by "
                        f"table '{existing.table_id}'"
                    )

            self._tables[table.table_id] = table
            self._fields[table.table_id] = []
            self._views[table.table_id] = []
            logger.debug(f"Registered table: {table.name} (table_id={table.table_id})")

    def register_field(self, field_meta: FieldMeta) -> None:
        """Register a field definition on an already registered table.

        Raises:
            RegistryFrozenError: If registry is frozen
            UnknownTableError: If the owning table is not registered
            DuplicateRegistrationError: If field_id or db_field_name is taken
        """
        with self._lock:
            self._check_mutable(f"field '{field_meta.field_id}'")
            self._check_table(field_meta.table_id, f"Field '{field_meta.field_id}'")

            if field_meta.field_id in self._field_ids:
                raise DuplicateRegistrationError(
                    f"field_id '{field_meta.field_id}' already registered"
                )
            for existing in self._fields[field_meta.table_id]:
                if existing.db_field_name == field_meta.db_field_name:
                    raise DuplicateRegistrationError(
                        f"db_field_name '{field_meta.db_field_name}' already used by "
                        f"field '{existing.field_id}'"
                    )

            self._fields[field_meta.table_id].append(field_meta)
            self._field_ids.add(field_meta.field_id)
            logger.debug(
                f"Registered field: {field_meta.name} (field_id={field_meta.field_id})"
            )

    def register_view(self, view: ViewMeta) -> None:
        """Register a view definition on an already registered table.

        Raises:
            RegistryFrozenError: If registry is frozen
            UnknownTableError: If the owning table is not registered
            DuplicateRegistrationError: If view_id is taken
        """
        with self._lock:
            self._check_mutable(f"view '{view.view_id}'")
            self._check_table(view.table_id, f"View '{view.view_id}'")

            if view.view_id in self._view_ids:
                raise DuplicateRegistrationError(
                    f"view_id '{view.view_id}' already registered"
                )

            self._views[view.table_id].append(view)
            self._view_ids.add(view.view_id)
            logger.debug(f"Registered view: {view.name} (view_id={view.view_id})")

    def get_table(self, table_id: str) -> Optional[TableMeta]:
        return self._tables.get(table_id)

    def get_fields(self, table_id: str) -> List[FieldMeta]:
        return list(self._fields.get(table_id, ()))

    def get_views(self, table_id: str) -> List[ViewMeta]:
        return list(self._views.get(table_id, ()))

    def tables(self) -> Iterator[TableMeta]:
        """Iterate over all registered tables."""
        yield from self._tables.values()

    def freeze(self) -> str:
        """Freeze the registry and compute fingerprint.

        Returns:
            Metadata fingerprint string

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            self._fingerprint = self._compute_fingerprint()
            self._frozen = True
            logger.info(
                f"Metadata registry frozen with {len(self._tables)} tables, "
                f"fingerprint={self._fingerprint}"
            )
            return self._fingerprint

    def _compute_fingerprint(self) -> str:
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))
        hash_bytes = hashlib.sha256(canonical.encode('utf-8')).hexdigest()
        return f"sha256:{hash_bytes}"

    def to_dict(self) -> dict:
        """Convert registry to dictionary representation.

        Tables are sorted by id; fields and views keep registration order
        because that order is meaningful.
        """
        return {
            "tables": [
                {
                    **self._tables[tid].to_dict(),
                    "fields": [f.to_dict() for f in self._fields[tid]],
                    "views": [v.to_dict() for v in self._views[tid]],
                }
                for tid in sorted(self._tables.keys())
            ],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict) -> MetadataRegistry:
        """Create registry from dictionary representation.

        Fields and views may omit table_id; it defaults to the enclosing table.

        Returns:
            New MetadataRegistry (not frozen)
        """
        registry = cls()
        for table_data in data.get("tables", []):
            table = TableMeta.from_dict(table_data)
            registry.register_table(table)
            for field_data in table_data.get("fields", []):
                registry.register_field(
                    FieldMeta.from_dict({"table_id": table.table_id, **field_data})
                )
            for view_data in table_data.get("views", []):
                registry.register_view(
                    ViewMeta.from_dict({"table_id": table.table_id, **view_data})
                )
        return registry

    @classmethod
    def from_json(cls, json_str: str) -> MetadataRegistry:
        return cls.from_dict(json.loads(json_str))
