"""
TableDB record engine - assembly and entry point.

This module wires the engine components together:
- Metadata registry (loaded from TABLEDB_METADATA_FILE when set)
- SQLite storage execution client
- Record service with the configured allocator

Usage:
    python -m dbaas.tabledb_server.main

Running the module provisions the physical tables for every table in the
metadata file and exits. Configuration is entirely via environment
variables; see config.py.

Invariants:
    - All components share the same metadata registry
    - The registry is frozen before the service is handed out
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import json_log_formatter

from .config import EngineConfig
from .meta import MetadataRegistry
from .record import RecordService, create_allocator
from .store import SqliteStore

logger = logging.getLogger(__name__)


def setup_logging(config: EngineConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Engine configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


class Engine:
    """Record engine assembly.

    Attributes:
        config: Engine configuration
        registry: Metadata registry
        store: SQLite storage client
        service: Record service

    Example:
        >>> engine = Engine.from_config(EngineConfig.from_env())
        >>> await engine.provision()
        >>> page = await engine.service.list_records("tblTasks")
    """

    def __init__(
        self,
        config: EngineConfig,
        registry: MetadataRegistry,
        store: SqliteStore,
        service: RecordService,
    ) -> None:
        self.config = config
        self.registry = registry
        self.store = store
        self.service = service

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        registry: MetadataRegistry | None = None,
    ) -> Engine:
        """Build every component from configuration.

        Args:
            config: Engine configuration
            registry: Metadata to use instead of config.metadata_file

        Returns:
            Engine with a frozen registry
        """
        if registry is None:
            if config.metadata_file:
                registry = MetadataRegistry.from_json(
                    Path(config.metadata_file).read_text(encoding="utf-8")
                )
            else:
                registry = MetadataRegistry()
        if not registry.frozen:
            registry.freeze()

        store = SqliteStore(
            data_dir=config.storage.data_dir,
            database_name=config.storage.database_name,
            wal_mode=config.storage.wal_mode,
            busy_timeout_ms=config.storage.busy_timeout_ms,
            cache_size_pages=config.storage.cache_size_pages,
        )
        service = RecordService(
            metadata=registry,
            store=store,
            allocator=create_allocator(config.records.allocator),
            default_take=config.records.default_take,
            max_take=config.records.max_take,
            default_actor=config.records.default_actor,
        )
        return cls(config, registry, store, service)

    async def provision(self) -> int:
        """Create physical tables for every registered table.

        Returns:
            Number of tables provisioned
        """
        count = 0
        for table in self.registry.tables():
            await self.store.provision_table(
                table,
                self.registry.get_fields(table.table_id),
                self.registry.get_views(table.table_id),
            )
            count += 1
        return count


def main() -> None:
    """Main entry point."""
    try:
        config = EngineConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    engine = Engine.from_config(config)
    count = asyncio.run(engine.provision())
    logger.info(
        f"Provisioned {count} table(s)",
        extra={"fingerprint": engine.registry.fingerprint},
    )


if __name__ == "__main__":
    main()
