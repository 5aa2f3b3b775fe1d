"""
Configuration management for the TableDB record engine.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set an explicit data directory

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .record.allocator import ALLOCATORS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        data_dir: Directory for the SQLite database
        database_name: Database file name inside data_dir
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: How long a writer waits for the write lock
        cache_size_pages: SQLite cache size in pages (negative = KB)
    """

    data_dir: str = "/var/lib/tabledb"
    database_name: str = "tabledb.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    cache_size_pages: int = -64000  # 64MB

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("TABLEDB_DATA_DIR", "/var/lib/tabledb"),
            database_name=os.getenv("TABLEDB_DATABASE", "tabledb.db"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            cache_size_pages=int(os.getenv("SQLITE_CACHE_SIZE", "-64000")),
        )


@dataclass(frozen=True)
class RecordConfig:
    """Record engine behaviour.

    Attributes:
        default_take: Page size when a listing gives none
        max_take: Largest accepted page size
        default_actor: Created-by identity when a caller gives none
        allocator: Auto-number allocator ("max" or "counter")
    """

    default_take: int = 10
    max_take: int = 1000
    default_actor: str = "admin"
    allocator: str = "max"

    @classmethod
    def from_env(cls) -> RecordConfig:
        return cls(
            default_take=int(os.getenv("RECORDS_DEFAULT_TAKE", "10")),
            max_take=int(os.getenv("RECORDS_MAX_TAKE", "1000")),
            default_actor=os.getenv("RECORDS_DEFAULT_ACTOR", "admin"),
            allocator=os.getenv("RECORDS_ALLOCATOR", "max").lower(),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class EngineConfig:
    """Complete engine configuration.

    Attributes:
        storage: Local storage configuration
        records: Record engine configuration
        observability: Logging configuration
        metadata_file: Optional JSON file with table/field/view metadata
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    records: RecordConfig = field(default_factory=RecordConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    metadata_file: str | None = None

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            records=RecordConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
            metadata_file=os.getenv("TABLEDB_METADATA_FILE"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.records.allocator not in ALLOCATORS:
            raise ValueError(
                f"Invalid RECORDS_ALLOCATOR '{self.records.allocator}'. "
                f"Must be one of: {', '.join(sorted(ALLOCATORS))}"
            )
        if self.records.default_take < 1:
            raise ValueError("RECORDS_DEFAULT_TAKE must be >= 1")
        if self.records.max_take < self.records.default_take:
            raise ValueError("RECORDS_MAX_TAKE must be >= RECORDS_DEFAULT_TAKE")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )
        if self.metadata_file and not os.path.exists(self.metadata_file):
            raise ValueError(f"TABLEDB_METADATA_FILE not found: {self.metadata_file}")

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Engine configuration loaded",
            extra={
                "data_dir": self.storage.data_dir,
                "database": self.storage.database_name,
                "wal_mode": self.storage.wal_mode,
                "allocator": self.records.allocator,
                "default_take": self.records.default_take,
                "max_take": self.records.max_take,
                "metadata_file": self.metadata_file,
                "log_level": self.observability.log_level,
            },
        )
