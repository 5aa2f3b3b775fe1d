"""
Unit tests for environment configuration.

Tests cover:
- Defaults
- Environment overrides
- Validation failures
"""

import json

import pytest

from dbaas.tabledb_server.config import EngineConfig, RecordConfig, StorageConfig
from dbaas.tabledb_server.main import Engine
from dbaas.tabledb_server.record import CounterTableAllocator


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_defaults(self, monkeypatch, tmp_path):
        for name in ("TABLEDB_METADATA_FILE", "RECORDS_DEFAULT_TAKE", "RECORDS_ALLOCATOR"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("TABLEDB_DATA_DIR", str(tmp_path))

        config = EngineConfig.from_env()

        assert config.records.default_take == 10
        assert config.records.default_actor == "admin"
        assert config.records.allocator == "max"
        assert config.storage.wal_mode is True
        assert config.metadata_file is None

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TABLEDB_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("RECORDS_DEFAULT_TAKE", "25")
        monkeypatch.setenv("RECORDS_ALLOCATOR", "Counter")
        monkeypatch.setenv("SQLITE_WAL_MODE", "false")

        config = EngineConfig.from_env()

        assert config.storage.data_dir == str(tmp_path)
        assert config.storage.wal_mode is False
        assert config.records.default_take == 25
        assert config.records.allocator == "counter"

    def test_unknown_allocator(self):
        config = EngineConfig(records=RecordConfig(allocator="uuid"))

        with pytest.raises(ValueError, match="RECORDS_ALLOCATOR"):
            config.validate()

    def test_max_take_below_default(self):
        config = EngineConfig(records=RecordConfig(default_take=50, max_take=20))

        with pytest.raises(ValueError, match="RECORDS_MAX_TAKE"):
            config.validate()

    def test_missing_metadata_file(self, tmp_path):
        config = EngineConfig(metadata_file=str(tmp_path / "nope.json"))

        with pytest.raises(ValueError, match="TABLEDB_METADATA_FILE"):
            config.validate()


class TestEngine:
    """Tests for Engine assembly."""

    @pytest.mark.asyncio
    async def test_from_metadata_file(self, tmp_path):
        metadata = tmp_path / "metadata.json"
        metadata.write_text(
            json.dumps(
                {
                    "tables": [
                        {
                            "table_id": "tblNotes",
                            "db_table_name": "notes",
                            "fields": [{"field_id": "fldBody", "db_field_name": "body"}],
                            "views": [{"view_id": "viwAll"}],
                        }
                    ]
                }
            )
        )
        config = EngineConfig(
            storage=StorageConfig(data_dir=str(tmp_path / "data"), wal_mode=False),
            records=RecordConfig(allocator="counter"),
            metadata_file=str(metadata),
        )

        engine = Engine.from_config(config)
        provisioned = await engine.provision()

        assert provisioned == 1
        assert engine.registry.frozen
        assert isinstance(engine.service.allocator, CounterTableAllocator)
        assert await engine.store.table_exists("notes")
