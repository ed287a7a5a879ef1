# tests/unit/store/test_store_factory.py — v1
"""Tests for store/store_factory.py."""

from __future__ import annotations

import pytest

from thegrid.config.settings import Settings
from thegrid.store.memory_store import MemoryPipelineStore
from thegrid.store.sqlite_store import SqlitePipelineStore
from thegrid.store.store_factory import create_pipeline_store


class TestCreatePipelineStore:
    def test_default_is_memory(self):
        assert isinstance(create_pipeline_store(), MemoryPipelineStore)

    def test_memory_from_settings(self):
        settings = Settings(_env_file=None, store_backend="memory")
        assert isinstance(create_pipeline_store(settings), MemoryPipelineStore)

    def test_sqlite_from_settings(self, tmp_path):
        settings = Settings(
            _env_file=None, store_backend="sqlite", store_sqlite_path=tmp_path / "g.db"
        )
        store = create_pipeline_store(settings)
        try:
            assert isinstance(store, SqlitePipelineStore)
        finally:
            store.close()

    def test_unsupported_backend(self):
        settings = Settings(_env_file=None).model_copy(update={"store_backend": "redis"})
        with pytest.raises(ValueError, match="Unsupported"):
            create_pipeline_store(settings)
