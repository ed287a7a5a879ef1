# src/store/store_factory.py — v1
"""Factory for pipeline store instantiation."""

from __future__ import annotations

from thegrid.config.settings import Settings
from thegrid.store.base_store import BasePipelineStore


def create_pipeline_store(settings: Settings | None = None) -> BasePipelineStore:
    """Instantiate the configured store backend.

    Args:
        settings: Application settings. Defaults to the in-memory backend.

    Returns:
        Configured BasePipelineStore implementation.
    """
    backend = "memory" if settings is None else settings.store_backend

    if backend == "memory":
        from thegrid.store.memory_store import MemoryPipelineStore
        return MemoryPipelineStore()

    if backend == "sqlite":
        from thegrid.store.sqlite_store import SqlitePipelineStore
        if settings is None or settings.store_sqlite_path is None:
            raise ValueError("STORE_SQLITE_PATH must be set when STORE_BACKEND=sqlite")
        return SqlitePipelineStore(db_path=settings.store_sqlite_path)

    raise ValueError(f"Unsupported store backend: {backend!r}")
