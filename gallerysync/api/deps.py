"""
gallerysync.api.deps — FastAPI dependency injection
====================================================

The synchronizer and the object store are built once in the app lifespan
and parked on ``app.state``; handlers receive them through these
dependencies (tests override them with fakes).
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from fastapi import Request

from gallerysync.config import GallerySyncConfig, load_config
from gallerysync.services.gallery_service import GallerySynchronizer
from gallerysync.storage.base import ObjectStore


@lru_cache(maxsize=1)
def get_config() -> GallerySyncConfig:
    return load_config(os.getenv("GALLERYSYNC_CONFIG", "config.yaml"))


def build_store(cfg: GallerySyncConfig) -> ObjectStore:
    """Instantiate the object store selected by ``storage.backend``."""
    if cfg.storage_backend == "database":
        from gallerysync.database.engine import create_db_engine, init_db
        from gallerysync.storage.database import DatabaseObjectStore

        engine = create_db_engine()
        init_db(engine)
        return DatabaseObjectStore(engine, cfg.public_base_url, timeout=cfg.storage_timeout)

    if cfg.storage_backend == "local":
        from gallerysync.storage.local import LocalObjectStore

        store = LocalObjectStore(Path(cfg.storage_dir), cfg.public_base_url, timeout=cfg.storage_timeout)
        store.ensure_root()
        return store

    raise ValueError(f"Unknown storage backend: {cfg.storage_backend!r}")


def get_synchronizer(request: Request) -> GallerySynchronizer:
    return request.app.state.synchronizer


def get_store(request: Request) -> ObjectStore:
    return request.app.state.store
