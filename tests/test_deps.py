"""
tests/test_deps.py — Storage backend selection & DB engine
===========================================================
"""

from __future__ import annotations

import pytest
from conftest import make_config, run_async

from gallerysync.api.deps import build_store
from gallerysync.database.engine import create_db_engine, get_session
from gallerysync.database.models import StoredObject
from gallerysync.storage.database import DatabaseObjectStore, read_object
from gallerysync.storage.local import LocalObjectStore


class TestBuildStore:
    def test_local_backend_creates_directory(self, tmp_path):
        cfg = make_config(storage_backend="local", storage_dir=str(tmp_path / "blobs"))
        store = build_store(cfg)
        assert isinstance(store, LocalObjectStore)
        assert (tmp_path / "blobs").is_dir()
        assert store.base_url == cfg.public_base_url

    def test_database_backend(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'blobs.db'}")
        store = build_store(make_config(storage_backend="database"))
        assert isinstance(store, DatabaseObjectStore)
        run_async(store.put("a.png", b"x", "image/png"))
        assert run_async(store.exists("a.png"))

    def test_unknown_backend_raises(self):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            build_store(make_config(storage_backend="s3"))


class TestDatabaseEngine:
    def test_requires_a_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            create_db_engine()

    def test_session_rolls_back_on_error(self, db_engine):
        with pytest.raises(RuntimeError):
            with get_session(db_engine) as session:
                session.add(StoredObject(name="a.png", content_type="image/png", size_bytes=1, data=b"x"))
                session.flush()
                raise RuntimeError("abort")
        assert read_object(db_engine, "a.png") is None

    def test_read_object_is_detached(self, db_engine):
        with get_session(db_engine) as session:
            session.add(StoredObject(name="a.png", content_type="image/png", size_bytes=1, data=b"x"))
        row = read_object(db_engine, "a.png")
        assert row.data == b"x"
        assert row.size_bytes == 1
