"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================

Uses the FastAPI TestClient with ``app.dependency_overrides`` so the
lifespan (Discord, storage backends, timer) never runs.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import CROWN, PNG, MemoryObjectStore, make_message
from fastapi.testclient import TestClient

from gallerysync.api.deps import get_store, get_synchronizer
from gallerysync.api.main import app
from gallerysync.engine.models import GalleryItem, SyncResult, SyncStats
from gallerysync.storage.base import StorageError


@pytest.fixture
def fake_sync():
    sync = MagicMock()
    sync.sync = AsyncMock(return_value=SyncResult(
        success=True,
        items=[GalleryItem(id="1_10", message_id="1", attachment_id="10", src="https://cdn.test/a.png")],
        from_cache=True,
        stats=SyncStats(skipped_reason="fresh"),
    ))
    sync.handle_event = MagicMock(return_value=True)
    return sync


@pytest.fixture
def blob_store():
    return MemoryObjectStore()


@pytest.fixture
def client(fake_sync, blob_store):
    app.dependency_overrides[get_synchronizer] = lambda: fake_sync
    app.dependency_overrides[get_store] = lambda: blob_store
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# GET /api/gallery
# ===========================================================================
class TestGetGallery:
    def test_returns_images(self, client, fake_sync):
        resp = client.get("/api/gallery")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["totalCount"] == 1
        assert body["fromCache"] is True
        assert body["images"][0]["messageId"] == "1"
        assert body["stats"]["skipped_reason"] == "fresh"
        fake_sync.sync.assert_awaited_once_with(force=False, validate=False)

    def test_passes_force_and_validate(self, client, fake_sync):
        client.get("/api/gallery?force=true&validate=1")
        fake_sync.sync.assert_awaited_once_with(force=True, validate=True)

    def test_degraded_result_still_200(self, client, fake_sync):
        fake_sync.sync.return_value = SyncResult(
            success=False, items=[], from_cache=True, error="Missing required settings: guild_id",
        )
        resp = client.get("/api/gallery")
        assert resp.status_code == 200
        assert resp.json()["error"].startswith("Missing required settings")

    def test_with_real_synchronizer(self, discord, synchronizer, blob_store):
        discord.post(make_message("1"), approvers=["mod"])
        app.dependency_overrides[get_synchronizer] = lambda: synchronizer
        try:
            resp = TestClient(app).get("/api/gallery")
        finally:
            app.dependency_overrides.clear()
        body = resp.json()
        assert body["success"] is True
        assert body["fromCache"] is False
        assert [img["id"] for img in body["images"]] == ["1_10"]


# ===========================================================================
# POST /api/gallery (webhook)
# ===========================================================================
class TestWebhook:
    EVENT = {
        "t": "MESSAGE_REACTION_ADD",
        "d": {"channel_id": "900", "message_id": "1", "user_id": "7",
              "emoji": {"id": None, "name": CROWN}},
    }

    def test_relevant_event_schedules_forced_resync(self, client, fake_sync):
        resp = client.post("/api/gallery", json=self.EVENT)
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        fake_sync.handle_event.assert_called_once_with(self.EVENT)
        fake_sync.sync.assert_awaited_once_with(force=True)

    def test_irrelevant_event_does_not_resync(self, client, fake_sync):
        fake_sync.handle_event.return_value = False
        resp = client.post("/api/gallery", json={"t": "TYPING_START", "d": {}})
        assert resp.json() == {"success": True}
        fake_sync.sync.assert_not_awaited()

    def test_invalid_json_is_acknowledged(self, client, fake_sync):
        resp = client.post("/api/gallery", content=b"{not json",
                           headers={"content-type": "application/json"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        fake_sync.handle_event.assert_not_called()

    def test_non_event_body_is_acknowledged(self, client, fake_sync):
        resp = client.post("/api/gallery", json=["not", "an", "event"])
        assert resp.json() == {"success": True}
        fake_sync.handle_event.assert_not_called()

    def test_handler_error_is_acknowledged(self, client, fake_sync):
        fake_sync.handle_event.side_effect = RuntimeError("boom")
        resp = client.post("/api/gallery", json=self.EVENT)
        assert resp.status_code == 200
        assert resp.json() == {"success": True}


# ===========================================================================
# GET /api/blobs/{name}
# ===========================================================================
class TestBlobs:
    def test_serves_image_with_immutable_cache(self, client, blob_store):
        blob_store.objects["a.png"] = (PNG, "image/png")
        resp = client.get("/api/blobs/a.png")
        assert resp.status_code == 200
        assert resp.content == PNG
        assert resp.headers["content-type"] == "image/png"
        assert "immutable" in resp.headers["cache-control"]

    def test_snapshot_is_not_cached(self, client, blob_store):
        blob_store.objects["gallery.json"] = (b"{}", "application/json")
        resp = client.get("/api/blobs/gallery.json")
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-cache"

    def test_missing_blob_is_404(self, client):
        assert client.get("/api/blobs/nope.png").status_code == 404

    def test_storage_error_is_404(self, client, blob_store):
        blob_store.get = AsyncMock(side_effect=StorageError("down"))
        assert client.get("/api/blobs/a.png").status_code == 404
