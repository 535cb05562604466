"""
gallerysync.api.routes.gallery — Gallery endpoints
===================================================

* ``GET  /gallery``         — current approved images (syncs as needed)
* ``POST /gallery``         — gateway webhook; always ``{"success": true}``
* ``GET  /blobs/{name}``    — serve a stored image
"""

from __future__ import annotations

import logging
import mimetypes
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, ValidationError

from gallerysync.api.deps import get_store, get_synchronizer
from gallerysync.services.gallery_service import GallerySynchronizer
from gallerysync.storage.base import ObjectStore, StorageError

router = APIRouter(tags=["gallery"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class GatewayEvent(BaseModel):
    """Gateway-shaped webhook body: event type plus raw event data."""
    t: str | None = None
    d: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.get("/gallery")
async def get_gallery(
    force: bool = Query(False),
    validate: bool = Query(False),
    synchronizer: GallerySynchronizer = Depends(get_synchronizer),
):
    """Return the approved images, syncing with Discord if the cache is stale."""
    result = await synchronizer.sync(force=force, validate=validate)
    return result.to_response()


async def _resync(synchronizer: GallerySynchronizer) -> None:
    result = await synchronizer.sync(force=True)
    if result.error:
        logger.warning("Webhook-triggered resync degraded: %s", result.error)


@router.post("/gallery")
async def gallery_webhook(
    request: Request,
    background: BackgroundTasks,
    synchronizer: GallerySynchronizer = Depends(get_synchronizer),
):
    """Accept a ``{"t": ..., "d": ...}`` gateway event and schedule a resync."""
    try:
        body = await request.json()
    except ValueError:
        logger.warning("Ignoring webhook with invalid JSON body")
        return {"success": True}

    try:
        event = GatewayEvent.model_validate(body)
    except ValidationError:
        logger.warning("Ignoring webhook body that is not a gateway event")
        return {"success": True}

    try:
        if synchronizer.handle_event(event.model_dump()):
            background.add_task(_resync, synchronizer)
    except Exception:
        logger.exception("Webhook processing failed")
    return {"success": True}


@router.get("/blobs/{name}")
async def get_blob(name: str, store: ObjectStore = Depends(get_store)):
    """Serve a stored object (images and the gallery snapshot)."""
    try:
        data = await store.get(name)
    except StorageError as exc:
        logger.warning("Blob %s unavailable: %s", name, exc)
        raise HTTPException(404, "Not found") from exc
    if data is None:
        raise HTTPException(404, "Not found")
    media_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
    return Response(
        content=data,
        media_type=media_type,
        headers={"Cache-Control": "public, max-age=31536000, immutable"}
        if not name.endswith(".json") else {"Cache-Control": "no-cache"},
    )
