"""
gallerysync.engine.state — Snapshot Loader/Saver
=================================================

The gallery snapshot is one JSON document at a well-known object-store
key (``gallery.json`` by default).  It is always written as a full
overwrite; there are no partial or append updates.

Schema history:

* **v1** — bare JSON list of items (what the first website release wrote).
* **v2** — ``{"version", "items", "lastFullSync", "lastQuickCheck",
  "lastAssetAudit", "messageIds"}``.

:func:`upgrade_document` runs once at load time, so the rest of the
code only ever sees the current in-memory shape.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from gallerysync.constants import CACHE_CONTENT_TYPE, SCHEMA_VERSION
from gallerysync.engine.models import GalleryItem, SyncState
from gallerysync.storage.base import ObjectStore, StorageError

logger = logging.getLogger(__name__)


def upgrade_document(raw: Any) -> dict[str, Any]:
    """Bring a stored document of any known version up to the current one."""
    if isinstance(raw, list):
        items = [entry for entry in raw if isinstance(entry, dict)]
        logger.info("Upgrading legacy gallery snapshot (%d items) to v%d", len(items), SCHEMA_VERSION)
        # Legacy snapshots have no poll bookkeeping; seed the id set from the
        # items so the next quick check compares against something sensible.
        return {
            "version": SCHEMA_VERSION,
            "items": items,
            "lastFullSync": 0,
            "lastQuickCheck": 0,
            "lastAssetAudit": 0,
            "messageIds": sorted({str(e["messageId"]) for e in items if e.get("messageId")}),
        }
    if isinstance(raw, dict):
        version = raw.get("version", SCHEMA_VERSION)
        if isinstance(version, int) and version > SCHEMA_VERSION:
            logger.warning(
                "Gallery snapshot has newer schema v%s (this build knows v%d); "
                "unknown fields are ignored",
                version, SCHEMA_VERSION,
            )
        return raw
    raise ValueError(f"Unrecognized gallery snapshot shape: {type(raw).__name__}")


def state_from_document(doc: dict[str, Any]) -> SyncState:
    items: list[GalleryItem] = []
    for entry in doc.get("items") or []:
        item = GalleryItem.from_dict(entry)
        if item is None:
            logger.warning("Dropping malformed gallery entry: %r", entry)
            continue
        items.append(item)

    return SyncState(
        items=items,
        last_full_sync=_as_float(doc.get("lastFullSync")),
        last_quick_check=_as_float(doc.get("lastQuickCheck")),
        last_asset_audit=_as_float(doc.get("lastAssetAudit")),
        message_ids=frozenset(str(m) for m in doc.get("messageIds") or []),
        version=SCHEMA_VERSION,
    )


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


class StateStore:
    """Owns the persisted snapshot and its in-memory copy.

    ``current`` is only replaced after a confirmed write, so a failed save
    leaves the previous (stale but consistent) snapshot in place.
    """

    def __init__(self, store: ObjectStore, cache_key: str) -> None:
        self._store = store
        self.cache_key = cache_key
        self.current: SyncState | None = None

    def invalidate(self) -> None:
        """Forget the in-memory snapshot; the next read reloads it."""
        self.current = None

    async def get(self) -> SyncState:
        """Return the in-memory snapshot, loading it on first use."""
        if self.current is None:
            self.current = await self.load()
        return self.current

    async def load(self) -> SyncState:
        """Read the persisted snapshot.

        Absent document → empty, zero-timestamped state.  Corrupt JSON is
        logged and also treated as empty.  Storage failures propagate.
        """
        raw_bytes = await self._store.get(self.cache_key)
        if raw_bytes is None:
            logger.info("No gallery snapshot at %s — starting empty", self.cache_key)
            return SyncState()
        try:
            doc = upgrade_document(json.loads(raw_bytes))
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as exc:
            logger.warning("Unreadable gallery snapshot %s: %s — starting empty", self.cache_key, exc)
            return SyncState()
        state = state_from_document(doc)
        logger.debug("Loaded gallery snapshot: %d items", len(state.items))
        return state

    async def save(self, state: SyncState) -> bool:
        """Persist *state*; True on a confirmed write."""
        valid = [item for item in state.items if item.id and item.message_id and item.src]
        if len(valid) != len(state.items):
            logger.warning("Filtered %d invalid items before save", len(state.items) - len(valid))
        to_write = state.copy(items=valid, version=SCHEMA_VERSION)

        payload = json.dumps(to_write.to_document(), ensure_ascii=False, indent=2).encode("utf-8")
        try:
            await self._store.put(self.cache_key, payload, CACHE_CONTENT_TYPE)
        except StorageError:
            logger.exception("Failed to save gallery snapshot %s", self.cache_key)
            return False

        self.current = to_write
        logger.debug("Gallery snapshot saved: %d items", len(valid))
        return True
