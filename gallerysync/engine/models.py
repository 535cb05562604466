"""
gallerysync.engine.models — Gallery data model
===============================================

``GalleryItem`` is one mirrored attachment, ``SyncState`` is the persisted
snapshot, ``SyncResult`` is what every sync call hands back to the caller.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from gallerysync.constants import SCHEMA_VERSION

__all__ = [
    "GalleryItem",
    "SyncResult",
    "SyncState",
    "SyncStats",
    "make_item_id",
    "parse_timestamp",
]


def make_item_id(message_id: str, attachment_id: str) -> str:
    return f"{message_id}_{attachment_id}"


def parse_timestamp(value: str) -> float:
    """Parse a Discord ISO-8601 timestamp into epoch seconds (0.0 if invalid)."""
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except (AttributeError, ValueError):
        return 0.0


# ---------------------------------------------------------------------------
# GalleryItem
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GalleryItem:
    """One approved image, identified by ``"{message_id}_{attachment_id}"``."""

    id: str
    message_id: str
    src: str
    attachment_id: str = ""
    alt: str = ""
    title: str = ""
    author: str = ""
    timestamp: str = ""
    filename: str = ""
    width: int | None = None
    height: int | None = None

    @property
    def sort_key(self) -> tuple[float, str]:
        return (parse_timestamp(self.timestamp), self.id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the camelCase keys the website reads."""
        data: dict[str, Any] = {
            "id": self.id,
            "messageId": self.message_id,
            "attachmentId": self.attachment_id,
            "src": self.src,
            "alt": self.alt,
            "title": self.title,
            "author": self.author,
            "timestamp": self.timestamp,
            "filename": self.filename,
        }
        if self.width is not None:
            data["width"] = self.width
        if self.height is not None:
            data["height"] = self.height
        return data

    @classmethod
    def from_dict(cls, raw: Any) -> GalleryItem | None:
        """Build an item from a stored entry; ``None`` if it is malformed.

        Entries without an id, owning message id or stored URL are rejected.
        Legacy entries have no ``attachmentId``; it is recovered from the
        ``{message_id}_{attachment_id}`` item id.
        """
        if not isinstance(raw, dict):
            return None
        item_id = raw.get("id")
        message_id = raw.get("messageId")
        src = raw.get("src")
        if not item_id or not message_id or not src:
            return None

        attachment_id = raw.get("attachmentId") or ""
        prefix = f"{message_id}_"
        if not attachment_id and str(item_id).startswith(prefix):
            attachment_id = str(item_id)[len(prefix):]

        return cls(
            id=str(item_id),
            message_id=str(message_id),
            src=str(src),
            attachment_id=str(attachment_id),
            alt=str(raw.get("alt") or ""),
            title=str(raw.get("title") or ""),
            author=str(raw.get("author") or ""),
            timestamp=str(raw.get("timestamp") or ""),
            filename=str(raw.get("filename") or ""),
            width=_optional_int(raw.get("width")),
            height=_optional_int(raw.get("height")),
        )


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# SyncState — the persisted snapshot
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class SyncState:
    """Items newest-first plus the clocks and message ids of the last poll."""

    items: list[GalleryItem] = field(default_factory=list)
    last_full_sync: float = 0.0
    last_quick_check: float = 0.0
    last_asset_audit: float = 0.0
    message_ids: frozenset[str] = frozenset()
    version: int = SCHEMA_VERSION

    def copy(self, **changes: Any) -> SyncState:
        values = {
            "items": list(self.items),
            "last_full_sync": self.last_full_sync,
            "last_quick_check": self.last_quick_check,
            "last_asset_audit": self.last_asset_audit,
            "message_ids": self.message_ids,
            "version": self.version,
        }
        values.update(changes)
        return SyncState(**values)

    def to_document(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "items": [item.to_dict() for item in self.items],
            "lastFullSync": self.last_full_sync,
            "lastQuickCheck": self.last_quick_check,
            "lastAssetAudit": self.last_asset_audit,
            "messageIds": sorted(self.message_ids),
        }


# ---------------------------------------------------------------------------
# Per-run bookkeeping
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class SyncStats:
    """Counters describing what one sync invocation did."""

    path: str = "skip"  # skip | quick-check | full-sync | error
    audited: bool = False
    added: int = 0
    removed: int = 0
    failed: int = 0
    repaired: int = 0
    dropped: int = 0
    orphans_deleted: int = 0
    approval_lookups: int = 0
    skipped_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class SyncResult:
    success: bool
    items: list[GalleryItem]
    from_cache: bool
    stats: SyncStats | None = None
    error: str | None = None

    def to_response(self) -> dict[str, Any]:
        """Render the JSON body returned by ``GET /api/gallery``."""
        body: dict[str, Any] = {
            "success": self.success,
            "images": [item.to_dict() for item in self.items],
            "totalCount": len(self.items),
            "fromCache": self.from_cache,
        }
        if self.stats is not None:
            body["stats"] = self.stats.to_dict()
        if self.error is not None:
            body["error"] = self.error
        return body
