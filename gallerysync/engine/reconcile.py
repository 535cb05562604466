"""
gallerysync.engine.reconcile — Cache vs. channel diffing
=========================================================

Pure functions, no I/O.  Given the cached items, the channel's current
messages and the ids of approved messages:

* ``keep``         — items whose message still exists and is still approved
* ``remove``       — items whose message vanished or lost approval
* ``new_messages`` — approved image messages with no kept item yet
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from gallerysync.constants import is_image_content_type
from gallerysync.engine.models import GalleryItem


@dataclass(slots=True)
class ReconcilePlan:
    keep: list[GalleryItem] = field(default_factory=list)
    remove: list[GalleryItem] = field(default_factory=list)
    new_messages: list[dict] = field(default_factory=list)


def image_attachments(message: dict) -> list[dict]:
    return [
        att for att in message.get("attachments") or []
        if is_image_content_type(att.get("content_type")) and att.get("id") and att.get("url")
    ]


def reconcile(
    items: Iterable[GalleryItem],
    messages: Iterable[dict],
    approved_ids: Iterable[str],
) -> ReconcilePlan:
    present = {str(m["id"]): m for m in messages}
    approved = set(approved_ids) & present.keys()

    plan = ReconcilePlan()
    for item in items:
        if item.message_id in approved:
            plan.keep.append(item)
        else:
            plan.remove.append(item)

    represented = {item.message_id for item in plan.keep}
    for message_id, message in present.items():
        if message_id in approved and message_id not in represented and image_attachments(message):
            plan.new_messages.append(message)
    return plan


def merge(keep: Iterable[GalleryItem], new_items: Iterable[GalleryItem]) -> list[GalleryItem]:
    """Union of both lists (first occurrence of an id wins), newest first."""
    seen: set[str] = set()
    merged: list[GalleryItem] = []
    for item in [*keep, *new_items]:
        if item.id in seen:
            continue
        seen.add(item.id)
        merged.append(item)
    merged.sort(key=lambda i: i.sort_key, reverse=True)
    return merged
