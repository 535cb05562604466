"""
gallerysync.services.asset_service — Asset lifecycle
=====================================================

Moves images from the Discord CDN into the object store and keeps the
store honest:

* **store** — download (validated, retried), upload under a
  collision-resistant name, confirm the object exists, build the
  :class:`GalleryItem`.
* **audit** — existence-check every cached asset; re-fetch missing ones
  from their source message, drop those that cannot be repaired.
* **sweep** — delete stored objects no gallery item references.
* **delete** — best-effort removal; failures are logged, never raised.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import secrets
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import httpx

from gallerysync.constants import (
    file_extension,
    generate_title,
    is_image_content_type,
    sanitize_filename,
)
from gallerysync.engine.models import GalleryItem, make_item_id
from gallerysync.engine.reconcile import image_attachments
from gallerysync.engine.retry import BatchRunner, RetryPolicy, Sleep
from gallerysync.storage.base import ObjectStore, StorageError

logger = logging.getLogger(__name__)

MessageFetcher = Callable[[str], Awaitable[dict | None]]


class AssetError(Exception):
    """An attachment could not be mirrored."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


@dataclass(slots=True)
class AuditReport:
    items: list[GalleryItem] = field(default_factory=list)
    repaired: int = 0
    dropped: int = 0


def build_object_name(
    message_id: str,
    attachment_id: str,
    filename: str,
    *,
    now: float | None = None,
    token: str | None = None,
) -> str:
    """``{ms}_{token}_{message}_{attachment}{ext}``, restricted to safe characters.

    The millisecond timestamp plus a random token keep two downloads of
    the same attachment from ever sharing a name.
    """
    millis = int((time.time() if now is None else now) * 1000)
    token = token or secrets.token_hex(4)
    return sanitize_filename(f"{millis}_{token}_{message_id}_{attachment_id}{file_extension(filename)}")


def author_name(message: dict) -> str:
    author = message.get("author") or {}
    return author.get("global_name") or author.get("username") or "unknown"


class AssetService:
    def __init__(
        self,
        store: ObjectStore,
        http: httpx.AsyncClient,
        *,
        download_timeout: float = 15.0,
        retry: RetryPolicy | None = None,
        runner: BatchRunner | None = None,
        audit_runner: BatchRunner | None = None,
        untitled_label: str = "Untitled",
        alt_template: str = "Photo by {author}",
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.store = store
        self._http = http
        self.download_timeout = download_timeout
        self.retry = retry or RetryPolicy()
        self.runner = runner or BatchRunner()
        # Existence checks only touch the store: no pause between batches.
        self.audit_runner = audit_runner or BatchRunner(self.runner.batch_size, pause=0)
        self.untitled_label = untitled_label
        self.alt_template = alt_template
        self._sleep = sleep

    # -------------------------------------------------------------------
    # Download + upload
    # -------------------------------------------------------------------
    async def _download_once(self, url: str) -> tuple[bytes, str]:
        try:
            resp = await self._http.get(url, timeout=self.download_timeout, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise AssetError(f"GET {url} failed: {exc!r}", transient=True) from exc

        status = resp.status_code
        if status != 200:
            raise AssetError(f"GET {url} → HTTP {status}", transient=status == 429 or status >= 500)

        content_type = resp.headers.get("content-type", "")
        if not is_image_content_type(content_type):
            raise AssetError(f"GET {url} returned non-image content type {content_type!r}")
        if not resp.content:
            raise AssetError(f"GET {url} returned an empty body")
        return resp.content, content_type.split(";", 1)[0].strip()

    async def download(self, url: str) -> tuple[bytes, str]:
        """Fetch an image; transient failures are retried with backoff."""
        return await self.retry.run(
            self._download_once,
            url,
            retry_if=lambda exc: isinstance(exc, AssetError) and exc.transient,
            sleep=self._sleep,
        )

    def build_item(self, message: dict, attachment: dict, src: str) -> GalleryItem:
        author = author_name(message)
        filename = attachment.get("filename") or ""
        return GalleryItem(
            id=make_item_id(str(message["id"]), str(attachment["id"])),
            message_id=str(message["id"]),
            attachment_id=str(attachment["id"]),
            src=src,
            alt=self.alt_template.format(author=author),
            title=generate_title(message.get("content") or "", filename, self.untitled_label),
            author=author,
            timestamp=message.get("timestamp") or "",
            filename=filename,
            width=attachment.get("width"),
            height=attachment.get("height"),
        )

    async def upload(self, message: dict, attachment: dict) -> str:
        """Download the attachment and store it; returns the confirmed URL."""
        data, content_type = await self.download(attachment["url"])
        name = build_object_name(
            str(message["id"]), str(attachment["id"]), attachment.get("filename") or "",
        )
        try:
            blob = await self.store.put(name, data, content_type)
            confirmed = await self.store.exists(name)
        except StorageError as exc:
            raise AssetError(f"Upload of {name} failed: {exc}") from exc
        if not confirmed:
            raise AssetError(f"Upload of {name} could not be confirmed")
        return blob.url

    async def store_attachment(self, message: dict, attachment: dict) -> GalleryItem:
        src = await self.upload(message, attachment)
        item = self.build_item(message, attachment, src)
        logger.info("New image stored: %s by %s", item.title, item.author)
        return item

    async def store_message(self, message: dict) -> tuple[list[GalleryItem], int]:
        """Mirror every image attachment of *message*.

        Returns ``(items, failures)``; one failed attachment never stops
        the others.
        """
        items: list[GalleryItem] = []
        failures = 0
        for attachment in image_attachments(message):
            try:
                items.append(await self.store_attachment(message, attachment))
            except AssetError as exc:
                failures += 1
                logger.error("Skipping attachment %s of message %s: %s", attachment.get("id"), message.get("id"), exc)
        return items, failures

    # -------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------
    async def delete(self, url: str) -> bool:
        try:
            removed = await self.store.delete(url)
        except StorageError:
            logger.exception("Failed to delete stored asset %s", url)
            return False
        if removed:
            logger.info("Stored asset deleted: %s", url)
        return removed

    async def delete_many(self, urls: list[str]) -> int:
        outcomes = await self.runner.run(urls, self.delete)
        return sum(1 for o in outcomes if o.ok and o.value)

    # -------------------------------------------------------------------
    # Audit / repair
    # -------------------------------------------------------------------
    async def _is_present(self, item: GalleryItem) -> bool:
        return await self.store.exists_url(item.src)

    async def audit(self, items: list[GalleryItem], fetch_message: MessageFetcher) -> AuditReport:
        """Verify every item's asset and repair or drop the missing ones.

        An item whose existence check itself fails is kept; only assets
        known to be missing are repaired.
        """
        report = AuditReport()
        checks = await self.audit_runner.run(items, self._is_present)

        missing: list[GalleryItem] = []
        for outcome in checks:
            if not outcome.ok:
                logger.warning("Existence check failed for %s: %s", outcome.item.src, outcome.error)
                report.items.append(outcome.item)
            elif outcome.value:
                report.items.append(outcome.item)
            else:
                missing.append(outcome.item)

        messages: dict[str, dict | None] = {}
        for item in missing:
            repaired = await self._repair(item, fetch_message, messages)
            if repaired is None:
                report.dropped += 1
                logger.warning("Dropping unrepairable gallery item %s (%s)", item.id, item.src)
            else:
                report.repaired += 1
                report.items.append(repaired)

        if missing:
            logger.info("Asset audit: %d missing, %d repaired, %d dropped", len(missing), report.repaired, report.dropped)
        return report

    async def _repair(
        self,
        item: GalleryItem,
        fetch_message: MessageFetcher,
        messages: dict[str, dict | None],
    ) -> GalleryItem | None:
        if item.message_id not in messages:
            try:
                messages[item.message_id] = await fetch_message(item.message_id)
            except Exception:
                logger.exception("Could not fetch message %s for repair", item.message_id)
                messages[item.message_id] = None
        message = messages[item.message_id]
        if message is None:
            return None

        attachment = find_source_attachment(item, message)
        if attachment is None:
            return None
        try:
            src = await self.upload(message, attachment)
        except AssetError as exc:
            logger.error("Repair of %s failed: %s", item.id, exc)
            return None
        logger.info("Repaired missing asset for %s", item.id)
        return dataclasses.replace(item, src=src, attachment_id=str(attachment["id"]))

    # -------------------------------------------------------------------
    # Orphan sweep
    # -------------------------------------------------------------------
    async def sweep_orphans(self, items: list[GalleryItem], cache_key: str, limit: int = 10000) -> int:
        """Delete stored objects not referenced by *items* (never *cache_key*)."""
        try:
            blobs = await self.store.list_objects(limit=limit)
        except StorageError:
            logger.exception("Orphan sweep skipped: listing the store failed")
            return 0

        referenced = {self.store.name_for(item.src) for item in items}
        orphans = [
            blob.url for blob in blobs
            if blob.name != cache_key and blob.name not in referenced
        ]
        if not orphans:
            return 0
        deleted = await self.delete_many(orphans)
        logger.info("Orphan sweep: %d/%d unreferenced objects deleted", deleted, len(orphans))
        return deleted


def find_source_attachment(item: GalleryItem, message: dict) -> dict | None:
    """Locate the attachment an item was created from.

    Matches on the stored attachment id; filename matching is a fallback
    for items written before attachment ids were recorded.
    """
    attachments = image_attachments(message)
    if item.attachment_id:
        for att in attachments:
            if str(att["id"]) == item.attachment_id:
                return att
    if item.filename:
        matches = [att for att in attachments if att.get("filename") == item.filename]
        if len(matches) == 1:
            return matches[0]
    return None
