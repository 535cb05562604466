"""
gallerysync.services.gallery_service — Gallery Synchronizer
============================================================

One :class:`GallerySynchronizer` per process owns the snapshot, the role
cache and the sync lock.  Request handlers and the background timer call
:meth:`GallerySynchronizer.sync`; the webhook calls
:meth:`GallerySynchronizer.handle_event`.

How a sync call proceeds:

    1. Load the snapshot (in-memory copy, else the stored document).
    2. Check the clocks (audit → poll → force).  Nothing due → return cache.
    3. Take the lock.  Already held → return cache.
    4. Audit stored assets if due (repair or drop missing ones).
    5. List channel messages and diff the id set.  Unchanged and no full
       sync due → bump the poll clock only (quick check).
    6. Otherwise resolve approvals, delete removed assets, mirror new
       ones, and rebuild the item list (full sync).
    7. Persist the full document; after an audit, sweep orphans.

``sync`` never raises: any failure yields the last good snapshot with
``success=False`` and an ``error`` message.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from gallerysync.config import GallerySyncConfig
from gallerysync.engine.approval import ApprovalResolver, RoleApprovalCache
from gallerysync.engine.freshness import Decision, FreshnessPolicy
from gallerysync.engine.lock import ProcessingLock
from gallerysync.engine.models import GalleryItem, SyncResult, SyncState, SyncStats
from gallerysync.engine.reconcile import image_attachments, merge, reconcile
from gallerysync.engine.retry import BatchRunner, RetryPolicy
from gallerysync.engine.state import StateStore
from gallerysync.services.asset_service import AssetService
from gallerysync.services.discord_api import DiscordAPIError, DiscordClient
from gallerysync.storage.base import ObjectStore

logger = logging.getLogger(__name__)

REACTION_EVENTS = frozenset({"MESSAGE_REACTION_ADD", "MESSAGE_REACTION_REMOVE"})
MESSAGE_EVENTS = frozenset({"MESSAGE_DELETE", "MESSAGE_CREATE"})


class ConfigurationError(Exception):
    """Required settings are missing; no sync can run."""


class GallerySynchronizer:
    def __init__(
        self,
        cfg: GallerySyncConfig,
        client: DiscordClient,
        store: ObjectStore,
        assets: AssetService,
        *,
        runner: BatchRunner | None = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cfg = cfg
        self.client = client
        self.store = store
        self.assets = assets
        self.state = StateStore(store, cfg.cache_key)
        self.policy = FreshnessPolicy(
            poll_ttl=cfg.poll_ttl,
            full_sync_ttl=cfg.full_sync_ttl,
            audit_ttl=cfg.audit_ttl,
        )
        self.lock = ProcessingLock(cfg.lock_max_duration, clock=monotonic)
        self.role_cache = RoleApprovalCache(cfg.role_cache_ttl, clock=monotonic)
        self.resolver = ApprovalResolver(
            client,
            self.role_cache,
            guild_id=cfg.guild_id,
            channel_id=cfg.channel_id,
            emoji=cfg.approval_emoji,
            approved_role_ids=cfg.approved_role_ids,
        )
        self.runner = runner or BatchRunner(cfg.batch_size, cfg.batch_pause)
        self._clock = clock
        # Set by the webhook; makes the next sync take the full path.
        self._dirty = False
        self._timer_task: asyncio.Task | None = None

    @classmethod
    def from_config(
        cls,
        cfg: GallerySyncConfig,
        http: httpx.AsyncClient,
        store: ObjectStore,
    ) -> GallerySynchronizer:
        """Wire the Discord client, asset service and batch runner from *cfg*."""
        runner = BatchRunner(cfg.batch_size, cfg.batch_pause)
        client = DiscordClient(cfg.bot_token, http, timeout=cfg.discord_timeout)
        assets = AssetService(
            store,
            http,
            download_timeout=cfg.download_timeout,
            retry=RetryPolicy(
                max_attempts=max(2, cfg.download_max_attempts),
                base_delay=cfg.download_base_delay,
                max_delay=cfg.download_max_delay,
            ),
            runner=runner,
            untitled_label=cfg.untitled_label,
            alt_template=cfg.alt_template,
        )
        return cls(cfg, client, store, assets, runner=runner)

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------
    async def sync(self, *, force: bool = False, validate: bool = False) -> SyncResult:
        """Bring the snapshot up to date as far as the clocks require."""
        stats = SyncStats()
        try:
            missing = self.cfg.missing_settings()
            if missing:
                raise ConfigurationError("Missing required settings: " + ", ".join(missing))
            return await self._sync(force or self._dirty, validate, stats)
        except Exception as exc:
            logger.exception("Gallery sync failed")
            stats.path = "error"
            return SyncResult(
                success=False,
                items=await self._fallback_items(),
                from_cache=True,
                stats=stats,
                error=str(exc) or type(exc).__name__,
            )

    async def _fallback_items(self) -> list[GalleryItem]:
        if self.state.current is not None:
            return list(self.state.current.items)
        try:
            return list((await self.state.get()).items)
        except Exception:
            logger.exception("Could not load gallery snapshot for fallback")
            return []

    async def _sync(self, force: bool, validate: bool, stats: SyncStats) -> SyncResult:
        state = await self.state.get()
        now = self._clock()
        decision = self.policy.decide(state, now, force=force, validate=validate)

        if decision.idle:
            stats.skipped_reason = "fresh"
            return SyncResult(success=True, items=list(state.items), from_cache=True, stats=stats)

        token = self.lock.try_acquire()
        if token is None:
            logger.info("Sync already in progress — serving cached gallery")
            stats.skipped_reason = "sync_in_progress"
            return SyncResult(success=True, items=list(state.items), from_cache=True, stats=stats)

        try:
            return await self._run_locked(state, now, decision, stats)
        finally:
            self.lock.release(token)

    async def _run_locked(
        self,
        state: SyncState,
        now: float,
        decision: Decision,
        stats: SyncStats,
    ) -> SyncResult:
        if decision.audit:
            state = await self._audit(state, now, stats)
            stats.path = "audit"

        from_cache = True
        error: str | None = None

        if decision.poll:
            try:
                messages: list[dict] | None = await self.client.list_messages(
                    self.cfg.channel_id, self.cfg.message_limit,
                )
            except DiscordAPIError as exc:
                logger.warning("Message list unavailable: %s", exc)
                messages = None

            if messages is None or (not messages and state.items):
                return await self._serve_outage(state, decision, stats)

            current_ids = frozenset(str(m["id"]) for m in messages)
            changed = current_ids ^ state.message_ids
            if not changed and not decision.full:
                stats.path = "quick-check"
                state = state.copy(last_quick_check=now)
            else:
                logger.info(
                    "Full sync (%s): %d messages, %d id changes",
                    "forced" if decision.full else "ids changed", len(current_ids), len(changed),
                )
                self._dirty = False
                try:
                    state = await self._full_sync(state, messages, current_ids, now, stats)
                except BaseException:
                    self._dirty = True
                    raise
                from_cache = False

        saved = await self.state.save(state)
        if not saved:
            error = "Failed to persist gallery snapshot"
        elif decision.audit:
            stats.orphans_deleted = await self.assets.sweep_orphans(state.items, self.cfg.cache_key)

        logger.info(
            "Gallery sync %s: %d items (+%d −%d, %d failed, %d repaired, %d dropped)",
            stats.path, len(state.items), stats.added, stats.removed,
            stats.failed, stats.repaired, stats.dropped,
        )
        return SyncResult(
            success=saved,
            items=list(state.items),
            from_cache=from_cache,
            stats=stats,
            error=error,
        )

    async def _serve_outage(self, state: SyncState, decision: Decision, stats: SyncStats) -> SyncResult:
        """Discord listing failed or came back empty: change nothing remote-driven.

        Audit repairs (if one just ran) are still persisted, but the orphan
        sweep is skipped so nothing is deleted during an outage.
        """
        stats.skipped_reason = "remote_unavailable"
        if decision.audit:
            await self.state.save(state)
        return SyncResult(
            success=bool(state.items),
            items=list(state.items),
            from_cache=True,
            stats=stats,
            error="Discord message list unavailable",
        )

    # -------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------
    async def _fetch_message(self, message_id: str) -> dict | None:
        return await self.client.get_message(self.cfg.channel_id, message_id)

    async def _audit(self, state: SyncState, now: float, stats: SyncStats) -> SyncState:
        report = await self.assets.audit(state.items, self._fetch_message)
        stats.audited = True
        stats.repaired = report.repaired
        stats.dropped = report.dropped
        return state.copy(items=merge(report.items, []), last_asset_audit=now)

    # -------------------------------------------------------------------
    # Full sync
    # -------------------------------------------------------------------
    async def _full_sync(
        self,
        state: SyncState,
        messages: list[dict],
        current_ids: frozenset[str],
        now: float,
        stats: SyncStats,
    ) -> SyncState:
        stats.path = "full-sync"
        lookups_before = self.resolver.lookups

        candidates = [m for m in messages if image_attachments(m)]
        outcomes = await self.runner.run(candidates, self.resolver.is_message_approved)

        approved: set[str] = set()
        unknown: set[str] = set()
        for outcome in outcomes:
            message_id = str(outcome.item["id"])
            if not outcome.ok:
                logger.warning("Approval check failed for message %s: %s", message_id, outcome.error)
                unknown.add(message_id)
            elif outcome.value:
                approved.add(message_id)

        # Items whose approval could not be checked are retained until the
        # next full sync can verify them.
        cached_ids = {item.message_id for item in state.items}
        plan = reconcile(state.items, messages, approved | (unknown & cached_ids))

        for item in plan.remove:
            logger.info("Removing %s by %s (message gone or approval lost)", item.title, item.author)
        await self.assets.delete_many([item.src for item in plan.remove])

        new_items: list[GalleryItem] = []
        results = await self.runner.run(plan.new_messages, self.assets.store_message)
        for result in results:
            if result.ok:
                items, failures = result.value
                new_items.extend(items)
                stats.failed += failures
            else:
                stats.failed += 1
                logger.error("Mirroring message %s failed: %s", result.item.get("id"), result.error)

        stats.added = len(new_items)
        stats.removed = len(plan.remove)
        stats.approval_lookups = self.resolver.lookups - lookups_before

        return state.copy(
            items=merge(plan.keep, new_items),
            message_ids=current_ids,
            last_full_sync=now,
            last_quick_check=now,
        )

    # -------------------------------------------------------------------
    # Webhook
    # -------------------------------------------------------------------
    def handle_event(self, body: Any) -> bool:
        """Invalidate cached state for a relevant gateway event.

        Returns True when a background resync should be scheduled.
        """
        if not isinstance(body, dict):
            return False
        event_type = body.get("t")
        data = body.get("d")
        if event_type not in REACTION_EVENTS | MESSAGE_EVENTS or not isinstance(data, dict):
            return False
        if str(data.get("channel_id")) != self.cfg.channel_id:
            return False

        if event_type in REACTION_EVENTS:
            emoji = data.get("emoji") or {}
            name = emoji.get("name")
            key = f"{name}:{emoji['id']}" if emoji.get("id") else name
            if self.cfg.approval_emoji not in (name, key):
                return False
            if data.get("user_id"):
                self.role_cache.invalidate(str(data["user_id"]))
        elif event_type == "MESSAGE_CREATE" and not image_attachments(data):
            return False

        logger.info("Gateway event %s in gallery channel — scheduling resync", event_type)
        self.state.invalidate()
        self._dirty = True
        return True

    # -------------------------------------------------------------------
    # Background timer
    # -------------------------------------------------------------------
    def start_timer(self, interval: float) -> None:
        """Run ``sync()`` every *interval* seconds (best effort)."""
        if self._timer_task is not None or interval <= 0:
            return

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval)
                result = await self.sync()
                if result.error:
                    logger.warning("Scheduled gallery sync degraded: %s", result.error)

        self._timer_task = asyncio.get_running_loop().create_task(_loop(), name="gallery-sync-timer")
        logger.info("Gallery sync timer started (every %.0fs)", interval)

    async def stop_timer(self) -> None:
        if self._timer_task is None:
            return
        self._timer_task.cancel()
        try:
            await self._timer_task
        except asyncio.CancelledError:
            pass
        self._timer_task = None
