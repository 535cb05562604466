"""
gallerysync.engine.approval — Reaction-based approval
======================================================

A message is approved when at least one user who reacted with the
approval emoji holds at least one of the approved roles.

Membership lookups are the most frequent remote call of a full sync, so:

* messages whose reaction summary shows no approval emoji are rejected
  without any remote call;
* reactors are checked one by one and the first approved one wins;
* role results are cached per (user, guild) for ``ttl`` seconds.  Expired
  entries are only used as a fallback when Discord is unreachable.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import Protocol

from gallerysync.services.discord_api import DiscordAPIError

logger = logging.getLogger(__name__)


class ApprovalSource(Protocol):
    async def get_member(self, guild_id: str, user_id: str) -> dict | None: ...

    async def get_reaction_users(
        self, channel_id: str, message_id: str, emoji: str, limit: int = 100,
    ) -> list[str]: ...


class RoleApprovalCache:
    """(user_id, guild_id) → (approved, checked_at)."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[tuple[str, str], tuple[bool, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get_fresh(self, user_id: str, guild_id: str) -> bool | None:
        entry = self._entries.get((user_id, guild_id))
        if entry is None or self._clock() - entry[1] >= self.ttl:
            return None
        return entry[0]

    def get_any(self, user_id: str, guild_id: str) -> bool | None:
        """Return the cached answer regardless of age (degraded fallback)."""
        entry = self._entries.get((user_id, guild_id))
        return None if entry is None else entry[0]

    def put(self, user_id: str, guild_id: str, approved: bool) -> None:
        self._entries[(user_id, guild_id)] = (approved, self._clock())

    def invalidate(self, user_id: str | None = None) -> None:
        if user_id is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if k[0] == user_id]:
            del self._entries[key]


def count_marker_reactions(message: dict, emoji: str) -> int:
    """Approval-emoji count from the message's reaction summary."""
    total = 0
    for reaction in message.get("reactions") or []:
        em = reaction.get("emoji") or {}
        name = em.get("name")
        key = f"{name}:{em['id']}" if em.get("id") else name
        if emoji in (key, name):
            total += int(reaction.get("count") or 0)
    return total


class ApprovalResolver:
    def __init__(
        self,
        source: ApprovalSource,
        cache: RoleApprovalCache,
        *,
        guild_id: str,
        channel_id: str,
        emoji: str,
        approved_role_ids: Iterable[str],
    ) -> None:
        self._source = source
        self.cache = cache
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.emoji = emoji
        self.approved_role_ids = frozenset(approved_role_ids)
        self.lookups = 0

    async def is_user_approved(self, user_id: str) -> bool:
        cached = self.cache.get_fresh(user_id, self.guild_id)
        if cached is not None:
            return cached

        self.lookups += 1
        try:
            member = await self._source.get_member(self.guild_id, user_id)
        except DiscordAPIError as exc:
            stale = self.cache.get_any(user_id, self.guild_id)
            logger.warning(
                "Role lookup for user %s failed (%s) — using %s",
                user_id, exc, "stale cache" if stale is not None else "deny",
            )
            return bool(stale)

        roles = set(str(r) for r in (member or {}).get("roles") or [])
        approved = bool(roles & self.approved_role_ids)
        self.cache.put(user_id, self.guild_id, approved)
        return approved

    async def is_message_approved(self, message: dict) -> bool:
        """True if an approved user reacted to *message* with the approval emoji.

        Reaction-list failures propagate; the caller isolates them per message.
        """
        if count_marker_reactions(message, self.emoji) == 0:
            return False

        reactors = await self._source.get_reaction_users(self.channel_id, str(message["id"]), self.emoji)
        for user_id in reactors:
            if await self.is_user_approved(user_id):
                return True
        return False
