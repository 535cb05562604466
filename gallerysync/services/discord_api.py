"""
gallerysync.services.discord_api — Discord REST client
=======================================================

Thin async wrapper over the four Discord endpoints the gallery needs:

* ``GET /channels/{channel}/messages?limit=N``
* ``GET /channels/{channel}/messages/{message}``
* ``GET /channels/{channel}/messages/{message}/reactions/{emoji}``
* ``GET /guilds/{guild}/members/{user}``

Every request carries its own timeout.  A 404 is a definitive answer
(no reactions / not a member / message gone) and is returned as an empty
value; any other failure raises :class:`DiscordAPIError`.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from gallerysync.constants import DISCORD_API

logger = logging.getLogger(__name__)


class DiscordAPIError(Exception):
    """A Discord request failed.

    ``status`` is ``None`` for network-level failures (timeouts, resets).
    """

    def __init__(self, status: int | None, path: str, detail: str = "") -> None:
        self.status = status
        self.path = path
        super().__init__(f"Discord {path} failed ({status or 'network'}){': ' + detail if detail else ''}")

    @property
    def transient(self) -> bool:
        return self.status is None or self.status == 429 or self.status >= 500


class DiscordClient:
    """Bot-authenticated Discord REST client sharing one ``httpx.AsyncClient``."""

    def __init__(
        self,
        token: str,
        http: httpx.AsyncClient,
        *,
        timeout: float = 8.0,
        base_url: str = DISCORD_API,
    ) -> None:
        self._token = token
        self._http = http
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.calls = 0

    async def _get(self, path: str, params: dict | None = None, *, not_found: Any = None) -> Any:
        self.calls += 1
        try:
            resp = await self._http.get(
                f"{self.base_url}{path}",
                params=params,
                headers={"Authorization": f"Bot {self._token}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise DiscordAPIError(None, path, str(exc) or type(exc).__name__) from exc

        if resp.status_code == 404:
            logger.debug("Discord %s → 404", path)
            return not_found
        if resp.status_code != 200:
            raise DiscordAPIError(resp.status_code, path, resp.text[:200])
        try:
            return resp.json()
        except ValueError as exc:
            raise DiscordAPIError(resp.status_code, path, "invalid JSON") from exc

    # -------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------
    async def list_messages(self, channel_id: str, limit: int = 100) -> list[dict]:
        """Most recent *limit* messages of the channel (attachments + reaction counts)."""
        data = await self._get(
            f"/channels/{channel_id}/messages",
            {"limit": max(1, min(limit, 100))},
            not_found=[],
        )
        if not isinstance(data, list):
            raise DiscordAPIError(200, f"/channels/{channel_id}/messages", "expected a list")
        return data

    async def get_message(self, channel_id: str, message_id: str) -> dict | None:
        return await self._get(f"/channels/{channel_id}/messages/{message_id}")

    async def get_reaction_users(
        self, channel_id: str, message_id: str, emoji: str, limit: int = 100,
    ) -> list[str]:
        """Ids of users who reacted with *emoji* (empty when none / 404)."""
        data = await self._get(
            f"/channels/{channel_id}/messages/{message_id}/reactions/{quote(emoji, safe='')}",
            {"limit": limit},
            not_found=[],
        )
        return [str(user["id"]) for user in data or [] if isinstance(user, dict) and user.get("id")]

    async def get_member(self, guild_id: str, user_id: str) -> dict | None:
        """Guild member object, or ``None`` when the user is not a member."""
        return await self._get(f"/guilds/{guild_id}/members/{user_id}")
