"""
gallerysync.bot.cogs.relay — Gateway → webhook relay
=====================================================

Listens for reaction and message events in the gallery channel and
POSTs them to the API's ``/api/gallery`` webhook in the gateway's own
``{"t": <type>, "d": <data>}`` shape.  The API decides what to do with
them; this cog only filters by channel to keep the traffic down.

Uses raw events so reactions on uncached (old) messages still arrive.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
import httpx
from discord.ext import commands

if TYPE_CHECKING:
    from gallerysync.bot.core import GalleryRelayBot

logger = logging.getLogger(__name__)


def reaction_event(event_type: str, payload: discord.RawReactionActionEvent) -> dict:
    return {
        "t": event_type,
        "d": {
            "channel_id": str(payload.channel_id),
            "message_id": str(payload.message_id),
            "user_id": str(payload.user_id),
            "guild_id": str(payload.guild_id) if payload.guild_id else None,
            "emoji": {
                "id": str(payload.emoji.id) if payload.emoji.id else None,
                "name": payload.emoji.name,
            },
        },
    }


def message_delete_event(payload: discord.RawMessageDeleteEvent) -> dict:
    return {
        "t": "MESSAGE_DELETE",
        "d": {"id": str(payload.message_id), "channel_id": str(payload.channel_id)},
    }


def message_create_event(message: discord.Message) -> dict:
    return {
        "t": "MESSAGE_CREATE",
        "d": {
            "id": str(message.id),
            "channel_id": str(message.channel.id),
            "attachments": [
                {
                    "id": str(att.id),
                    "filename": att.filename,
                    "content_type": att.content_type,
                    "url": att.url,
                }
                for att in message.attachments
            ],
        },
    }


class Relay(commands.Cog, name="Relay"):
    """Forwards gallery-channel gateway events to the webhook."""

    def __init__(self, bot: GalleryRelayBot) -> None:
        self.bot = bot

    def _in_gallery(self, channel_id: int | None) -> bool:
        return channel_id is not None and str(channel_id) == self.bot.cfg.channel_id

    async def forward(self, body: dict) -> None:
        """POST *body* to the webhook; failures are logged, never raised."""
        try:
            resp = await self.bot.http_client.post(self.bot.webhook_url, json=body, timeout=10)
            if resp.status_code != 200:
                logger.warning("Webhook answered %d for %s", resp.status_code, body["t"])
        except httpx.HTTPError:
            logger.exception("Failed to relay %s to %s", body["t"], self.bot.webhook_url)

    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        if self._in_gallery(payload.channel_id):
            await self.forward(reaction_event("MESSAGE_REACTION_ADD", payload))

    @commands.Cog.listener()
    async def on_raw_reaction_remove(self, payload: discord.RawReactionActionEvent) -> None:
        if self._in_gallery(payload.channel_id):
            await self.forward(reaction_event("MESSAGE_REACTION_REMOVE", payload))

    @commands.Cog.listener()
    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent) -> None:
        if self._in_gallery(payload.channel_id):
            await self.forward(message_delete_event(payload))

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or not message.attachments:
            return
        if self._in_gallery(message.channel.id):
            await self.forward(message_create_event(message))


async def setup(bot: GalleryRelayBot) -> None:
    await bot.add_cog(Relay(bot))
