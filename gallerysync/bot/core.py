"""
gallerysync.bot.core — Relay Bot & Cog Loader
==============================================

A minimal ``commands.Bot`` subclass that carries the shared config, the
webhook URL and one ``httpx.AsyncClient`` so cogs can reach them via
``self.bot.*``.  It only observes the gallery channel; it never posts.
"""

from __future__ import annotations

import logging

import discord
import httpx
from discord.ext import commands

from gallerysync.config import GallerySyncConfig

logger = logging.getLogger(__name__)

EXTENSIONS: list[str] = [
    "gallerysync.bot.cogs.relay",
]


class GalleryRelayBot(commands.Bot):
    """Bot that relays gallery-channel gateway events to the API webhook.

    Parameters
    ----------
    cfg:
        The parsed :class:`GallerySyncConfig`.
    webhook_url:
        Absolute URL of ``POST /api/gallery``.
    """

    def __init__(self, cfg: GallerySyncConfig, webhook_url: str) -> None:
        intents = discord.Intents.default()
        intents.message_content = True    # privileged: without it attachments arrive empty
        intents.presences = False

        super().__init__(command_prefix=commands.when_mentioned, intents=intents)

        self.cfg = cfg
        self.webhook_url = webhook_url
        self.http_client = httpx.AsyncClient(transport=httpx.AsyncHTTPTransport(retries=1))

    async def setup_hook(self) -> None:
        """Load cog extensions; one broken cog shouldn't take down the bot."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None  # guaranteed after on_ready
        logger.info(
            "Logged in as %s (ID: %s) — relaying channel %s → %s",
            self.user.name, self.user.id, self.cfg.channel_id, self.webhook_url,
        )

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        await self.http_client.aclose()
        await super().close()
