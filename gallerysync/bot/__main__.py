"""
gallerysync.bot.__main__ — Entry point for ``python -m gallerysync.bot``
========================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (channel to watch).
3. Resolve the webhook URL the events are relayed to.
4. Start the relay bot (blocking — runs the asyncio event loop).
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from gallerysync.bot.core import GalleryRelayBot
from gallerysync.config import load_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("gallerysync")


def main() -> None:
    """Bootstrap and run the relay bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical(
            "DISCORD_BOT_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    # 2. Soft configuration.
    cfg = load_config(os.getenv("GALLERYSYNC_CONFIG", "config.yaml"))

    # 3. Webhook target.
    webhook_url = os.getenv("GALLERY_WEBHOOK_URL", "http://localhost:8000/api/gallery")

    # 4. Run (blocks until Ctrl+C or SIGTERM).
    bot = GalleryRelayBot(cfg=cfg, webhook_url=webhook_url)
    logger.info("Starting gallery relay bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
