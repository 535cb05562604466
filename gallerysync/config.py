"""
gallerysync.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for the soft settings (which channel to mirror,
which roles may approve, cache TTLs, batch sizes, timeouts, storage
backend).  Secrets stay in the environment (``.env``):

* ``DISCORD_BOT_TOKEN`` — bot credential for the Discord REST API.
* ``DISCORD_GUILD_ID``  — overrides ``guild_id`` from the YAML file.

Usage::

    from gallerysync.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.channel_id)        # "1407360658952945698"
    print(cfg.missing_settings())  # [] when ready to sync
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

DEFAULT_APPROVAL_EMOJI = "\U0001f451"  # 👑


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GallerySyncConfig:
    """Immutable configuration loaded from ``config.yaml`` + environment.

    All durations are in seconds.  Discord snowflakes are kept as strings,
    the way the REST API returns them.
    """

    # Discord
    guild_id: str = ""
    channel_id: str = ""
    approved_role_ids: frozenset[str] = frozenset()
    approval_emoji: str = DEFAULT_APPROVAL_EMOJI
    bot_token: str = field(default="", repr=False)
    message_limit: int = 100

    # Staleness clocks
    poll_ttl: float = 30.0
    full_sync_ttl: float = 300.0
    audit_ttl: float = 6 * 3600.0
    role_cache_ttl: float = 600.0
    lock_max_duration: float = 120.0
    sync_interval: float = 300.0  # background timer, 0 disables it

    # Batching
    batch_size: int = 5
    batch_pause: float = 0.5

    # Per-call timeouts
    discord_timeout: float = 8.0
    download_timeout: float = 15.0
    storage_timeout: float = 10.0

    # Download retries
    download_max_attempts: int = 3
    download_base_delay: float = 0.5
    download_max_delay: float = 5.0

    # Storage
    storage_backend: str = "local"  # "local" | "database"
    storage_dir: str = "blobs"
    public_base_url: str = "/api/blobs"
    cache_key: str = "gallery.json"

    # Presentation
    untitled_label: str = "Untitled"
    alt_template: str = "Photo by {author}"

    def missing_settings(self) -> list[str]:
        """Return the names of required settings that are not set."""
        missing = []
        if not self.bot_token:
            missing.append("DISCORD_BOT_TOKEN")
        if not self.guild_id:
            missing.append("guild_id")
        if not self.channel_id:
            missing.append("channel_id")
        if not self.approved_role_ids:
            missing.append("approved_role_ids")
        if not self.approval_emoji:
            missing.append("approval_emoji")
        return missing


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> GallerySyncConfig:
    """Read *path* and return a :class:`GallerySyncConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return config_from_mapping(raw, env=os.environ)


def config_from_mapping(raw: dict, env: dict | None = None) -> GallerySyncConfig:
    """Build a config from an already-parsed YAML mapping.

    ``channel_id`` and ``approved_role_ids`` are required keys.  Everything
    else falls back to the dataclass defaults.
    """
    env = env or {}
    defaults = GallerySyncConfig()

    ttl = raw.get("ttl") or {}
    timeouts = raw.get("timeouts") or {}
    retry = raw.get("download_retry") or {}
    storage = raw.get("storage") or {}
    labels = raw.get("labels") or {}

    guild_id = env.get("DISCORD_GUILD_ID") or raw.get("guild_id") or ""

    return GallerySyncConfig(
        guild_id=str(guild_id),
        channel_id=str(raw["channel_id"] or ""),
        approved_role_ids=frozenset(str(r) for r in raw["approved_role_ids"] or []),
        approval_emoji=raw.get("approval_emoji", defaults.approval_emoji),
        bot_token=env.get("DISCORD_BOT_TOKEN", "").strip(),
        message_limit=min(int(raw.get("message_limit", defaults.message_limit)), 100),
        poll_ttl=float(ttl.get("poll", defaults.poll_ttl)),
        full_sync_ttl=float(ttl.get("full_sync", defaults.full_sync_ttl)),
        audit_ttl=float(ttl.get("audit", defaults.audit_ttl)),
        role_cache_ttl=float(ttl.get("role_cache", defaults.role_cache_ttl)),
        lock_max_duration=float(ttl.get("lock_max_duration", defaults.lock_max_duration)),
        sync_interval=float(ttl.get("sync_interval", defaults.sync_interval)),
        batch_size=int(raw.get("batch_size", defaults.batch_size)),
        batch_pause=float(raw.get("batch_pause", defaults.batch_pause)),
        discord_timeout=float(timeouts.get("discord", defaults.discord_timeout)),
        download_timeout=float(timeouts.get("download", defaults.download_timeout)),
        storage_timeout=float(timeouts.get("storage", defaults.storage_timeout)),
        download_max_attempts=int(retry.get("max_attempts", defaults.download_max_attempts)),
        download_base_delay=float(retry.get("base_delay", defaults.download_base_delay)),
        download_max_delay=float(retry.get("max_delay", defaults.download_max_delay)),
        storage_backend=storage.get("backend", defaults.storage_backend),
        storage_dir=storage.get("directory", defaults.storage_dir),
        public_base_url=storage.get("public_base_url", defaults.public_base_url).rstrip("/"),
        cache_key=storage.get("cache_key", defaults.cache_key),
        untitled_label=labels.get("untitled", defaults.untitled_label),
        alt_template=labels.get("alt", defaults.alt_template),
    )
