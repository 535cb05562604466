"""
gallerysync.constants — Shared Constants & Helpers
===================================================

Single source of truth for the snapshot schema version and the text
helpers used when turning a Discord attachment into a gallery item.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

# ---------------------------------------------------------------------------
# Snapshot document
# ---------------------------------------------------------------------------
# v1 was a bare JSON list of items; v2 wraps them with sync timestamps.
SCHEMA_VERSION = 2

CACHE_CONTENT_TYPE = "application/json"

DISCORD_API = "https://discord.com/api/v10"

MAX_TITLE_LENGTH = 100

# ---------------------------------------------------------------------------
# Text processing helpers
# ---------------------------------------------------------------------------
_URL_REGEX = re.compile(r"https?://\S+")
_MENTION_REGEX = re.compile(r"<@[!&]?\d+>")
_CHANNEL_REGEX = re.compile(r"<#\d+>")
_SHORTCODE_REGEX = re.compile(r":\w+:")
_WHITESPACE_REGEX = re.compile(r"\s+")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def generate_title(content: str, filename: str, untitled: str = "Untitled") -> str:
    """Derive a display title from the message text.

    URLs, user/role/channel mentions and ``:emoji:`` shortcodes are
    stripped.  The cleaned text is used when it is 1-100 characters long,
    otherwise the filename without its extension, otherwise *untitled*.
    """
    clean = _URL_REGEX.sub("", content or "")
    clean = _MENTION_REGEX.sub("", clean)
    clean = _CHANNEL_REGEX.sub("", clean)
    clean = _SHORTCODE_REGEX.sub("", clean)
    clean = _WHITESPACE_REGEX.sub(" ", clean).strip()

    if clean and len(clean) <= MAX_TITLE_LENGTH:
        return clean

    stem = (filename or "").split(".")[0]
    return stem or untitled


def sanitize_filename(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9._-]`` with ``_``."""
    return _UNSAFE_FILENAME_CHARS.sub("_", name)


def file_extension(filename: str) -> str:
    """Return the lowercase extension of *filename* including the dot."""
    return PurePosixPath(filename or "").suffix.lower()


def is_image_content_type(content_type: str | None) -> bool:
    """True for ``image/*`` MIME types (parameters are ignored)."""
    if not content_type:
        return False
    return content_type.split(";", 1)[0].strip().lower().startswith("image/")
