"""
gallerysync.storage.base — Object store interface
==================================================

Every backend stores flat, name-addressed binary objects and hands out a
public URL per object.  The gallery keeps URLs (``GalleryItem.src``), so
deletion is by URL while existence checks and writes are by name.

Operations are bounded by ``timeout`` seconds each; a timeout surfaces
as :class:`StorageError` like any other backend failure.
"""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")

_VALID_NAME = re.compile(r"^[A-Za-z0-9._-]+$")


class StorageError(Exception):
    """Raised when the object store cannot complete an operation."""


@dataclass(frozen=True, slots=True)
class StoredBlob:
    name: str
    url: str
    size: int
    content_type: str | None = None


class ObjectStore(ABC):
    """Name-addressed blob storage with public URLs."""

    def __init__(self, base_url: str, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    # -------------------------------------------------------------------
    # Naming
    # -------------------------------------------------------------------
    def url_for(self, name: str) -> str:
        return f"{self.base_url}/{name}"

    def name_for(self, url: str) -> str | None:
        """Return the object name behind *url*, or ``None`` if foreign."""
        prefix = f"{self.base_url}/"
        if not url or not url.startswith(prefix):
            return None
        name = url[len(prefix):]
        return name if _VALID_NAME.match(name) else None

    @staticmethod
    def check_name(name: str) -> str:
        if not _VALID_NAME.match(name or "") or name in (".", ".."):
            raise StorageError(f"Invalid object name: {name!r}")
        return name

    async def _bounded(self, aw: Awaitable[T], op: str) -> T:
        try:
            return await asyncio.wait_for(aw, timeout=self.timeout)
        except TimeoutError as exc:
            raise StorageError(f"{op} timed out after {self.timeout}s") from exc

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    @abstractmethod
    async def exists(self, name: str) -> bool:
        """True if an object called *name* is stored."""

    @abstractmethod
    async def put(self, name: str, data: bytes, content_type: str) -> StoredBlob:
        """Write *data* under *name*, replacing any previous object."""

    @abstractmethod
    async def get(self, name: str) -> bytes | None:
        """Return the object's bytes, or ``None`` if it does not exist."""

    @abstractmethod
    async def delete(self, url: str) -> bool:
        """Delete the object behind *url*.  True if something was removed."""

    @abstractmethod
    async def list_objects(self, limit: int = 1000) -> list[StoredBlob]:
        """Return up to *limit* stored objects."""

    async def exists_url(self, url: str) -> bool:
        name = self.name_for(url)
        if name is None:
            return False
        return await self.exists(name)

    async def aclose(self) -> None:
        """Release backend resources (no-op by default)."""
