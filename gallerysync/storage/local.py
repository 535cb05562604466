"""
gallerysync.storage.local — Filesystem object store
====================================================

Objects are plain files in one directory (a Docker volume in production)
served by the API as static files under ``public_base_url``.  Blocking
file I/O is offloaded to a thread so the event loop never stalls.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import tempfile
from pathlib import Path

from gallerysync.storage.base import ObjectStore, StorageError, StoredBlob

logger = logging.getLogger(__name__)


class LocalObjectStore(ObjectStore):
    def __init__(self, root: str | Path, base_url: str, timeout: float = 10.0) -> None:
        super().__init__(base_url, timeout)
        self.root = Path(root)

    def ensure_root(self) -> None:
        """Create the storage directory if it doesn't exist."""
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        return self.root / self.check_name(name)

    # -------------------------------------------------------------------
    # Sync helpers (run on a worker thread)
    # -------------------------------------------------------------------
    def _write(self, path: Path, data: bytes) -> None:
        self.ensure_root()
        # Write-then-rename so readers never see a half-written object.
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _read(self, path: Path) -> bytes | None:
        if not path.is_file():
            return None
        return path.read_bytes()

    def _unlink(self, path: Path) -> bool:
        if path.is_file():
            path.unlink()
            return True
        return False

    def _scan(self, limit: int) -> list[StoredBlob]:
        if not self.root.is_dir():
            return []
        blobs: list[StoredBlob] = []
        for path in sorted(self.root.iterdir()):
            if not path.is_file() or path.name.startswith(".tmp-"):
                continue
            blobs.append(
                StoredBlob(
                    name=path.name,
                    url=self.url_for(path.name),
                    size=path.stat().st_size,
                    content_type=mimetypes.guess_type(path.name)[0],
                )
            )
            if len(blobs) >= limit:
                break
        return blobs

    # -------------------------------------------------------------------
    # ObjectStore API
    # -------------------------------------------------------------------
    async def exists(self, name: str) -> bool:
        path = self._path(name)
        return await self._bounded(asyncio.to_thread(path.is_file), "exists")

    async def put(self, name: str, data: bytes, content_type: str) -> StoredBlob:
        path = self._path(name)
        try:
            await self._bounded(asyncio.to_thread(self._write, path, data), "put")
        except OSError as exc:
            raise StorageError(f"Failed to write {name}: {exc}") from exc
        logger.debug("Stored %s (%d bytes, %s)", name, len(data), content_type)
        return StoredBlob(name=name, url=self.url_for(name), size=len(data), content_type=content_type)

    async def get(self, name: str) -> bytes | None:
        path = self._path(name)
        try:
            return await self._bounded(asyncio.to_thread(self._read, path), "get")
        except OSError as exc:
            raise StorageError(f"Failed to read {name}: {exc}") from exc

    async def delete(self, url: str) -> bool:
        name = self.name_for(url)
        if name is None:
            return False
        try:
            return await self._bounded(asyncio.to_thread(self._unlink, self._path(name)), "delete")
        except OSError as exc:
            raise StorageError(f"Failed to delete {name}: {exc}") from exc

    async def list_objects(self, limit: int = 1000) -> list[StoredBlob]:
        try:
            return await self._bounded(asyncio.to_thread(self._scan, limit), "list")
        except OSError as exc:
            raise StorageError(f"Failed to list {self.root}: {exc}") from exc
