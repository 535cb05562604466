"""
gallerysync.storage.database — SQLAlchemy object store
=======================================================

Stores blobs in the ``stored_objects`` table so a deployment without a
persistent volume can still keep the gallery.  Objects are served by
``GET /api/blobs/{name}``.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gallerysync.database.engine import get_session, run_db
from gallerysync.database.models import StoredObject
from gallerysync.storage.base import ObjectStore, StorageError, StoredBlob

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sync DB functions (called via run_db)
# ---------------------------------------------------------------------------
def _exists(engine: Engine, name: str) -> bool:
    with Session(engine) as session:
        return session.scalar(
            select(StoredObject.name).where(StoredObject.name == name)
        ) is not None


def _upsert(engine: Engine, name: str, data: bytes, content_type: str) -> None:
    with get_session(engine) as session:
        row = session.get(StoredObject, name)
        if row is None:
            session.add(StoredObject(
                name=name,
                content_type=content_type,
                size_bytes=len(data),
                data=data,
            ))
        else:
            row.content_type = content_type
            row.size_bytes = len(data)
            row.data = data


def read_object(engine: Engine, name: str) -> StoredObject | None:
    """Return the detached row for *name* (used by the blob route too)."""
    with Session(engine) as session:
        row = session.get(StoredObject, name)
        if row is not None:
            session.expunge(row)
        return row


def _delete(engine: Engine, name: str) -> bool:
    with get_session(engine) as session:
        result = session.execute(delete(StoredObject).where(StoredObject.name == name))
        return (result.rowcount or 0) > 0


def _list(engine: Engine, limit: int) -> list[tuple[str, int, str]]:
    with Session(engine) as session:
        rows = session.execute(
            select(StoredObject.name, StoredObject.size_bytes, StoredObject.content_type)
            .order_by(StoredObject.name)
            .limit(limit)
        ).all()
        return [(r.name, r.size_bytes, r.content_type) for r in rows]


class DatabaseObjectStore(ObjectStore):
    def __init__(self, engine: Engine, base_url: str, timeout: float = 10.0) -> None:
        super().__init__(base_url, timeout)
        self.engine = engine

    async def exists(self, name: str) -> bool:
        self.check_name(name)
        try:
            return await self._bounded(run_db(_exists, self.engine, name), "exists")
        except SQLAlchemyError as exc:
            raise StorageError(f"exists({name}) failed: {exc}") from exc

    async def put(self, name: str, data: bytes, content_type: str) -> StoredBlob:
        self.check_name(name)
        try:
            await self._bounded(run_db(_upsert, self.engine, name, data, content_type), "put")
        except SQLAlchemyError as exc:
            raise StorageError(f"put({name}) failed: {exc}") from exc
        logger.debug("Stored %s (%d bytes, %s)", name, len(data), content_type)
        return StoredBlob(name=name, url=self.url_for(name), size=len(data), content_type=content_type)

    async def get(self, name: str) -> bytes | None:
        self.check_name(name)
        try:
            row = await self._bounded(run_db(read_object, self.engine, name), "get")
        except SQLAlchemyError as exc:
            raise StorageError(f"get({name}) failed: {exc}") from exc
        return None if row is None else row.data

    async def delete(self, url: str) -> bool:
        name = self.name_for(url)
        if name is None:
            return False
        try:
            return await self._bounded(run_db(_delete, self.engine, name), "delete")
        except SQLAlchemyError as exc:
            raise StorageError(f"delete({name}) failed: {exc}") from exc

    async def list_objects(self, limit: int = 1000) -> list[StoredBlob]:
        try:
            rows = await self._bounded(run_db(_list, self.engine, limit), "list")
        except SQLAlchemyError as exc:
            raise StorageError(f"list failed: {exc}") from exc
        return [
            StoredBlob(name=name, url=self.url_for(name), size=size, content_type=ctype)
            for name, size, ctype in rows
        ]
