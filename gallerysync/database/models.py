"""
gallerysync.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- stored_objects — binary objects of the database-backed object store
  (mirrored gallery images and the ``gallery.json`` snapshot)
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, LargeBinary, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all gallerysync ORM models."""


# ---------------------------------------------------------------------------
# StoredObject — one blob in the database object store
# ---------------------------------------------------------------------------
class StoredObject(Base):
    """Binary object addressed by name, served under the public blob URL.

    Writes are full overwrites; there are no partial or append updates.
    """
    __tablename__ = "stored_objects"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    content_type: Mapped[str] = mapped_column(
        String(100), nullable=False, default="application/octet-stream"
    )
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<StoredObject name={self.name!r} size={self.size_bytes}>"
