"""StoredObject model for the database-backed object store.

Provides ``StoredObjectBase``, a non-table base class.  Subclass with
``table=True`` and a custom ``__tablename__`` to use a different table.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, LargeBinary
from sqlmodel import Field, SQLModel


class StoredObjectBase(SQLModel):
    """Base fields for a stored object.  Keyed by its full slash-joined path."""

    path: str = Field(primary_key=True)
    content: bytes = Field(default=b"", sa_type=LargeBinary)
    size_bytes: int = Field(default=0)
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )


class StoredObject(StoredObjectBase, table=True):
    """Default object table — ``objtree_objects``."""

    __tablename__ = "objtree_objects"
