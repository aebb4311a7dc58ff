"""DatabaseObjectStore — objects as rows in a SQL table, one session per call."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from objtree.exceptions import NotFoundError, ObjTreeError, TransportError

from .memory import immediate_children, normalize_key

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

    from sqlalchemy.ext.asyncio import AsyncEngine

    from .models import StoredObjectBase
    from .types import ObjectEntry

logger = logging.getLogger(__name__)


class DatabaseObjectStore:
    """Database-backed object store.

    Every adapter call runs in its own session which is committed on
    success and rolled back on failure, so a single call is atomic but
    nothing spans calls.  Works with any async SQLAlchemy dialect
    (aiosqlite, asyncpg, ...).

    Either pass an ``engine`` (tables are created by ``open()``) or a
    ready-made ``session_factory``.

    Implements the ``ObjectStore`` protocol.
    """

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        *,
        session_factory: Callable[..., AsyncSession] | None = None,
        object_model: type[StoredObjectBase] | None = None,
    ) -> None:
        from .models import StoredObject

        if engine is None and session_factory is None:
            raise ValueError("DatabaseObjectStore needs an engine or a session_factory")

        self._engine = engine
        self._session_factory = session_factory or async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self._model: type[StoredObjectBase] = (
            object_model or StoredObject  # type: ignore[assignment]
        )

    @property
    def object_model(self) -> type[StoredObjectBase]:
        return self._model

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the object table when an engine was provided."""
        if self._engine is None:
            return
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
        except SQLAlchemyError as e:
            raise TransportError(f"Cannot create object table: {e}") from e

    async def close(self) -> None:
        """No-op — the engine belongs to the caller."""

    # ------------------------------------------------------------------
    # Session Management (per-call only)
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session(self, operation: str, path: str) -> AsyncGenerator[AsyncSession]:
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except ObjTreeError:
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error("%s failed for %s: %s", operation, path, e, exc_info=True)
            await session.rollback()
            raise TransportError(f"{operation} failed for {path!r}: {e}") from e
        finally:
            await session.close()

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def list(self, prefix: str = "") -> list[ObjectEntry]:
        key = normalize_key(prefix)
        model = self._model
        async with self._session("List", key) as session:
            stmt = select(model.path, model.size_bytes, model.updated_at)
            if key:
                stmt = stmt.where(
                    model.path.startswith(key + "/", autoescape=True),  # type: ignore[union-attr]
                )
            rows = (await session.execute(stmt)).all()
        flat = {path: (size, updated_at) for path, size, updated_at in rows}
        return immediate_children(flat, key)

    async def upload(self, path: str, data: bytes) -> None:
        key = normalize_key(path)
        if not key:
            raise TransportError("Cannot upload to the root prefix")
        async with self._session("Upload", key) as session:
            existing = await session.get(self._model, key)
            now = datetime.now(UTC)
            if existing is None:
                session.add(
                    self._model(
                        path=key, content=bytes(data), size_bytes=len(data), updated_at=now
                    )
                )
            else:
                existing.content = bytes(data)
                existing.size_bytes = len(data)
                existing.updated_at = now

    async def download(self, path: str) -> bytes:
        key = normalize_key(path)
        async with self._session("Download", key) as session:
            obj = await session.get(self._model, key)
            if obj is None:
                raise NotFoundError(f"Object not found: {key}")
            return bytes(obj.content)

    async def delete(self, path: str) -> None:
        key = normalize_key(path)
        async with self._session("Delete", key) as session:
            obj = await session.get(self._model, key)
            if obj is None:
                raise NotFoundError(f"Object not found: {key}")
            await session.delete(obj)
