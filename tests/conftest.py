"""Shared fixtures for objtree tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from objtree import FileTreeAsync, MemoryObjectStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine


SAMPLE_OBJECTS: dict[str, bytes] = {
    "song.mp3": b"ID3 song bytes",
    "notes.txt": b"remember the milk",
    "Archive/.placeholder": b"",
    "Scores/.placeholder": b"",
    "Scores/a.pdf": b"%PDF a",
    "Scores/b.pdf": b"%PDF bb",
    "Photos/2024/beach.jpg": b"\xff\xd8 beach",
    "Photos/2024/.placeholder": b"",
}


@pytest.fixture
def store() -> MemoryObjectStore:
    """Memory store holding a small music/document bucket."""
    return MemoryObjectStore(SAMPLE_OBJECTS)


@pytest.fixture
def empty_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
async def tree(store: MemoryObjectStore) -> AsyncIterator[FileTreeAsync]:
    """Opened tree over the sample store, with the store's call log cleared."""
    t = FileTreeAsync(store)
    await t.open()
    store.reset_calls()
    yield t
    await t.close()


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine; tables are created by the store's open()."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    yield eng
    await eng.dispose()
