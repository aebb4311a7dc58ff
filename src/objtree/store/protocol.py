"""ObjectStore protocol — the flat, path-keyed adapter the tree is built on.

Paths crossing this boundary are slash-joined strings without a leading
slash; the root prefix is ``""``.  There is no folder, rename, or move
primitive: folders are inferred from key prefixes.

Adapters report failures by raising:

- ``NotFoundError`` from ``download``/``delete`` when the key is absent.
- ``TransportError`` for any backend failure (network, disk, database).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .types import ObjectEntry


@runtime_checkable
class ObjectStore(Protocol):
    """Core interface every object store adapter must implement."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Called before first use.  No-op if not needed."""
        ...

    async def close(self) -> None:
        """Called on shutdown."""
        ...

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def list(self, prefix: str = "") -> list[ObjectEntry]:
        """Immediate children of *prefix*; empty when nothing lives there."""
        ...

    async def upload(self, path: str, data: bytes) -> None:
        """Create or overwrite the object at *path*."""
        ...

    async def download(self, path: str) -> bytes:
        """Return the bytes stored at *path*."""
        ...

    async def delete(self, path: str) -> None:
        """Remove the object at *path*."""
        ...
