"""LocalDiskObjectStore — objects as plain files under a host directory."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from objtree.exceptions import NotFoundError, TransportError

from .memory import normalize_key
from .types import EntryKind, ObjectEntry

logger = logging.getLogger(__name__)


class LocalDiskObjectStore:
    """Object store backed by the host filesystem.

    Keys map one-to-one onto files below ``host_dir``.  Directories are an
    implementation detail: a directory that holds no objects is pruned on
    delete and never listed, so folders behave the way they do in a
    bucket.  Blocking I/O runs in a worker thread.

    Security: _resolve() ensures all keys stay within host_dir,
    preventing path traversal attacks.

    Implements the ``ObjectStore`` protocol.
    """

    def __init__(self, host_dir: Path | str) -> None:
        self.host_dir = Path(host_dir).resolve()

        if not self.host_dir.exists():
            raise FileNotFoundError(f"Host directory does not exist: {self.host_dir}")
        if not self.host_dir.is_dir():
            raise NotADirectoryError(f"Host path is not a directory: {self.host_dir}")

    # =========================================================================
    # Path Resolution & Security
    # =========================================================================

    def _resolve(self, path: str) -> Path:
        """Resolve a key to a physical path, refusing anything outside host_dir."""
        key = normalize_key(path)
        if any(part in (".", "..") for part in key.split("/")):
            raise TransportError(f"Path traversal detected: {path}")
        if not key:
            return self.host_dir
        resolved = (self.host_dir / key).resolve()
        try:
            resolved.relative_to(self.host_dir)
        except ValueError:
            raise TransportError(
                f"Path traversal detected: {path} resolves outside host directory"
            ) from None
        return resolved

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> None:
        """No-op — the host directory is checked at construction."""

    async def close(self) -> None:
        """No-op — no handles are kept open."""

    # =========================================================================
    # Objects
    # =========================================================================

    async def list(self, prefix: str = "") -> list[ObjectEntry]:
        resolved = self._resolve(prefix)

        def _scan() -> list[ObjectEntry]:
            if not resolved.is_dir():
                return []
            entries: list[ObjectEntry] = []
            for entry in os.scandir(resolved):
                try:
                    if entry.is_dir(follow_symlinks=False):
                        with os.scandir(entry.path) as inner:
                            if next(inner, None) is None:
                                continue
                        entries.append(ObjectEntry(name=entry.name, kind=EntryKind.FOLDER))
                    elif entry.is_file(follow_symlinks=False):
                        st = entry.stat()
                        entries.append(
                            ObjectEntry(
                                name=entry.name,
                                kind=EntryKind.FILE,
                                size=st.st_size,
                                updated_at=datetime.fromtimestamp(st.st_mtime, tz=UTC),
                            )
                        )
                except OSError:
                    continue
            entries.sort(key=lambda e: e.name)
            return entries

        try:
            return await asyncio.to_thread(_scan)
        except OSError as e:
            logger.error("List failed for %s: %s", prefix, e, exc_info=True)
            raise TransportError(f"Cannot list {prefix!r}: {e}") from e

    async def upload(self, path: str, data: bytes) -> None:
        resolved = self._resolve(path)
        if resolved == self.host_dir:
            raise TransportError("Cannot upload to the root prefix")

        def _write() -> None:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            resolved.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            logger.error("Upload failed for %s: %s", path, e, exc_info=True)
            raise TransportError(f"Cannot upload {path!r}: {e}") from e

    async def download(self, path: str) -> bytes:
        resolved = self._resolve(path)
        if not await asyncio.to_thread(resolved.is_file):
            raise NotFoundError(f"Object not found: {normalize_key(path)}")
        try:
            return await asyncio.to_thread(resolved.read_bytes)
        except FileNotFoundError:
            raise NotFoundError(f"Object not found: {normalize_key(path)}") from None
        except OSError as e:
            logger.error("Download failed for %s: %s", path, e, exc_info=True)
            raise TransportError(f"Cannot download {path!r}: {e}") from e

    async def delete(self, path: str) -> None:
        resolved = self._resolve(path)

        def _remove() -> None:
            if not resolved.is_file():
                raise NotFoundError(f"Object not found: {normalize_key(path)}")
            resolved.unlink()
            # Prune directories left without objects
            parent = resolved.parent
            while parent != self.host_dir:
                with contextlib.suppress(OSError):
                    parent.rmdir()
                if parent.exists():
                    break
                parent = parent.parent

        try:
            await asyncio.to_thread(_remove)
        except OSError as e:
            logger.error("Delete failed for %s: %s", path, e, exc_info=True)
            raise TransportError(f"Cannot delete {path!r}: {e}") from e
