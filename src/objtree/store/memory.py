"""MemoryObjectStore — dict-backed adapter with call log and fault injection."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from objtree.exceptions import NotFoundError, TransportError

from .types import EntryKind, ObjectEntry

logger = logging.getLogger(__name__)

OPERATIONS = ("list", "upload", "download", "delete")


def normalize_key(path: str) -> str:
    """Strip leading/trailing slashes and collapse empty segments.

    Examples:
        normalize_key("/a//b/") -> "a/b"
        normalize_key("") -> ""
    """
    return "/".join(part for part in path.split("/") if part)


def immediate_children(
    keys: dict[str, tuple[int, datetime]], prefix: str
) -> list[ObjectEntry]:
    """Derive the direct children of *prefix* from a flat key map.

    Shared by adapters that keep a flat ``key -> (size, updated_at)`` view.
    """
    start = f"{prefix}/" if prefix else ""
    files: dict[str, ObjectEntry] = {}
    folders: dict[str, ObjectEntry] = {}
    for key, (size, updated_at) in keys.items():
        if not key.startswith(start):
            continue
        rest = key[len(start):]
        if not rest:
            continue
        head, sep, _ = rest.partition("/")
        if sep:
            folders.setdefault(head, ObjectEntry(name=head, kind=EntryKind.FOLDER))
        else:
            files[head] = ObjectEntry(
                name=head, kind=EntryKind.FILE, size=size, updated_at=updated_at
            )
    entries = list(folders.values())
    entries.extend(entry for name, entry in files.items() if name not in folders)
    entries.sort(key=lambda e: e.name)
    return entries


class MemoryObjectStore:
    """In-process object store.  No persistence, no folders, no rename.

    Every adapter call is appended to ``calls`` as ``(operation, path)``
    before it runs, so tests can assert exactly which calls were made.
    Failures can be injected per ``(operation, path)`` with ``fail_on``.

    Implements the ``ObjectStore`` protocol.
    """

    def __init__(
        self,
        objects: dict[str, bytes] | None = None,
        *,
        latency: float = 0.0,
    ) -> None:
        self._objects: dict[str, tuple[bytes, datetime]] = {}
        self._failures: dict[tuple[str, str], int | None] = {}
        self.latency = latency
        self.calls: list[tuple[str, str]] = []
        for path, data in (objects or {}).items():
            self._objects[normalize_key(path)] = (bytes(data), datetime.now(UTC))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """No-op — nothing to connect to."""

    async def close(self) -> None:
        """No-op — nothing to release."""

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail_on(self, operation: str, path: str, *, times: int | None = None) -> None:
        """Make *operation* on *path* raise ``TransportError``.

        ``times=None`` fails forever; otherwise the failure is consumed
        after *times* calls.
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        self._failures[(operation, normalize_key(path))] = times

    def clear_failures(self) -> None:
        self._failures.clear()

    def reset_calls(self) -> None:
        self.calls.clear()

    def calls_for(self, operation: str) -> list[str]:
        return [path for op, path in self.calls if op == operation]

    def keys(self) -> list[str]:
        """Every stored key, sorted."""
        return sorted(self._objects)

    def contents(self) -> dict[str, bytes]:
        return {key: data for key, (data, _) in sorted(self._objects.items())}

    async def _enter(self, operation: str, path: str) -> str:
        key = normalize_key(path)
        self.calls.append((operation, key))
        if self.latency:
            await asyncio.sleep(self.latency)
        failure = (operation, key)
        if failure in self._failures:
            remaining = self._failures[failure]
            if remaining is not None:
                if remaining <= 1:
                    del self._failures[failure]
                else:
                    self._failures[failure] = remaining - 1
            logger.debug("Injected %s failure for %s", operation, key)
            raise TransportError(f"Injected {operation} failure: {key}")
        return key

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def list(self, prefix: str = "") -> list[ObjectEntry]:
        key = await self._enter("list", prefix)
        flat = {k: (len(data), ts) for k, (data, ts) in self._objects.items()}
        return immediate_children(flat, key)

    async def upload(self, path: str, data: bytes) -> None:
        key = await self._enter("upload", path)
        if not key:
            raise TransportError("Cannot upload to the root prefix")
        self._objects[key] = (bytes(data), datetime.now(UTC))

    async def download(self, path: str) -> bytes:
        key = await self._enter("download", path)
        try:
            return self._objects[key][0]
        except KeyError:
            raise NotFoundError(f"Object not found: {key}") from None

    async def delete(self, path: str) -> None:
        key = await self._enter("delete", path)
        if self._objects.pop(key, None) is None:
            raise NotFoundError(f"Object not found: {key}")
