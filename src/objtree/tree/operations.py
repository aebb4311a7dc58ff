"""OperationEngine — folder, rename, move, and delete built from flat store calls.

The store only knows ``list``, ``upload``, ``download`` and ``delete``.
Every higher-level operation here is a sequence of those calls:

- create folder = upload an empty marker object inside the new folder
- rename / move = download → upload under the new path → delete, per object
- delete        = download everything (snapshot) → delete, per object

Objects are processed one at a time so each failure can be attributed to
a single path.  Nothing in this module touches history or the cache; the
facade does both after looking at the result.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, assert_never

from objtree.exceptions import (
    ConflictError,
    InvalidNameError,
    InvalidTargetError,
    NotFoundError,
    ObjTreeError,
    PartialFailureError,
)
from objtree.store.types import EntryKind

from .history import DeletedItem
from .items import FileItem, FolderItem, SnapshotEntry
from .paths import VirtualPath, validate_name
from .types import (
    BatchDeleteResult,
    CreateResult,
    DeleteResult,
    DownloadResult,
    ErrorKind,
    MoveResult,
    OperationResult,
    RestoreResult,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from objtree.store.protocol import ObjectStore

    from .items import Item, Snapshot

logger = logging.getLogger(__name__)


def _error_kind(exc: Exception) -> ErrorKind:
    """Map an exception raised below the engine onto a result error kind."""
    if isinstance(exc, ConflictError):
        return ErrorKind.CONFLICT
    if isinstance(exc, InvalidNameError):
        return ErrorKind.INVALID_NAME
    if isinstance(exc, InvalidTargetError):
        return ErrorKind.INVALID_TARGET
    if isinstance(exc, NotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(exc, PartialFailureError):
        return ErrorKind.PARTIAL_FAILURE
    return ErrorKind.TRANSPORT_FAILURE


def top_level_only(items: Iterable[Item]) -> list[Item]:
    """Drop items that sit inside another item of the same batch.

    Deleting a folder already deletes its contents, so a selection that
    holds both a folder and one of its descendants keeps the folder only.
    Order and first occurrence are preserved.
    """
    unique: dict[VirtualPath, Item] = {}
    for item in items:
        unique.setdefault(item.vpath, item)
    folders = [p for p, i in unique.items() if isinstance(i, FolderItem)]
    return [
        item
        for path, item in unique.items()
        if not any(folder.is_ancestor_of(path) for folder in folders)
    ]


class OperationEngine:
    """Translates one user intent into object store calls.

    Every public method validates first, checks for collisions with a
    read-only ``list`` call, and only then issues mutating calls.
    Expected failures come back as typed results; nothing is raised
    for them.
    """

    def __init__(self, store: ObjectStore, *, marker_name: str = ".placeholder") -> None:
        self._store = store
        self.marker_name = marker_name

    # =========================================================================
    # Store helpers
    # =========================================================================

    async def _names_in(self, folder: VirtualPath) -> dict[str, EntryKind]:
        entries = await self._store.list(str(folder))
        return {entry.name: entry.kind for entry in entries}

    async def _ensure_free(self, target: VirtualPath) -> None:
        names = await self._names_in(target.parent)
        if target.name in names:
            where = str(target.parent) or "/"
            raise ConflictError(f"An item named {target.name!r} already exists in {where}")

    async def _ensure_folder(self, folder: VirtualPath) -> None:
        if folder.is_root:
            return
        names = await self._names_in(folder.parent)
        if names.get(folder.name) is not EntryKind.FOLDER:
            raise InvalidTargetError(f"Destination is not a folder: {folder}")

    async def enumerate_objects(self, folder: VirtualPath) -> list[VirtualPath]:
        """Every stored object below *folder*, depth-first.

        Within each folder the marker comes last, so a folder keeps
        existing at its old path until all of its content has moved.
        """
        entries = await self._store.list(str(folder))
        objects: list[VirtualPath] = []
        marker: VirtualPath | None = None
        for entry in sorted(entries, key=lambda e: e.name):
            child = folder.child(entry.name)
            match entry.kind:
                case EntryKind.FOLDER:
                    objects.extend(await self.enumerate_objects(child))
                case EntryKind.FILE:
                    if entry.name == self.marker_name:
                        marker = child
                    else:
                        objects.append(child)
                case _:
                    assert_never(entry.kind)
        if marker is not None:
            objects.append(marker)
        return objects

    async def objects_of(self, item: Item, path: VirtualPath | None = None) -> list[VirtualPath]:
        """Stored objects making up *item* (at *path* if given)."""
        path = path if path is not None else item.vpath
        match item:
            case FileItem():
                return [path]
            case FolderItem():
                return await self.enumerate_objects(path)
            case _:
                assert_never(item)

    async def capture(self, item: Item, path: VirtualPath | None = None) -> Snapshot:
        """Download every object of *item*.

        *path* overrides the item's own path.  Raises on the first failure.
        """
        objects = await self.objects_of(item, path)
        if not objects:
            raise NotFoundError(f"Nothing stored under {path if path is not None else item.vpath}")
        snapshot: list[SnapshotEntry] = []
        for obj in objects:
            snapshot.append(SnapshotEntry(obj, await self._store.download(str(obj))))
        return tuple(snapshot)

    async def _transfer(self, source: VirtualPath, target: VirtualPath) -> None:
        data = await self._store.download(str(source))
        await self._store.upload(str(target), data)
        try:
            await self._store.delete(str(source))
        except ObjTreeError as e:
            raise PartialFailureError(
                f"Copied {source} to {target} but could not delete the original: {e}",
                succeeded=[str(target)],
                failed=[str(source)],
            ) from e

    # =========================================================================
    # Create
    # =========================================================================

    async def create_folder(self, parent: str | VirtualPath, name: str) -> CreateResult:
        """Materialize ``parent/name`` by uploading an empty marker into it."""
        parent_path = VirtualPath.parse(parent)
        try:
            validate_name(name, marker_name=self.marker_name)
            target = parent_path.child(name)
            await self._ensure_free(target)
            await self._store.upload(str(target.child(self.marker_name)), b"")
        except ObjTreeError as e:
            logger.debug("Create folder %r in %r refused: %s", name, str(parent_path), e)
            return CreateResult(success=False, message=str(e), error=_error_kind(e))

        logger.info("Created folder %s", target)
        return CreateResult(
            success=True,
            message=f"Created folder: {target}",
            path=str(target),
            item=FolderItem(target, updated_at=datetime.now(UTC), children=[]),
        )

    async def upload_file(
        self,
        parent: str | VirtualPath,
        name: str,
        data: bytes,
        *,
        overwrite: bool = True,
    ) -> CreateResult:
        """Store *data* as ``parent/name``."""
        parent_path = VirtualPath.parse(parent)
        try:
            validate_name(name, marker_name=self.marker_name)
            target = parent_path.child(name)
            names = await self._names_in(parent_path)
            kind = names.get(name)
            if kind is EntryKind.FOLDER or (kind is not None and not overwrite):
                raise ConflictError(f"An item named {name!r} already exists in {parent_path}")
            await self._store.upload(str(target), data)
        except ObjTreeError as e:
            return CreateResult(success=False, message=str(e), error=_error_kind(e))

        logger.info("Uploaded %s (%d bytes)", target, len(data))
        return CreateResult(
            success=True,
            message=f"Uploaded: {target}",
            path=str(target),
            item=FileItem(target, size=len(data), updated_at=datetime.now(UTC)),
        )

    # =========================================================================
    # Read
    # =========================================================================

    async def download_file(self, item: Item) -> DownloadResult:
        """Fetch the bytes of a single file.  Folders cannot be downloaded."""
        if not isinstance(item, FileItem):
            return DownloadResult(
                success=False,
                message=f"Not a file: {item.path or '/'}",
                error=ErrorKind.INVALID_TARGET,
                path=item.path,
            )
        try:
            data = await self._store.download(item.path)
        except ObjTreeError as e:
            logger.debug("Download of %s failed: %s", item.path, e)
            return DownloadResult(
                success=False, message=str(e), error=_error_kind(e), path=item.path
            )
        return DownloadResult(
            success=True,
            message=f"Downloaded {item.path} ({len(data)} bytes)",
            path=item.path,
            data=data,
            file_type=item.file_type,
        )

    async def check_free(self, paths: Iterable[VirtualPath]) -> OperationResult:
        """``CONFLICT`` if any of *paths* is already taken in its parent folder.

        Issues one ``list`` per distinct parent and nothing else.
        """
        by_parent: dict[VirtualPath, list[VirtualPath]] = {}
        for path in paths:
            by_parent.setdefault(path.parent, []).append(path)
        taken: list[str] = []
        try:
            for parent, children in by_parent.items():
                names = await self._names_in(parent)
                taken.extend(str(child) for child in children if child.name in names)
        except ObjTreeError as e:
            return OperationResult(success=False, message=str(e), error=_error_kind(e))
        if taken:
            return OperationResult(
                success=False,
                message=f"Already taken: {', '.join(taken)}",
                error=ErrorKind.CONFLICT,
            )
        return OperationResult(success=True, message="All paths are free")

    # =========================================================================
    # Rename / Move
    # =========================================================================

    async def relocate(
        self,
        item: Item,
        source: VirtualPath,
        target: VirtualPath,
        *,
        check_conflict: bool = True,
    ) -> MoveResult:
        """Move every object of *item* from *source* to *target*.

        Folder objects are transferred one by one; a failing object does
        not stop the rest.  If anything failed the result names both the
        objects that moved and the ones that did not.
        """
        src, dst = str(source), str(target)
        if source == target:
            return MoveResult(
                success=True,
                message="Source and destination are the same",
                old_path=src,
                new_path=dst,
                noop=True,
            )

        try:
            if check_conflict:
                await self._ensure_free(target)
            objects = await self.objects_of(item, source)
        except ObjTreeError as e:
            return MoveResult(
                success=False, message=str(e), error=_error_kind(e), old_path=src, new_path=dst
            )
        if not objects:
            return MoveResult(
                success=False,
                message=f"Nothing stored under {src}",
                error=ErrorKind.NOT_FOUND,
                old_path=src,
                new_path=dst,
            )

        succeeded: list[str] = []
        failed: list[str] = []
        errors: list[Exception] = []
        for obj in objects:
            try:
                await self._transfer(obj, obj.rebase(source, target))
            except ObjTreeError as e:
                logger.warning("Transfer failed for %s: %s", obj, e)
                failed.append(str(obj))
                errors.append(e)
            else:
                succeeded.append(str(obj))

        if failed:
            if succeeded or any(isinstance(e, PartialFailureError) for e in errors):
                error = ErrorKind.PARTIAL_FAILURE
                message = (
                    f"Moved {len(succeeded)} of {len(objects)} objects from {src} to {dst}; "
                    f"failed: {', '.join(failed)}"
                )
            else:
                error = _error_kind(errors[0])
                message = f"Cannot move {src} to {dst}: {errors[0]}"
            return MoveResult(
                success=False,
                message=message,
                error=error,
                old_path=src,
                new_path=dst,
                succeeded=succeeded,
                failed=failed,
            )

        logger.info("Moved %s -> %s (%d objects)", src, dst, len(objects))
        return MoveResult(
            success=True,
            message=f"Moved {src} to {dst}",
            old_path=src,
            new_path=dst,
            succeeded=succeeded,
        )

    async def rename_item(self, item: Item, new_name: str) -> MoveResult:
        """Rename *item* in place: same parent, new last segment."""
        if item.vpath.is_root:
            return MoveResult(
                success=False, message="Cannot rename the root", error=ErrorKind.INVALID_TARGET
            )
        try:
            validate_name(new_name, marker_name=self.marker_name)
        except InvalidNameError as e:
            return MoveResult(
                success=False, message=str(e), error=ErrorKind.INVALID_NAME, old_path=item.path
            )
        if new_name == item.name:
            return MoveResult(
                success=True,
                message=f"Name unchanged: {item.path}",
                old_path=item.path,
                new_path=item.path,
                noop=True,
            )
        return await self.relocate(item, item.vpath, item.vpath.with_name(new_name))

    async def move_item(self, item: Item, destination: str | VirtualPath) -> MoveResult:
        """Move *item* into the folder at *destination*, keeping its name."""
        dest = VirtualPath.parse(destination)
        if item.vpath.is_root:
            return MoveResult(
                success=False, message="Cannot move the root", error=ErrorKind.INVALID_TARGET
            )
        if dest == item.vpath.parent:
            return MoveResult(
                success=True,
                message=f"{item.name} is already in {str(dest) or '/'}",
                old_path=item.path,
                new_path=item.path,
                noop=True,
            )
        if isinstance(item, FolderItem) and (dest == item.vpath or item.vpath.is_ancestor_of(dest)):
            return MoveResult(
                success=False,
                message=f"Cannot move folder into itself: {dest} is inside {item.path}",
                error=ErrorKind.INVALID_TARGET,
                old_path=item.path,
            )
        try:
            await self._ensure_folder(dest)
        except ObjTreeError as e:
            return MoveResult(
                success=False, message=str(e), error=_error_kind(e), old_path=item.path
            )
        return await self.relocate(item, item.vpath, dest.child(item.name))

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete_item(self, item: Item, at: VirtualPath | None = None) -> DeleteResult:
        """Snapshot *item*, then delete every object it is made of.

        No destructive call is issued until the snapshot is complete.  If
        some deletions fail, the objects already deleted are uploaded again
        from the snapshot so the item is not left half-deleted.
        """
        vpath = at if at is not None else item.vpath
        path = str(vpath)
        try:
            snapshot = await self.capture(item, vpath)
        except ObjTreeError as e:
            logger.debug("Snapshot of %s failed: %s", path, e)
            return DeleteResult(
                success=False,
                message=f"Cannot snapshot {path}: {e}",
                error=_error_kind(e),
                path=path,
            )

        deleted: list[SnapshotEntry] = []
        failed: list[str] = []
        for entry in snapshot:
            try:
                await self._store.delete(str(entry.path))
            except NotFoundError:
                logger.debug("Already gone: %s", entry.path)
                deleted.append(entry)
            except ObjTreeError as e:
                logger.warning("Delete failed for %s: %s", entry.path, e)
                failed.append(str(entry.path))
            else:
                deleted.append(entry)

        if failed:
            rollback = await self.restore(tuple(deleted))
            if rollback.failed:
                logger.warning("Rollback of %s incomplete: %s", path, rollback.failed)
                return DeleteResult(
                    success=False,
                    message=(
                        f"Partially deleted {path}; could not delete {', '.join(failed)} "
                        f"nor restore {', '.join(rollback.failed)}"
                    ),
                    error=ErrorKind.PARTIAL_FAILURE,
                    path=path,
                    snapshot=snapshot,
                    failed=failed + rollback.failed,
                )
            return DeleteResult(
                success=False,
                message=f"Cannot delete {path}: failed on {', '.join(failed)}",
                error=ErrorKind.TRANSPORT_FAILURE,
                path=path,
                failed=failed,
            )

        logger.info("Deleted %s (%d objects)", path, len(snapshot))
        return DeleteResult(
            success=True,
            message=f"Deleted: {path}",
            path=path,
            snapshot=snapshot,
        )

    async def batch_delete(self, items: Iterable[Item]) -> BatchDeleteResult:
        """Delete *items* one after another and aggregate the snapshots.

        Failed items are reported and left out of ``deleted``.
        """
        batch = top_level_only(items)
        deleted: list[DeletedItem] = []
        failed: list[str] = []
        results: list[DeleteResult] = []
        for item in batch:
            result = await self.delete_item(item)
            results.append(result)
            if result.success and result.snapshot is not None:
                deleted.append(DeletedItem(item, item.vpath, result.snapshot))
            else:
                failed.append(item.path)

        if not failed:
            return BatchDeleteResult(
                success=True,
                message=f"Deleted {len(deleted)} items",
                deleted=deleted,
                results=results,
            )
        first_error = next(r.error for r in results if not r.success)
        return BatchDeleteResult(
            success=False,
            message=f"Deleted {len(deleted)} of {len(batch)} items; failed: {', '.join(failed)}",
            error=ErrorKind.PARTIAL_FAILURE if deleted else first_error,
            deleted=deleted,
            failed=failed,
            results=results,
        )

    # =========================================================================
    # Restore
    # =========================================================================

    async def restore(self, snapshot: Snapshot) -> RestoreResult:
        """Upload every snapshot entry back to its original path.

        Uploads overwrite, so restoring twice is harmless.
        """
        restored: list[str] = []
        failed: list[str] = []
        for entry in snapshot:
            try:
                await self._store.upload(str(entry.path), entry.content)
            except ObjTreeError as e:
                logger.warning("Restore failed for %s: %s", entry.path, e)
                failed.append(str(entry.path))
            else:
                restored.append(str(entry.path))

        if failed:
            return RestoreResult(
                success=False,
                message=f"Restored {len(restored)} of {len(snapshot)} objects",
                error=ErrorKind.PARTIAL_FAILURE if restored else ErrorKind.TRANSPORT_FAILURE,
                restored=restored,
                failed=failed,
            )
        return RestoreResult(
            success=True,
            message=f"Restored {len(restored)} objects",
            restored=restored,
        )
