"""Operation records and the undo/redo HistoryManager."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Literal, assert_never

from .types import ErrorKind, HistoryResult

if TYPE_CHECKING:
    from .items import Item, Snapshot
    from .operations import OperationEngine
    from .paths import VirtualPath

logger = logging.getLogger(__name__)


class RecordKind(Enum):
    """Discriminant for the operation record union."""

    DELETE = "delete"
    RENAME = "rename"
    MOVE = "move"


@dataclass(frozen=True, slots=True)
class DeletedItem:
    """One deleted item with the path it had and the bytes captured before deletion."""

    item: Item
    path: VirtualPath
    snapshot: Snapshot

    @property
    def object_paths(self) -> list[str]:
        return [str(entry.path) for entry in self.snapshot]


@dataclass(frozen=True)
class DeleteRecord:
    """Reversible delete of one or more items."""

    kind: ClassVar[Literal[RecordKind.DELETE]] = RecordKind.DELETE

    items: tuple[DeletedItem, ...]

    def describe(self) -> str:
        return f"[DELETE] {', '.join(str(d.path) for d in self.items)}"


@dataclass(frozen=True)
class RenameRecord:
    """Rename of one item, fully determined by its two paths."""

    kind: ClassVar[Literal[RecordKind.RENAME]] = RecordKind.RENAME

    item: Item
    old_path: VirtualPath
    new_path: VirtualPath

    def describe(self) -> str:
        return f"[RENAME] {self.old_path} -> {self.new_path}"


@dataclass(frozen=True)
class MoveRecord:
    """Move of one item into another folder, fully determined by its two paths."""

    kind: ClassVar[Literal[RecordKind.MOVE]] = RecordKind.MOVE

    item: Item
    source_path: VirtualPath
    target_path: VirtualPath

    def describe(self) -> str:
        return f"[MOVE] {self.source_path} -> {self.target_path}"


OperationRecord = DeleteRecord | RenameRecord | MoveRecord


def relocation_of(record: RenameRecord | MoveRecord) -> tuple[VirtualPath, VirtualPath]:
    """``(before, after)`` paths of a rename or move record."""
    match record:
        case RenameRecord():
            return record.old_path, record.new_path
        case MoveRecord():
            return record.source_path, record.target_path
        case _:
            assert_never(record)


class HistoryManager:
    """Undo/redo stacks of completed operations.

    A record is only popped once its replay succeeded, so a failed undo
    or redo leaves both stacks exactly as they were and can be retried.
    Each record lives in exactly one of the two stacks.

    Replays refuse with ``CONFLICT`` when the destination is taken, so an
    item created there after the record was made is never overwritten.
    The one exception is retrying a replay that partially failed: the
    destination then holds that attempt's own leftovers, the check is
    skipped, and since uploads overwrite the retry completes the rest.
    """

    def __init__(self, engine: OperationEngine, *, limit: int | None = None) -> None:
        self._engine = engine
        self._limit = limit
        self._undo: list[OperationRecord] = []
        self._redo: list[OperationRecord] = []
        self._interrupted: list[tuple[OperationRecord, bool]] = []

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_stack(self) -> tuple[OperationRecord, ...]:
        """Oldest first; the last element is undone next."""
        return tuple(self._undo)

    @property
    def redo_stack(self) -> tuple[OperationRecord, ...]:
        return tuple(self._redo)

    def peek_undo(self) -> OperationRecord | None:
        return self._undo[-1] if self._undo else None

    def peek_redo(self) -> OperationRecord | None:
        return self._redo[-1] if self._redo else None

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
        self._interrupted.clear()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, op: OperationRecord) -> None:
        """Push a freshly completed operation and forget everything redoable."""
        self._undo.append(op)
        self.forget_redo()
        if self._limit is not None and len(self._undo) > self._limit:
            dropped = self._undo.pop(0)
            logger.debug("History limit reached, dropped %s", dropped.describe())
        logger.debug("Recorded %s", op.describe())

    def forget_redo(self) -> None:
        """Drop every redoable record.

        Called for each new user change, recorded or not: a redo replayed
        after it would act on a tree the record no longer describes.
        """
        if self._redo:
            logger.debug("Dropped %d redo records", len(self._redo))
        self._redo.clear()
        self._interrupted = [
            (r, rev) for r, rev in self._interrupted if any(r is u for u in self._undo)
        ]

    def _resuming(self, record: OperationRecord, reverse: bool) -> bool:
        return any(r is record and rev is reverse for r, rev in self._interrupted)

    def _settle(self, record: OperationRecord, reverse: bool, result: HistoryResult) -> None:
        if result.success:
            self._interrupted = [(r, rev) for r, rev in self._interrupted if r is not record]
        elif result.error is ErrorKind.PARTIAL_FAILURE and not self._resuming(record, reverse):
            self._interrupted.append((record, reverse))

    # ------------------------------------------------------------------
    # Undo / Redo
    # ------------------------------------------------------------------

    async def undo(self) -> HistoryResult:
        """Reverse the most recent operation."""
        record = self.peek_undo()
        if record is None:
            return HistoryResult(success=True, message="Nothing to undo")

        result = await self._reverse(record)
        self._settle(record, True, result)
        if not result.success:
            logger.warning("Undo failed for %s: %s", record.describe(), result.message)
            return result

        self._undo.pop()
        self._redo.append(record)
        logger.info("Undid %s", record.describe())
        return result

    async def redo(self) -> HistoryResult:
        """Re-apply the most recently undone operation."""
        record = self.peek_redo()
        if record is None:
            return HistoryResult(success=True, message="Nothing to redo")

        result = await self._replay(record)
        self._settle(record, False, result)
        if not result.success:
            logger.warning("Redo failed for %s: %s", record.describe(), result.message)
            return result

        replayed = result.record if result.record is not None else record
        self._redo.pop()
        self._undo.append(replayed)
        logger.info("Redid %s", replayed.describe())
        return result

    async def _reverse(self, record: OperationRecord) -> HistoryResult:
        match record:
            case DeleteRecord():
                if not self._resuming(record, True):
                    free = await self._engine.check_free(d.path for d in record.items)
                    if not free.success:
                        return HistoryResult(
                            success=False,
                            message=f"Undo delete refused: {free.message}",
                            error=free.error,
                            record=record,
                        )
                snapshot = tuple(entry for d in record.items for entry in d.snapshot)
                restored = await self._engine.restore(snapshot)
                if not restored.success:
                    return HistoryResult(
                        success=False,
                        message=f"Undo delete incomplete: {restored.message}",
                        error=restored.error,
                        record=record,
                        failed=restored.failed,
                    )
                return HistoryResult(
                    success=True,
                    message=f"Restored {len(record.items)} items",
                    record=record,
                )
            case RenameRecord() | MoveRecord():
                before, after = relocation_of(record)
                return await self._relocate(record, after, before, reverse=True)
            case _:
                assert_never(record)

    async def _replay(self, record: OperationRecord) -> HistoryResult:
        match record:
            case DeleteRecord():
                return await self._redelete(record)
            case RenameRecord() | MoveRecord():
                before, after = relocation_of(record)
                return await self._relocate(record, before, after, reverse=False)
            case _:
                assert_never(record)

    async def _relocate(
        self,
        record: RenameRecord | MoveRecord,
        source: VirtualPath,
        target: VirtualPath,
        *,
        reverse: bool,
    ) -> HistoryResult:
        verb = "Undo" if reverse else "Redo"
        moved = await self._engine.relocate(
            record.item,
            source,
            target,
            check_conflict=not self._resuming(record, reverse),
        )
        if not moved.success:
            return HistoryResult(
                success=False,
                message=f"{verb} failed: {moved.message}",
                error=moved.error,
                record=record,
                failed=moved.failed,
            )
        return HistoryResult(
            success=True,
            message=f"{verb}: moved {source} to {target}",
            record=record,
        )

    async def _redelete(self, record: DeleteRecord) -> HistoryResult:
        """Delete every item again, taking fresh snapshots.

        An item that is already gone (an earlier redo attempt got to it)
        keeps the snapshot it had.
        """
        refreshed: list[DeletedItem] = []
        for deleted in record.items:
            result = await self._engine.delete_item(deleted.item, deleted.path)
            if result.success and result.snapshot is not None:
                refreshed.append(DeletedItem(deleted.item, deleted.path, result.snapshot))
            elif result.error is ErrorKind.NOT_FOUND:
                refreshed.append(deleted)
            else:
                return HistoryResult(
                    success=False,
                    message=f"Redo delete failed on {deleted.path}: {result.message}",
                    error=result.error,
                    record=record,
                    failed=result.failed or [str(deleted.path)],
                )
        replayed = DeleteRecord(tuple(refreshed))
        return HistoryResult(
            success=True,
            message=f"Deleted {len(refreshed)} items again",
            record=replayed,
        )
