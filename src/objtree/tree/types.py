"""Result types: ListResult, CreateResult, MoveResult, DeleteResult, etc."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .history import DeletedItem, OperationRecord
    from .items import Item, Snapshot


class ErrorKind(Enum):
    """Typed failure reasons carried by every result."""

    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    PARTIAL_FAILURE = "partial_failure"
    TRANSPORT_FAILURE = "transport_failure"
    INVALID_NAME = "invalid_name"
    INVALID_TARGET = "invalid_target"
    BUSY = "busy"


class SortField(Enum):
    """Sortable file attributes.  Folders always sort by name."""

    NAME = "name"
    UPDATED_AT = "updated_at"
    SIZE = "size"


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"

    def reversed(self) -> SortDirection:
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


@dataclass
class OperationResult:
    """Common shape of every result: a success flag, a message, an error kind."""

    success: bool
    message: str
    error: ErrorKind | None = None


@dataclass
class ListResult(OperationResult):
    """Result of a list or expand operation."""

    path: str = ""
    items: list[Item] = field(default_factory=list)


@dataclass
class CreateResult(OperationResult):
    """Result of a create_folder or upload_file operation."""

    path: str | None = None
    item: Item | None = None


@dataclass
class MoveResult(OperationResult):
    """Result of a rename or move operation.

    ``noop`` is True when nothing had to change (same name, or the
    destination is the current parent) and no adapter call was made.
    """

    old_path: str | None = None
    new_path: str | None = None
    noop: bool = False
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass
class DeleteResult(OperationResult):
    """Result of a single-item delete, with the snapshot taken beforehand."""

    path: str | None = None
    snapshot: Snapshot | None = None
    failed: list[str] = field(default_factory=list)


@dataclass
class BatchDeleteResult(OperationResult):
    """Result of a batch delete.

    ``deleted`` holds one entry per item that was fully deleted, in
    request order.  ``failed`` holds the paths of items that were not.
    """

    deleted: list[DeletedItem] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    results: list[DeleteResult] = field(default_factory=list)


@dataclass
class HistoryResult(OperationResult):
    """Result of undo/redo.  ``record`` is None when the stack was empty."""

    record: OperationRecord | None = None
    failed: list[str] = field(default_factory=list)


@dataclass
class RestoreResult(OperationResult):
    """Result of re-uploading a snapshot."""

    restored: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass
class DownloadResult(OperationResult):
    """Bytes of one file, for saving a copy or showing a preview."""

    path: str | None = None
    data: bytes | None = None
    file_type: str | None = None
