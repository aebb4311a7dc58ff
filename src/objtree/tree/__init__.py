"""Tree layer — cache, operations, history and navigation over an object store."""

from objtree.tree.cache import TreeCache, filter_items, sort_items
from objtree.tree.history import (
    DeletedItem,
    DeleteRecord,
    HistoryManager,
    MoveRecord,
    OperationRecord,
    RecordKind,
    RenameRecord,
)
from objtree.tree.items import FileItem, FolderItem, Item, ItemKind, Snapshot, SnapshotEntry
from objtree.tree.navigation import (
    Breadcrumb,
    DragController,
    DragPhase,
    DropDecision,
    Navigator,
    SelectionSet,
    classify_drop,
    flatten_visible,
)
from objtree.tree.operations import OperationEngine, top_level_only
from objtree.tree.paths import FILE_TYPES, VirtualPath, file_type_of, validate_name
from objtree.tree.types import (
    BatchDeleteResult,
    CreateResult,
    DeleteResult,
    DownloadResult,
    ErrorKind,
    HistoryResult,
    ListResult,
    MoveResult,
    OperationResult,
    RestoreResult,
    SortDirection,
    SortField,
)

__all__ = [
    "FILE_TYPES",
    "BatchDeleteResult",
    "Breadcrumb",
    "CreateResult",
    "DeleteRecord",
    "DeleteResult",
    "DeletedItem",
    "DownloadResult",
    "DragController",
    "DragPhase",
    "DropDecision",
    "ErrorKind",
    "FileItem",
    "FolderItem",
    "HistoryManager",
    "HistoryResult",
    "Item",
    "ItemKind",
    "ListResult",
    "MoveRecord",
    "MoveResult",
    "Navigator",
    "OperationEngine",
    "OperationRecord",
    "OperationResult",
    "RecordKind",
    "RenameRecord",
    "RestoreResult",
    "SelectionSet",
    "Snapshot",
    "SnapshotEntry",
    "SortDirection",
    "SortField",
    "TreeCache",
    "VirtualPath",
    "classify_drop",
    "file_type_of",
    "filter_items",
    "flatten_visible",
    "sort_items",
    "top_level_only",
    "validate_name",
]
