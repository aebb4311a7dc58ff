"""objtree: a virtual file tree over a flat object store.

Folders, rename, move and undoable delete on top of a backend that only
knows list, upload, download and delete.
"""

__version__ = "0.1.0"

from objtree._tree import FileTree
from objtree._tree_async import FileTreeAsync
from objtree.config import TreeConfig
from objtree.events import EventBus, EventType, TreeEvent
from objtree.exceptions import (
    ConflictError,
    InvalidNameError,
    InvalidTargetError,
    NotFoundError,
    ObjTreeError,
    OperationInProgressError,
    PartialFailureError,
    TransportError,
)
from objtree.store import (
    DatabaseObjectStore,
    EntryKind,
    LocalDiskObjectStore,
    MemoryObjectStore,
    ObjectEntry,
    ObjectStore,
)
from objtree.tree import (
    BatchDeleteResult,
    Breadcrumb,
    CreateResult,
    DeleteRecord,
    DeleteResult,
    DownloadResult,
    DropDecision,
    ErrorKind,
    FileItem,
    FolderItem,
    HistoryResult,
    Item,
    ListResult,
    MoveRecord,
    MoveResult,
    RenameRecord,
    SortDirection,
    SortField,
    VirtualPath,
)

__all__ = [
    "BatchDeleteResult",
    "Breadcrumb",
    "ConflictError",
    "CreateResult",
    "DatabaseObjectStore",
    "DeleteRecord",
    "DeleteResult",
    "DownloadResult",
    "DropDecision",
    "EntryKind",
    "ErrorKind",
    "EventBus",
    "EventType",
    "FileItem",
    "FileTree",
    "FileTreeAsync",
    "FolderItem",
    "HistoryResult",
    "InvalidNameError",
    "InvalidTargetError",
    "Item",
    "ListResult",
    "LocalDiskObjectStore",
    "MemoryObjectStore",
    "MoveRecord",
    "MoveResult",
    "NotFoundError",
    "ObjTreeError",
    "ObjectEntry",
    "ObjectStore",
    "OperationInProgressError",
    "PartialFailureError",
    "RenameRecord",
    "SortDirection",
    "SortField",
    "TransportError",
    "TreeConfig",
    "TreeEvent",
    "VirtualPath",
    "__version__",
]
