"""Object store adapters — the flat, path-keyed backends the tree runs on."""

from objtree.store.database import DatabaseObjectStore
from objtree.store.local_disk import LocalDiskObjectStore
from objtree.store.memory import MemoryObjectStore, normalize_key
from objtree.store.models import StoredObject, StoredObjectBase
from objtree.store.protocol import ObjectStore
from objtree.store.types import EntryKind, ObjectEntry

__all__ = [
    "DatabaseObjectStore",
    "EntryKind",
    "LocalDiskObjectStore",
    "MemoryObjectStore",
    "ObjectEntry",
    "ObjectStore",
    "StoredObject",
    "StoredObjectBase",
    "normalize_key",
]
