"""TreeCache — lazily mirrored, sorted view of the object store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, assert_never

from objtree.exceptions import ObjTreeError
from objtree.store.types import EntryKind

from .items import FileItem, FolderItem, ItemKind
from .paths import VirtualPath
from .types import ErrorKind, ListResult, SortDirection, SortField

if TYPE_CHECKING:
    from collections.abc import Iterable

    from objtree.store.protocol import ObjectStore
    from objtree.store.types import ObjectEntry

    from .items import Item

logger = logging.getLogger(__name__)


def _name_key(item: Item) -> tuple[str, str]:
    return item.name.casefold(), item.name


def _file_key(item: FileItem, field: SortField) -> tuple:
    match field:
        case SortField.NAME:
            return _name_key(item)
        case SortField.SIZE:
            return (item.size or 0, *_name_key(item))
        case SortField.UPDATED_AT:
            stamp = item.updated_at.timestamp() if item.updated_at else float("-inf")
            return (stamp, *_name_key(item))
        case _:
            assert_never(field)


def sort_items(
    items: Iterable[Item],
    field: SortField = SortField.NAME,
    direction: SortDirection = SortDirection.ASC,
) -> list[Item]:
    """Folders first (by name), then files by *field*; *direction* applies to both.

    Keys fall back to the name, so two sorts with the same arguments give
    the same order and flipping *direction* gives the exact reverse within
    each group.  ``sorted`` is stable for anything still tied.
    """
    folders: list[FolderItem] = []
    files: list[FileItem] = []
    for item in items:
        match item:
            case FolderItem():
                folders.append(item)
            case FileItem():
                files.append(item)
            case _:
                assert_never(item)
    reverse = direction is SortDirection.DESC
    ordered: list[Item] = sorted(folders, key=_name_key, reverse=reverse)
    ordered.extend(sorted(files, key=lambda f: _file_key(f, field), reverse=reverse))
    return ordered


def filter_items(
    items: Iterable[Item],
    query: str = "",
    file_type: str | None = None,
) -> list[Item]:
    """Keep items whose name contains *query* (case-insensitive).

    When *file_type* is given only files of that display category pass.
    """
    needle = query.strip().casefold()
    kept: list[Item] = []
    for item in items:
        if needle and needle not in item.name.casefold():
            continue
        if file_type is not None:
            if not isinstance(item, FileItem) or item.file_type != file_type:
                continue
        kept.append(item)
    return kept


class TreeCache:
    """In-memory tree of everything listed so far.

    Each listed folder path has one ``FolderItem`` node whose ``children``
    hold the last successful listing, already sorted.  Nodes are created
    on demand, so a path can be listed before its parent is.  Item objects
    are reused across re-listings, which keeps ids, ``expanded`` flags and
    loaded children stable for the whole session.

    A failed listing never touches cached state.
    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        marker_name: str = ".placeholder",
        hide_markers: bool = True,
        sort_field: SortField = SortField.NAME,
        sort_direction: SortDirection = SortDirection.ASC,
    ) -> None:
        self._store = store
        self.marker_name = marker_name
        self.hide_markers = hide_markers
        self._sort_field = sort_field
        self._sort_direction = sort_direction
        self._root = FolderItem(VirtualPath.root(), expanded=True)
        self._nodes: dict[VirtualPath, FolderItem] = {self._root.vpath: self._root}
        self._items: dict[str, Item] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def root(self) -> FolderItem:
        return self._root

    @property
    def sort_field(self) -> SortField:
        return self._sort_field

    @property
    def sort_direction(self) -> SortDirection:
        return self._sort_direction

    def node(self, path: str | VirtualPath) -> FolderItem | None:
        """The folder node for *path*, if that path was ever listed or seen."""
        return self._nodes.get(VirtualPath.parse(path))

    def find(self, item_id: str) -> Item | None:
        return self._items.get(item_id)

    def find_path(self, path: str | VirtualPath) -> Item | None:
        """Cached item at *path*, looked up through its parent's listing."""
        vpath = VirtualPath.parse(path)
        if vpath.is_root:
            return self._root
        parent = self._nodes.get(vpath.parent)
        for child in (parent.children if parent else None) or ():
            if child.vpath == vpath:
                return child
        return None

    def items_at(self, path: str | VirtualPath) -> list[Item]:
        """Cached children of *path*; empty when never listed."""
        node = self._nodes.get(VirtualPath.parse(path))
        if node is None or node.children is None:
            return []
        return list(node.children)

    def is_loaded(self, path: str | VirtualPath) -> bool:
        node = self._nodes.get(VirtualPath.parse(path))
        return node is not None and node.children is not None

    def loaded_paths(self, under: str | VirtualPath = "") -> list[VirtualPath]:
        """Paths at or below *under* that hold a cached listing, shallowest first."""
        base = VirtualPath.parse(under)
        paths = [
            p
            for p, node in self._nodes.items()
            if node.children is not None and (p == base or base.is_ancestor_of(p))
        ]
        return sorted(paths, key=lambda p: (len(p), p.parts))

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_children(self, path: str | VirtualPath = "") -> ListResult:
        """List *path* through the store and store the sorted result."""
        vpath = VirtualPath.parse(path)
        try:
            entries = await self._store.list(str(vpath))
        except ObjTreeError as e:
            logger.warning("List failed for %r: %s", str(vpath), e)
            return ListResult(
                success=False,
                message=f"Cannot list {str(vpath) or '/'}: {e}",
                error=ErrorKind.TRANSPORT_FAILURE,
                path=str(vpath),
                items=self.items_at(vpath),
            )

        node = self._nodes.get(vpath)
        if node is None:
            node = FolderItem(vpath)
            self._nodes[vpath] = node

        previous = {(child.kind, child.name): child for child in node.children or ()}
        items: list[Item] = []
        for entry in entries:
            if self._is_hidden(entry):
                continue
            items.append(self._item_from_entry(vpath, entry, previous))

        kept = {id(item) for item in items}
        for old in previous.values():
            if id(old) not in kept:
                self._forget(old)

        node.children = sort_items(items, self._sort_field, self._sort_direction)
        for item in items:
            self._remember(item)

        logger.debug("Listed %d items in %r", len(items), str(vpath))
        return ListResult(
            success=True,
            message=f"Listed {len(items)} items in {str(vpath) or '/'}",
            path=str(vpath),
            items=list(node.children),
        )

    async def refresh(self, path: str | VirtualPath) -> ListResult:
        """Re-derive the listing of *path* from the store."""
        return await self.list_children(path)

    async def refresh_loaded(self, paths: Iterable[str | VirtualPath]) -> list[ListResult]:
        """Refresh each of *paths* that currently has a cached listing."""
        results: list[ListResult] = []
        seen: set[VirtualPath] = set()
        for path in paths:
            vpath = VirtualPath.parse(path)
            if vpath in seen or not self.is_loaded(vpath):
                continue
            seen.add(vpath)
            results.append(await self.list_children(vpath))
        return results

    async def toggle_expand(self, folder: FolderItem) -> ListResult:
        """Flip ``expanded``; load children the first time the folder opens."""
        if folder.expanded:
            folder.expanded = False
            return ListResult(
                success=True,
                message=f"Collapsed {folder.path}",
                path=folder.path,
                items=list(folder.children or ()),
            )

        if folder.children is None:
            self._nodes.setdefault(folder.vpath, folder)
            result = await self.list_children(folder.vpath)
            if not result.success:
                return result

        folder.expanded = True
        return ListResult(
            success=True,
            message=f"Expanded {folder.path}",
            path=folder.path,
            items=list(folder.children or ()),
        )

    def _is_hidden(self, entry: ObjectEntry) -> bool:
        return (
            self.hide_markers
            and entry.kind is EntryKind.FILE
            and entry.name == self.marker_name
        )

    def _item_from_entry(
        self,
        parent: VirtualPath,
        entry: ObjectEntry,
        previous: dict[tuple[ItemKind, str], Item],
    ) -> Item:
        child_path = parent.child(entry.name)
        match entry.kind:
            case EntryKind.FOLDER:
                folder = previous.get((ItemKind.FOLDER, entry.name)) or self._nodes.get(child_path)
                if isinstance(folder, FolderItem):
                    folder.updated_at = entry.updated_at
                    return folder
                return FolderItem(child_path, updated_at=entry.updated_at)
            case EntryKind.FILE:
                file = previous.get((ItemKind.FILE, entry.name))
                if isinstance(file, FileItem):
                    file.size = entry.size
                    file.updated_at = entry.updated_at
                    return file
                return FileItem(child_path, size=entry.size, updated_at=entry.updated_at)
            case _:
                assert_never(entry.kind)

    # ------------------------------------------------------------------
    # Sorting / filtering
    # ------------------------------------------------------------------

    def sort(
        self,
        items: Iterable[Item],
        field: SortField | None = None,
        direction: SortDirection | None = None,
    ) -> list[Item]:
        """Sort *items* with the given or the active field and direction."""
        return sort_items(items, field or self._sort_field, direction or self._sort_direction)

    def set_sort(self, field: SortField, direction: SortDirection) -> None:
        """Change the active sort and re-sort every cached listing."""
        self._sort_field = SortField(field)
        self._sort_direction = SortDirection(direction)
        for node in self._nodes.values():
            if node.children is not None:
                node.children = self.sort(node.children)

    def filter(
        self, items: Iterable[Item], query: str = "", file_type: str | None = None
    ) -> list[Item]:
        return filter_items(items, query, file_type)

    # ------------------------------------------------------------------
    # Mutation (called after the store confirmed the change)
    # ------------------------------------------------------------------

    def insert(self, item: Item) -> bool:
        """Add *item* to its parent's cached listing, replacing a same-name entry.

        Returns False when the parent listing is not loaded; the item will
        show up on the next listing instead.
        """
        parent = self._nodes.get(item.vpath.parent)
        if parent is None or parent.children is None:
            return False
        replaced = [c for c in parent.children if c.name == item.name and c is not item]
        for old in replaced:
            self._forget(old)
        siblings = [c for c in parent.children if c.name != item.name]
        siblings.append(item)
        parent.children = self.sort(siblings)
        self._remember(item)
        return True

    def remove(self, item: Item) -> None:
        """Drop *item*, its loaded subtree and any node below its path."""
        parent = self._nodes.get(item.vpath.parent)
        if parent is not None and parent.children is not None:
            parent.children = [c for c in parent.children if c is not item]
        self._forget(item)

    def relocate(self, item: Item, new_path: VirtualPath) -> None:
        """Give *item* a new path and rebase every cached descendant with it.

        Runs synchronously, so no reader ever sees a half-updated subtree.
        """
        old_path = item.vpath
        if new_path == old_path:
            return

        old_parent = self._nodes.get(old_path.parent)
        if old_parent is not None and old_parent.children is not None:
            old_parent.children = [c for c in old_parent.children if c is not item]

        moved: dict[int, Item] = {id(item): item}
        if isinstance(item, FolderItem):
            for desc in item.walk():
                moved[id(desc)] = desc
        for key in [k for k in self._nodes if k == old_path or old_path.is_ancestor_of(k)]:
            node = self._nodes.pop(key)
            moved[id(node)] = node
            for desc in node.walk():
                moved[id(desc)] = desc

        # Moved nodes are out of _nodes here, so stale entries can be swept safely.
        new_parent = self._nodes.get(new_path.parent)
        if new_parent is not None and new_parent.children is not None:
            for stale in new_parent.children:
                if stale.name == new_path.name and id(stale) not in moved:
                    self._forget(stale)

        for obj in moved.values():
            if obj.vpath == old_path or old_path.is_ancestor_of(obj.vpath):
                obj.vpath = obj.vpath.rebase(old_path, new_path)
        for obj in moved.values():
            self._items[obj.id] = obj
            if isinstance(obj, FolderItem):
                self._nodes[obj.vpath] = obj

        if new_parent is not None and new_parent.children is not None:
            siblings = [
                c for c in new_parent.children if c.name != new_path.name and c is not item
            ]
            siblings.append(item)
            new_parent.children = self.sort(siblings)
        self._remember(item)
        logger.debug(
            "Relocated %r -> %r (%d cached items)", str(old_path), str(new_path), len(moved)
        )

    def _remember(self, item: Item) -> None:
        self._items[item.id] = item
        if isinstance(item, FolderItem):
            self._nodes[item.vpath] = item
            for desc in item.walk():
                self._items[desc.id] = desc
                if isinstance(desc, FolderItem):
                    self._nodes[desc.vpath] = desc

    def _forget(self, item: Item) -> None:
        self._items.pop(item.id, None)
        if isinstance(item, FileItem):
            return
        for desc in item.walk():
            self._items.pop(desc.id, None)
        prefix = item.vpath
        for key in [k for k in self._nodes if k == prefix or prefix.is_ancestor_of(k)]:
            node = self._nodes.pop(key)
            self._items.pop(node.id, None)
