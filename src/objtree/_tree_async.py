"""FileTreeAsync — async facade wiring cache, operations, history, navigation and events."""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING, Any, assert_never

from objtree.config import TreeConfig
from objtree.events import EventBus, EventType, TreeEvent
from objtree.exceptions import OperationInProgressError
from objtree.tree.cache import TreeCache, filter_items
from objtree.tree.history import (
    DeletedItem,
    DeleteRecord,
    HistoryManager,
    MoveRecord,
    RenameRecord,
    relocation_of,
)
from objtree.tree.items import FolderItem
from objtree.tree.navigation import (
    DragController,
    DropDecision,
    Navigator,
    SelectionSet,
    flatten_visible,
)
from objtree.tree.operations import OperationEngine
from objtree.tree.paths import VirtualPath
from objtree.tree.types import (
    BatchDeleteResult,
    CreateResult,
    DeleteResult,
    DownloadResult,
    ErrorKind,
    HistoryResult,
    ListResult,
    MoveResult,
    SortDirection,
    SortField,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from objtree.store.protocol import ObjectStore
    from objtree.tree.history import OperationRecord
    from objtree.tree.items import Item
    from objtree.tree.navigation import Breadcrumb

logger = logging.getLogger(__name__)


def _not_cached(result_type: type, ref: object) -> Any:
    name = ref if isinstance(ref, str) else getattr(ref, "path", ref)
    return result_type(
        success=False, message=f"Item not in cache: {name}", error=ErrorKind.NOT_FOUND
    )


def _gated(result_type: type) -> Callable[..., Any]:
    """Refuse a mutation with ``ErrorKind.BUSY`` while another one is in flight."""

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(self: FileTreeAsync, *args: Any, **kwargs: Any) -> Any:
            try:
                self._acquire(func.__name__)
            except OperationInProgressError as e:
                logger.debug("Refused %s: %s", func.__name__, e)
                return result_type(success=False, message=str(e), error=ErrorKind.BUSY)
            try:
                return await func(self, *args, **kwargs)
            finally:
                self._in_flight = None

        return wrapper

    return decorator


class FileTreeAsync:
    """Async file tree over a flat object store.

    Owns the cache, the operation engine, the undo/redo history, the
    navigator, the selection and the drag controller.  Every mutation goes
    through here: it runs the engine operation, then updates the cache,
    records history and emits an event.

    Usage::

        tree = FileTreeAsync(MemoryObjectStore())
        await tree.open()
        await tree.create_folder("", "Scores")
        await tree.undo()

    Mutations are serialized by a busy flag; a second mutation started
    while one is running is refused with ``ErrorKind.BUSY`` and makes no
    store call.  Reads are never blocked.
    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        config: TreeConfig | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config or TreeConfig()
        self._store = store
        self._owns_bus = event_bus is None
        self._event_bus = event_bus or EventBus()
        self._cache = TreeCache(
            store,
            marker_name=self.config.marker_name,
            hide_markers=self.config.hide_markers,
            sort_field=self.config.sort_field,
            sort_direction=self.config.sort_direction,
        )
        self._engine = OperationEngine(store, marker_name=self.config.marker_name)
        self._history = HistoryManager(self._engine, limit=self.config.history_limit)
        self._navigator = Navigator(root_label=self.config.root_label)
        self._selection = SelectionSet()
        self._drag = DragController()
        self._in_flight: str | None = None
        self._opened = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> ListResult:
        """Open the store and list the root."""
        if not self._opened:
            await self._store.open()
            self._opened = True
        return await self._cache.list_children(VirtualPath.root())

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._history.clear()
        if self._owns_bus:
            self._event_bus.clear()
        await self._store.close()

    async def __aenter__(self) -> FileTreeAsync:
        await self.open()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def store(self) -> ObjectStore:
        return self._store

    @property
    def cache(self) -> TreeCache:
        return self._cache

    @property
    def engine(self) -> OperationEngine:
        return self._engine

    @property
    def history(self) -> HistoryManager:
        return self._history

    @property
    def navigator(self) -> Navigator:
        return self._navigator

    @property
    def selection(self) -> SelectionSet:
        return self._selection

    @property
    def drag(self) -> DragController:
        return self._drag

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def root(self) -> FolderItem:
        return self._cache.root

    @property
    def current_path(self) -> str:
        return self._navigator.current_path

    @property
    def busy(self) -> bool:
        return self._in_flight is not None

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    def item_at(self, path: str | VirtualPath) -> Item | None:
        """Cached item at *path*, or None when its parent was never listed."""
        return self._cache.find_path(path)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _acquire(self, operation: str) -> None:
        if self._in_flight is not None:
            raise OperationInProgressError(
                f"Cannot {operation}: {self._in_flight} is still in progress"
            )
        self._in_flight = operation

    def _resolve(self, ref: Item | str) -> Item | None:
        if isinstance(ref, str):
            return self._cache.find_path(ref)
        return ref

    async def _emit(
        self,
        event_type: EventType,
        path: VirtualPath | str,
        *,
        old_path: VirtualPath | str | None = None,
        item_id: str | None = None,
    ) -> None:
        if not self._event_bus.listening(event_type):
            return
        await self._event_bus.emit(
            TreeEvent(
                event_type=event_type,
                path=str(path),
                old_path=str(old_path) if old_path is not None else None,
                item_id=item_id,
            )
        )

    async def _resync(self, paths: Iterable[VirtualPath]) -> None:
        """Re-list the parents of *paths* and every cached listing below them."""
        targets: list[VirtualPath] = []
        for path in paths:
            targets.append(path.parent)
            targets.extend(self._cache.loaded_paths(path))
        for result in await self._cache.refresh_loaded(targets):
            if result.success:
                await self._emit(EventType.TREE_REFRESHED, result.path)

    def _forget_selection(self, item: Item) -> None:
        ids = [item.id]
        if isinstance(item, FolderItem):
            ids.extend(desc.id for desc in item.walk())
        self._selection.discard(ids)

    def _leave_deleted(self, path: VirtualPath) -> None:
        if self._navigator.current == path or path.is_ancestor_of(self._navigator.current):
            self._navigator.navigate_to(path.parent)

    # ------------------------------------------------------------------
    # Reading / navigation (never gated)
    # ------------------------------------------------------------------

    async def list_children(self, path: str | VirtualPath | None = None) -> ListResult:
        """List *path* (default: the current folder) and cache the result."""
        return await self._cache.list_children(
            self._navigator.current if path is None else path
        )

    def _not_a_folder(self, ref: Item | str, item: Item | None) -> ListResult:
        if item is None:
            return _not_cached(ListResult, ref)
        return ListResult(
            success=False, message=f"Not a folder: {item.path}", error=ErrorKind.INVALID_TARGET
        )

    async def toggle_expand(self, folder: Item | str) -> ListResult:
        item = self._resolve(folder)
        if not isinstance(item, FolderItem):
            return self._not_a_folder(folder, item)
        return await self._cache.toggle_expand(item)

    async def open_folder(self, folder: Item | str) -> ListResult:
        """Make *folder* the current folder and list it."""
        item = self._resolve(folder)
        if not isinstance(item, FolderItem):
            return self._not_a_folder(folder, item)
        self._navigator.navigate_into(item)
        return await self._cache.list_children(self._navigator.current)

    async def go_up(self) -> ListResult:
        self._navigator.navigate_up()
        return await self._cache.list_children(self._navigator.current)

    async def go_to_breadcrumb(self, path: str | VirtualPath) -> ListResult:
        try:
            self._navigator.navigate_to_breadcrumb(path)
        except ValueError as e:
            return ListResult(success=False, message=str(e), error=ErrorKind.INVALID_TARGET)
        return await self._cache.list_children(self._navigator.current)

    async def refresh(self, path: str | VirtualPath | None = None) -> ListResult:
        """Re-list *path* (default: the current folder) from the store."""
        result = await self._cache.refresh(self._navigator.current if path is None else path)
        if result.success:
            await self._emit(EventType.TREE_REFRESHED, result.path)
        return result

    async def download_file(self, item: Item | str) -> DownloadResult:
        """Fetch a file's bytes for saving or previewing.  Never gated."""
        resolved = self._resolve(item)
        if resolved is None:
            return _not_cached(DownloadResult, item)
        return await self._engine.download_file(resolved)

    def set_sort(
        self, field: SortField | str, direction: SortDirection | str | None = None
    ) -> list[Item]:
        """Change the sort and return the re-sorted current listing.

        Without *direction*, choosing the active field again flips the
        direction and choosing a new field sorts ascending.
        """
        field = SortField(field)
        if direction is None:
            if field is self._cache.sort_field:
                direction = self._cache.sort_direction.reversed()
            else:
                direction = SortDirection.ASC
        self._cache.set_sort(field, SortDirection(direction))
        return self._cache.items_at(self._navigator.current)

    def flatten_visible(self) -> list[Item]:
        return flatten_visible(self._cache, self._navigator.current)

    def filter_visible(self, query: str = "", file_type: str | None = None) -> list[Item]:
        return filter_items(self.flatten_visible(), query, file_type)

    def breadcrumbs(self) -> list[Breadcrumb]:
        return self._navigator.breadcrumbs()

    def focus_next(self) -> Item | None:
        return self._navigator.focus_next(self.flatten_visible())

    def focus_previous(self) -> Item | None:
        return self._navigator.focus_previous(self.flatten_visible())

    def focus_first(self) -> Item | None:
        return self._navigator.focus_first(self.flatten_visible())

    def focus_last(self) -> Item | None:
        return self._navigator.focus_last(self.flatten_visible())

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def toggle_select(self, item: Item | str) -> bool:
        resolved = self._resolve(item)
        if resolved is None:
            raise ValueError(f"Item not in cache: {item}")
        return self._selection.toggle(resolved)

    def select_all(self) -> None:
        """Select every visible item."""
        self._selection.select_all(self.flatten_visible())

    def exit_selection(self) -> None:
        self._selection.exit()

    def selected_items(self) -> list[Item]:
        return self._selection.resolve(self._cache)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @_gated(CreateResult)
    async def create_folder(self, parent: str | VirtualPath, name: str) -> CreateResult:
        result = await self._engine.create_folder(parent, name)
        if result.success and result.item is not None:
            self._history.forget_redo()
            self._cache.insert(result.item)
            await self._emit(EventType.ITEM_CREATED, result.item.vpath, item_id=result.item.id)
        return result

    @_gated(CreateResult)
    async def upload_file(
        self,
        parent: str | VirtualPath,
        name: str,
        data: bytes,
        *,
        overwrite: bool = True,
    ) -> CreateResult:
        """Store *data* as ``parent/name``.

        Uploads are not undoable, but like every change they end the redo chain.
        """
        result = await self._engine.upload_file(parent, name, data, overwrite=overwrite)
        if result.success and result.item is not None:
            self._history.forget_redo()
            self._cache.insert(result.item)
            await self._emit(EventType.ITEM_CREATED, result.item.vpath, item_id=result.item.id)
        return result

    # ------------------------------------------------------------------
    # Rename / Move
    # ------------------------------------------------------------------

    @_gated(MoveResult)
    async def rename_item(self, item: Item | str, new_name: str) -> MoveResult:
        resolved = self._resolve(item)
        if resolved is None:
            return _not_cached(MoveResult, item)
        old = resolved.vpath
        result = await self._engine.rename_item(resolved, new_name)
        await self._after_relocation(result, resolved, old, RenameRecord)
        return result

    @_gated(MoveResult)
    async def move_item(self, item: Item | str, destination: str | VirtualPath) -> MoveResult:
        resolved = self._resolve(item)
        if resolved is None:
            return _not_cached(MoveResult, item)
        return await self._move(resolved, VirtualPath.parse(destination))

    async def _move(self, item: Item, destination: VirtualPath) -> MoveResult:
        # Every move, dialog or drag, is recorded here and only here.
        old = item.vpath
        result = await self._engine.move_item(item, destination)
        await self._after_relocation(result, item, old, MoveRecord)
        return result

    async def _after_relocation(
        self,
        result: MoveResult,
        item: Item,
        old: VirtualPath,
        record_type: type[RenameRecord] | type[MoveRecord],
    ) -> None:
        if result.noop or result.new_path is None:
            return
        new = VirtualPath.parse(result.new_path)
        if result.success:
            self._cache.relocate(item, new)
            self._navigator.follow(old, new)
            self._history.record(record_type(item, old, new))
            await self._emit(EventType.ITEM_MOVED, new, old_path=old, item_id=item.id)
        elif result.error is ErrorKind.PARTIAL_FAILURE:
            logger.warning("Relocation %s -> %s partially failed, re-listing", old, new)
            await self._resync([old, new])

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    @_gated(DeleteResult)
    async def delete_item(self, item: Item | str) -> DeleteResult:
        resolved = self._resolve(item)
        if resolved is None:
            return _not_cached(DeleteResult, item)
        if resolved.vpath.is_root:
            return DeleteResult(
                success=False, message="Cannot delete the root", error=ErrorKind.INVALID_TARGET
            )

        result = await self._engine.delete_item(resolved)
        if result.success and result.snapshot is not None:
            self._drop_from_view(resolved)
            deleted = DeletedItem(resolved, resolved.vpath, result.snapshot)
            self._history.record(DeleteRecord((deleted,)))
            await self._emit(EventType.ITEM_DELETED, resolved.vpath, item_id=resolved.id)
        elif result.error is ErrorKind.PARTIAL_FAILURE:
            await self._resync([resolved.vpath])
        return result

    @_gated(BatchDeleteResult)
    async def batch_delete(self, items: Iterable[Item | str]) -> BatchDeleteResult:
        resolved: list[Item] = []
        missing: list[str] = []
        for ref in items:
            item = self._resolve(ref)
            if item is None:
                missing.append(ref if isinstance(ref, str) else ref.path)
            elif not item.vpath.is_root:
                resolved.append(item)
        result = await self._batch_delete(resolved)
        if missing:
            result.failed.extend(missing)
            result.success = False
            result.error = result.error or ErrorKind.NOT_FOUND
            result.message = f"{result.message}; not in cache: {', '.join(missing)}"
        return result

    @_gated(BatchDeleteResult)
    async def delete_selected(self) -> BatchDeleteResult:
        """Delete every selected item, then leave multi-select mode if all went."""
        items = [i for i in self._selection.resolve(self._cache) if not i.vpath.is_root]
        if not items:
            return BatchDeleteResult(success=True, message="Nothing selected")
        result = await self._batch_delete(items)
        if result.success:
            self._selection.exit()
        return result

    async def _batch_delete(self, items: list[Item]) -> BatchDeleteResult:
        result = await self._engine.batch_delete(items)
        for deleted in result.deleted:
            self._drop_from_view(deleted.item)
        if result.deleted:
            self._history.record(DeleteRecord(tuple(result.deleted)))
            for deleted in result.deleted:
                await self._emit(EventType.ITEM_DELETED, deleted.path, item_id=deleted.item.id)
        if result.failed:
            await self._resync(VirtualPath.parse(p) for p in result.failed)
        return result

    def _drop_from_view(self, item: Item) -> None:
        self._forget_selection(item)
        self._cache.remove(item)
        self._leave_deleted(item.vpath)

    # ------------------------------------------------------------------
    # Drag and drop
    # ------------------------------------------------------------------

    @_gated(MoveResult)
    async def drop(self, target: Item | str | None = None) -> MoveResult:
        """Finish the current drag on *target* (default: the hovered item).

        A drop on the item's own parent succeeds without any store call;
        an impossible drop is refused with ``INVALID_TARGET``.
        """
        resolved = self._resolve(target) if target is not None else None
        if target is not None and resolved is None:
            self._drag.reset()
            return _not_cached(MoveResult, target)

        decision = self._drag.drop(resolved)
        item, over = self._drag.item, self._drag.target
        self._drag.reset()

        match decision:
            case DropDecision.MOVE:
                assert item is not None and over is not None
                return await self._move(item, over.vpath)
            case DropDecision.NOOP:
                assert item is not None
                return MoveResult(
                    success=True,
                    message=f"{item.name} is already there",
                    old_path=item.path,
                    new_path=item.path,
                    noop=True,
                )
            case DropDecision.REJECTED:
                return MoveResult(
                    success=False,
                    message="Cannot drop here",
                    error=ErrorKind.INVALID_TARGET,
                    old_path=item.path if item is not None else None,
                )
            case _:
                assert_never(decision)

    # ------------------------------------------------------------------
    # Undo / Redo
    # ------------------------------------------------------------------

    @_gated(HistoryResult)
    async def undo(self) -> HistoryResult:
        record = self._history.peek_undo()
        result = await self._history.undo()
        if record is not None:
            await self._after_history(record, result, reverse=True)
        return result

    @_gated(HistoryResult)
    async def redo(self) -> HistoryResult:
        record = self._history.peek_redo()
        result = await self._history.redo()
        if record is not None:
            replayed = result.record if result.record is not None else record
            await self._after_history(replayed, result, reverse=False)
        return result

    async def _after_history(
        self, record: OperationRecord, result: HistoryResult, *, reverse: bool
    ) -> None:
        match record:
            case DeleteRecord():
                paths = [d.path for d in record.items]
                if result.success:
                    for deleted in record.items:
                        if reverse:
                            self._cache.insert(deleted.item)
                            await self._emit(
                                EventType.ITEM_RESTORED, deleted.path, item_id=deleted.item.id
                            )
                        else:
                            self._drop_from_view(deleted.item)
                            await self._emit(
                                EventType.ITEM_DELETED, deleted.path, item_id=deleted.item.id
                            )
            case RenameRecord() | MoveRecord():
                before, after = relocation_of(record)
                source, target = (after, before) if reverse else (before, after)
                paths = [source, target]
                item = record.item
                if result.success and self._cache.find(item.id) is item and item.vpath == source:
                    self._cache.relocate(item, target)
                    self._navigator.follow(source, target)
                if result.success:
                    await self._emit(EventType.ITEM_MOVED, target, old_path=source, item_id=item.id)
            case _:
                assert_never(record)
        await self._resync(paths)
