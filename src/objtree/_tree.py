"""FileTree — synchronous facade over FileTreeAsync."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from objtree._tree_async import FileTreeAsync

if TYPE_CHECKING:
    from collections.abc import Iterable

    from objtree.config import TreeConfig
    from objtree.events import EventBus
    from objtree.store.protocol import ObjectStore
    from objtree.tree.cache import TreeCache
    from objtree.tree.history import HistoryManager
    from objtree.tree.items import FolderItem, Item
    from objtree.tree.navigation import Breadcrumb, DragController, SelectionSet
    from objtree.tree.paths import VirtualPath
    from objtree.tree.types import (
        BatchDeleteResult,
        CreateResult,
        DeleteResult,
        DownloadResult,
        HistoryResult,
        ListResult,
        MoveResult,
        SortDirection,
        SortField,
    )

logger = logging.getLogger(__name__)


class FileTree:
    """File tree with a synchronous API.

    Runs a ``FileTreeAsync`` on a private event loop in a daemon thread,
    so it can be driven from plain sync code, a REPL, or a GUI callback.
    Every method submits the matching coroutine and blocks for its result.

    Usage::

        with FileTree(LocalDiskObjectStore("/srv/bucket")) as tree:
            tree.create_folder("", "Scores")
            tree.rename_item("song.mp3", "song-final.mp3")
            tree.undo()
    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        config: TreeConfig | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._closed = False

        # Private event loop in a daemon thread
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

        self._async = FileTreeAsync(store, config=config, event_bus=event_bus)
        try:
            self._run(self._async.open())
        except Exception:
            self._stop_loop()
            raise

    def _run(self, coro: Any) -> Any:
        """Submit *coro* to the private loop and block for the result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def _stop_loop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the store, stop the event loop and join the thread."""
        if self._closed:
            return
        self._closed = True

        try:
            self._run(self._async.close())
        finally:
            self._stop_loop()

    def __enter__(self) -> FileTree:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def async_tree(self) -> FileTreeAsync:
        return self._async

    @property
    def cache(self) -> TreeCache:
        return self._async.cache

    @property
    def history(self) -> HistoryManager:
        return self._async.history

    @property
    def selection(self) -> SelectionSet:
        return self._async.selection

    @property
    def drag(self) -> DragController:
        return self._async.drag

    @property
    def event_bus(self) -> EventBus:
        return self._async.event_bus

    @property
    def root(self) -> FolderItem:
        return self._async.root

    @property
    def current_path(self) -> str:
        return self._async.current_path

    @property
    def can_undo(self) -> bool:
        return self._async.can_undo

    @property
    def can_redo(self) -> bool:
        return self._async.can_redo

    def item_at(self, path: str | VirtualPath) -> Item | None:
        return self._async.item_at(path)

    # ------------------------------------------------------------------
    # Reading / navigation (sync)
    # ------------------------------------------------------------------

    def list_children(self, path: str | VirtualPath | None = None) -> ListResult:
        return self._run(self._async.list_children(path))

    def toggle_expand(self, folder: Item | str) -> ListResult:
        return self._run(self._async.toggle_expand(folder))

    def open_folder(self, folder: Item | str) -> ListResult:
        return self._run(self._async.open_folder(folder))

    def go_up(self) -> ListResult:
        return self._run(self._async.go_up())

    def go_to_breadcrumb(self, path: str | VirtualPath) -> ListResult:
        return self._run(self._async.go_to_breadcrumb(path))

    def refresh(self, path: str | VirtualPath | None = None) -> ListResult:
        return self._run(self._async.refresh(path))

    def download_file(self, item: Item | str) -> DownloadResult:
        return self._run(self._async.download_file(item))

    def set_sort(
        self, field: SortField | str, direction: SortDirection | str | None = None
    ) -> list[Item]:
        return self._async.set_sort(field, direction)

    def flatten_visible(self) -> list[Item]:
        return self._async.flatten_visible()

    def filter_visible(self, query: str = "", file_type: str | None = None) -> list[Item]:
        return self._async.filter_visible(query, file_type)

    def breadcrumbs(self) -> list[Breadcrumb]:
        return self._async.breadcrumbs()

    def focus_next(self) -> Item | None:
        return self._async.focus_next()

    def focus_previous(self) -> Item | None:
        return self._async.focus_previous()

    def focus_first(self) -> Item | None:
        return self._async.focus_first()

    def focus_last(self) -> Item | None:
        return self._async.focus_last()

    def toggle_select(self, item: Item | str) -> bool:
        return self._async.toggle_select(item)

    def select_all(self) -> None:
        self._async.select_all()

    def exit_selection(self) -> None:
        self._async.exit_selection()

    def selected_items(self) -> list[Item]:
        return self._async.selected_items()

    # ------------------------------------------------------------------
    # Mutations (sync)
    # ------------------------------------------------------------------

    def create_folder(self, parent: str | VirtualPath, name: str) -> CreateResult:
        return self._run(self._async.create_folder(parent, name))

    def upload_file(
        self, parent: str | VirtualPath, name: str, data: bytes, *, overwrite: bool = True
    ) -> CreateResult:
        return self._run(self._async.upload_file(parent, name, data, overwrite=overwrite))

    def rename_item(self, item: Item | str, new_name: str) -> MoveResult:
        return self._run(self._async.rename_item(item, new_name))

    def move_item(self, item: Item | str, destination: str | VirtualPath) -> MoveResult:
        return self._run(self._async.move_item(item, destination))

    def delete_item(self, item: Item | str) -> DeleteResult:
        return self._run(self._async.delete_item(item))

    def batch_delete(self, items: Iterable[Item | str]) -> BatchDeleteResult:
        return self._run(self._async.batch_delete(list(items)))

    def delete_selected(self) -> BatchDeleteResult:
        return self._run(self._async.delete_selected())

    def drop(self, target: Item | str | None = None) -> MoveResult:
        return self._run(self._async.drop(target))

    def undo(self) -> HistoryResult:
        return self._run(self._async.undo())

    def redo(self) -> HistoryResult:
        return self._run(self._async.redo())
