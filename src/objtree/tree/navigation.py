"""Navigation, keyboard focus, multi-selection and the drag-and-drop state machine.

Everything here is pure bookkeeping over cached items.  Nothing talks to
the object store; the facade turns the decisions made here into store
operations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .items import FolderItem
from .paths import VirtualPath

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .cache import TreeCache
    from .items import Item

logger = logging.getLogger(__name__)


# =============================================================================
# Visible order
# =============================================================================


def flatten_visible(cache: TreeCache, path: str | VirtualPath = "") -> list[Item]:
    """Items in display order: each listed item, then (if it is an expanded
    folder with loaded children) its children, recursively."""
    visible: list[Item] = []

    def _walk(items: Iterable[Item]) -> None:
        for item in items:
            visible.append(item)
            if isinstance(item, FolderItem) and item.expanded and item.children is not None:
                _walk(item.children)

    _walk(cache.items_at(path))
    return visible


# =============================================================================
# Navigator
# =============================================================================


@dataclass(frozen=True, slots=True)
class Breadcrumb:
    name: str
    path: str


class Navigator:
    """Tracks the folder being viewed and the keyboard-focused item."""

    def __init__(self, *, root_label: str = "Root") -> None:
        self.root_label = root_label
        self.current = VirtualPath.root()
        self.focused_id: str | None = None

    @property
    def current_path(self) -> str:
        return str(self.current)

    def navigate_into(self, folder: Item) -> VirtualPath:
        if not isinstance(folder, FolderItem):
            raise ValueError(f"Not a folder: {folder.path}")
        self._go(folder.vpath)
        return self.current

    def navigate_up(self) -> VirtualPath:
        """Go to the parent folder.  Does nothing at the root."""
        if not self.current.is_root:
            self._go(self.current.parent)
        return self.current

    def navigate_to_breadcrumb(self, path: str | VirtualPath) -> VirtualPath:
        """Jump to *path*, which must be the current folder or one of its ancestors."""
        target = VirtualPath.parse(path)
        if target != self.current and not target.is_ancestor_of(self.current):
            raise ValueError(f"{str(target) or '/'} is not on the current path {self.current_path}")
        self._go(target)
        return self.current

    def navigate_to(self, path: str | VirtualPath) -> VirtualPath:
        self._go(VirtualPath.parse(path))
        return self.current

    def breadcrumbs(self) -> list[Breadcrumb]:
        crumbs = [Breadcrumb(self.root_label, "")]
        for ancestor in self.current.ancestors()[1:]:
            crumbs.append(Breadcrumb(ancestor.name, str(ancestor)))
        return crumbs

    def follow(self, old: VirtualPath, new: VirtualPath) -> None:
        """Keep the current folder valid after *old* was renamed or moved to *new*."""
        if self.current == old or old.is_ancestor_of(self.current):
            self.current = self.current.rebase(old, new)

    def _go(self, path: VirtualPath) -> None:
        if path != self.current:
            logger.debug("Navigate %r -> %r", self.current_path, str(path))
            self.current = path
            self.focused_id = None

    # ------------------------------------------------------------------
    # Keyboard focus
    # ------------------------------------------------------------------

    def _focus_index(self, visible: list[Item]) -> int | None:
        for i, item in enumerate(visible):
            if item.id == self.focused_id:
                return i
        return None

    def _focus_at(self, visible: list[Item], index: int) -> Item | None:
        if not visible:
            self.focused_id = None
            return None
        item = visible[max(0, min(index, len(visible) - 1))]
        self.focused_id = item.id
        return item

    def focus_next(self, visible: list[Item]) -> Item | None:
        index = self._focus_index(visible)
        return self._focus_at(visible, 0 if index is None else index + 1)

    def focus_previous(self, visible: list[Item]) -> Item | None:
        index = self._focus_index(visible)
        return self._focus_at(visible, 0 if index is None else index - 1)

    def focus_first(self, visible: list[Item]) -> Item | None:
        return self._focus_at(visible, 0)

    def focus_last(self, visible: list[Item]) -> Item | None:
        return self._focus_at(visible, len(visible) - 1)


# =============================================================================
# Selection
# =============================================================================


class SelectionSet:
    """Ids of selected items, independent of which folders are expanded."""

    def __init__(self) -> None:
        self._ids: set[str] = set()
        self.multi_select = False

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self._ids)

    def contains(self, item: Item | str) -> bool:
        return (item if isinstance(item, str) else item.id) in self._ids

    def toggle(self, item: Item) -> bool:
        """Flip *item*'s membership and enter multi-select mode.  Returns the new state."""
        self.multi_select = True
        if item.id in self._ids:
            self._ids.discard(item.id)
            return False
        self._ids.add(item.id)
        return True

    def select_all(self, items: Iterable[Item]) -> None:
        """Select exactly *items*, dropping anything selected outside them."""
        self.multi_select = True
        self._ids = {item.id for item in items}

    def discard(self, ids: Iterable[str]) -> None:
        self._ids.difference_update(ids)

    def clear(self) -> None:
        self._ids.clear()

    def exit(self) -> None:
        """Leave multi-select mode; the selection does not survive it."""
        self._ids.clear()
        self.multi_select = False

    def resolve(self, cache: TreeCache) -> list[Item]:
        """Selected items still present in *cache*, ordered by path."""
        items = [item for i in self._ids if (item := cache.find(i)) is not None]
        return sorted(items, key=lambda item: item.vpath.parts)


# =============================================================================
# Drag and drop
# =============================================================================


class DragPhase(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    HOVERING = "hovering"
    DROPPED = "dropped"


class DropDecision(Enum):
    """What dropping the dragged item on the hovered target amounts to."""

    NOOP = "noop"
    REJECTED = "rejected"
    MOVE = "move"


class DragController:
    """``IDLE -> DRAGGING -> HOVERING -> DROPPED`` for one dragged item.

    ``drop`` only decides; the dragged item and target stay readable until
    ``reset`` so the caller can carry out a MOVE.
    """

    def __init__(self) -> None:
        self.phase = DragPhase.IDLE
        self.item: Item | None = None
        self.target: Item | None = None

    def begin(self, item: Item) -> None:
        if item.vpath.is_root:
            raise ValueError("The root cannot be dragged")
        self.phase = DragPhase.DRAGGING
        self.item = item
        self.target = None

    def hover(self, target: Item) -> None:
        if self.phase not in (DragPhase.DRAGGING, DragPhase.HOVERING):
            raise RuntimeError(f"hover() while {self.phase.value}")
        self.phase = DragPhase.HOVERING
        self.target = target

    def leave(self) -> None:
        if self.phase is DragPhase.HOVERING:
            self.phase = DragPhase.DRAGGING
            self.target = None

    def drop(self, target: Item | None = None) -> DropDecision:
        """Drop on *target* (default: the hovered item) and classify the drop."""
        if target is not None and self.phase in (DragPhase.DRAGGING, DragPhase.HOVERING):
            self.hover(target)
        if self.phase is not DragPhase.HOVERING or self.item is None or self.target is None:
            self.phase = DragPhase.DROPPED
            return DropDecision.REJECTED
        self.phase = DragPhase.DROPPED
        decision = classify_drop(self.item, self.target)
        logger.debug("Drop %s on %s: %s", self.item.path, self.target.path, decision.value)
        return decision

    def reset(self) -> None:
        self.phase = DragPhase.IDLE
        self.item = None
        self.target = None


def classify_drop(item: Item, target: Item) -> DropDecision:
    if not isinstance(target, FolderItem) or target is item or target.vpath == item.vpath:
        return DropDecision.REJECTED
    if isinstance(item, FolderItem) and item.vpath.is_ancestor_of(target.vpath):
        return DropDecision.REJECTED
    if target.vpath == item.vpath.parent:
        return DropDecision.NOOP
    return DropDecision.MOVE
