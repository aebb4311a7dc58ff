"""EventBus and event types for keeping views in step with the tree."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    Handler = Callable[["TreeEvent"], Awaitable[None] | None]

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of tree mutations that views may want to react to."""

    ITEM_CREATED = "item_created"
    ITEM_MOVED = "item_moved"
    ITEM_DELETED = "item_deleted"
    ITEM_RESTORED = "item_restored"
    TREE_REFRESHED = "tree_refreshed"


@dataclass(frozen=True, slots=True)
class TreeEvent:
    """Immutable record of a tree mutation.

    Attributes:
        event_type: The kind of mutation that occurred.
        path: Virtual path of the affected item (destination for moves).
        old_path: Previous path (moves and renames only).
        item_id: Id of the affected cached item, when there is one.
    """

    event_type: EventType
    path: str
    old_path: str | None = None
    item_id: str | None = None



class EventBus:
    """Fans tree events out to view callbacks.

    A handler may be a coroutine function or a plain callable; both are
    called in registration order.  A failing handler is logged and the
    rest still run: a stale view must never undo a completed mutation.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Handler]] = {}

    def register(self, event_type: EventType, handler: Handler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unregister(self, event_type: EventType, handler: Handler) -> bool:
        """Remove the first registration of *handler*.  False if there was none."""
        handlers = self._handlers.get(event_type, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def listening(self, event_type: EventType) -> bool:
        """True when at least one handler waits for *event_type*."""
        return bool(self._handlers.get(event_type))

    def clear(self) -> None:
        self._handlers.clear()

    async def emit(self, event: TreeEvent) -> None:
        # Copy: a handler may unregister itself while we iterate.
        for handler in list(self._handlers.get(event.event_type, ())):
            try:
                outcome = handler(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on %s",
                    handler,
                    event.event_type.value,
                    event.path,
                    exc_info=True,
                )
