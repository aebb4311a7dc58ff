"""Tree items — an explicit ``FileItem | FolderItem`` tagged union."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Literal

from .paths import VirtualPath, file_type_of

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime


class ItemKind(Enum):
    """Discriminant for the item union."""

    FILE = "file"
    FOLDER = "folder"


def new_item_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False)
class FileItem:
    """A stored file.

    ``name`` and ``path`` are derived from ``vpath`` so that the path is
    always the join of the parent path and the name.
    """

    kind: ClassVar[Literal[ItemKind.FILE]] = ItemKind.FILE

    vpath: VirtualPath
    size: int | None = None
    updated_at: datetime | None = None
    id: str = field(default_factory=new_item_id)

    @property
    def name(self) -> str:
        return self.vpath.name

    @property
    def path(self) -> str:
        return str(self.vpath)

    @property
    def file_type(self) -> str:
        """Display hint derived from the extension."""
        return file_type_of(self.name)

    def __repr__(self) -> str:
        return f"FileItem(path={self.path!r}, size={self.size!r}, id={self.id!r})"


@dataclass(eq=False)
class FolderItem:
    """A folder.  ``children is None`` means the listing was never loaded."""

    kind: ClassVar[Literal[ItemKind.FOLDER]] = ItemKind.FOLDER

    vpath: VirtualPath
    updated_at: datetime | None = None
    expanded: bool = False
    children: list[Item] | None = None
    id: str = field(default_factory=new_item_id)

    @property
    def name(self) -> str:
        return self.vpath.name

    @property
    def path(self) -> str:
        return str(self.vpath)

    @property
    def loaded(self) -> bool:
        return self.children is not None

    def walk(self) -> Iterator[Item]:
        """Yield every loaded descendant, depth-first, parents before children."""
        for child in self.children or ():
            yield child
            if isinstance(child, FolderItem):
                yield from child.walk()

    def __repr__(self) -> str:
        loaded = len(self.children) if self.children is not None else None
        return (
            f"FolderItem(path={self.path!r}, expanded={self.expanded!r}, "
            f"children={loaded!r}, id={self.id!r})"
        )


Item = FileItem | FolderItem


@dataclass(frozen=True, slots=True)
class SnapshotEntry:
    """Captured bytes of one stored object, keyed by its full path."""

    path: VirtualPath
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


Snapshot = tuple[SnapshotEntry, ...]
