"""Listing entries returned by object store adapters."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


class EntryKind(Enum):
    """Kind tag reported by the backend for each listed name."""

    FILE = "file"
    FOLDER = "folder"


@dataclass(frozen=True, slots=True)
class ObjectEntry:
    """One immediate child of a listed prefix.

    Folders have no size and usually no timestamp: they only exist
    because some deeper key starts with their path.
    """

    name: str
    kind: EntryKind
    size: int | None = None
    updated_at: datetime | None = None

    @property
    def is_folder(self) -> bool:
        return self.kind is EntryKind.FOLDER
