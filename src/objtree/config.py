"""TreeConfig — constructor-level settings for a file tree session."""

from __future__ import annotations

from dataclasses import dataclass

from objtree.tree.types import SortDirection, SortField

DEFAULT_MARKER_NAME = ".placeholder"


@dataclass
class TreeConfig:
    """Configuration for a single file tree session."""

    marker_name: str = DEFAULT_MARKER_NAME
    """Name of the empty object that materializes a folder."""

    hide_markers: bool = True
    """If True, folder markers are left out of cached listings."""

    sort_field: SortField = SortField.NAME
    """Initial sort field for file entries."""

    sort_direction: SortDirection = SortDirection.ASC
    """Initial sort direction."""

    history_limit: int | None = None
    """Maximum number of undo entries kept.  ``None`` keeps everything."""

    root_label: str = "Root"
    """Display name of the root breadcrumb."""

    def __post_init__(self) -> None:
        if not self.marker_name or "/" in self.marker_name or "\\" in self.marker_name:
            raise ValueError(f"Invalid marker name: {self.marker_name!r}")
        self.sort_field = SortField(self.sort_field)
        self.sort_direction = SortDirection(self.sort_direction)
        if self.history_limit is not None and self.history_limit < 1:
            raise ValueError("history_limit must be positive or None")
