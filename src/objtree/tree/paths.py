"""Virtual paths as segment tuples, name validation, file type hints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from objtree.exceptions import InvalidNameError

if TYPE_CHECKING:
    from collections.abc import Iterator

SEPARATOR = "/"

# Characters that can never appear inside a single name segment
FORBIDDEN_NAME_CHARS = frozenset({"/", "\\", "\x00"})

# Display categories keyed by lower-case extension
FILE_TYPE_EXTENSIONS: dict[str, frozenset[str]] = {
    "audio": frozenset({".mp3", ".wav", ".ogg", ".aac", ".flac", ".m4a"}),
    "document": frozenset({".pdf", ".doc", ".docx", ".txt", ".md", ".rtf", ".odt"}),
    "image": frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp"}),
    "video": frozenset({".mp4", ".webm", ".mov", ".mkv", ".avi"}),
}

FILE_TYPES = (*FILE_TYPE_EXTENSIONS, "other")


@dataclass(frozen=True, slots=True)
class VirtualPath:
    """Immutable virtual path stored as a tuple of name segments.

    The root is the empty tuple and renders as ``""``.  Segments are joined
    with ``/`` only when the path crosses the object store boundary.

    Examples:
        VirtualPath.parse("a/b.txt").parts -> ("a", "b.txt")
        str(VirtualPath.parse("/a//b/")) -> "a/b"
        str(VirtualPath.root()) -> ""
    """

    parts: tuple[str, ...] = ()

    @classmethod
    def root(cls) -> VirtualPath:
        return cls(())

    @classmethod
    def parse(cls, path: str | VirtualPath) -> VirtualPath:
        """Split a slash-joined string into segments, dropping empty ones."""
        if isinstance(path, VirtualPath):
            return path
        return cls(tuple(part for part in path.split(SEPARATOR) if part))

    def __str__(self) -> str:
        return SEPARATOR.join(self.parts)

    def __iter__(self) -> Iterator[str]:
        return iter(self.parts)

    def __len__(self) -> int:
        return len(self.parts)

    @property
    def is_root(self) -> bool:
        return not self.parts

    @property
    def name(self) -> str:
        """Last segment, or ``""`` for the root."""
        return self.parts[-1] if self.parts else ""

    @property
    def parent(self) -> VirtualPath:
        """Containing folder.  The parent of the root is the root."""
        return VirtualPath(self.parts[:-1])

    def child(self, name: str) -> VirtualPath:
        return VirtualPath((*self.parts, name))

    def with_name(self, name: str) -> VirtualPath:
        if self.is_root:
            raise ValueError("The root has no name to replace")
        return self.parent.child(name)

    def is_ancestor_of(self, other: VirtualPath) -> bool:
        """True when *other* lives strictly below this path."""
        return len(other.parts) > len(self.parts) and other.parts[: len(self.parts)] == self.parts

    def relative_to(self, ancestor: VirtualPath) -> tuple[str, ...]:
        if ancestor != self and not ancestor.is_ancestor_of(self):
            raise ValueError(f"{self} is not inside {ancestor}")
        return self.parts[len(ancestor.parts):]

    def rebase(self, old_prefix: VirtualPath, new_prefix: VirtualPath) -> VirtualPath:
        """Swap *old_prefix* for *new_prefix*, keeping the remaining segments."""
        return VirtualPath((*new_prefix.parts, *self.relative_to(old_prefix)))

    def ancestors(self) -> list[VirtualPath]:
        """Root first, then every ancestor down to (and including) self."""
        return [VirtualPath(self.parts[:i]) for i in range(len(self.parts) + 1)]


def validate_name(name: str, *, marker_name: str | None = None) -> str:
    """Return *name* unchanged if it is a usable item name.

    Raises:
        InvalidNameError: If the name is empty, blank, ``.``/``..``,
            contains a separator or control character, or collides
            with the folder marker name.
    """
    if not name or not name.strip():
        raise InvalidNameError("Name cannot be empty")
    if name in (".", ".."):
        raise InvalidNameError(f"Reserved name: {name}")
    bad = FORBIDDEN_NAME_CHARS.intersection(name)
    if bad:
        raise InvalidNameError(f"Name contains a path separator: {name!r}")
    for ch in name:
        if ord(ch) < 0x20:
            raise InvalidNameError(f"Name contains control character: 0x{ord(ch):02x}")
    if len(name) > 255:
        raise InvalidNameError("Name too long (max 255 characters)")
    if marker_name is not None and name == marker_name:
        raise InvalidNameError(f"Name is reserved for folder markers: {name}")
    return name


def extension_of(name: str) -> str:
    """Lower-case extension including the dot, or ``""``."""
    dot = name.rfind(".")
    if dot <= 0:
        return ""
    return name[dot:].lower()


def file_type_of(name: str) -> str:
    """Display category for a file name: audio, document, image, video or other."""
    ext = extension_of(name)
    for category, extensions in FILE_TYPE_EXTENSIONS.items():
        if ext in extensions:
            return category
    return "other"
