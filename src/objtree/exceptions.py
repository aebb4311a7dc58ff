"""Custom exception hierarchy for objtree."""

from __future__ import annotations


class ObjTreeError(Exception):
    """Base exception for all objtree errors."""


class NotFoundError(ObjTreeError):
    """Raised when an object vanished or never existed at the given path."""


class TransportError(ObjTreeError):
    """Raised on object store failures (network, backend, disk I/O, etc.)."""


class ConflictError(ObjTreeError):
    """Raised when the target name already exists in the destination folder."""


class InvalidNameError(ObjTreeError):
    """Raised when an item name is empty or contains a path separator."""


class InvalidTargetError(ObjTreeError):
    """Raised when a destination cannot hold the item (not a folder, or inside itself)."""


class OperationInProgressError(ObjTreeError):
    """Raised when a mutation starts while another one is still running."""


class PartialFailureError(ObjTreeError):
    """Raised when a multi-leaf operation only partially completed."""

    def __init__(self, message: str, succeeded: list[str], failed: list[str]) -> None:
        super().__init__(message)
        self.succeeded = succeeded
        self.failed = failed
