"""Error taxonomy shared by the storage, view, tree, and codec layers."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    STORAGE_IO = "storage-io"
    FORMAT = "format"
    CONTAINER = "container"
    INVARIANT = "invariant"


class PersistentTreeError(Exception):
    """Base class for every error raised by ptreex."""

    kind: ErrorKind


class StorageIOError(PersistentTreeError, OSError):
    """The underlying byte resource failed to open, read, write, or seek."""

    kind = ErrorKind.STORAGE_IO


class FormatError(PersistentTreeError, ValueError):
    """Serialized bytes do not match the persisted tree layout."""

    kind = ErrorKind.FORMAT


class ContainerError(PersistentTreeError, LookupError):
    """Invalid child index, missing child, or structurally invalid request."""

    kind = ErrorKind.CONTAINER


class InvariantViolation(PersistentTreeError, RuntimeError):
    """Internal state is inconsistent; indicates a programming error."""

    kind = ErrorKind.INVARIANT


__all__ = [
    "ErrorKind",
    "PersistentTreeError",
    "StorageIOError",
    "FormatError",
    "ContainerError",
    "InvariantViolation",
]
