"""Backing stores for node payloads.

Two kinds of storage exist:

``OwnedStorage``
    A private temp file held by exactly one node. The file is created on
    first physical access and deleted when the node lets go of it.

``SharedHandle``
    One seekable binary resource read by every windowed node loaded from
    it. Nodes ``acquire`` the handle when they adopt a window and
    ``release`` it when they are materialized or closed; the resource is
    closed after the last release when the handle owns it.
"""

from __future__ import annotations

import os
import tempfile
import weakref
from typing import Any, BinaryIO, Optional

from ptreex import config as cx_config
from ptreex.errors import InvariantViolation, StorageIOError
from ptreex.logging import get_logger, log_lifecycle

LOGGER = get_logger("storage")


def new_temp_path() -> str:
    """Create an empty, uniquely named file in the configured temp directory."""

    runtime = cx_config.runtime_config()
    try:
        fd, path = tempfile.mkstemp(prefix=runtime.temp_prefix, dir=runtime.temp_dir)
    except OSError as exc:
        raise StorageIOError(f"Unable to create temporary file: {exc}") from exc
    os.close(fd)
    return path


def _dispose(handle: Optional[BinaryIO], path: Optional[str]) -> None:
    if handle is not None:
        handle.close()
    if path is not None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        log_lifecycle(LOGGER, "release", path)


class OwnedStorage:
    """Temp-file-backed byte resource exclusively held by one node."""

    def __init__(self) -> None:
        self.path: Optional[str] = None
        self._handle: Optional[BinaryIO] = None
        self._finalizer: Optional[weakref.finalize] = None
        self._disposed = False

    @property
    def allocated(self) -> bool:
        return self._handle is not None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _file(self) -> BinaryIO:
        if self._disposed:
            raise InvariantViolation("Owned storage used after disposal.")
        if self._handle is None:
            path = new_temp_path()
            try:
                self._handle = open(path, "w+b")
            except OSError as exc:
                os.remove(path)
                raise StorageIOError(f"Unable to open temporary file '{path}': {exc}") from exc
            self.path = path
            self._finalizer = weakref.finalize(self, _dispose, self._handle, path)
            log_lifecycle(LOGGER, "allocate", path)
        return self._handle

    def read(self, count: int = -1) -> bytes:
        if self._handle is None and not self._disposed:
            return b""
        try:
            return self._file().read(count)
        except OSError as exc:
            raise StorageIOError(f"Read from '{self.path}' failed: {exc}") from exc

    def write(self, data: bytes) -> int:
        try:
            return self._file().write(data)
        except OSError as exc:
            raise StorageIOError(f"Write to '{self.path}' failed: {exc}") from exc

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        if offset == 0 and self._handle is None and not self._disposed:
            return 0
        try:
            return self._file().seek(offset, whence)
        except (OSError, ValueError) as exc:
            raise StorageIOError(f"Seek in '{self.path}' failed: {exc}") from exc

    def tell(self) -> int:
        if self._handle is None and not self._disposed:
            return 0
        return self._file().tell()

    @property
    def size(self) -> int:
        if self._handle is None and not self._disposed:
            return 0
        handle = self._file()
        handle.flush()
        try:
            return os.fstat(handle.fileno()).st_size
        except OSError as exc:
            raise StorageIOError(f"Unable to stat '{self.path}': {exc}") from exc

    def resize(self, size: int) -> None:
        if size < 0:
            raise StorageIOError(f"Negative size {size} requested for '{self.path}'.")
        if size == 0 and self._handle is None and not self._disposed:
            return
        try:
            self._file().truncate(size)
        except OSError as exc:
            raise StorageIOError(f"Resize of '{self.path}' failed: {exc}") from exc

    def dispose(self) -> None:
        """Close and delete the backing file; later access is an invariant violation."""

        if self._disposed:
            return
        self._disposed = True
        if self._finalizer is not None:
            self._finalizer()
        self._handle = None


class SharedHandle:
    """Reference-counted access to one resource shared by windowed nodes."""

    def __init__(
        self,
        resource: BinaryIO,
        *,
        owns_resource: bool = False,
        name: Optional[str] = None,
    ) -> None:
        self._resource = resource
        self._owns_resource = owns_resource
        self.name = name
        self._references = 0
        self._closed = False
        try:
            self.writable = bool(resource.writable())
        except (AttributeError, ValueError):
            self.writable = False

    @property
    def references(self) -> int:
        return self._references

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def resource(self) -> Any:
        return self._resource

    def acquire(self) -> "SharedHandle":
        if self._closed:
            raise InvariantViolation("Cannot acquire a closed shared handle.")
        self._references += 1
        return self

    def release(self) -> None:
        if self._references <= 0:
            raise InvariantViolation("Shared handle released more often than acquired.")
        self._references -= 1
        if self._references == 0:
            self.close()

    def close(self) -> None:
        """Stop using the resource, closing it only when it belongs to this handle."""

        if self._closed:
            return
        self._closed = True
        if self._owns_resource:
            self._resource.close()
            log_lifecycle(LOGGER, "close-source", self.name)

    def read(self, count: int) -> bytes:
        try:
            return self._resource.read(count)
        except (OSError, ValueError) as exc:
            raise StorageIOError(f"Read from shared source {self.name!r} failed: {exc}") from exc

    def write(self, data: bytes) -> int:
        try:
            return self._resource.write(data)
        except (OSError, ValueError) as exc:
            raise StorageIOError(f"Write to shared source {self.name!r} failed: {exc}") from exc

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        try:
            return self._resource.seek(offset, whence)
        except (OSError, ValueError) as exc:
            raise StorageIOError(f"Seek in shared source {self.name!r} failed: {exc}") from exc

    def tell(self) -> int:
        try:
            return self._resource.tell()
        except (OSError, ValueError) as exc:
            raise StorageIOError(f"Tell on shared source {self.name!r} failed: {exc}") from exc


__all__ = ["OwnedStorage", "SharedHandle", "new_temp_path"]
