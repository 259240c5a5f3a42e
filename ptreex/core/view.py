"""Windowed payload streams with copy-on-write promotion.

A payload stream is either *owned* (backed by private ``OwnedStorage``) or
*windowed*: a half-open byte range ``[window_begin, window_begin + length)``
inside a ``SharedHandle`` that several nodes read through. Windowed nodes
multiplex one physical cursor by remembering a bookmark and resynchronizing
before every physical access. A windowed stream is promoted to owned
storage ("materialized") whenever a mutation cannot be satisfied inside its
window; promotion never goes the other way.
"""

from __future__ import annotations

import os
from enum import IntEnum
from typing import Iterable, Optional

from ptreex import config as cx_config
from ptreex.core.storage import OwnedStorage, SharedHandle
from ptreex.errors import FormatError, InvariantViolation, StorageIOError
from ptreex.logging import get_logger, log_lifecycle

LOGGER = get_logger("view")


class SeekOrigin(IntEnum):
    BEGIN = os.SEEK_SET
    CURRENT = os.SEEK_CUR
    END = os.SEEK_END


class PayloadStream:
    """Readable, writable, seekable byte stream over owned or windowed storage."""

    def __init__(self) -> None:
        self._storage: Optional[OwnedStorage] = OwnedStorage()
        self._shared: Optional[SharedHandle] = None
        self._window_begin = 0
        self._window_length = 0
        self._bookmark = 0
        self._closed = False

    # ------------------------------------------------------------------
    # state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_windowed(self) -> bool:
        return self._shared is not None

    @property
    def window(self) -> Optional[tuple[int, int]]:
        """``(begin, length)`` of the shared window, or ``None`` once owned."""

        if self._shared is None:
            return None
        return self._window_begin, self._window_length

    @property
    def shared_handle(self) -> Optional[SharedHandle]:
        return self._shared

    def _owned(self) -> OwnedStorage:
        if self._closed:
            raise InvariantViolation("I/O operation on a closed node.")
        if self._shared is not None or self._storage is None:
            raise InvariantViolation("Node is not backed by owned storage.")
        return self._storage

    def _windowed(self) -> SharedHandle:
        if self._closed:
            raise InvariantViolation("I/O operation on a closed node.")
        if self._shared is None or self._storage is not None:
            raise InvariantViolation("Node is not backed by a shared window.")
        return self._shared

    def _ensure_open(self) -> None:
        if self._closed:
            raise InvariantViolation("I/O operation on a closed node.")

    def close(self) -> None:
        if self._closed:
            return
        self._release_storage()
        self._closed = True

    # ------------------------------------------------------------------
    # stream contract

    @property
    def size(self) -> int:
        if self._shared is None:
            return self._owned().size
        self._windowed()
        return self._window_length

    @size.setter
    def size(self, new_size: int) -> None:
        self.resize(new_size)

    def read(self, count: int = -1) -> bytes:
        """Read up to ``count`` bytes; a negative count reads to the payload end."""

        self._ensure_open()
        if self._shared is None:
            return self._owned().read(count)
        shared = self._windowed()
        self._synchronize()
        position = shared.tell() - self._window_begin
        remaining = max(self._window_length - position, 0)
        if count is None or count < 0 or count > remaining:
            count = remaining
        data = shared.read(count)
        self._bookmark = shared.tell()
        return data

    def write(self, data: bytes) -> int:
        self._ensure_open()
        data = bytes(data)
        if self._shared is None:
            return self._owned().write(data)
        shared = self._windowed()
        self._synchronize()
        position = shared.tell() - self._window_begin
        if position + len(data) > self._window_length:
            self._promote(position)
        elif not shared.writable:
            self._promote(self._window_length)
            self._owned().seek(position)
        else:
            written = shared.write(data)
            self._bookmark = shared.tell()
            return written
        return self._owned().write(data)

    def seek(self, offset: int, origin: int = SeekOrigin.BEGIN) -> int:
        """Move the cursor and return the new payload-relative position.

        For a windowed stream an ``END`` origin measures ``offset`` backwards
        from the window end (``end - offset``); owned streams follow the
        underlying file, where ``END`` adds ``offset``.
        """

        self._ensure_open()
        origin = SeekOrigin(origin)
        if self._shared is None:
            return self._owned().seek(offset, origin)
        shared = self._windowed()
        self._synchronize()
        begin = self._window_begin
        if origin is SeekOrigin.BEGIN:
            target = begin + offset
        elif origin is SeekOrigin.CURRENT:
            target = shared.tell() + offset
        else:
            target = begin + self._window_length - offset
        if target < begin:
            raise StorageIOError(f"Negative seek position {target - begin}.")
        if target <= begin + self._window_length:
            position = shared.seek(target) - begin
            self._bookmark = shared.tell()
            return position
        self._promote(self._window_length)
        return self._owned().seek(target - begin)

    def tell(self) -> int:
        self._ensure_open()
        if self._shared is None:
            return self._owned().tell()
        shared = self._windowed()
        self._synchronize()
        return shared.tell() - self._window_begin

    def resize(self, new_size: int) -> None:
        self._ensure_open()
        if self._shared is None:
            self._owned().resize(new_size)
            return
        self._windowed()
        if new_size <= 0:
            self._promote(0)
        elif new_size > self._window_length:
            self._promote(self._window_length)
            self._owned().resize(new_size)
        else:
            self._window_length = new_size
            self.seek(0, SeekOrigin.END)

    def truncate(self, size: Optional[int] = None) -> int:
        """Cut the payload at ``size`` (default: the current position)."""

        if size is None:
            size = self.tell()
        self.resize(size)
        return size

    # ------------------------------------------------------------------
    # window management

    def _synchronize(self) -> None:
        shared = self._shared
        physical = shared.tell()
        if physical < self._window_begin or physical - self._window_begin > self._window_length:
            shared.seek(self._bookmark)

    def _adopt_window(self, shared: SharedHandle, begin: int, length: int) -> None:
        """Drop current storage and become a view of ``[begin, begin + length)``."""

        self._ensure_open()
        self._release_storage()
        self._shared = shared.acquire()
        self._window_begin = begin
        self._window_length = length
        self._bookmark = begin

    def _reset_storage(self) -> None:
        self._release_storage()
        self._storage = OwnedStorage()

    def _release_storage(self) -> None:
        if self._storage is not None:
            self._storage.dispose()
            self._storage = None
        if self._shared is not None:
            shared, self._shared = self._shared, None
            shared.release()

    def _promote(self, target_bytes: int) -> None:
        shared = self._windowed()
        target_bytes = max(0, min(target_bytes, self._window_length))
        storage = OwnedStorage()
        if target_bytes > 0:
            chunk_size = cx_config.runtime_config().copy_chunk_size
            shared.seek(self._window_begin)
            remaining = target_bytes
            while remaining > 0:
                chunk = shared.read(min(chunk_size, remaining))
                if not chunk:
                    storage.dispose()
                    raise FormatError(
                        f"Shared source ended {remaining} bytes short of window "
                        f"[{self._window_begin}, {self._window_begin + self._window_length})."
                    )
                storage.write(chunk)
                remaining -= len(chunk)
        log_lifecycle(LOGGER, "materialize", self._window_begin, target_bytes, self._window_length)
        self._shared = None
        self._storage = storage
        self._window_begin = 0
        self._window_length = 0
        shared.release()

    def _materialization_dependents(self) -> Iterable["PayloadStream"]:
        return ()

    def materialize(self, target_bytes: Optional[int] = None, *, deep: bool = False) -> None:
        """Copy the first ``target_bytes`` of the window into private storage.

        ``target_bytes`` defaults to the whole payload. Owned streams are left
        alone. With ``deep`` every dependent stream is materialized in full,
        recursing through dependents that were already owned.
        """

        self._ensure_open()
        if self._shared is not None:
            self._promote(self._window_length if target_bytes is None else target_bytes)
        if deep:
            for dependent in self._materialization_dependents():
                dependent.materialize(deep=True)


__all__ = ["PayloadStream", "SeekOrigin"]
