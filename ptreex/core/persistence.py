"""Recursive binary layout used to save and lazily load persistent trees.

Each node is written as::

    data_length   <i8   payload byte count
    payload       data_length raw bytes
    child_count   <i4
    children      child_count records in this same layout

Nothing precedes the root record unless a header is requested, in which case
the 7-byte ``HEADER`` (5-byte signature, 2-byte version) is written first and
verified on load.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, BinaryIO, Optional, Union

import numpy as np

from ptreex import config as cx_config
from ptreex.core.storage import SharedHandle
from ptreex.errors import FormatError, InvariantViolation, StorageIOError
from ptreex.logging import get_logger, log_lifecycle

if TYPE_CHECKING:  # pragma: no cover
    from ptreex.core.tree import PersistentNode

LOGGER = get_logger("persistence")

DATA_LENGTH = np.dtype("<i8")
CHILD_COUNT = np.dtype("<i4")
STRING_LENGTH = np.dtype("<u4")
HEADER_DTYPE = np.dtype([("signature", "S5"), ("version", "<u2")])


@dataclass(frozen=True)
class FileHeader:
    """Signature and version optionally written in front of the root record."""

    signature: bytes
    version: int

    def pack(self) -> bytes:
        return np.array([(self.signature, self.version)], dtype=HEADER_DTYPE).tobytes()

    @classmethod
    def unpack(cls, raw: bytes) -> "FileHeader":
        if len(raw) != HEADER_DTYPE.itemsize:
            raise FormatError(f"Truncated header: expected {HEADER_DTYPE.itemsize} bytes, got {len(raw)}.")
        record = np.frombuffer(raw, dtype=HEADER_DTYPE, count=1)[0]
        return cls(signature=bytes(record["signature"]), version=int(record["version"]))


HEADER = FileHeader(signature=b"PTREE", version=1)


def _pack(dtype: np.dtype, value: int, *, field: str) -> bytes:
    info = np.iinfo(dtype)
    if not info.min <= value <= info.max:
        raise FormatError(f"{field} {value} does not fit in {dtype.str}.")
    return np.array(value, dtype=dtype).tobytes()


def _unpack(dtype: np.dtype, raw: bytes, *, field: str) -> int:
    if len(raw) != dtype.itemsize:
        raise FormatError(f"Truncated record: {field} needs {dtype.itemsize} bytes, got {len(raw)}.")
    return int(np.frombuffer(raw, dtype=dtype, count=1)[0])


def _write(stream: BinaryIO, data: bytes) -> None:
    try:
        stream.write(data)
    except (OSError, ValueError) as exc:
        if isinstance(exc, StorageIOError):
            raise
        raise StorageIOError(f"Write to {getattr(stream, 'name', 'stream')!r} failed: {exc}") from exc


def _use_header(header: Optional[bool]) -> bool:
    if header is None:
        return cx_config.runtime_config().file_header
    return header


# ----------------------------------------------------------------------
# save


def save_tree(node: "PersistentNode", stream: BinaryIO) -> None:
    """Write ``node`` and its subtree to ``stream`` at the current position."""

    node.seek(0)
    node.on_saving()
    data_length = node.size
    node.seek(0)
    _write(stream, _pack(DATA_LENGTH, data_length, field="Payload length"))

    chunk_size = cx_config.runtime_config().copy_chunk_size
    remaining = data_length
    while remaining > 0:
        chunk = node.read(min(chunk_size, remaining))
        if not chunk:
            raise InvariantViolation(f"Payload ended {remaining} bytes before its reported size.")
        _write(stream, chunk)
        remaining -= len(chunk)

    _write(stream, _pack(CHILD_COUNT, len(node), field="Child count"))
    for child in node.children:
        save_tree(child, stream)


def save_stream(node: "PersistentNode", stream: BinaryIO, *, header: Optional[bool] = None) -> None:
    if _use_header(header):
        _write(stream, HEADER.pack())
    save_tree(node, stream)


def _same_file(first: str, second: str) -> bool:
    try:
        return os.path.samefile(first, second)
    except OSError:
        return False


def save_file(
    node: "PersistentNode",
    path: Union[str, "os.PathLike[str]"],
    *,
    header: Optional[bool] = None,
) -> None:
    """Save to ``path``; a tree still viewing that file is materialized first."""

    path = os.fspath(path)
    root = node.owner or node
    if os.path.exists(path) and any(
        candidate.shared_handle is not None
        and candidate.shared_handle.name is not None
        and _same_file(candidate.shared_handle.name, path)
        for candidate in root.walk()
    ):
        log_lifecycle(LOGGER, "materialize-source", path)
        root.materialize(deep=True)
    try:
        handle = open(path, "wb")
    except OSError as exc:
        raise StorageIOError(f"Unable to create '{path}': {exc}") from exc
    with handle:
        save_stream(node, handle, header=header)
    log_lifecycle(LOGGER, "save", path)


# ----------------------------------------------------------------------
# load


def load_tree(node: "PersistentNode", shared: SharedHandle) -> None:
    """Load one record from ``shared`` into ``node`` without copying payloads."""

    node.clear()
    data_length = _unpack(DATA_LENGTH, shared.read(DATA_LENGTH.itemsize), field="payload length")
    if data_length < 0:
        raise FormatError(f"Negative payload length {data_length}.")
    begin = shared.tell()
    node._adopt_window(shared, begin, data_length)
    shared.seek(data_length, os.SEEK_CUR)

    child_count = _unpack(CHILD_COUNT, shared.read(CHILD_COUNT.itemsize), field="child count")
    if child_count < 0:
        raise FormatError(f"Negative child count {child_count}.")
    for _ in range(child_count):
        load_tree(node.new_child(), shared)

    # the cursor now sits past the whole subtree; hooks may move it
    end = shared.tell()
    node.on_loaded()
    if not shared.closed:
        shared.seek(end)


def _load_root(node: "PersistentNode", shared: SharedHandle, header: Optional[bool]) -> None:
    try:
        if _use_header(header):
            found = FileHeader.unpack(shared.read(HEADER_DTYPE.itemsize))
            if found != HEADER:
                raise FormatError(
                    f"{shared.name or 'Stream'} not recognized: expected "
                    f"{HEADER.signature!r} v{HEADER.version}, found {found.signature!r} v{found.version}."
                )
        load_tree(node, shared)
    except Exception:
        node.clear()
        node._reset_storage()
        shared.close()
        raise


def load_stream(node: "PersistentNode", stream: BinaryIO, *, header: Optional[bool] = None) -> None:
    """Load from a caller-owned stream; the stream must outlive the windowed nodes."""

    shared = SharedHandle(stream, owns_resource=False, name=getattr(stream, "name", None))
    _load_root(node, shared, header)


def load_file(
    node: "PersistentNode",
    path: Union[str, "os.PathLike[str]"],
    *,
    header: Optional[bool] = None,
) -> None:
    path = os.fspath(path)
    try:
        handle = open(path, "rb")
    except OSError as exc:
        raise StorageIOError(f"Unable to open '{path}': {exc}") from exc
    shared = SharedHandle(handle, owns_resource=True, name=path)
    _load_root(node, shared, header)
    log_lifecycle(LOGGER, "load", path, shared.references)


# ----------------------------------------------------------------------
# strings


def write_string(node: Any, data: Union[str, bytes], *, encoding: Optional[str] = None) -> int:
    """Append a ``<u4`` length and the raw bytes of ``data`` to the payload."""

    if isinstance(data, str):
        data = data.encode(encoding or cx_config.runtime_config().string_encoding)
    written = node.write(_pack(STRING_LENGTH, len(data), field="String length"))
    return written + node.write(data)


def read_string(node: Any, *, encoding: Optional[str] = None, raw: bool = False) -> Union[str, bytes]:
    length = _unpack(STRING_LENGTH, node.read(STRING_LENGTH.itemsize), field="string length")
    data = node.read(length)
    if len(data) != length:
        raise FormatError(f"Truncated string: expected {length} bytes, got {len(data)}.")
    if raw:
        return data
    try:
        return data.decode(encoding or cx_config.runtime_config().string_encoding)
    except UnicodeDecodeError as exc:
        raise FormatError(f"String is not valid {exc.encoding}: {exc.reason}.") from exc


__all__ = [
    "CHILD_COUNT",
    "DATA_LENGTH",
    "FileHeader",
    "HEADER",
    "STRING_LENGTH",
    "load_file",
    "load_stream",
    "load_tree",
    "read_string",
    "save_file",
    "save_stream",
    "save_tree",
    "write_string",
]
