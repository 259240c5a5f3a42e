"""ptreex: persistent hierarchical binary containers with lazy loading.

Quick Start
-----------
>>> from ptreex import PersistentNode
>>>
>>> root = PersistentNode()
>>> child = root.new_child()
>>> child.write(b"payload")
>>> root.save("tree.bin")
>>>
>>> # Payloads stay on disk until a mutation needs a private copy
>>> loaded = PersistentNode()
>>> loaded.load("tree.bin")
>>> loaded[0].read()
b'payload'

Classes
-------
PersistentNode : Tree element that is also a readable, writable, seekable stream.
SeekOrigin : Origins accepted by ``PersistentNode.seek``.
TreeStats : Node and storage counters returned by ``PersistentNode.stats``.
"""

from importlib.metadata import version as _pkg_version

try:
    __version__ = _pkg_version("ptreex")
except Exception:  # pragma: no cover - best effort during local development
    __version__ = "0.0.1"

from .core import (
    HEADER,
    FileHeader,
    PayloadStream,
    PersistentNode,
    SeekOrigin,
    TreeStats,
)
from .errors import (
    ContainerError,
    ErrorKind,
    FormatError,
    InvariantViolation,
    PersistentTreeError,
    StorageIOError,
)

__all__ = [
    "__version__",
    "PersistentNode",
    "PayloadStream",
    "SeekOrigin",
    "TreeStats",
    "HEADER",
    "FileHeader",
    "ErrorKind",
    "PersistentTreeError",
    "StorageIOError",
    "FormatError",
    "ContainerError",
    "InvariantViolation",
]
