"""Core data structures and persistence primitives for persistent trees."""

from .persistence import HEADER, FileHeader, load_tree, read_string, save_tree, write_string
from .storage import OwnedStorage, SharedHandle, new_temp_path
from .tree import PersistentNode, TreeStats
from .view import PayloadStream, SeekOrigin

__all__ = [
    "HEADER",
    "FileHeader",
    "OwnedStorage",
    "PayloadStream",
    "PersistentNode",
    "SeekOrigin",
    "SharedHandle",
    "TreeStats",
    "load_tree",
    "new_temp_path",
    "read_string",
    "save_tree",
    "write_string",
]
