from __future__ import annotations

import os
import weakref
from dataclasses import asdict, dataclass
from typing import Any, BinaryIO, Callable, Dict, Iterator, List, Optional, Tuple, Union

from ptreex.core import persistence
from ptreex.core.view import PayloadStream
from ptreex.errors import ContainerError, InvariantViolation

PathLike = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class TreeStats:
    """Aggregate shape and storage counters for one subtree."""

    nodes: int = 0
    depth: int = 0
    payload_bytes: int = 0
    windowed: int = 0
    owned: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class PersistentNode(PayloadStream):
    """A tree element whose payload is also a seekable byte stream.

    Parameters
    ----------
    element_factory:
        Callable producing new child nodes for :meth:`new_child` and for
        :meth:`load`. Defaults to the node's own class and is handed down to
        every child the node creates.
    """

    def __init__(self, element_factory: Optional[Callable[[], "PersistentNode"]] = None) -> None:
        super().__init__()
        self.element_factory: Callable[[], PersistentNode] = element_factory or type(self)
        self._children: List[PersistentNode] = []
        self._parent_ref: Optional[weakref.ReferenceType[PersistentNode]] = None
        self.path: Optional[str] = None

    def __repr__(self) -> str:
        state = "closed" if self.closed else ("windowed" if self.is_windowed else "owned")
        return f"{type(self).__name__}(children={len(self._children)}, storage={state})"

    # ------------------------------------------------------------------
    # relations

    @property
    def parent(self) -> Optional["PersistentNode"]:
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @property
    def owner(self) -> Optional["PersistentNode"]:
        """Topmost ancestor, walked on demand; ``None`` for a root."""

        node = self.parent
        if node is None:
            return None
        while True:
            ancestor = node.parent
            if ancestor is None:
                return node
            node = ancestor

    @property
    def children(self) -> Tuple["PersistentNode", ...]:
        return tuple(self._children)

    @property
    def count(self) -> int:
        return len(self._children)

    def __len__(self) -> int:
        return len(self._children)

    def __iter__(self) -> Iterator["PersistentNode"]:
        return iter(tuple(self._children))

    def __contains__(self, item: object) -> bool:
        return any(child is item for child in self._children)

    def __getitem__(self, index: int) -> "PersistentNode":
        try:
            return self._children[index]
        except IndexError as exc:
            raise ContainerError(f"Child index {index} out of range (count={len(self._children)}).") from exc

    def index_of(self, item: "PersistentNode") -> int:
        for index, child in enumerate(self._children):
            if child is item:
                return index
        return -1

    def _check_index(self, index: int, *, upper: Optional[int] = None) -> int:
        limit = len(self._children) if upper is None else upper
        if not isinstance(index, int) or index < 0 or index >= limit:
            raise ContainerError(f"Child index {index} out of range (count={len(self._children)}).")
        return index

    # ------------------------------------------------------------------
    # attachment

    def _import(self, item: "PersistentNode") -> bool:
        if not isinstance(item, PersistentNode):
            raise ContainerError(f"Cannot attach {type(item).__name__}; expected a PersistentNode.")
        if item.closed:
            raise ContainerError("Cannot attach a closed node.")
        ancestor: Optional[PersistentNode] = self
        while ancestor is not None:
            if ancestor is item:
                raise ContainerError("Cannot attach a node beneath itself.")
            ancestor = ancestor.parent
        current = item.parent
        if current is self:
            return False
        if current is not None:
            current.extract(item)
        item._parent_ref = weakref.ref(self)
        return True

    def add(self, item: "PersistentNode") -> int:
        """Append ``item``; a node that is already a child keeps its index."""

        if self._import(item):
            self._children.append(item)
            return len(self._children) - 1
        return self.index_of(item)

    def new_child(self) -> "PersistentNode":
        child = self.element_factory()
        child.element_factory = self.element_factory
        self.add(child)
        return child

    def insert(self, index: int, item: "PersistentNode") -> None:
        """Insert ``item`` at ``index``; an existing child is moved there instead."""

        current = self.index_of(item)
        if current >= 0:
            self.move(current, index)
            return
        self._check_index(index, upper=len(self._children) + 1)
        self._import(item)
        self._children.insert(index, item)

    def extract(self, item: "PersistentNode") -> "PersistentNode":
        """Detach ``item`` and give it private copies of every payload it views."""

        index = self.index_of(item)
        if index < 0:
            raise ContainerError("Item is not a child of this node.")
        del self._children[index]
        item._parent_ref = None
        item.materialize(deep=True)
        return item

    def remove(self, item: "PersistentNode") -> int:
        index = self.index_of(item)
        if index < 0:
            raise ContainerError("Item is not a child of this node.")
        self.delete(index)
        return index

    def delete(self, index: int) -> None:
        self._check_index(index)
        child = self._children.pop(index)
        child._parent_ref = None
        child.close()

    def move(self, cur_index: int, new_index: int) -> None:
        self._check_index(cur_index)
        self._check_index(new_index)
        child = self._children.pop(cur_index)
        self._children.insert(new_index, child)

    def exchange(self, index_a: int, index_b: int) -> None:
        self._check_index(index_a)
        self._check_index(index_b)
        children = self._children
        children[index_a], children[index_b] = children[index_b], children[index_a]

    def clear(self) -> None:
        while self._children:
            child = self._children.pop()
            child._parent_ref = None
            child.close()

    def _materialization_dependents(self) -> Tuple["PersistentNode", ...]:
        return tuple(self._children)

    # ------------------------------------------------------------------
    # lifecycle

    def close(self) -> None:
        """Destroy the subtree, children first, releasing every backing store."""

        if self.closed:
            return
        parent = self.parent
        if parent is not None:
            index = parent.index_of(self)
            if index < 0:
                raise InvariantViolation("Node is missing from its parent's children.")
            del parent._children[index]
            self._parent_ref = None
        self.clear()
        super().close()

    def __enter__(self) -> "PersistentNode":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # persistence hooks

    def on_saving(self) -> None:
        """Called before the payload is written by :meth:`save`."""

    def on_loaded(self) -> None:
        """Called once the node and its children have been loaded."""

    def save(self, target: Union[PathLike, BinaryIO], *, header: Optional[bool] = None) -> None:
        """Serialize the subtree to a path or a writable binary stream."""

        if isinstance(target, (str, os.PathLike)):
            persistence.save_file(self, target, header=header)
            self.path = os.fspath(target)
        else:
            persistence.save_stream(self, target, header=header)

    def load(self, source: Union[PathLike, BinaryIO], *, header: Optional[bool] = None) -> None:
        """Replace this node's payload and children with a lazily loaded tree."""

        if isinstance(source, (str, os.PathLike)):
            persistence.load_file(self, source, header=header)
            self.path = os.fspath(source)
        else:
            persistence.load_stream(self, source, header=header)

    def read_string(self, encoding: Optional[str] = None, *, raw: bool = False) -> Union[str, bytes]:
        return persistence.read_string(self, encoding=encoding, raw=raw)

    def write_string(self, data: Union[str, bytes], encoding: Optional[str] = None) -> int:
        return persistence.write_string(self, data, encoding=encoding)

    # ------------------------------------------------------------------
    # inspection

    def walk(self) -> Iterator["PersistentNode"]:
        """Yield the subtree in pre-order."""

        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node._children))

    def stats(self) -> TreeStats:
        nodes = payload = windowed = owned = 0
        depth = 0
        stack: List[Tuple[PersistentNode, int]] = [(self, 1)]
        while stack:
            node, level = stack.pop()
            nodes += 1
            depth = max(depth, level)
            payload += node.size
            if node.is_windowed:
                windowed += 1
            else:
                owned += 1
            stack.extend((child, level + 1) for child in node._children)
        return TreeStats(
            nodes=nodes,
            depth=depth,
            payload_bytes=payload,
            windowed=windowed,
            owned=owned,
        )

    def describe(self) -> Dict[str, Any]:
        """Return a JSON-ready snapshot of the subtree's shape and storage."""

        snapshot: Dict[str, Any] = {
            "size": self.size,
            "storage": "windowed" if self.is_windowed else "owned",
            "children": [child.describe() for child in self._children],
        }
        if self.window is not None:
            snapshot["window"] = list(self.window)
        if self.path is not None:
            snapshot["path"] = self.path
        return snapshot


__all__ = ["PersistentNode", "TreeStats"]
