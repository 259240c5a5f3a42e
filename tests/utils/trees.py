from __future__ import annotations

import io
import struct
from typing import Sequence, Tuple

from ptreex import PersistentNode

Shape = Tuple[bytes, Tuple["Shape", ...]]


def encode_record(payload: bytes, children: Sequence[bytes] = ()) -> bytes:
    """Hand-encode one node record, independent of the library codec."""

    return (
        struct.pack("<q", len(payload))
        + payload
        + struct.pack("<i", len(children))
        + b"".join(children)
    )


def build_tree(shape: Shape, node: PersistentNode | None = None) -> PersistentNode:
    payload, children = shape
    node = PersistentNode() if node is None else node
    if payload:
        node.write(payload)
    for child_shape in children:
        build_tree(child_shape, node.new_child())
    return node


def snapshot(node: PersistentNode) -> Shape:
    node.seek(0)
    return node.read(), tuple(snapshot(child) for child in node)


def load_bytes(data: bytes) -> Tuple[PersistentNode, io.BytesIO]:
    source = io.BytesIO(data)
    root = PersistentNode()
    root.load(source)
    return root, source
