from __future__ import annotations

from typing import Literal, Optional, Tuple

from ptreex import PersistentNode
from ptreex.errors import ContainerError


def parse_node_path(spec: Optional[str]) -> Tuple[int, ...]:
    """Return child indices encoded as ``"0/2/1"`` (empty or ``"/"`` is the root)."""

    if spec is None:
        return ()
    parts = [part for part in spec.strip().split("/") if part.strip()]
    indices = []
    for part in parts:
        try:
            index = int(part)
        except ValueError as exc:
            raise ValueError(f"Invalid node path component '{part}' in '{spec}'.") from exc
        if index < 0:
            raise ValueError(f"Node path components must be non-negative, got {index}.")
        indices.append(index)
    return tuple(indices)


def resolve_node(root: PersistentNode, indices: Tuple[int, ...]) -> PersistentNode:
    node = root
    for depth, index in enumerate(indices):
        if index >= len(node):
            trail = "/".join(str(i) for i in indices[: depth + 1])
            raise ContainerError(f"No node at '{trail}' ({len(node)} children at that level).")
        node = node[index]
    return node


def resolve_format_flag(fmt: str) -> Literal["table", "json"]:
    value = fmt.strip().lower()
    if value not in ("table", "json"):
        raise ValueError(f"Unsupported format '{fmt}'. Expected 'table' or 'json'.")
    return value  # type: ignore[return-value]


__all__ = ["parse_node_path", "resolve_node", "resolve_format_flag"]
