"""Shared test utilities for ptreex."""

from .trees import (
    build_tree,
    encode_record,
    load_bytes,
    snapshot,
)

__all__ = ["build_tree", "encode_record", "load_bytes", "snapshot"]
