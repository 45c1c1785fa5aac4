"""
Nested-Path Merge

Applies a flat key/value update at a ``/``-separated path inside a record,
creating intermediate structure as needed. Independent writers can update
disjoint sub-trees of the same record this way.

Rules:
- Empty path: shallow union at the root, patch wins.
- Intermediate segment absent or holding a Leaf: replaced by an empty Node
  (the scalar is lost).
- Final segment: patch is unioned into the Node there, or into a new Node
  if the segment is absent or a Leaf.

The input tree is never mutated; the walk rebuilds only the nodes along
the path. The root ``timestamp`` is set by the caller afterwards.

Complexity: O(d + k + w) for path depth d, patch size k and total width
w of the nodes copied along the path.
"""

from __future__ import annotations

from typing import Mapping

from evstore.core import constants as C
from evstore.records.tree import Leaf, Node, Value


def split_path(path: str) -> list[str]:
    """Split a path into segments; the empty path has none."""
    if path == "":
        return []
    return path.split(C.PATH_SEPARATOR)


def merge_at_path(existing: Node, path: str, patch: Mapping[str, Value]) -> Node:
    """Return a new tree with ``patch`` merged into ``existing`` at ``path``."""
    return _merge(existing, split_path(path), patch)


def _merge(current: Node, segments: list[str], patch: Mapping[str, Value]) -> Node:
    if not segments:
        return current.with_entries(patch)

    head, rest = segments[0], segments[1:]
    match current.get(head):
        case Node() as child:
            target = child
        case _:
            # absent, or a Leaf being overwritten
            target = Node.empty()

    return current.with_entries({head: _merge(target, rest, patch)})


def merge_params(existing: Node, path: str, params: Mapping[str, str]) -> Node:
    """Convenience wrapper for flat string parameters."""
    return merge_at_path(existing, path, {key: Leaf(value) for key, value in params.items()})
