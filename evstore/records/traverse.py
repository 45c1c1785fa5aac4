"""
Field traversal for single-value downloads.
"""

from __future__ import annotations

from evstore.core import constants as C
from evstore.core.errors import RecordError
from evstore.core.types import Err, Ok, Result
from evstore.records.tree import Node, Value


def traverse_field(record: Node, field_path: str) -> Result[Value, RecordError]:
    """
    Walk ``field_path`` (``/``-separated) from the root of ``record``.

    A Leaf reached before the segments run out is INVALID_PATH; a missing
    key at any depth is NOT_FOUND.
    """
    current: Value = record
    for segment in field_path.split(C.PATH_SEPARATOR):
        if not isinstance(current, Node):
            return Err(RecordError.invalid_path(field_path, segment))
        child = current.get(segment)
        if child is None:
            return Err(RecordError.not_found(f"Parameter '{field_path}'"))
        current = child
    return Ok(current)
