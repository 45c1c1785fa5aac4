"""
Records module: the record tree, nested-path merge and field traversal.
"""

from evstore.records.tree import (
    Leaf,
    Node,
    Value,
    decode_record,
    encode_record,
    from_plain,
    render_value,
    to_plain,
)
from evstore.records.merge import merge_at_path, merge_params, split_path
from evstore.records.traverse import traverse_field

__all__ = [
    "Leaf",
    "Node",
    "Value",
    "decode_record",
    "encode_record",
    "from_plain",
    "render_value",
    "to_plain",
    "merge_at_path",
    "merge_params",
    "split_path",
    "traverse_field",
]
