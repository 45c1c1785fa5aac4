"""
Record Tree

A record is a tree of string leaves and named mappings:

    Value = Leaf(str) | Node({str: Value})

Nodes are treated as immutable: every transformation returns a new Node
and leaves its input untouched, so a tree read from storage can be shared
between concurrent readers.

Wire format is a JSON object whose values are strings or nested objects.
Keys are emitted sorted with compact separators so equal trees encode to
equal bytes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Union

from evstore.core import constants as C
from evstore.core.errors import RecordError
from evstore.core.types import Err, Ok, Result


@dataclass(frozen=True, slots=True)
class Leaf:
    """A string value."""

    value: str


@dataclass(frozen=True, slots=True)
class Node:
    """A named mapping to child values."""

    children: dict[str, "Value"] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> Node:
        return cls({})

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> Node:
        """Build a one-level node from flat string parameters."""
        return cls({key: Leaf(value) for key, value in params.items()})

    def get(self, key: str) -> Value | None:
        return self.children.get(key)

    def with_entries(self, entries: Mapping[str, Value]) -> Node:
        """Shallow union; ``entries`` win on conflicting keys."""
        return Node({**self.children, **entries})

    def with_timestamp(self, timestamp: str) -> Node:
        """Return a copy with the reserved root ``timestamp`` leaf set."""
        return self.with_entries({C.TIMESTAMP_FIELD: Leaf(timestamp)})

    def __len__(self) -> int:
        return len(self.children)

    def __iter__(self) -> Iterator[str]:
        return iter(self.children)

    def __contains__(self, key: object) -> bool:
        return key in self.children


Value = Union[Leaf, Node]


# =============================================================================
# CONVERSION
# =============================================================================
def to_plain(value: Value) -> Any:
    """
    Convert a tree into plain ``dict``/``str`` objects.

    Raises:
        TypeError: A child is neither a Leaf nor a Node.
    """
    match value:
        case Leaf(text):
            return text
        case Node(children):
            return {key: to_plain(child) for key, child in children.items()}
        case _:
            raise TypeError(f"unsupported record value: {type(value).__name__}")


def from_plain(obj: Any) -> Value:
    """
    Build a tree from decoded JSON.

    Raises:
        TypeError: A value is neither a string nor an object.
    """
    if isinstance(obj, str):
        return Leaf(obj)
    if isinstance(obj, dict):
        return Node({str(key): from_plain(child) for key, child in obj.items()})
    raise TypeError(f"unsupported JSON value: {type(obj).__name__}")


def encode_record(record: Node) -> Result[bytes, RecordError]:
    """Serialize a record to its JSON wire form."""
    try:
        plain = to_plain(record)
        return Ok(json.dumps(plain, sort_keys=True, separators=(",", ":")).encode("utf-8"))
    except (TypeError, ValueError) as e:
        return Err(RecordError.encode_failed(cause=e))


def decode_record(raw: bytes) -> Result[Node, RecordError]:
    """Parse the JSON wire form; the root must be an object."""
    try:
        value = from_plain(json.loads(raw))
    except (TypeError, ValueError) as e:
        return Err(RecordError.decode_failed(cause=e))
    if not isinstance(value, Node):
        return Err(RecordError.decode_failed())
    return Ok(value)


def render_value(value: Value) -> str:
    """Text form of a value: leaves verbatim, nodes as JSON."""
    match value:
        case Leaf(text):
            return text
        case Node():
            return json.dumps(to_plain(value), sort_keys=True, separators=(",", ":"))
