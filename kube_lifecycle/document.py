"""Schema-less documents addressed by field path.

A document is a tree of mappings, sequences and scalars as decoded from the
wire. Every node is classified by a `NodeKind` so that traversal can check the
kind of each step and fail explicitly rather than coerce. Paths are sequences
of mapping keys, e.g. `("spec", "replicas")`. Sequences are read and written
as a whole with `get_sequence` and `set_sequence`.

Writes follow a single discipline: all ancestors of the written field must
already exist. Nothing is fabricated on the caller's behalf.
"""

import copy
from collections.abc import Mapping, Sequence
from enum import StrEnum
import logging
from typing import Any

from .exceptions import (
    InputException,
    PathNotFoundError,
    TypeMismatchError,
)
from .manifest import GroupVersionResource, NamedResource

__all__ = [
    "NodeKind",
    "Path",
    "kind_of",
    "parse_path",
    "get_path",
    "set_path",
    "delete_path",
    "get_sequence",
    "set_sequence",
    "get_int",
    "get_str",
    "get_bool",
    "get_mapping",
    "DynamicResourceRecord",
]

_LOGGER = logging.getLogger(__name__)

Path = Sequence[str]

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

RESOURCE_VERSION_PATH = ("metadata", "resourceVersion")


class NodeKind(StrEnum):
    """The kind of a node in a document tree."""

    MAPPING = "mapping"
    SEQUENCE = "sequence"
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    NULL = "null"


def kind_of(value: Any) -> NodeKind:
    """Classify a document value.

    Raises `InputException` for values that cannot appear in a document.
    """
    if value is None:
        return NodeKind.NULL
    # bool is a subclass of int and must be checked first
    if isinstance(value, bool):
        return NodeKind.BOOLEAN
    if isinstance(value, int):
        return NodeKind.INTEGER
    if isinstance(value, float):
        return NodeKind.FLOAT
    if isinstance(value, str):
        return NodeKind.STRING
    if isinstance(value, Mapping):
        return NodeKind.MAPPING
    if isinstance(value, (list, tuple)):
        return NodeKind.SEQUENCE
    raise InputException(
        f"Value of type {type(value).__name__} is not a valid document value"
    )


def parse_path(value: str) -> tuple[str, ...]:
    """Split a dotted path like `spec.template.spec` into segments."""
    if not value or any(not segment for segment in value.split(".")):
        raise InputException(f"Invalid field path '{value}'")
    return tuple(value.split("."))


def normalize(value: Any) -> Any:
    """Return a deep copy of a value using the document representation.

    Mappings become `dict` with string keys, sequences become `list`, and
    integers are plain `int` in the signed 64 bit range. The same
    representation is produced when reading, so writes round trip.
    """
    kind = kind_of(value)
    if kind == NodeKind.MAPPING:
        result: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise InputException(f"Mapping key {key!r} is not a string")
            result[key] = normalize(item)
        return result
    if kind == NodeKind.SEQUENCE:
        return [normalize(item) for item in value]
    if kind == NodeKind.INTEGER:
        number = int(value)
        if not INT64_MIN <= number <= INT64_MAX:
            raise InputException(f"Integer {number} does not fit in 64 bits")
        return number
    return value


def _walk(obj: dict[str, Any], path: Path) -> Any:
    """Return the node at the path, checking every intermediate is a mapping."""
    node: Any = obj
    for i, segment in enumerate(path):
        if kind_of(node) != NodeKind.MAPPING:
            raise TypeMismatchError(path[:i], NodeKind.MAPPING, kind_of(node))
        if segment not in node:
            raise PathNotFoundError(path[: i + 1], "field not found")
        node = node[segment]
    return node


def _parent(obj: dict[str, Any], path: Path) -> dict[str, Any]:
    """Return the existing mapping holding the last segment of the path."""
    if not path:
        raise InputException("Field path must have at least one segment")
    parent = _walk(obj, path[:-1])
    if (kind := kind_of(parent)) != NodeKind.MAPPING:
        raise TypeMismatchError(path[:-1], NodeKind.MAPPING, kind)
    return parent


def get_path(obj: dict[str, Any], path: Path, expected_kind: NodeKind) -> Any:
    """Return the value at the path, which must be of the expected kind.

    Container values are returned as copies; mutate them and write them back
    with `set_path` to change the document.
    """
    value = _walk(obj, path)
    if (kind := kind_of(value)) != expected_kind:
        raise TypeMismatchError(path, expected_kind, kind)
    if kind in (NodeKind.MAPPING, NodeKind.SEQUENCE):
        return copy.deepcopy(value)
    return value


def set_path(obj: dict[str, Any], path: Path, value: Any) -> None:
    """Set the value at the path; every ancestor mapping must already exist."""
    parent = _parent(obj, path)
    parent[path[-1]] = normalize(value)


def delete_path(obj: dict[str, Any], path: Path) -> None:
    """Remove the field at the path."""
    parent = _parent(obj, path)
    if path[-1] not in parent:
        raise PathNotFoundError(path, "field not found")
    del parent[path[-1]]


def get_sequence(obj: dict[str, Any], path: Path) -> list[Any]:
    """Return a copy of the sequence at the path."""
    return get_path(obj, path, NodeKind.SEQUENCE)


def set_sequence(obj: dict[str, Any], path: Path, seq: Sequence[Any]) -> None:
    """Replace the sequence at the path."""
    if (kind := kind_of(seq)) != NodeKind.SEQUENCE:
        raise TypeMismatchError(path, NodeKind.SEQUENCE, kind)
    set_path(obj, path, seq)


def get_int(obj: dict[str, Any], path: Path) -> int:
    """Return the integer at the path."""
    return get_path(obj, path, NodeKind.INTEGER)


def get_str(obj: dict[str, Any], path: Path) -> str:
    """Return the string at the path."""
    return get_path(obj, path, NodeKind.STRING)


def get_bool(obj: dict[str, Any], path: Path) -> bool:
    """Return the boolean at the path."""
    return get_path(obj, path, NodeKind.BOOLEAN)


def get_mapping(obj: dict[str, Any], path: Path) -> dict[str, Any]:
    """Return a copy of the mapping at the path."""
    return get_path(obj, path, NodeKind.MAPPING)


class DynamicResourceRecord:
    """A stored object manipulated without a compiled schema."""

    def __init__(self, obj: Mapping[str, Any]) -> None:
        """Initialize DynamicResourceRecord with a copy of the document."""
        if (kind := kind_of(obj)) != NodeKind.MAPPING:
            raise TypeMismatchError((), NodeKind.MAPPING, kind)
        self.object: dict[str, Any] = normalize(obj)

    @property
    def api_version(self) -> str:
        return self.object.get("apiVersion", "")

    @property
    def kind(self) -> str:
        return self.object.get("kind", "")

    @property
    def _metadata(self) -> Mapping[str, Any]:
        metadata = self.object.get("metadata")
        return metadata if isinstance(metadata, Mapping) else {}

    @property
    def name(self) -> str:
        return self._metadata.get("name", "")

    @property
    def namespace(self) -> str | None:
        return self._metadata.get("namespace")

    @property
    def resource_version(self) -> str | None:
        return self._metadata.get("resourceVersion")

    @property
    def resource_id(self) -> NamedResource:
        """Identity of the record within the store."""
        return NamedResource(self.kind, self.namespace, self.name)

    def gvr(self, resource: str) -> GroupVersionResource:
        """Return the collection of the given plural name for this object."""
        group, _, version = self.api_version.rpartition("/")
        return GroupVersionResource(group=group, version=version, resource=resource)

    def get_path(self, path: Path, expected_kind: NodeKind) -> Any:
        """Return the value at the path, which must be of the expected kind."""
        return get_path(self.object, path, expected_kind)

    def set_path(self, path: Path, value: Any) -> None:
        """Set the value at the path; every ancestor must already exist."""
        set_path(self.object, path, value)

    def delete_path(self, path: Path) -> None:
        """Remove the field at the path."""
        delete_path(self.object, path)

    def get_sequence(self, path: Path) -> list[Any]:
        """Return a copy of the sequence at the path."""
        return get_sequence(self.object, path)

    def set_sequence(self, path: Path, seq: Sequence[Any]) -> None:
        """Replace the sequence at the path."""
        set_sequence(self.object, path, seq)

    def get_int(self, path: Path) -> int:
        return get_int(self.object, path)

    def get_str(self, path: Path) -> str:
        return get_str(self.object, path)

    def get_bool(self, path: Path) -> bool:
        return get_bool(self.object, path)

    def get_mapping(self, path: Path) -> dict[str, Any]:
        return get_mapping(self.object, path)

    def to_doc(self) -> dict[str, Any]:
        """Return a copy of the wire representation."""
        return copy.deepcopy(self.object)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DynamicResourceRecord):
            return NotImplemented
        return self.object == other.object

    def __repr__(self) -> str:
        return f"DynamicResourceRecord({self.resource_id}, resourceVersion={self.resource_version})"
