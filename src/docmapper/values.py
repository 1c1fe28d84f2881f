"""Value trees addressed by dot-separated field paths.

A model keeps its document in a plain ``values`` dict. Internal nodes are
dicts (string keys) or lists (integer indices); everything else is a leaf.
Paths such as ``"address.lines.0"`` address a single node.

Setting a path to ``None`` removes it, so a present path never holds ``None``
as a result of :func:`set_value`.

Example:
    >>> model = Model()
    >>> set_value(model, "address.city", "Oslo")
    >>> add_value(model, "tags", "new")
    'tags.0'
    >>> get_values(model)
    {'address': {'city': 'Oslo'}, 'tags': ['new']}
"""

from __future__ import annotations

from copy import deepcopy
from enum import Enum
from typing import Any, Iterator

PATH_SEPARATOR = "."

_MISSING = object()


class NodeKind(Enum):
    """Structural kind of a node in a value tree."""

    MAPPING = "mapping"
    SEQUENCE = "sequence"
    LEAF = "leaf"


def node_kind(value: Any) -> NodeKind:
    """Classify a node as mapping, sequence or leaf."""
    if isinstance(value, dict):
        return NodeKind.MAPPING
    if isinstance(value, list):
        return NodeKind.SEQUENCE
    return NodeKind.LEAF


class Model:
    """Minimal base class for mapped models.

    Any object exposing a ``values`` dict works with docmapper; this class
    just provides one.
    """

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self.values: dict[str, Any] = {}
        if values:
            set_values(self, values)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.values!r})"


# =============================================================================
# Paths
# =============================================================================


def split_path(path: str) -> list[str]:
    """Split a field path into its segments."""
    if not path:
        raise ValueError("Field path must not be empty")
    return path.split(PATH_SEPARATOR)


def join_path(*segments: str | int) -> str:
    """Join segments into a field path, skipping empty ones."""
    return PATH_SEPARATOR.join(str(s) for s in segments if s != "")


def _as_index(segment: str, size: int, allow_end: bool = False) -> int | None:
    if not segment.isdigit():
        return None
    index = int(segment)
    limit = size + 1 if allow_end else size
    return index if index < limit else None


# =============================================================================
# Model access
# =============================================================================


def values_of(model: Any) -> dict[str, Any]:
    """Return the live ``values`` dict of a model."""
    values = getattr(model, "values", None)
    if not isinstance(values, dict):
        raise TypeError(f"{type(model).__name__} does not carry a values dict")
    return values


def is_model(value: Any) -> bool:
    """Check whether an object can be used as a model."""
    return isinstance(getattr(value, "values", None), dict)


def _lookup(tree: Any, segments: list[str]) -> Any:
    node = tree
    for segment in segments:
        if isinstance(node, dict):
            node = node.get(segment, _MISSING)
        elif isinstance(node, list):
            index = _as_index(segment, len(node))
            node = _MISSING if index is None else node[index]
        else:
            return _MISSING
        if node is _MISSING:
            return _MISSING
    return node


def lookup(tree: dict[str, Any], path: str, default: Any = None) -> Any:
    """Get the node at ``path`` in a plain value tree."""
    node = _lookup(tree, split_path(path))
    return default if node is _MISSING or node is None else node


def assign(tree: dict[str, Any], path: str, value: Any) -> None:
    """Set the node at ``path`` in a plain value tree.

    Missing mappings along the way are created. A leaf standing where a
    mapping is needed is replaced. ``None`` removes the node.
    """
    segments = split_path(path)
    node: Any = tree
    for segment in segments[:-1]:
        if isinstance(node, list):
            index = _as_index(segment, len(node), allow_end=True)
            if index is None:
                raise IndexError(f"Cannot address {segment!r} in a sequence at {path!r}")
            if index == len(node):
                if value is None:
                    return
                node.append({})
            elif not isinstance(node[index], (dict, list)):
                node[index] = {}
            node = node[index]
            continue

        child = node.get(segment)
        if not isinstance(child, (dict, list)):
            if value is None:
                return
            child = {}
            node[segment] = child
        node = child

    last = segments[-1]
    if isinstance(node, list):
        index = _as_index(last, len(node), allow_end=True)
        if index is None:
            raise IndexError(f"Cannot address {last!r} in a sequence at {path!r}")
        if value is None:
            if index < len(node):
                del node[index]
        elif index == len(node):
            node.append(value)
        else:
            node[index] = value
        return

    if value is None:
        node.pop(last, None)
    else:
        node[last] = value


def get_value(model: Any, path: str, default: Any = None) -> Any:
    """Get the value at ``path`` on a model, or ``default`` if absent."""
    return lookup(values_of(model), path, default)


def set_value(model: Any, path: str, value: Any) -> None:
    """Set the value at ``path`` on a model; ``None`` removes it."""
    assign(values_of(model), path, value)


def add_value(model: Any, path: str, value: Any) -> str:
    """Append ``value`` to the sequence at ``path``, creating it if needed.

    Returns:
        The path of the appended element.
    """
    values = values_of(model)
    sequence = lookup(values, path)
    if not isinstance(sequence, list):
        sequence = []
        assign(values, path, sequence)
    sequence.append(value)
    return join_path(path, len(sequence) - 1)


def get_values(model: Any, copy: bool = True) -> dict[str, Any]:
    """Return the model's value tree, deep-copied unless ``copy`` is False."""
    values = values_of(model)
    return deepcopy(values) if copy else values


def set_values(model: Any, values: dict[str, Any]) -> None:
    """Replace the model's value tree with a deep copy of ``values``."""
    values_of(model)
    model.values = {k: deepcopy(v) for k, v in values.items() if v is not None}


# =============================================================================
# Flattening
# =============================================================================


def iter_leaves(tree: Any, prefix: str = "") -> Iterator[tuple[str, Any]]:
    """Yield ``(path, leaf)`` pairs in document order.

    Empty mappings and sequences are reported as leaves so that flattening
    does not lose them.
    """
    if isinstance(tree, dict) and tree:
        for key, child in tree.items():
            yield from iter_leaves(child, join_path(prefix, key))
    elif isinstance(tree, list) and tree:
        for index, child in enumerate(tree):
            yield from iter_leaves(child, join_path(prefix, index))
    elif prefix:
        yield prefix, tree


def flatten(tree: dict[str, Any]) -> dict[str, Any]:
    """Flatten a value tree into a ``{path: leaf}`` mapping."""
    return dict(iter_leaves(tree))
