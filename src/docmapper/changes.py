"""Field-level change tracking.

The :class:`ChangeTracker` keeps a snapshot of each model's persisted values
and computes the smallest set of field operations that bring the store in
line with the model's current values.

The diff always compares two final states, never a log of mutations, so a
field that is set and cleared again before diffing produces nothing.

Example:
    >>> tracker = ChangeTracker()
    >>> model = Model({"aKey": "aVal"})
    >>> tracker.register(model)
    >>> set_value(model, "aKey", None)
    >>> set_value(model, "anotherKey", "aVal")
    >>> tracker.changes(model).to_mongo()
    {'$set': {'anotherKey': 'aVal'}, '$unset': {'aKey': ''}}
"""

from __future__ import annotations

import weakref
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Mapping

from docmapper.identity import ID_FIELD
from docmapper.values import PATH_SEPARATOR, NodeKind, flatten, get_values, join_path, node_kind


# =============================================================================
# Update Document
# =============================================================================


@dataclass
class UpdateDocument:
    """The result of a diff, grouped by operation.

    Attributes:
        assign: Path to new value.
        remove: Paths to remove, sorted.
        append: Index-qualified paths of new trailing sequence elements.
        increment: Path to amount, for atomic counters.
    """

    assign: dict[str, Any] = field(default_factory=dict)
    remove: list[str] = field(default_factory=list)
    append: dict[str, Any] = field(default_factory=dict)
    increment: dict[str, int] = field(default_factory=dict)

    def is_empty(self) -> bool:
        """True when no write is required."""
        return not (self.assign or self.remove or self.append or self.increment)

    def __bool__(self) -> bool:
        return not self.is_empty()

    def paths(self) -> list[str]:
        """All paths touched by this update."""
        return [*self.append, *self.assign, *self.remove, *self.increment]

    def add_increment(self, path: str, amount: int = 1) -> None:
        """Add an atomic increment, merging with any existing one."""
        self.increment[path] = self.increment.get(path, 0) + amount

    @property
    def has_append(self) -> bool:
        return bool(self.append)

    @property
    def has_remainder(self) -> bool:
        return bool(self.assign or self.remove or self.increment)

    def appended_sequences(self) -> dict[str, list[Any]]:
        """Group the append entries by sequence path, in index order."""
        sequences: dict[str, list[tuple[int, Any]]] = {}
        for path, value in self.append.items():
            parent, _, index = path.rpartition(PATH_SEPARATOR)
            sequences.setdefault(parent, []).append((int(index), value))
        return {
            path: [value for _, value in sorted(items, key=lambda item: item[0])]
            for path, items in sequences.items()
        }

    def append_updates(self) -> list[dict[str, Any]]:
        """MongoDB update documents for the append grouping.

        Each sequence is extended with ``$push``/``$each``, which also creates
        a sequence that is not stored yet. Sequences nested in one another
        cannot be pushed in the same write and go into separate documents.
        """
        groups: list[dict[str, Any]] = []
        for path, items in self.appended_sequences().items():
            for group in groups:
                if not any(_overlaps(path, other) for other in group):
                    group[path] = {"$each": items}
                    break
            else:
                groups.append({path: {"$each": items}})
        return [{"$push": group} for group in groups]

    def remainder_update(self) -> dict[str, Any]:
        """MongoDB update document for everything but the append grouping."""
        update: dict[str, Any] = {}
        if self.assign:
            update["$set"] = dict(self.assign)
        if self.remove:
            update["$unset"] = {path: "" for path in self.remove}
        if self.increment:
            update["$inc"] = dict(self.increment)
        return update

    def to_mongo(self) -> dict[str, Any]:
        """Render the whole update as a single MongoDB update document.

        Appends appear as index-qualified ``$set`` entries, which only apply
        to sequences that already exist. Writes go through :meth:`split`.
        """
        update: dict[str, Any] = {}
        if self.append or self.assign:
            update["$set"] = {**self.append, **self.assign}
        if self.remove:
            update["$unset"] = {path: "" for path in self.remove}
        if self.increment:
            update["$inc"] = dict(self.increment)
        return update

    def split(self) -> list[dict[str, Any]]:
        """Split into writes MongoDB can apply.

        MongoDB rejects an update that extends a sequence while modifying the
        same or a sibling field, so a non-empty append grouping is issued on
        its own, before the rest.
        """
        updates = self.append_updates()
        if self.has_remainder:
            updates.append(self.remainder_update())
        return updates


def _overlaps(path: str, other: str) -> bool:
    return (
        path == other
        or path.startswith(other + PATH_SEPARATOR)
        or other.startswith(path + PATH_SEPARATOR)
    )


# =============================================================================
# Snapshot
# =============================================================================


@dataclass(frozen=True)
class Snapshot:
    """The persisted state of a model at load time or after its last write."""

    values: Mapping[str, Any]

    @classmethod
    def capture(cls, values: Mapping[str, Any]) -> "Snapshot":
        return cls(values=deepcopy(dict(values)))

    @property
    def flat(self) -> dict[str, Any]:
        """Flattened ``{path: leaf}`` view of the snapshot."""
        return flatten(dict(self.values))

    def raw(self) -> dict[str, Any]:
        """A mutable deep copy of the snapshot values."""
        return deepcopy(dict(self.values))


# =============================================================================
# Diff
# =============================================================================


def _present(mapping: Mapping[str, Any], key: str) -> bool:
    return mapping.get(key) is not None


def _same_leaf(old: Any, new: Any) -> bool:
    # 1, 1.0 and True compare equal but are stored as different BSON types
    return type(old) is type(new) and old == new


def _diff_mapping(
    old: Mapping[str, Any],
    new: Mapping[str, Any],
    prefix: str,
    update: UpdateDocument,
) -> None:
    for key, value in new.items():
        if value is None:
            continue
        path = join_path(prefix, key)
        if _present(old, key):
            _diff_node(old[key], value, path, update)
        elif isinstance(value, list) and value:
            _append_items(value, 0, path, update)
        else:
            update.assign[path] = deepcopy(value)

    for key in old:
        if _present(old, key) and not _present(new, key):
            update.remove.append(join_path(prefix, key))


def _append_items(items: list[Any], start: int, path: str, update: UpdateDocument) -> None:
    for index in range(start, len(items)):
        update.append[join_path(path, index)] = deepcopy(items[index])


def _diff_sequence(
    old: list[Any],
    new: list[Any],
    path: str,
    update: UpdateDocument,
) -> None:
    if len(new) < len(old):
        # positional $unset leaves nulls behind, so shrinking rewrites the sequence
        update.assign[path] = deepcopy(new)
        return

    for index, value in enumerate(new[: len(old)]):
        _diff_node(old[index], value, join_path(path, index), update)
    _append_items(new, len(old), path, update)


def _diff_node(old: Any, new: Any, path: str, update: UpdateDocument) -> None:
    kind = node_kind(new)
    if kind is not node_kind(old):
        update.assign[path] = deepcopy(new)
    elif kind is NodeKind.MAPPING:
        _diff_mapping(old, new, path, update)
    elif kind is NodeKind.SEQUENCE:
        _diff_sequence(old, new, path, update)
    elif not _same_leaf(old, new):
        update.assign[path] = deepcopy(new)


def compute_diff(
    values: Mapping[str, Any],
    original_values: Mapping[str, Any] | None = None,
) -> UpdateDocument:
    """Compute the update that turns ``original_values`` into ``values``.

    The ``_id`` field never takes part in the diff.
    """
    baseline = {k: v for k, v in (original_values or {}).items() if k != ID_FIELD}
    candidate = {k: v for k, v in values.items() if k != ID_FIELD}

    update = UpdateDocument()
    _diff_mapping(baseline, candidate, "", update)
    update.remove.sort()
    return update


# =============================================================================
# Change Tracker
# =============================================================================


class ChangeTracker:
    """Tracks persisted snapshots of models and diffs against them.

    Snapshots are keyed by object identity rather than document id, because
    models that were never stored have no id. The tracker holds no strong
    reference to models: a snapshot is dropped when its model is collected.
    """

    def __init__(self) -> None:
        self._snapshots: dict[int, Snapshot] = {}
        self._finalizers: dict[int, weakref.finalize] = {}

    def __len__(self) -> int:
        return len(self._snapshots)

    def register(
        self,
        model: Any,
        original_values: Mapping[str, Any] | None = None,
    ) -> None:
        """Record the model's persisted state as the diff baseline.

        Args:
            model: The model to track.
            original_values: Values as stored. Defaults to the model's
                current values.
        """
        if original_values is None:
            original_values = get_values(model, copy=False)

        key = id(model)
        self._snapshots[key] = Snapshot.capture(original_values)
        if key not in self._finalizers:
            self._finalizers[key] = weakref.finalize(model, self._forget, key)

    def unregister(self, model: Any) -> None:
        """Drop the model's baseline, if any."""
        key = id(model)
        finalizer = self._finalizers.pop(key, None)
        if finalizer is not None:
            finalizer.detach()
        self._snapshots.pop(key, None)

    def is_registered(self, model: Any) -> bool:
        return id(model) in self._snapshots

    def get_snapshot(self, model: Any) -> Snapshot | None:
        return self._snapshots.get(id(model))

    def get_original_values(self, model: Any) -> dict[str, Any] | None:
        """Return a copy of the model's baseline, or None if unregistered."""
        snapshot = self._snapshots.get(id(model))
        return snapshot.raw() if snapshot is not None else None

    def changes(self, model: Any) -> UpdateDocument:
        """Diff the model's current values against its baseline.

        An unregistered model is diffed against an empty baseline, so its
        whole state comes out as new.
        """
        snapshot = self._snapshots.get(id(model))
        original = snapshot.values if snapshot is not None else None
        return compute_diff(get_values(model, copy=False), original)

    def diff(
        self,
        values: Mapping[str, Any],
        original_values: Mapping[str, Any] | None,
    ) -> UpdateDocument:
        """Diff two raw value trees."""
        return compute_diff(values, original_values)

    def _forget(self, key: int) -> None:
        self._snapshots.pop(key, None)
        self._finalizers.pop(key, None)
