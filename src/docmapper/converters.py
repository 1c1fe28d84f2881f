"""Conversion between native values and their BSON representation.

A :class:`ValueConverter` maps field paths to :class:`ValueType` instances.
Paths may use ``*`` to match every key of a mapping or every element of a
sequence, e.g. ``"items.*.price"``.

Conversion to the store receives the previously stored form of each value.
Types use it to keep an equivalent stored value as-is, so re-encoding a value
that did not change never shows up as a change.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from copy import deepcopy
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterator

from bson import Binary, Decimal128, ObjectId
from bson.binary import UuidRepresentation

from docmapper.values import assign, join_path, lookup, split_path

WILDCARD = "*"


# =============================================================================
# Value Types
# =============================================================================


class ValueType(ABC):
    """Converts a single value between native and store form."""

    @abstractmethod
    def to_store(self, value: Any, previous: Any = None) -> Any:
        """Convert a native value to its stored form.

        Args:
            value: Native value (never None).
            previous: The value currently stored at the same path, if any.
        """
        pass

    @abstractmethod
    def to_native(self, value: Any) -> Any:
        """Convert a stored value to its native form."""
        pass


class ObjectIdType(ValueType):
    """Reference fields stored as ObjectId.

    Args:
        as_string: Expose the native value as a 24-hex string.
    """

    def __init__(self, as_string: bool = False) -> None:
        self._as_string = as_string

    def to_store(self, value: Any, previous: Any = None) -> Any:
        if isinstance(value, ObjectId):
            return value
        return ObjectId(str(value))

    def to_native(self, value: Any) -> Any:
        if self._as_string:
            return str(value)
        return value if isinstance(value, ObjectId) else ObjectId(str(value))


class UUIDType(ValueType):
    """UUIDs stored as standard (subtype 4) binary."""

    def to_store(self, value: Any, previous: Any = None) -> Any:
        if isinstance(value, Binary):
            return value
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        return Binary.from_uuid(value, UuidRepresentation.STANDARD)

    def to_native(self, value: Any) -> Any:
        if isinstance(value, uuid.UUID):
            return value
        if isinstance(value, Binary):
            return value.as_uuid(UuidRepresentation.STANDARD)
        return uuid.UUID(str(value))


class DatetimeType(ValueType):
    """Datetimes stored as naive UTC with millisecond precision.

    Native values are timezone-aware UTC datetimes. Naive native values are
    taken to be UTC already.
    """

    def to_store(self, value: Any, previous: Any = None) -> Any:
        if not isinstance(value, datetime):
            value = datetime.fromisoformat(str(value))
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        # BSON dates carry milliseconds only
        value = value.replace(microsecond=value.microsecond // 1000 * 1000)

        if isinstance(previous, datetime) and previous.tzinfo is None and previous == value:
            return previous
        return value

    def to_native(self, value: Any) -> Any:
        if not isinstance(value, datetime):
            value = datetime.fromisoformat(str(value))
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class DecimalType(ValueType):
    """Decimals stored as Decimal128."""

    def to_store(self, value: Any, previous: Any = None) -> Any:
        if isinstance(value, Decimal128):
            return value
        return Decimal128(Decimal(str(value)))

    def to_native(self, value: Any) -> Any:
        if isinstance(value, Decimal128):
            return value.to_decimal()
        return Decimal(str(value))


# =============================================================================
# Converter
# =============================================================================


def expand_path(tree: Any, pattern: str) -> Iterator[str]:
    """Yield the concrete paths in ``tree`` matching ``pattern``."""

    def walk(node: Any, segments: list[str], prefix: str) -> Iterator[str]:
        if not segments:
            yield prefix
            return
        head, rest = segments[0], segments[1:]
        if head == WILDCARD:
            if isinstance(node, dict):
                keys: list[Any] = list(node)
            elif isinstance(node, list):
                keys = list(range(len(node)))
            else:
                return
            for key in keys:
                yield from walk(node[key], rest, join_path(prefix, key))
            return

        if isinstance(node, dict) and head in node:
            yield from walk(node[head], rest, join_path(prefix, head))
        elif isinstance(node, list) and head.isdigit() and int(head) < len(node):
            yield from walk(node[int(head)], rest, join_path(prefix, head))

    yield from walk(tree, split_path(pattern), "")


class ValueConverter:
    """Applies value types to the paths of a value tree.

    Args:
        types: Mapping of field path (``*`` allowed) to value type.

    Example:
        >>> converter = ValueConverter({"created_at": DatetimeType()})
        >>> stored = converter.to_store_values(values, previous_values)
    """

    def __init__(self, types: dict[str, ValueType] | None = None) -> None:
        self._types: dict[str, ValueType] = dict(types or {})

    @property
    def types(self) -> dict[str, ValueType]:
        return dict(self._types)

    def register(self, path: str, value_type: ValueType) -> None:
        """Add or replace the value type for a path."""
        self._types[path] = value_type

    def to_store_values(
        self,
        values: dict[str, Any],
        previous_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Convert a native value tree to its stored form.

        Returns a new tree; ``values`` is left untouched.
        """
        result = deepcopy(values)
        previous_values = previous_values or {}
        for pattern, value_type in self._types.items():
            for path in list(expand_path(result, pattern)):
                value = lookup(result, path)
                if value is None:
                    continue
                previous = lookup(previous_values, path)
                assign(result, path, value_type.to_store(value, previous))
        return result

    def to_native_values(self, values: dict[str, Any]) -> dict[str, Any]:
        """Convert a stored value tree to native form.

        Returns a new tree; ``values`` is left untouched.
        """
        result = deepcopy(values)
        for pattern, value_type in self._types.items():
            for path in list(expand_path(result, pattern)):
                value = lookup(result, path)
                if value is None:
                    continue
                assign(result, path, value_type.to_native(value))
        return result
