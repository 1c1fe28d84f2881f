"""Unit tests for value conversion."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from bson import Binary, Decimal128, ObjectId

from docmapper.converters import (
    DatetimeType,
    DecimalType,
    ObjectIdType,
    UUIDType,
    ValueConverter,
    expand_path,
)


class TestValueTypes:
    """Tests for individual value types."""

    def test_uuid_round_trip(self) -> None:
        value = uuid.uuid4()
        stored = UUIDType().to_store(value)

        assert isinstance(stored, Binary)
        assert stored.subtype == 4
        assert UUIDType().to_native(stored) == value

    def test_datetime_to_store_is_naive_utc_millis(self) -> None:
        value = datetime(2025, 1, 1, 14, 0, 0, 123456, tzinfo=timezone(timedelta(hours=2)))

        stored = DatetimeType().to_store(value)

        assert stored == datetime(2025, 1, 1, 12, 0, 0, 123000)
        assert stored.tzinfo is None

    def test_datetime_to_native_is_aware(self) -> None:
        native = DatetimeType().to_native(datetime(2025, 1, 1, 12, 0))

        assert native == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_datetime_keeps_previous_stored_value(self) -> None:
        """Test that an unchanged instant re-encodes to the stored object."""
        previous = datetime(2025, 1, 1, 12, 0, 0, 123000)
        value = datetime(2025, 1, 1, 12, 0, 0, 123789, tzinfo=timezone.utc)

        assert DatetimeType().to_store(value, previous) is previous

    def test_object_id_type(self) -> None:
        object_id = ObjectId()

        assert ObjectIdType().to_store(str(object_id)) == object_id
        assert ObjectIdType(as_string=True).to_native(object_id) == str(object_id)
        assert ObjectIdType().to_native(object_id) is object_id

    def test_decimal_type(self) -> None:
        stored = DecimalType().to_store(Decimal("10.25"))

        assert isinstance(stored, Decimal128)
        assert DecimalType().to_native(stored) == Decimal("10.25")


class TestValueConverter:
    """Tests for path-based conversion."""

    def test_converts_configured_paths(self) -> None:
        converter = ValueConverter({"created_at": DatetimeType(), "total": DecimalType()})
        values = {
            "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
            "total": Decimal("1.5"),
            "name": "x",
        }

        stored = converter.to_store_values(values, {})

        assert stored["created_at"] == datetime(2025, 1, 1)
        assert stored["total"] == Decimal128("1.5")
        assert stored["name"] == "x"
        assert values["total"] == Decimal("1.5")

    def test_round_trip(self) -> None:
        converter = ValueConverter({"ref": UUIDType()})
        values = {"ref": uuid.uuid4()}

        assert converter.to_native_values(converter.to_store_values(values)) == values

    def test_missing_paths_are_skipped(self) -> None:
        converter = ValueConverter({"a.b": DatetimeType()})

        assert converter.to_store_values({"c": 1}) == {"c": 1}
        assert converter.to_native_values({}) == {}

    def test_wildcard_paths(self) -> None:
        converter = ValueConverter({"items.*.price": DecimalType()})
        values = {"items": [{"price": Decimal("1")}, {"sku": "x"}, {"price": Decimal("2")}]}

        stored = converter.to_store_values(values)

        assert stored["items"][0]["price"] == Decimal128("1")
        assert stored["items"][1] == {"sku": "x"}
        assert stored["items"][2]["price"] == Decimal128("2")

    def test_register(self) -> None:
        converter = ValueConverter()
        converter.register("id", ObjectIdType())

        assert "id" in converter.types

    def test_expand_path(self) -> None:
        tree = {"a": [{"b": 1}, {"b": 2}], "m": {"x": {"b": 3}}}

        assert list(expand_path(tree, "a.*.b")) == ["a.0.b", "a.1.b"]
        assert list(expand_path(tree, "m.*.b")) == ["m.x.b"]
        assert list(expand_path(tree, "a.5.b")) == []
