"""Unit tests for identity helpers and hydration."""

from __future__ import annotations

import pytest
from bson import ObjectId

from docmapper.base import (
    HydratorProtocol,
    UnsupportedIdentityError,
    ValueConverterProtocol,
)
from docmapper.converters import ValueConverter
from docmapper.hydrator import Hydrator
from docmapper.identity import get_object_id, resolve_object_id, set_object_id
from docmapper.values import Model


class Order(Model):
    pass


class TestObjectId:
    def test_get_and_set(self) -> None:
        model = Model()
        object_id = ObjectId()

        assert get_object_id(model) is None
        set_object_id(model, object_id)
        assert get_object_id(model) == object_id
        set_object_id(model, None)
        assert "_id" not in model.values


class TestResolveObjectId:
    """Tests for identity argument normalization."""

    def test_object_id(self) -> None:
        object_id = ObjectId()
        assert resolve_object_id(object_id) is object_id

    def test_string(self) -> None:
        object_id = ObjectId()
        assert resolve_object_id(str(object_id)) == object_id

    def test_model(self) -> None:
        object_id = ObjectId()
        model = Model({"_id": object_id})
        assert resolve_object_id(model) == object_id

    @pytest.mark.parametrize("value", [123, None, 1.5, ["x"], "not-an-id", Model()])
    def test_unsupported(self, value: object) -> None:
        with pytest.raises(UnsupportedIdentityError):
            resolve_object_id(value)


class TestHydrator:
    def test_create(self) -> None:
        hydrator = Hydrator(Order)

        model = hydrator.create()

        assert isinstance(model, Order)
        assert model.values == {}

    def test_hydrate_new(self) -> None:
        values = {"a": {"b": 1}}
        model = Hydrator(Order).hydrate(values)
        values["a"]["b"] = 2

        assert isinstance(model, Order)
        assert model.values == {"a": {"b": 1}}

    def test_hydrate_existing(self) -> None:
        model = Order({"old": 1})

        result = Hydrator(Order).hydrate({"new": 2}, model)

        assert result is model
        assert model.values == {"new": 2}

    def test_factory(self) -> None:
        hydrator = Hydrator(Order, factory=lambda: Order({"version": 1}))

        assert hydrator.create().values == {"version": 1}

    def test_satisfies_protocol(self) -> None:
        assert isinstance(Hydrator(Order), HydratorProtocol)
        assert isinstance(ValueConverter(), ValueConverterProtocol)
