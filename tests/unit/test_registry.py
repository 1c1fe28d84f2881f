"""Tests for the storage registry and factory."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from docmapper.base import StorageConfig
from docmapper.changes import ChangeTracker
from docmapper.client import ClientProvider, MongoConfig
from docmapper.converters import DatetimeType
from docmapper.factory import create_storage
from docmapper.hydrator import Hydrator
from docmapper.locking import MongoPessimisticLock
from docmapper.registry import StorageNotRegisteredError, StorageRegistry
from docmapper.storage import Storage
from docmapper.values import Model
from tests.mocks import MockClient, MockCollection


class Order(Model):
    pass


class RushOrder(Order):
    pass


class Customer(Model):
    pass


@pytest.fixture
def provider() -> ClientProvider:
    return ClientProvider(MongoConfig(database="shop"), client=MockClient())


class TestStorageRegistry:
    """Tests for StorageRegistry."""

    def test_register_and_get(self) -> None:
        registry = StorageRegistry()
        storage = Storage(MockCollection("orders"), Hydrator(Order))

        registry.register(Order, storage)

        assert registry.get_storage(Order) is storage
        assert registry.get_storage(Order()) is storage
        assert Order in registry
        assert len(registry) == 1

    def test_subclass_uses_base_storage(self) -> None:
        registry = StorageRegistry()
        storage = Storage(MockCollection("orders"), Hydrator(Order))
        registry.register(Order, storage)

        assert registry.get_storage(RushOrder()) is storage

    def test_most_specific_wins(self) -> None:
        registry = StorageRegistry()
        registry.register(Order, Storage(MockCollection("orders"), Hydrator(Order)))
        rush = Storage(MockCollection("rush"), Hydrator(RushOrder))
        registry.register(RushOrder, rush)

        assert registry.get_storage(RushOrder) is rush

    def test_not_registered(self) -> None:
        registry = StorageRegistry()
        registry.register(Order, Storage(MockCollection("orders"), Hydrator(Order)))

        with pytest.raises(StorageNotRegisteredError) as exc_info:
            registry.get_storage(Customer())

        assert exc_info.value.model_class is Customer

    def test_unregister(self) -> None:
        registry = StorageRegistry()
        registry.register(Order, Storage(MockCollection(), Hydrator(Order)))

        assert registry.unregister(Order)
        assert not registry.unregister(Order)
        assert Order not in registry


class TestCreateStorage:
    """Tests for the create_storage factory."""

    def test_create_storage(self, provider: ClientProvider) -> None:
        storage = create_storage(provider, "orders", Order)

        assert storage.collection.name == "orders"
        assert isinstance(storage.create(), Order)
        assert isinstance(storage.pessimistic_lock, MongoPessimisticLock)
        assert storage.pessimistic_lock.collection.name == "orders_lock"

    def test_lock_indexes_are_created(self, provider: ClientProvider) -> None:
        """Test that abandoned locks expire after the configured TTL."""
        storage = create_storage(provider, "orders", config=StorageConfig(lock_ttl=120))

        assert storage.pessimistic_lock.collection.indexes == [
            ("session_id", {}),
            ("created_at", {"expireAfterSeconds": 120}),
        ]

    def test_lock_indexes_can_be_skipped(self, provider: ClientProvider) -> None:
        storage = create_storage(provider, "orders", create_indexes=False)

        assert storage.pessimistic_lock.collection.indexes == []

    def test_custom_lock_collection(self, provider: ClientProvider) -> None:
        config = StorageConfig(lock_collection="locks", lock_poll_interval=0.05)

        storage = create_storage(provider, "orders", config=config)

        assert storage.pessimistic_lock.collection.name == "locks"
        assert storage.config is config

    def test_without_lock(self, provider: ClientProvider) -> None:
        storage = create_storage(provider, "orders", pessimistic_lock=False)

        assert storage.pessimistic_lock is None

    def test_shared_tracker_and_registry(self, provider: ClientProvider) -> None:
        tracker = ChangeTracker()
        registry = StorageRegistry()

        orders = create_storage(provider, "orders", Order, change_tracker=tracker, registry=registry)
        customers = create_storage(
            provider, "customers", Customer, change_tracker=tracker, registry=registry
        )

        assert orders.change_tracker is customers.change_tracker is tracker

        order = orders.create()
        orders.insert(order)
        assert tracker.is_registered(order)
        assert registry.get_storage(Order) is orders
        assert registry.get_storage(Customer) is customers

    def test_types_are_applied(self, provider: ClientProvider) -> None:
        storage = create_storage(provider, "events", types={"at": DatetimeType()})
        model = Model({"at": datetime(2025, 1, 1, tzinfo=timezone.utc)})

        storage.insert(model)

        stored = storage.collection.raw(model.values["_id"])
        assert stored["at"] == datetime(2025, 1, 1)
        assert stored["at"].tzinfo is None
