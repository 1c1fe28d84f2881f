"""Factory functions for creating storages.

This module wires a collection, hydrator, converter, change tracker and
pessimistic lock into a :class:`~docmapper.storage.Storage`.
"""

from __future__ import annotations

import logging
from typing import Any

from docmapper.base import StorageConfig
from docmapper.changes import ChangeTracker
from docmapper.client import ClientProvider
from docmapper.converters import ValueConverter, ValueType
from docmapper.hydrator import Hydrator
from docmapper.locking.pessimistic import MongoPessimisticLock
from docmapper.registry import StorageRegistry
from docmapper.storage import Storage
from docmapper.values import Model

logger = logging.getLogger(__name__)


def create_storage(
    provider: ClientProvider,
    collection: str,
    model_class: type = Model,
    *,
    types: dict[str, ValueType] | None = None,
    config: StorageConfig | None = None,
    change_tracker: ChangeTracker | None = None,
    pessimistic_lock: bool = True,
    create_indexes: bool = True,
    registry: StorageRegistry | None = None,
) -> Storage[Any]:
    """Create a storage for one collection.

    Args:
        provider: Source of the MongoDB client.
        collection: Collection name.
        model_class: Class of the models stored in the collection.
        types: Value types for the converter, by field path.
        config: Storage options.
        change_tracker: Tracker to share between storages. A new one if None.
        pessimistic_lock: Whether to set up a lock collection.
        create_indexes: Create the lock collection indexes, including the
            TTL index that expires locks abandoned by crashed processes.
        registry: If given, the storage is registered for ``model_class``.

    Returns:
        Configured storage.

    Example:
        >>> provider = ClientProvider(MongoConfig.from_env())
        >>> orders = create_storage(
        ...     provider,
        ...     "orders",
        ...     Order,
        ...     types={"created_at": DatetimeType()},
        ... )
    """
    config = config if config is not None else StorageConfig()

    lock = None
    if pessimistic_lock:
        lock_collection = provider.get_collection(config.get_lock_collection(collection))
        lock = MongoPessimisticLock(
            lock_collection,
            poll_interval=config.lock_poll_interval,
            ttl=config.lock_ttl,
        )
        if create_indexes:
            lock.create_indexes()

    storage: Storage[Any] = Storage(
        provider.get_collection(collection),
        Hydrator(model_class),
        change_tracker=change_tracker,
        pessimistic_lock=lock,
        converter=ValueConverter(types),
        config=config,
    )

    if registry is not None:
        registry.register(model_class, storage)

    logger.debug(f"Created storage for {model_class.__name__} on {collection}")
    return storage
