"""docmapper: change-tracking data mapper for MongoDB.

Models are plain objects carrying a ``values`` dict. A storage loads them,
remembers what was stored, and writes back only the fields that changed,
with optional optimistic (version) or pessimistic (lock) concurrency control.

Example:
    >>> from docmapper import ClientProvider, MongoConfig, create_storage, set_value
    >>>
    >>> provider = ClientProvider(MongoConfig(database="shop"))
    >>> orders = create_storage(provider, "orders")
    >>>
    >>> order = orders.find_one({"number": 42})
    >>> set_value(order, "status", "paid")
    >>> orders.update(order, optimistic_lock=True)
"""

from docmapper.base import (
    ConfigError,
    DocMapperError,
    LockError,
    LockTimeout,
    OptimisticLockError,
    PreconditionError,
    StorageConfig,
    StorageWriteError,
    UnacknowledgedWriteError,
    UnsupportedIdentityError,
)
from docmapper.changes import ChangeTracker, Snapshot, UpdateDocument
from docmapper.client import ClientProvider, MongoConfig
from docmapper.converters import (
    DatetimeType,
    DecimalType,
    ObjectIdType,
    UUIDType,
    ValueConverter,
    ValueType,
)
from docmapper.factory import create_storage
from docmapper.hydrator import Hydrator
from docmapper.identity import get_object_id, resolve_object_id, set_object_id
from docmapper.locking import (
    InMemoryPessimisticLock,
    LockTicket,
    MongoPessimisticLock,
    OptimisticLock,
    PessimisticLock,
)
from docmapper.registry import StorageNotRegisteredError, StorageRegistry
from docmapper.storage import Storage
from docmapper.values import (
    Model,
    add_value,
    flatten,
    get_value,
    get_values,
    set_value,
    set_values,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
    "DocMapperError",
    "ConfigError",
    "PreconditionError",
    "UnsupportedIdentityError",
    "StorageWriteError",
    "UnacknowledgedWriteError",
    "LockError",
    "OptimisticLockError",
    "LockTimeout",
    "StorageNotRegisteredError",
    # Configuration
    "StorageConfig",
    "MongoConfig",
    "ClientProvider",
    # Values
    "Model",
    "get_value",
    "set_value",
    "add_value",
    "get_values",
    "set_values",
    "flatten",
    "get_object_id",
    "set_object_id",
    "resolve_object_id",
    # Change tracking
    "ChangeTracker",
    "Snapshot",
    "UpdateDocument",
    # Conversion and hydration
    "Hydrator",
    "ValueConverter",
    "ValueType",
    "ObjectIdType",
    "UUIDType",
    "DatetimeType",
    "DecimalType",
    # Locking
    "OptimisticLock",
    "PessimisticLock",
    "LockTicket",
    "InMemoryPessimisticLock",
    "MongoPessimisticLock",
    # Storage
    "Storage",
    "StorageRegistry",
    "create_storage",
]
