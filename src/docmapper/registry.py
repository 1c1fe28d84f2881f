"""Registry of storages by model class."""

from __future__ import annotations

import threading
from typing import Any

from docmapper.base import DocMapperError
from docmapper.storage import Storage


class StorageNotRegisteredError(DocMapperError):
    """Raised when no storage is registered for a model class."""

    def __init__(self, model_class: type) -> None:
        self.model_class = model_class
        super().__init__(f"No storage registered for {model_class.__name__}")


class StorageRegistry:
    """Maps model classes to the storage that persists them.

    Lookup walks the model's MRO, so a storage registered for a base class
    also serves its subclasses.

    Example:
        >>> registry = StorageRegistry()
        >>> registry.register(Order, order_storage)
        >>> registry.get_storage(order).update(order)
    """

    def __init__(self) -> None:
        self._storages: dict[type, Storage[Any]] = {}
        self._lock = threading.Lock()

    def register(self, model_class: type, storage: Storage[Any]) -> None:
        with self._lock:
            self._storages[model_class] = storage

    def unregister(self, model_class: type) -> bool:
        with self._lock:
            return self._storages.pop(model_class, None) is not None

    def get_storage(self, model_or_class: Any) -> Storage[Any]:
        """Return the storage for a model instance or class.

        Raises:
            StorageNotRegisteredError: If no class in the MRO is registered.
        """
        model_class = model_or_class if isinstance(model_or_class, type) else type(model_or_class)
        for klass in model_class.__mro__:
            storage = self._storages.get(klass)
            if storage is not None:
                return storage
        raise StorageNotRegisteredError(model_class)

    def __contains__(self, model_class: type) -> bool:
        return model_class in self._storages

    def __len__(self) -> int:
        return len(self._storages)
