"""Storage facade mapping models to a MongoDB collection.

The :class:`Storage` owns the write protocol: it diffs each model against
the snapshot taken when it was loaded, sends only the changed fields,
sequences writes MongoDB cannot combine, applies optimistic or pessimistic
locking, and resets the snapshot after every successful write.

Example:
    >>> storage = Storage(collection, Hydrator(Order))
    >>>
    >>> order = storage.create()
    >>> set_value(order, "status", "new")
    >>> storage.insert(order)
    >>>
    >>> order = storage.find_one({"status": "new"})
    >>> set_value(order, "status", "paid")
    >>> storage.update(order)  # sends {"$set": {"status": "paid"}}
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Generic, Iterable, Iterator, TypeVar

from docmapper.base import (
    HydratorProtocol,
    PreconditionError,
    StorageConfig,
    UnacknowledgedWriteError,
    ValueConverterProtocol,
)
from docmapper.changes import ChangeTracker, UpdateDocument
from docmapper.converters import ValueConverter
from docmapper.identity import ID_FIELD, get_object_id, resolve_object_id, set_object_id
from docmapper.locking.optimistic import OptimisticLock
from docmapper.locking.pessimistic import PessimisticLock
from docmapper.values import get_values

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")
ResultT = TypeVar("ResultT")


class Storage(Generic[ModelT]):
    """Facade for reading and writing models in one collection.

    Type Parameters:
        ModelT: The model class produced by the hydrator.

    Args:
        collection: A ``pymongo.collection.Collection`` (or compatible).
        hydrator: Builds models from value trees, usually a
            :class:`~docmapper.hydrator.Hydrator`.
        change_tracker: Snapshot registry. A private one is created if None.
        pessimistic_lock: Lock used by :meth:`lock`. Locking is unavailable
            without one.
        converter: Native/BSON value conversion. Defaults to no conversion.
        config: Storage options.
    """

    def __init__(
        self,
        collection: Any,
        hydrator: HydratorProtocol,
        change_tracker: ChangeTracker | None = None,
        pessimistic_lock: PessimisticLock | None = None,
        converter: ValueConverterProtocol | None = None,
        config: StorageConfig | None = None,
    ) -> None:
        self._collection = collection
        self._hydrator = hydrator
        self._change_tracker = change_tracker if change_tracker is not None else ChangeTracker()
        self._pessimistic_lock = pessimistic_lock
        self._converter = converter if converter is not None else ValueConverter()
        self._config = config if config is not None else StorageConfig()
        self._optimistic_lock = OptimisticLock(self._config.version_field)

    @property
    def collection(self) -> Any:
        """Get the wrapped collection."""
        return self._collection

    @property
    def hydrator(self) -> HydratorProtocol:
        return self._hydrator

    @property
    def change_tracker(self) -> ChangeTracker:
        return self._change_tracker

    @property
    def pessimistic_lock(self) -> PessimisticLock | None:
        return self._pessimistic_lock

    @property
    def config(self) -> StorageConfig:
        return self._config

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _check_acknowledged(self, result: Any, operation: str) -> None:
        if not result.acknowledged:
            raise UnacknowledgedWriteError(operation)

    def _store_values(
        self, model: ModelT, previous_values: dict[str, Any] | None
    ) -> dict[str, Any]:
        return self._converter.to_store_values(get_values(model), previous_values or {})

    def _load(self, raw: dict[str, Any]) -> ModelT:
        model = self._hydrator.hydrate(self._converter.to_native_values(raw))
        # The baseline is what the store holds, not the converted values
        self._change_tracker.register(model, raw)
        return model

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def create(self) -> ModelT:
        """Create a fresh model that is not stored yet."""
        return self._hydrator.create()

    def insert(self, model: ModelT, **options: Any) -> Any:
        """Insert a model as a new document.

        Args:
            model: The model to insert.
            **options: Passed to ``insert_one``.

        Returns:
            The driver's ``InsertOneResult``.

        Raises:
            UnacknowledgedWriteError: If the insert was not acknowledged.
        """
        values = self._store_values(model, None)

        result = self._collection.insert_one(values, **options)
        self._check_acknowledged(result, "insert_one")

        set_object_id(model, result.inserted_id)
        values[ID_FIELD] = result.inserted_id
        self._change_tracker.register(model, values)

        logger.debug(f"Inserted {result.inserted_id} into {self._collection.name}")
        return result

    def insert_many(self, models: Iterable[ModelT], **options: Any) -> Any:
        """Insert several models in one call.

        Each model is re-hydrated from the values it was stored with, gets its
        new id and a fresh baseline.

        Returns:
            The driver's ``InsertManyResult``.

        Raises:
            UnacknowledgedWriteError: If the insert was not acknowledged.
        """
        models = list(models)
        documents = [self._store_values(model, None) for model in models]

        result = self._collection.insert_many(documents, **options)
        self._check_acknowledged(result, "insert_many")

        for model, document, object_id in zip(models, documents, result.inserted_ids):
            document[ID_FIELD] = object_id
            self._hydrator.hydrate(self._converter.to_native_values(document), model)
            self._change_tracker.register(model, document)

        logger.debug(f"Inserted {len(documents)} documents into {self._collection.name}")
        return result

    def changes(self, model: ModelT) -> UpdateDocument:
        """Compute the pending update for a model without writing it."""
        original = self._change_tracker.get_original_values(model)
        values = self._store_values(model, original)
        return self._change_tracker.diff(values, original)

    def update(
        self,
        model: ModelT,
        filter: dict[str, Any] | None = None,
        *,
        optimistic_lock: bool = False,
        **options: Any,
    ) -> Any:
        """Write the model's pending changes.

        Args:
            model: The model to write.
            filter: Match filter. Defaults to the model's id.
            optimistic_lock: Require the stored version to equal the model's
                and increment it in the same write.
            **options: Passed to ``update_one`` (e.g. ``upsert=True``).

        Returns:
            The last ``UpdateResult``, or None when there was nothing to write.

        Raises:
            PreconditionError: If optimistic locking is requested on a model
                without a version, or there is neither an id nor a filter.
            OptimisticLockError: If another writer changed the document first.
                With ``upsert=True`` a write that inserted a document counts
                as a success, so an optimistic upsert of a new document
                stores it at the incremented version.
            UnacknowledgedWriteError: If a write was not acknowledged.
        """
        identity = get_object_id(model)
        if filter is None:
            if identity is None:
                raise PreconditionError(
                    "Cannot update a model without an id unless a filter is given"
                )
            filter = {ID_FIELD: identity}

        version: int | None = None
        if optimistic_lock:
            version = self._optimistic_lock.current_version(model)
            filter = self._optimistic_lock.guard_filter(filter, version)

        original = self._change_tracker.get_original_values(model)
        values = self._store_values(model, original)
        update = self._change_tracker.diff(values, original)
        if update.is_empty():
            logger.debug(f"No changes for {identity}; skipping write")
            return None

        if optimistic_lock:
            self._optimistic_lock.apply(update)

        result = None
        upserted_id = None
        for document in update.split():
            result = self._collection.update_one(filter, document, **options)
            self._check_acknowledged(result, "update_one")
            if version is not None:
                self._optimistic_lock.check(result, identity, version)
            if result.upserted_id is not None:
                upserted_id = result.upserted_id

        if version is not None:
            self._optimistic_lock.advance(model, version)

        if upserted_id is not None:
            set_object_id(model, upserted_id)

        self._change_tracker.register(model, self._store_values(model, original))

        logger.debug(f"Updated {get_object_id(model)}: {update.paths()}")
        return result

    def delete(self, model: ModelT, **options: Any) -> Any:
        """Delete the model's document.

        The model's baseline is left in place.

        Returns:
            The driver's ``DeleteResult``.
        """
        result = self._collection.delete_one({ID_FIELD: get_object_id(model)}, **options)
        self._check_acknowledged(result, "delete_one")
        return result

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def find_one(self, filter: dict[str, Any] | None = None, **options: Any) -> ModelT | None:
        """Load the first model matching ``filter``, or None."""
        raw = self._collection.find_one(filter or {}, **options)
        if raw is None:
            return None
        return self._load(raw)

    def find(self, filter: dict[str, Any] | None = None, **options: Any) -> Iterator[ModelT]:
        """Lazily load every model matching ``filter``."""
        for raw in self._collection.find(filter or {}, **options):
            yield self._load(raw)

    def count(self, filter: dict[str, Any] | None = None, **options: Any) -> int:
        """Count documents matching ``filter``."""
        return self._collection.count_documents(filter or {}, **options)

    # -------------------------------------------------------------------------
    # Pessimistic Locking
    # -------------------------------------------------------------------------

    def lock(
        self,
        identity: Any,
        callback: Callable[[ModelT, "Storage[ModelT]"], ResultT],
        blocking: bool = True,
        limit: float | None = None,
    ) -> ResultT | None:
        """Run ``callback`` on a freshly loaded model while holding its lock.

        Args:
            identity: A model, an ObjectId or a 24-hex id string.
            callback: Called as ``callback(model, storage)``.
            blocking: If False, fail at once when the lock is held.
            limit: Seconds to wait for the lock. Defaults to the configured
                ``default_lock_limit``.

        Returns:
            The callback's result, or None if the document no longer exists.

        Raises:
            UnsupportedIdentityError: If ``identity`` has an unsupported shape.
            PreconditionError: If no pessimistic lock is configured.
            LockTimeout: If the lock could not be obtained.
        """
        object_id = resolve_object_id(identity)

        if self._pessimistic_lock is None:
            raise PreconditionError("Cannot lock. No pessimistic lock is configured")

        if limit is None:
            limit = self._config.default_lock_limit

        with self._pessimistic_lock.acquire(object_id, blocking, limit):
            model = self.find_one({ID_FIELD: object_id})
            if model is None:
                logger.info(f"Locked document {object_id} no longer exists")
                return None
            return callback(model, self)
