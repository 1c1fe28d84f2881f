"""Version-based optimistic locking."""

from __future__ import annotations

import logging
from typing import Any

from docmapper.base import OptimisticLockError, PreconditionError
from docmapper.changes import UpdateDocument
from docmapper.values import get_value, set_value

logger = logging.getLogger(__name__)


class OptimisticLock:
    """Guards writes with a version counter stored on the document.

    The write filter requires the stored version to equal the version the
    model was loaded with, and the write increments it by one. If the filter
    matched nothing, another writer changed the document first.

    Args:
        version_field: Top-level field holding the version.
    """

    def __init__(self, version_field: str = "version") -> None:
        self._version_field = version_field

    @property
    def version_field(self) -> str:
        return self._version_field

    def initialize(self, model: Any, version: int = 1) -> None:
        """Give a model its first version if it has none."""
        if get_value(model, self._version_field) is None:
            set_value(model, self._version_field, version)

    def current_version(self, model: Any) -> int:
        """Return the model's last known version.

        Raises:
            PreconditionError: If the model carries no version.
        """
        version = get_value(model, self._version_field)
        if version is None:
            raise PreconditionError(
                "The optimistic lock has been requested but the "
                f"{self._version_field!r} field is not set on the model"
            )
        return version

    def guard_filter(self, filter: dict[str, Any], version: int) -> dict[str, Any]:
        """Return ``filter`` extended with the version match."""
        return {**filter, self._version_field: version}

    def apply(self, update: UpdateDocument) -> UpdateDocument:
        """Add the version increment to an update.

        An assignment of the version field (the model's own copy) is dropped,
        since MongoDB refuses ``$set`` and ``$inc`` on the same path.
        """
        update.assign.pop(self._version_field, None)
        update.add_increment(self._version_field, 1)
        return update

    def check(self, result: Any, identity: Any, version: int) -> None:
        """Raise if a guarded write modified nothing.

        An upsert that inserted a document is not a conflict.

        Raises:
            OptimisticLockError: If the version no longer matched.
        """
        if result is None or (
            result.modified_count == 0 and getattr(result, "upserted_id", None) is None
        ):
            logger.warning(
                f"Optimistic lock conflict on {identity} at version {version}"
            )
            raise OptimisticLockError(identity, version)

    def advance(self, model: Any, version: int) -> int:
        """Mirror the store's increment on the model."""
        new_version = version + 1
        set_value(model, self._version_field, new_version)
        return new_version
