"""Base exceptions, configuration and protocols for docmapper.

This module defines the error taxonomy shared by the storage facade and the
lock coordinators, the configuration dataclasses, and the structural
protocols that collaborators (hydrators, value converters) must follow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


# =============================================================================
# Exceptions
# =============================================================================


class DocMapperError(Exception):
    """Base exception for all docmapper errors."""

    pass


class ConfigError(DocMapperError):
    """Raised when client or storage configuration is invalid."""

    pass


class PreconditionError(DocMapperError):
    """Raised when an operation is used in a way it does not support.

    These are programmer errors: retrying will not help.
    """

    pass


class UnsupportedIdentityError(PreconditionError):
    """Raised when a value cannot be interpreted as a document identity."""

    def __init__(self, value: Any) -> None:
        self.value = value
        super().__init__(
            f"The given id is not supported: {value!r}. "
            "Could be a model object, an ObjectId or a string model id."
        )


class StorageWriteError(DocMapperError):
    """Raised when writing to the store fails."""

    pass


class UnacknowledgedWriteError(StorageWriteError):
    """Raised when the store did not acknowledge a write."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Operation is not acknowledged: {operation}")


class LockError(DocMapperError):
    """Base exception for locking errors."""

    pass


class OptimisticLockError(LockError):
    """Raised when a version-guarded write matched no document.

    Another writer changed the document after it was loaded. Re-read the
    document and retry.
    """

    def __init__(self, identity: Any, expected_version: int) -> None:
        self.identity = identity
        self.expected_version = expected_version
        super().__init__(
            f"Optimistic lock failed for {identity}: "
            f"document is no longer at version {expected_version}"
        )


class LockTimeout(LockError):
    """Raised when a pessimistic lock could not be obtained."""

    def __init__(self, identity: Any, timeout: float, blocking: bool = True) -> None:
        self.identity = identity
        self.timeout = timeout
        self.blocking = blocking
        if blocking:
            message = f"Cannot obtain the lock for id {identity}. Timeout after {timeout}s"
        else:
            message = f"Cannot obtain the lock for id {identity}. It is held by another session"
        super().__init__(message)


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class StorageConfig:
    """Configuration for a storage facade.

    Attributes:
        version_field: Field holding the optimistic lock version.
        lock_collection: Collection for pessimistic lock documents.
            Defaults to "<collection>_lock".
        lock_poll_interval: Seconds between lock acquisition attempts.
        lock_ttl: Seconds after which a stale lock document expires
            (0 disables the TTL index).
        default_lock_limit: Default seconds to wait for a pessimistic lock.
    """

    version_field: str = "version"
    lock_collection: str | None = None
    lock_poll_interval: float = 0.3
    lock_ttl: int = 3600
    default_lock_limit: float = 300

    def __post_init__(self) -> None:
        if not self.version_field or "." in self.version_field:
            raise ConfigError(f"Invalid version field: {self.version_field!r}")
        if self.lock_poll_interval <= 0:
            raise ConfigError("lock_poll_interval must be positive")

    def get_lock_collection(self, collection_name: str) -> str:
        """Get the lock collection name for a data collection."""
        return self.lock_collection or f"{collection_name}_lock"


# =============================================================================
# Protocols (Structural Typing)
# =============================================================================


@runtime_checkable
class HydratorProtocol(Protocol):
    """Builds models and fills them from plain value trees."""

    def create(self) -> Any: ...

    def hydrate(self, values: dict[str, Any], model: Any | None = None) -> Any: ...


@runtime_checkable
class ValueConverterProtocol(Protocol):
    """Converts value trees between native and store representation."""

    def to_store_values(
        self, values: dict[str, Any], previous_values: dict[str, Any]
    ) -> dict[str, Any]: ...

    def to_native_values(self, values: dict[str, Any]) -> dict[str, Any]: ...
