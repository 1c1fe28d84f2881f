"""Pessimistic locks keyed by document identity.

This module implements the Strategy pattern for mutual exclusion, so the
storage facade does not care where a lock lives:

- MongoPessimisticLock: lock documents in a dedicated collection, shared by
  every process using the same database
- InMemoryPessimisticLock: ``threading.Lock`` per identity, for a single
  process
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator

from pymongo.errors import DuplicateKeyError

from docmapper.base import LockError, LockTimeout, UnacknowledgedWriteError

logger = logging.getLogger(__name__)


@dataclass
class LockTicket:
    """Handle for a pessimistic lock acquired by :meth:`PessimisticLock.acquire`.

    Attributes:
        identity: Identity of the locked document.
        acquired: Whether the lock is still held.
        acquired_at: When the lock was acquired.
        released_at: When the lock was released, if it has been.
    """

    identity: Any
    acquired: bool = True
    acquired_at: float = field(default_factory=time.time)
    released_at: float | None = None

    def mark_released(self) -> None:
        self.acquired = False
        self.released_at = time.time()

    def __str__(self) -> str:
        state = "ACQUIRED" if self.acquired else "RELEASED"
        return f"LockTicket({self.identity}, {state})"


class PessimisticLock(ABC):
    """Abstract base class for pessimistic locks.

    Implementations block until the lock for an identity is free or the
    limit elapses.
    """

    @abstractmethod
    def lock(self, identity: Any, blocking: bool = True, limit: float = 300) -> None:
        """Acquire the lock for an identity.

        Args:
            identity: Document identity to lock.
            blocking: If False, fail immediately when the lock is held.
            limit: Maximum seconds to wait when blocking. A limit of 0 or
                less makes a single attempt.

        Raises:
            LockTimeout: If the lock could not be obtained.
        """
        pass

    @abstractmethod
    def unlock(self, identity: Any) -> None:
        """Release the lock for an identity."""
        pass

    @abstractmethod
    def is_locked(self, identity: Any) -> bool:
        """Check whether anyone holds the lock for an identity."""
        pass

    @contextmanager
    def acquire(
        self,
        identity: Any,
        blocking: bool = True,
        limit: float = 300,
    ) -> Iterator[LockTicket]:
        """Context manager holding the lock for the enclosed block.

        The lock is released however the block exits.

        Example:
            >>> with lock.acquire(order_id) as ticket:
            ...     # Exclusive access to the document
            ...     pass
        """
        self.lock(identity, blocking, limit)
        ticket = LockTicket(identity=identity)
        try:
            yield ticket
        finally:
            try:
                self.unlock(identity)
            finally:
                ticket.mark_released()


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class InMemoryPessimisticLock(PessimisticLock):
    """Process-local pessimistic lock.

    Locks are not reentrant: locking the same identity twice from one thread
    waits for the limit and fails. An identity's entry is dropped once no
    thread holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, _LockEntry] = {}
        self._registry_lock = threading.Lock()

    @property
    def active_count(self) -> int:
        """Number of identities currently held or waited for."""
        with self._registry_lock:
            return len(self._locks)

    def _checkout(self, key: str) -> _LockEntry:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = _LockEntry()
                self._locks[key] = entry
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _LockEntry) -> None:
        # Caller holds the registry lock
        entry.users -= 1
        if entry.users == 0:
            del self._locks[key]

    def lock(self, identity: Any, blocking: bool = True, limit: float = 300) -> None:
        key = str(identity)
        entry = self._checkout(key)
        if blocking and limit > 0:
            acquired = entry.lock.acquire(timeout=limit)
        else:
            acquired = entry.lock.acquire(blocking=False)

        if not acquired:
            with self._registry_lock:
                self._checkin(key, entry)
            raise LockTimeout(identity, limit, blocking)
        logger.debug(f"Acquired lock for {identity}")

    def unlock(self, identity: Any) -> None:
        key = str(identity)
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None or not entry.lock.locked():
                raise LockError(f"Lock for {identity} is not held")
            entry.lock.release()
            self._checkin(key, entry)
        logger.debug(f"Released lock for {identity}")

    def is_locked(self, identity: Any) -> bool:
        with self._registry_lock:
            entry = self._locks.get(str(identity))
            return entry is not None and entry.lock.locked()


class MongoPessimisticLock(PessimisticLock):
    """Pessimistic lock backed by a MongoDB collection.

    A lock is a document whose ``_id`` is the stringified identity. Inserting
    it acquires the lock; the unique ``_id`` index makes a second insert fail
    while it exists. Each instance is a session: it only releases locks it
    inserted itself.

    Args:
        collection: Collection holding lock documents.
        session_id: Session name. Defaults to a random one.
        poll_interval: Seconds between attempts while waiting.
        ttl: Seconds after which MongoDB removes abandoned locks, once
            :meth:`create_indexes` has run. 0 disables expiry.
    """

    def __init__(
        self,
        collection: Any,
        session_id: str | None = None,
        poll_interval: float = 0.3,
        ttl: int = 3600,
    ) -> None:
        self._collection = collection
        self._session_id = session_id or uuid.uuid4().hex
        self._poll_interval = poll_interval
        self._ttl = ttl

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def collection(self) -> Any:
        return self._collection

    def create_indexes(self) -> None:
        """Create the session index and, if enabled, the TTL index."""
        self._collection.create_index("session_id")
        if self._ttl > 0:
            self._collection.create_index("created_at", expireAfterSeconds=self._ttl)

    def lock(self, identity: Any, blocking: bool = True, limit: float = 300) -> None:
        key = str(identity)
        deadline = time.monotonic() + limit

        while True:
            try:
                result = self._collection.insert_one(
                    {
                        "_id": key,
                        "session_id": self._session_id,
                        "created_at": datetime.now(timezone.utc),
                    }
                )
            except DuplicateKeyError:
                remaining = deadline - time.monotonic()
                if not blocking or remaining <= 0:
                    raise LockTimeout(identity, limit, blocking)
                time.sleep(min(self._poll_interval, remaining))
                continue

            if not result.acknowledged:
                raise UnacknowledgedWriteError("lock insert")
            logger.debug(f"Session {self._session_id} acquired lock for {key}")
            return

    def unlock(self, identity: Any) -> None:
        key = str(identity)
        result = self._collection.delete_one({"_id": key, "session_id": self._session_id})
        if result.deleted_count == 0:
            logger.warning(
                f"Session {self._session_id} did not hold lock for {key}; "
                "it may have expired"
            )
            return
        logger.debug(f"Session {self._session_id} released lock for {key}")

    def unlock_all(self) -> int:
        """Release every lock held by this session.

        Returns:
            Number of locks released.
        """
        result = self._collection.delete_many({"session_id": self._session_id})
        return result.deleted_count

    def is_locked(self, identity: Any) -> bool:
        return self._collection.find_one({"_id": str(identity)}) is not None
