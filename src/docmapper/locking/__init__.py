"""Concurrency control for stored documents.

Two coordinators are provided:

1. Optimistic locking: a version field is matched in the write filter and
   incremented in the same atomic write. A write that matches nothing means
   another writer got there first.
2. Pessimistic locking: a mutual-exclusion primitive keyed by document
   identity, held for the duration of a critical section.

Example:
    >>> from docmapper.locking import InMemoryPessimisticLock
    >>>
    >>> lock = InMemoryPessimisticLock()
    >>> with lock.acquire(order_id, blocking=True, limit=5) as ticket:
    ...     # Only this holder may modify the document
    ...     pass
"""

from docmapper.locking.optimistic import OptimisticLock
from docmapper.locking.pessimistic import (
    InMemoryPessimisticLock,
    LockTicket,
    MongoPessimisticLock,
    PessimisticLock,
)

__all__ = [
    # Optimistic
    "OptimisticLock",
    # Pessimistic
    "PessimisticLock",
    "LockTicket",
    "InMemoryPessimisticLock",
    "MongoPessimisticLock",
]
