"""Mock implementations for driver-free testing.

This module provides in-memory implementations of the pymongo collection
API, allowing tests to run without a MongoDB server.
"""

from tests.mocks.mongo_mocks import (
    MockClient,
    MockCollection,
    MockDatabase,
    MockDeleteResult,
    MockInsertManyResult,
    MockInsertOneResult,
    MockUpdateResult,
)

__all__ = [
    "MockClient",
    "MockDatabase",
    "MockCollection",
    "MockInsertOneResult",
    "MockInsertManyResult",
    "MockUpdateResult",
    "MockDeleteResult",
]
