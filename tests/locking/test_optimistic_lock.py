"""Tests for the optimistic lock coordinator."""

from __future__ import annotations

import pytest
from bson import ObjectId

from docmapper.base import OptimisticLockError, PreconditionError
from docmapper.changes import UpdateDocument
from docmapper.locking.optimistic import OptimisticLock
from docmapper.values import Model, get_value
from tests.mocks import MockUpdateResult


class TestOptimisticLock:
    def test_initialize(self) -> None:
        lock = OptimisticLock()
        model = Model()

        lock.initialize(model)
        lock.initialize(model, version=7)

        assert get_value(model, "version") == 1

    def test_current_version_requires_field(self) -> None:
        with pytest.raises(PreconditionError):
            OptimisticLock().current_version(Model())

    def test_custom_field(self) -> None:
        lock = OptimisticLock("rev")

        assert lock.current_version(Model({"rev": 4})) == 4
        assert lock.guard_filter({"_id": 1}, 4) == {"_id": 1, "rev": 4}

    def test_apply_merges_increment(self) -> None:
        update = UpdateDocument(assign={"version": 9, "a": 1}, increment={"hits": 1})

        OptimisticLock().apply(update)

        assert update.assign == {"a": 1}
        assert update.increment == {"hits": 1, "version": 1}

    def test_check(self) -> None:
        lock = OptimisticLock()
        lock.check(MockUpdateResult(1, 1), "id", 1)

        with pytest.raises(OptimisticLockError) as exc_info:
            lock.check(MockUpdateResult(0, 0), "id", 3)

        assert exc_info.value.expected_version == 3

    def test_check_accepts_upsert(self) -> None:
        """Test that a write which inserted a document is not a conflict."""
        OptimisticLock().check(MockUpdateResult(0, 0, upserted_id=ObjectId()), "id", 1)

    def test_advance(self) -> None:
        model = Model({"version": 2})

        assert OptimisticLock().advance(model, 2) == 3
        assert get_value(model, "version") == 3
