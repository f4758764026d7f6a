"""Tests for write_version optimistic locking."""

import pytest

from logistics_kernel.exceptions import NotFoundError, StaleWriteError
from logistics_kernel.services.optimistic_lock import OptimisticLockGate
from logistics_kernel.store import Entity


@pytest.fixture
def purchase_order(store):
    return store.create(Entity.PURCHASE_ORDER, {"status": "draft", "write_version": 3})


class TestAssertVersion:

    def test_matching_version_returns_record(self, lock_gate, purchase_order):
        record = lock_gate.assert_version(Entity.PURCHASE_ORDER, purchase_order["id"], 3)
        assert record["id"] == purchase_order["id"]

    def test_stale_version_rejected(self, lock_gate, purchase_order, captured_logs):
        with pytest.raises(StaleWriteError) as exc_info:
            lock_gate.assert_version(Entity.PURCHASE_ORDER, purchase_order["id"], 2)
        error = exc_info.value
        assert error.code == "STALE_WRITE"
        assert (error.expected_version, error.current_version) == (2, 3)
        assert error.entity_type == "PurchaseOrder"
        assert any(r["message"] == "stale_write_rejected" for r in captured_logs())

    def test_missing_expected_version_skips_check(self, lock_gate, purchase_order):
        assert lock_gate.assert_version(Entity.PURCHASE_ORDER, purchase_order["id"], None) is None

    def test_unknown_record(self, lock_gate):
        with pytest.raises(NotFoundError):
            lock_gate.assert_version(Entity.PURCHASE_ORDER, "missing", 1)

    def test_unversioned_record_is_at_default(self, lock_gate, store):
        legacy = store.create(Entity.JOB, {"job_number": "J-1"})
        assert lock_gate.assert_version(Entity.JOB, legacy["id"], 1)["id"] == legacy["id"]


class TestVersionPayload:

    def test_bump(self, lock_gate):
        assert lock_gate.next_version_payload({"write_version": 4}, "user") == {
            "write_version": 5,
            "write_source": "user",
        }

    def test_bump_from_default(self, lock_gate):
        assert lock_gate.next_version_payload({}, "system:backfill")["write_version"] == 2


class TestGuardedUpdate:

    def test_applies_and_bumps(self, lock_gate, purchase_order):
        updated = lock_gate.guarded_update(
            Entity.PURCHASE_ORDER, purchase_order["id"], {"status": "sent"}, 3, "user"
        )
        assert updated["status"] == "sent"
        assert updated["write_version"] == 4
        assert updated["write_source"] == "user"

    def test_second_writer_with_same_version_loses(self, lock_gate, purchase_order, store):
        lock_gate.guarded_update(Entity.PURCHASE_ORDER, purchase_order["id"], {"status": "sent"}, 3, "a")
        with pytest.raises(StaleWriteError):
            lock_gate.guarded_update(Entity.PURCHASE_ORDER, purchase_order["id"], {"status": "draft"}, 3, "b")
        assert store.get(Entity.PURCHASE_ORDER, purchase_order["id"])["status"] == "sent"

    def test_write_between_read_and_update_is_caught(self, lock_gate, purchase_order, store):
        class InterleavingStore:
            """Lets another writer bump the version right before update_if."""

            def __init__(self, inner):
                self._inner = inner

            def __getattr__(self, name):
                return getattr(self._inner, name)

            def update_if(self, entity, record_id, expected, patch):
                self._inner.update(entity, record_id, {"write_version": 9})
                return self._inner.update_if(entity, record_id, expected, patch)

        gate = OptimisticLockGate(InterleavingStore(store))
        with pytest.raises(StaleWriteError) as exc_info:
            gate.guarded_update(Entity.PURCHASE_ORDER, purchase_order["id"], {"status": "sent"}, 3, "user")
        assert exc_info.value.current_version == 9

    def test_unknown_record(self, lock_gate):
        with pytest.raises(NotFoundError):
            lock_gate.guarded_update(Entity.PURCHASE_ORDER, "missing", {}, None, "user")
