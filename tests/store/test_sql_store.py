"""
Tests for the SQLAlchemy EntityStore on an in-memory SQLite database.

The same services run unchanged over this adapter; the counter and ledger
round trips below exercise the conditional UPDATE path end to end.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from logistics_kernel.db.engine import Database
from logistics_kernel.exceptions import NotFoundError
from logistics_kernel.services import InventorySyncService, SequenceService, StockLedgerService
from logistics_kernel.store import Entity, SqlEntityStore


@pytest.fixture
def sql_store(deterministic_clock):
    with Database("sqlite://") as database:
        database.create_tables()
        yield SqlEntityStore(database, clock=deterministic_clock)
        database.drop_tables()


class TestSqlEntityStore:

    def test_create_and_get(self, sql_store, deterministic_clock):
        record = sql_store.create(Entity.PURCHASE_ORDER, {"status": "draft", "po_reference": "PO-1001"})
        fetched = sql_store.get(Entity.PURCHASE_ORDER, record["id"])
        assert fetched["po_reference"] == "PO-1001"
        assert fetched["write_version"] == 1

    def test_get_missing(self, sql_store):
        assert sql_store.get(Entity.PART, "missing") is None

    def test_unknown_field_rejected(self, sql_store):
        with pytest.raises(ValueError, match="Unknown field"):
            sql_store.create(Entity.VISIT, {"colour": "red"})

    def test_unknown_entity_rejected(self, sql_store):
        with pytest.raises(ValueError, match="Unknown entity"):
            sql_store.get("Spaceship", "x")

    def test_filter_with_none_and_sets(self, sql_store):
        sql_store.create(Entity.STOCK_ALLOCATION, {"status": "reserved", "qty_allocated": Decimal("1")})
        sql_store.create(Entity.STOCK_ALLOCATION, {"status": "loaded", "qty_allocated": Decimal("2"), "visit_id": "v1"})
        sql_store.create(Entity.STOCK_ALLOCATION, {"status": "released", "qty_allocated": Decimal("3")})

        assert len(sql_store.filter(Entity.STOCK_ALLOCATION, {"status": {"reserved", "loaded"}})) == 2
        unassigned = sql_store.filter(Entity.STOCK_ALLOCATION, {"visit_id": None})
        assert sorted(r["status"] for r in unassigned) == ["released", "reserved"]

    def test_json_list_round_trip(self, sql_store):
        part = sql_store.create(Entity.PART, {"purchase_order_ids": ["po-1", "po-2"]})
        assert sql_store.get(Entity.PART, part["id"])["purchase_order_ids"] == ["po-1", "po-2"]

    def test_update_if(self, sql_store):
        counter = sql_store.create(Entity.LOGISTICS_JOB_COUNTER, {"key": "k", "next_seq": 2})
        assert sql_store.update_if(
            Entity.LOGISTICS_JOB_COUNTER, counter["id"], {"next_seq": 2, "duplicate_of_id": None}, {"next_seq": 3}
        )
        assert not sql_store.update_if(Entity.LOGISTICS_JOB_COUNTER, counter["id"], {"next_seq": 2}, {"next_seq": 9})
        assert sql_store.get(Entity.LOGISTICS_JOB_COUNTER, counter["id"])["next_seq"] == 3

    def test_update_unknown(self, sql_store):
        with pytest.raises(NotFoundError):
            sql_store.update(Entity.VISIT, "missing", {"status": "x"})


class TestServicesOverSql:

    def test_sequence(self, sql_store):
        sequences = SequenceService(sql_store)
        assert [sequences.next("5001:PO-PU") for _ in range(3)] == [1, 2, 3]
        assert sequences.next_job_number("5001", "PO-PU") == "#5001-PO-PU-4"

    def test_ledger_idempotency(self, sql_store, deterministic_clock):
        ledger = StockLedgerService(sql_store, deterministic_clock)
        payload = {
            "source": "adjustment",
            "to_location_id": "loc-1",
            "item_name": "Copper Pipe 15mm",
            "quantity": 3,
            "occurred_at": datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc),
        }
        first = ledger.create_idempotent(payload)
        second = ledger.create_idempotent(payload)
        assert first.created is True
        assert second.created is False
        assert second.movement["id"] == first.movement["id"]
        assert len(sql_store.filter(Entity.STOCK_MOVEMENT)) == 1

    def test_transfer(self, sql_store, deterministic_clock):
        ledger = StockLedgerService(sql_store, deterministic_clock)
        inventory = InventorySyncService(sql_store, ledger, deterministic_clock)
        bay = sql_store.create(Entity.INVENTORY_LOCATION, {"type": "loading_bay", "name": "Bay"})
        van = sql_store.create(Entity.INVENTORY_LOCATION, {"type": "vehicle", "name": "Van", "vehicle_id": "vehicle-1"})
        item = sql_store.create(Entity.PRICE_LIST_ITEM, {"sku": "CAB-6MM", "item": "Cable"})

        inventory.receive(bay["id"], item["id"], 10)
        inventory.transfer(bay["id"], van["id"], item["id"], 4)

        assert inventory.available(bay["id"], item["id"]) == Decimal("6")
        assert inventory.available(van["id"], item["id"]) == Decimal("4")
        assert inventory.audit_divergence() == []

    def test_voided_receipt_reapplied(self, sql_store, deterministic_clock):
        ledger = StockLedgerService(sql_store, deterministic_clock)
        inventory = InventorySyncService(sql_store, ledger, deterministic_clock)
        bay = sql_store.create(Entity.INVENTORY_LOCATION, {"type": "loading_bay", "name": "Bay"})
        item = sql_store.create(Entity.PRICE_LIST_ITEM, {"sku": "CAB-6MM", "item": "Cable"})

        first = inventory.receive(bay["id"], item["id"], 10)
        assert sql_store.get(Entity.STOCK_MOVEMENT, first.movement["id"])["applied_at"] is not None
        voided = ledger.void(first.movement["id"], "reverted by operator")
        assert voided["voided_at"] is not None
        assert ledger.find_by_key(first.movement["idempotency_key"]) is None


class TestDatabaseLifecycle:

    def test_context_manager_disposes(self):
        with Database("sqlite://") as database:
            database.create_tables()
            with database.session_scope() as session:
                assert session.bind is database.engine
        with pytest.raises(RuntimeError, match="disposed"):
            database.engine
        with pytest.raises(RuntimeError, match="disposed"):
            with database.session_scope():
                pass

    def test_dispose_twice(self, captured_logs):
        database = Database("sqlite://")
        database.dispose()
        database.dispose()
        assert [r["message"] for r in captured_logs()].count("engine_disposed") == 1

    def test_databases_are_independent(self, deterministic_clock):
        with Database("sqlite://") as first, Database("sqlite://") as second:
            first.create_tables()
            second.create_tables()
            SqlEntityStore(first, deterministic_clock).create(Entity.VISIT, {"status": "scheduled"})
            assert SqlEntityStore(second, deterministic_clock).filter(Entity.VISIT) == []

    def test_rejected_create_writes_nothing(self, deterministic_clock):
        with Database("sqlite://") as database:
            database.create_tables()
            store = SqlEntityStore(database, deterministic_clock)
            with pytest.raises(ValueError, match="Unknown field"):
                store.create(Entity.VISIT, {"colour": "red"})
            assert store.filter(Entity.VISIT) == []
