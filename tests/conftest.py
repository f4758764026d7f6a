"""
Pytest fixtures for the logistics kernel test suite.

Provides:
- A deterministic clock and an in-memory entity store per test, whose
  conditional writes can be made to lose a race on demand
- Service fixtures wired the way production wires them
- Record factories for locations, catalog items, visits and allocations
- Structured log capture

The in-memory store gives the same per-record atomicity as the external
store and nothing more, so the services are exercised under the same
constraints they run under in production.  SQL adapter tests build their
own SQLite engine (see tests/store/test_sql_store.py).
"""

import json
import logging
from decimal import Decimal
from io import StringIO

import pytest

from logistics_kernel.config import LogisticsConfig
from logistics_kernel.domain.clock import DeterministicClock
from logistics_kernel.domain.statuses import AllocationStatus, LocationType
from logistics_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from logistics_kernel.services import (
    AllocationService,
    InventorySyncService,
    LogisticsJobService,
    OptimisticLockGate,
    PartSyncService,
    SequenceService,
    StockLedgerService,
    VisitReadinessService,
)
from logistics_kernel.store import Entity, InMemoryEntityStore
from logistics_kernel.store.base import entity_name


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture logistics_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.create_idempotent(...)
            logs = captured_logs()
            assert any(r["message"] == "movement_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("logistics_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def config():
    return LogisticsConfig()


@pytest.fixture
def store(deterministic_clock):
    return InterleavingStore(deterministic_clock)


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def sequences(store, config):
    return SequenceService(store, config)


@pytest.fixture
def ledger(store, deterministic_clock, config):
    return StockLedgerService(store, deterministic_clock, config)


@pytest.fixture
def inventory(store, ledger, deterministic_clock, config):
    return InventorySyncService(store, ledger, deterministic_clock, config)


@pytest.fixture
def allocations(store, deterministic_clock, config, ledger):
    return AllocationService(store, deterministic_clock, config, ledger=ledger)


@pytest.fixture
def lock_gate(store, config):
    return OptimisticLockGate(store, config)


@pytest.fixture
def part_sync(store, deterministic_clock, config):
    return PartSyncService(store, deterministic_clock, config)


@pytest.fixture
def jobs(store, sequences, config):
    return LogisticsJobService(store, sequences, config)


@pytest.fixture
def readiness(store):
    return VisitReadinessService(store)


# =============================================================================
# Contention
# =============================================================================


class InterleavingStore(InMemoryEntityStore):
    """
    In-memory store whose conditional writes can be made to lose.

    ``lose_next(entity, times)`` makes the next ``times`` conditional writes
    on ``entity`` report a lost race without writing (``times=None``: all of
    them).  ``before_next(entity, action)`` runs ``action()`` once, just
    before the next conditional write on ``entity``, to stage a competing
    writer.
    """

    def __init__(self, clock):
        super().__init__(clock=clock)
        self.conditional_writes: dict[str, int] = {}
        self._losses: dict[str, int | None] = {}
        self._actions: dict[str, object] = {}

    def lose_next(self, entity, times=1):
        self._losses[entity_name(entity)] = times

    def before_next(self, entity, action):
        self._actions[entity_name(entity)] = action

    def update_if(self, entity, record_id, expected, patch):
        name = entity_name(entity)
        self.conditional_writes[name] = self.conditional_writes.get(name, 0) + 1
        action = self._actions.pop(name, None)
        if action is not None:
            action()
        if name in self._losses:
            remaining = self._losses[name]
            if remaining is None:
                return False
            if remaining > 0:
                self._losses[name] = remaining - 1
                return False
        return super().update_if(entity, record_id, expected, patch)


# =============================================================================
# Record factories
# =============================================================================


@pytest.fixture
def make_location(store):
    """Create an InventoryLocation; vehicle locations get a vehicle id."""

    def _make(name="Loading Bay", type=LocationType.LOADING_BAY.value, is_active=True, vehicle_id=None):
        return store.create(Entity.INVENTORY_LOCATION, {
            "name": name,
            "type": type,
            "is_active": is_active,
            "vehicle_id": vehicle_id,
        })

    return _make


@pytest.fixture
def catalog_item(store):
    return store.create(Entity.PRICE_LIST_ITEM, {"sku": "CAB-6MM", "item": "6mm Twin & Earth Cable"})


@pytest.fixture
def project_id():
    return "project-5001"


@pytest.fixture
def visit(store, project_id):
    return store.create(Entity.VISIT, {"project_id": project_id, "status": "in_progress"})


@pytest.fixture
def make_allocation(store, project_id, visit, catalog_item):
    def _make(qty=Decimal("10"), status=AllocationStatus.LOADED.value, **overrides):
        record = {
            "project_id": project_id,
            "visit_id": visit["id"],
            "price_list_item_id": catalog_item["id"],
            "qty_allocated": Decimal(str(qty)),
            "status": status,
        }
        record.update(overrides)
        return store.create(Entity.STOCK_ALLOCATION, record)

    return _make
