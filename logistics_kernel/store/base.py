"""
Module: logistics_kernel.store.base
Responsibility: The narrow persistence capability surface the consistency
    layer is written against.
Architecture position: Kernel > Store.  Services depend on EntityStore only,
    never on a concrete adapter.

The store offers per-record operations and nothing else: no multi-record
transactions, no unique constraints, no server-side increment.  The one
addition beyond plain get/filter/create/update is ``update_if``, a
conditional single-record update.  It is what turns the counter and quantity
read-modify-write sequences into compare-and-swap loops.

Records cross this boundary as plain dicts.  Adapters return copies; mutating
a returned record never changes stored state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Mapping


class Entity(str, Enum):
    """Entity names understood by every store adapter."""

    PURCHASE_ORDER = "PurchaseOrder"
    PURCHASE_ORDER_LINE = "PurchaseOrderLine"
    PART = "Part"
    STOCK_ALLOCATION = "StockAllocation"
    STOCK_CONSUMPTION = "StockConsumption"
    STOCK_MOVEMENT = "StockMovement"
    INVENTORY_LOCATION = "InventoryLocation"
    INVENTORY_QUANTITY = "InventoryQuantity"
    VEHICLE_STOCK = "VehicleStock"
    PRICE_LIST_ITEM = "PriceListItem"
    LOGISTICS_JOB_COUNTER = "LogisticsJobCounter"
    JOB = "Job"
    VISIT = "Visit"
    PROJECT_REQUIREMENT_LINE = "ProjectRequirementLine"


Record = dict[str, Any]


def entity_name(entity: Entity | str) -> str:
    return entity.value if isinstance(entity, Entity) else str(entity)


def matches(record: Mapping[str, Any], criteria: Mapping[str, Any]) -> bool:
    """
    Equality match of ``record`` against ``criteria``.

    A set or frozenset criterion value means "any of".
    """
    for key, expected in criteria.items():
        actual = record.get(key)
        if isinstance(expected, (set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class EntityStore(ABC):
    """
    Per-record persistence operations.

    Contract:
        - ``get`` returns the record or None.
        - ``filter`` returns every record equal to ``criteria`` on each key,
          in creation order.
        - ``create`` assigns ``id`` (when absent) and ``created_at`` and
          returns the stored record.
        - ``update`` raises NotFoundError for an unknown id.
        - ``update_if`` applies ``patch`` only when every ``expected`` field
          still holds its expected value, atomically for that record, and
          reports whether it did.
    """

    @abstractmethod
    def get(self, entity: Entity | str, record_id: str) -> Record | None:
        ...

    @abstractmethod
    def filter(self, entity: Entity | str, criteria: Mapping[str, Any] | None = None) -> list[Record]:
        ...

    @abstractmethod
    def create(self, entity: Entity | str, record: Mapping[str, Any]) -> Record:
        ...

    @abstractmethod
    def update(self, entity: Entity | str, record_id: str, patch: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    def update_if(
        self,
        entity: Entity | str,
        record_id: str,
        expected: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> bool:
        ...
