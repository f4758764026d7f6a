"""
SQLAlchemy-backed EntityStore.

Responsibility:
    Implements the per-record store surface over the ORM models in
    ``logistics_kernel.models``.  Every call runs in its own short
    ``Database.session_scope`` so no transaction ever spans two store calls.

Invariants enforced:
    - ``update_if`` is a single ``UPDATE ... WHERE id = :id AND <expected>``
      statement; the database row lock makes it atomic for that record.
    - Unknown fields are rejected rather than silently dropped.

Failure modes:
    - NotFoundError from ``update``/``update_if`` on an unknown id.
    - ValueError for an unknown entity name or unknown column.
    - SQLAlchemy errors propagate after the session is rolled back.
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import inspect, select, update

from logistics_kernel.db.base import Base, new_id
from logistics_kernel.db.engine import Database
from logistics_kernel.domain.clock import Clock, SystemClock
from logistics_kernel.exceptions import NotFoundError
from logistics_kernel.logging_config import get_logger
from logistics_kernel.models import (
    InventoryLocation,
    InventoryQuantity,
    Job,
    LogisticsJobCounter,
    Part,
    PriceListItem,
    ProjectRequirementLine,
    PurchaseOrder,
    PurchaseOrderLine,
    StockAllocation,
    StockConsumption,
    StockMovement,
    VehicleStock,
    Visit,
)
from logistics_kernel.store.base import Entity, EntityStore, Record, entity_name

logger = get_logger("store.sql")

MODEL_BY_ENTITY: dict[str, type[Base]] = {
    Entity.PURCHASE_ORDER.value: PurchaseOrder,
    Entity.PURCHASE_ORDER_LINE.value: PurchaseOrderLine,
    Entity.PART.value: Part,
    Entity.STOCK_ALLOCATION.value: StockAllocation,
    Entity.STOCK_CONSUMPTION.value: StockConsumption,
    Entity.STOCK_MOVEMENT.value: StockMovement,
    Entity.INVENTORY_LOCATION.value: InventoryLocation,
    Entity.INVENTORY_QUANTITY.value: InventoryQuantity,
    Entity.VEHICLE_STOCK.value: VehicleStock,
    Entity.PRICE_LIST_ITEM.value: PriceListItem,
    Entity.LOGISTICS_JOB_COUNTER.value: LogisticsJobCounter,
    Entity.JOB.value: Job,
    Entity.VISIT.value: Visit,
    Entity.PROJECT_REQUIREMENT_LINE.value: ProjectRequirementLine,
}


def _model_for(entity: Entity | str) -> type[Base]:
    name = entity_name(entity)
    model = MODEL_BY_ENTITY.get(name)
    if model is None:
        raise ValueError(f"Unknown entity: {name}")
    return model


def _columns(model: type[Base]) -> dict[str, Any]:
    return {attr.key: attr for attr in inspect(model).column_attrs}


def _check_fields(model: type[Base], fields: Mapping[str, Any]) -> None:
    unknown = sorted(set(fields) - set(_columns(model)))
    if unknown:
        raise ValueError(f"Unknown field(s) for {model.__name__}: {', '.join(unknown)}")


def _to_record(obj: Base) -> Record:
    return {key: getattr(obj, key) for key in _columns(type(obj))}


class SqlEntityStore(EntityStore):
    """
    EntityStore over a caller-owned ``Database``.

    Args:
        database: Engine and session factory; the caller disposes it.
        clock: Stamps ``created_at``/``updated_at`` so canonical-row ordering
            follows the same clock as the services.
    """

    def __init__(
        self,
        database: Database,
        clock: Clock | None = None,
    ):
        self._database = database
        self._clock = clock or SystemClock()

    def get(self, entity: Entity | str, record_id: str) -> Record | None:
        model = _model_for(entity)
        with self._database.session_scope() as session:
            obj = session.get(model, record_id)
            return _to_record(obj) if obj is not None else None

    def filter(self, entity: Entity | str, criteria: Mapping[str, Any] | None = None) -> list[Record]:
        model = _model_for(entity)
        criteria = criteria or {}
        _check_fields(model, criteria)
        stmt = select(model)
        for key, value in criteria.items():
            column = getattr(model, key)
            if isinstance(value, (set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            elif value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == value)
        stmt = stmt.order_by(model.created_at, model.id)
        with self._database.session_scope() as session:
            return [_to_record(obj) for obj in session.execute(stmt).scalars()]

    def create(self, entity: Entity | str, record: Mapping[str, Any]) -> Record:
        model = _model_for(entity)
        _check_fields(model, record)
        values = dict(record)
        values.setdefault("id", new_id())
        now = self._clock.now()
        values.setdefault("created_at", now)
        values.setdefault("updated_at", now)
        with self._database.session_scope() as session:
            obj = model(**values)
            session.add(obj)
            session.flush()
            return _to_record(obj)

    def update(self, entity: Entity | str, record_id: str, patch: Mapping[str, Any]) -> None:
        if not self.update_if(entity, record_id, {}, patch):
            raise NotFoundError(entity_name(entity), record_id)

    def update_if(
        self,
        entity: Entity | str,
        record_id: str,
        expected: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> bool:
        model = _model_for(entity)
        _check_fields(model, expected)
        _check_fields(model, patch)
        values = {k: v for k, v in patch.items() if k != "id"}
        values["updated_at"] = self._clock.now()

        stmt = update(model).where(model.id == record_id)
        for key, value in expected.items():
            column = getattr(model, key)
            stmt = stmt.where(column.is_(None) if value is None else column == value)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        with self._database.session_scope() as session:
            applied = session.execute(stmt).rowcount == 1
            exists = applied or session.get(model, record_id) is not None
        if applied:
            return True
        if not exists:
            raise NotFoundError(entity_name(entity), record_id)
        logger.debug(
            "conditional_update_lost",
            extra={"entity": entity_name(entity), "record_id": record_id},
        )
        return False
