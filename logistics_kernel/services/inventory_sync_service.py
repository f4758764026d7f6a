"""
InventorySyncService -- dual-location inventory synchronisation.

Responsibility:
    Applies stock movements (transfers, receipts, adjustments) to the
    canonical per-location ``InventoryQuantity`` rows, mirrors vehicle
    locations into the legacy ``VehicleStock`` rows, and records every
    movement in the ledger.  Audits the two representations against each
    other.

Architecture position:
    Kernel > Services.  The only writer of InventoryQuantity and
    VehicleStock.  Depends on StockLedgerService.

Invariants enforced:
    - Ledger first: quantities change only when the ledger insert was new.
      A retried movement finds its ledger row and changes nothing.
    - Non-negative stock: the source must hold at least the moved quantity,
      checked before anything is written and again inside the
      compare-and-swap.
    - Quantity updates are conditional on the observed value and retried a
      bounded number of times, so concurrent movements never lose an
      update.
    - Quantity rows are created at zero and only then incremented through
      the compare-and-swap on the canonical (earliest) row.  A row created
      by a losing racer stays at zero.
    - Movements only touch existing, active locations.
    - Compensation: if any quantity leg fails after the ledger insert
      (stock vanished after the pre-check, a compare-and-swap kept losing),
      the legs already applied are reverted and the ledger row is voided,
      so a retry applies the movement.  Rows whose legs all landed carry
      ``applied_at``.

Failure modes:
    - NotFoundError: unknown location.
    - InactiveLocationError: location is deactivated.
    - InsufficientStockError: source holds too little.
    - ValidationError: non-finite quantity, or from the ledger (item,
      source, timestamp).
    - ConcurrencyError: a quantity compare-and-swap kept losing.

Residual gap:
    A crash between the ledger insert and ``applied_at``, or a failure of
    the revert itself, leaves a live row without ``applied_at``.  A retry
    then reports ``applied=False`` and logs ``movement_not_marked_applied``
    at WARNING; the revert failure is logged at ERROR.
    Canonical quantity rows are picked by ``created_at`` then ``id``; two
    racing creators stamped with the identical timestamp can see the
    canonical row change after one of them already incremented it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from logistics_kernel.config import LogisticsConfig
from logistics_kernel.domain.clock import Clock, SystemClock
from logistics_kernel.domain.statuses import LocationType
from logistics_kernel.exceptions import (
    ConcurrencyError,
    InactiveLocationError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from logistics_kernel.logging_config import LogContext, get_logger
from logistics_kernel.services.stock_ledger_service import StockLedgerService
from logistics_kernel.store.base import Entity, EntityStore, Record
from logistics_kernel.utils.quantity import format_quantity, to_decimal

logger = get_logger("services.inventory_sync")


@dataclass(frozen=True)
class MovementOutcome:
    """Ledger row for the movement; ``applied`` is False for a retry."""

    movement: Record
    applied: bool


@dataclass(frozen=True)
class StockDivergence:
    vehicle_id: str
    location_id: str
    item_key: str
    inventory_quantity: Decimal
    vehicle_stock_quantity: Decimal

    @property
    def difference(self) -> Decimal:
        return self.inventory_quantity - self.vehicle_stock_quantity


def item_key(record: Mapping[str, Any]) -> str:
    """Catalog id when linked, otherwise the SKU."""
    if record.get("price_list_item_id"):
        return str(record["price_list_item_id"])
    return f"sku:{record.get('item_sku') or ''}"


def _item_criteria(price_list_item_id: str | None, item_sku: str | None) -> dict[str, Any]:
    if price_list_item_id:
        return {"price_list_item_id": price_list_item_id}
    return {"price_list_item_id": None, "item_sku": item_sku}


def _quantity(value: Any) -> Decimal:
    try:
        return to_decimal(value)
    except ValueError as exc:
        raise ValidationError(str(exc), [str(exc)]) from exc


@dataclass(frozen=True)
class _AppliedStep:
    entity: Entity
    criteria: dict[str, Any]
    field: str
    delta: Decimal
    location_id: str


def _canonical(rows: list[Record]) -> Record | None:
    if not rows:
        return None
    return min(rows, key=lambda r: (r.get("created_at"), r.get("id")))


class InventorySyncService:
    """
    Usage:
        sync = InventorySyncService(store, ledger, clock, config)
        sync.receive(bay_id, item_id, 10, source_id=po_id)
        sync.transfer(bay_id, van_id, item_id, 4)
    """

    def __init__(
        self,
        store: EntityStore,
        ledger: StockLedgerService,
        clock: Clock | None = None,
        config: LogisticsConfig | None = None,
    ):
        self._store = store
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._config = config or LogisticsConfig()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def transfer(
        self,
        from_location_id: str,
        to_location_id: str,
        price_list_item_id: str | None,
        quantity: Any,
        item_sku: str | None = None,
        **details: Any,
    ) -> MovementOutcome:
        """Move stock between two locations."""
        if not from_location_id or not to_location_id:
            raise ValidationError("Transfer requires both source and destination locations")
        if from_location_id == to_location_id:
            raise ValidationError("Transfer source and destination must differ")
        details.setdefault("source", "transfer")
        return self.apply_movement({
            **details,
            "from_location_id": from_location_id,
            "to_location_id": to_location_id,
            "price_list_item_id": price_list_item_id,
            "item_sku": item_sku,
            "quantity": quantity,
        })

    def receive(
        self,
        to_location_id: str,
        price_list_item_id: str | None,
        quantity: Any,
        item_sku: str | None = None,
        **details: Any,
    ) -> MovementOutcome:
        """Book stock arriving from outside (purchase order receipt)."""
        details.setdefault("source", "purchase_order_receipt")
        return self.apply_movement({
            **details,
            "from_location_id": None,
            "to_location_id": to_location_id,
            "price_list_item_id": price_list_item_id,
            "item_sku": item_sku,
            "quantity": quantity,
        })

    def adjust(
        self,
        location_id: str,
        price_list_item_id: str | None,
        delta: Any,
        item_sku: str | None = None,
        **details: Any,
    ) -> MovementOutcome:
        """
        Correct the on-hand count at one location.

        A positive delta books stock in; a negative one books it out.  The
        ledger always stores a positive quantity with a direction.
        """
        delta = _quantity(delta)
        details.setdefault("source", "adjustment")
        payload = {
            **details,
            "price_list_item_id": price_list_item_id,
            "item_sku": item_sku,
            "quantity": abs(delta),
        }
        if delta > 0:
            payload.update(from_location_id=None, to_location_id=location_id)
        else:
            payload.update(from_location_id=location_id, to_location_id=None)
        return self.apply_movement(payload)

    def apply_movement(self, payload: Mapping[str, Any]) -> MovementOutcome:
        """
        Validate locations and stock, write the ledger, then quantities.

        Raises:
            See module docstring.
        """
        movement = dict(payload)
        quantity = _quantity(movement.get("quantity"))
        if quantity < 0:
            raise ValidationError("Movement quantity must be positive; use the direction fields")

        from_location = self._active_location(movement.get("from_location_id"))
        to_location = self._active_location(movement.get("to_location_id"))
        if from_location is None and to_location is None:
            raise ValidationError("Movement needs a source or a destination location")
        if from_location is not None:
            movement["from_location_name"] = movement.get("from_location_name") or from_location.get("name")
        if to_location is not None:
            movement["to_location_name"] = movement.get("to_location_name") or to_location.get("name")

        price_list_item_id = movement.get("price_list_item_id")
        item_sku = movement.get("item_sku")
        if not price_list_item_id and not item_sku and movement.get("item_name"):
            item_sku = self._ledger.custom_sku(movement["item_name"])
            movement["item_sku"] = item_sku

        if from_location is not None and quantity > 0:
            available = self.available(from_location["id"], price_list_item_id, item_sku)
            if available < quantity:
                raise InsufficientStockError(
                    from_location["id"],
                    item_key(movement),
                    format_quantity(available),
                    format_quantity(quantity),
                )

        result = self._ledger.create_idempotent(movement)
        if not result.created:
            if result.movement.get("applied_at") is None:
                logger.warning(
                    "movement_not_marked_applied",
                    extra={"movement_id": result.movement["id"]},
                )
            else:
                logger.info(
                    "movement_already_applied",
                    extra={"movement_id": result.movement["id"]},
                )
            return MovementOutcome(result.movement, applied=False)

        stored = result.movement
        applied: list[_AppliedStep] = []
        with LogContext.bind(correlation_id=stored.get("idempotency_key")):
            try:
                if from_location is not None:
                    self._apply_location_delta(
                        from_location, price_list_item_id, item_sku, -quantity, stored, applied
                    )
                if to_location is not None:
                    self._apply_location_delta(
                        to_location, price_list_item_id, item_sku, quantity, stored, applied
                    )
            except Exception as exc:
                self._roll_back(stored, applied, exc)
                raise
            self._ledger.mark_applied(stored["id"])

        return MovementOutcome(stored, applied=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def available(self, location_id: str, price_list_item_id: str | None, item_sku: str | None = None) -> Decimal:
        row = _canonical(self._store.filter(
            Entity.INVENTORY_QUANTITY,
            {"location_id": location_id, **_item_criteria(price_list_item_id, item_sku)},
        ))
        return to_decimal(row.get("quantity")) if row is not None else Decimal("0")

    def audit_divergence(self) -> list[StockDivergence]:
        """
        Compare InventoryQuantity with VehicleStock for every vehicle
        location and report the (vehicle, item) pairs that disagree.
        """
        divergences: list[StockDivergence] = []
        locations = self._store.filter(Entity.INVENTORY_LOCATION, {"type": LocationType.VEHICLE.value})
        for location in locations:
            vehicle_id = location.get("vehicle_id")
            if not vehicle_id:
                continue
            canonical = self._totals(
                self._store.filter(Entity.INVENTORY_QUANTITY, {"location_id": location["id"]}),
                "quantity",
            )
            legacy = self._totals(
                self._store.filter(Entity.VEHICLE_STOCK, {"vehicle_id": vehicle_id}),
                "quantity_on_hand",
            )
            for key in sorted(set(canonical) | set(legacy)):
                inv = canonical.get(key, Decimal("0"))
                veh = legacy.get(key, Decimal("0"))
                if inv != veh:
                    divergences.append(StockDivergence(vehicle_id, location["id"], key, inv, veh))

        if divergences:
            logger.warning(
                "inventory_divergence_detected",
                extra={
                    "divergent_pairs": len(divergences),
                    "vehicles": sorted({d.vehicle_id for d in divergences}),
                },
            )
        else:
            logger.info("inventory_divergence_clear", extra={"vehicle_locations": len(locations)})
        return divergences

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _active_location(self, location_id: str | None) -> Record | None:
        if not location_id:
            return None
        location = self._store.get(Entity.INVENTORY_LOCATION, location_id)
        if location is None:
            raise NotFoundError("InventoryLocation", location_id)
        if location.get("is_active") is False:
            raise InactiveLocationError(location_id)
        return location

    def _totals(self, rows: list[Record], field: str) -> dict[str, Decimal]:
        totals: dict[str, Decimal] = {}
        for row in rows:
            key = item_key(row)
            totals[key] = totals.get(key, Decimal("0")) + to_decimal(row.get(field))
        return totals

    def _apply_location_delta(
        self,
        location: Record,
        price_list_item_id: str | None,
        item_sku: str | None,
        delta: Decimal,
        movement: Record,
        applied: list[_AppliedStep],
    ) -> None:
        item_criteria = _item_criteria(price_list_item_id, item_sku)
        quantity_criteria = {"location_id": location["id"], **item_criteria}
        new_quantity = self._cas_adjust(
            Entity.INVENTORY_QUANTITY,
            quantity_criteria,
            "quantity",
            delta,
            create_extra={"item_sku": item_sku, "item_name": movement.get("item_label") or movement.get("item_name")},
            enforce_floor=True,
            location_id=location["id"],
        )
        applied.append(_AppliedStep(
            Entity.INVENTORY_QUANTITY, quantity_criteria, "quantity", delta, location["id"]
        ))
        logger.debug(
            "inventory_quantity_changed",
            extra={
                "location_id": location["id"],
                "item_key": item_key(item_criteria),
                "delta": delta,
                "quantity": new_quantity,
                "movement_id": movement["id"],
            },
        )

        if location.get("type") == LocationType.VEHICLE.value and location.get("vehicle_id"):
            stock_criteria = {"vehicle_id": location["vehicle_id"], **item_criteria}
            self._cas_adjust(
                Entity.VEHICLE_STOCK,
                stock_criteria,
                "quantity_on_hand",
                delta,
                create_extra={"item_sku": item_sku},
                enforce_floor=False,
                location_id=location["id"],
            )
            applied.append(_AppliedStep(
                Entity.VEHICLE_STOCK, stock_criteria, "quantity_on_hand", delta, location["id"]
            ))

    def _roll_back(self, movement: Record, applied: list[_AppliedStep], cause: Exception) -> None:
        """
        Undo the quantity legs already applied, newest first, then void the
        ledger row so a retry records and applies the movement afresh.

        If undoing fails the row stays live and unapplied; that is logged at
        ERROR and the original exception still propagates.
        """
        try:
            for step in reversed(applied):
                self._cas_adjust(
                    step.entity,
                    step.criteria,
                    step.field,
                    -step.delta,
                    create_extra={},
                    enforce_floor=False,
                    location_id=step.location_id,
                )
            self._ledger.void(movement["id"], f"{type(cause).__name__}: {cause}")
        except Exception:
            logger.error(
                "movement_quantity_not_applied",
                extra={"movement_id": movement["id"], "legs_applied": len(applied)},
                exc_info=True,
            )
            return
        logger.warning(
            "movement_rolled_back",
            extra={
                "movement_id": movement["id"],
                "legs_reverted": len(applied),
                "cause": type(cause).__name__,
            },
        )

    def _cas_adjust(
        self,
        entity: Entity,
        criteria: Mapping[str, Any],
        field: str,
        delta: Decimal,
        create_extra: Mapping[str, Any],
        enforce_floor: bool,
        location_id: str,
    ) -> Decimal:
        attempts = self._config.quantity_max_attempts
        for attempt in range(1, attempts + 1):
            row = _canonical(self._store.filter(entity, criteria))
            if row is None:
                self._store.create(entity, {**create_extra, **criteria, field: Decimal("0")})
                row = _canonical(self._store.filter(entity, criteria))

            current = to_decimal(row.get(field))
            new_value = current + delta
            if enforce_floor and new_value < 0:
                raise InsufficientStockError(
                    location_id,
                    item_key(criteria),
                    format_quantity(current),
                    format_quantity(-delta),
                )
            if self._store.update_if(entity, row["id"], {field: row.get(field)}, {field: new_value}):
                return new_value
            logger.info(
                "quantity_race_retry",
                extra={"entity": entity.value, "row_id": row["id"], "attempt": attempt},
            )

        raise ConcurrencyError(
            f"Could not update {entity.value} {dict(criteria)} after {attempts} attempts"
        )
