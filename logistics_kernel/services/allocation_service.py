"""
AllocationService -- stock allocation / consumption reconciliation.

Responsibility:
    Validates consumptions against the allocation they draw from, records
    them, and flips an allocation to ``consumed`` once nothing remains.
    Also applies the allocation lifecycle rules to caller updates.

Architecture position:
    Kernel > Services.  Called by visit check-in / job completion flows.
    Writes consumption movements through StockLedgerService when one is
    wired in.

Invariants enforced:
    - remaining == qty_allocated - sum(qty_consumed of consumptions that
      reference the allocation).  ``remaining`` is the only place that sum
      is computed; validation and reconciliation both use it.
    - A consumption exceeding remaining is rejected before anything is
      persisted.
    - Reconciliation is idempotent: once consumed (or released) the status
      is never written again.
    - Consumptions are immutable; this service has no update path for them.

Failure modes:
    - NotFoundError from ``remaining``/``reconcile`` for an unknown
      allocation.
    - ``record_consumption`` raises NotFoundError for an unknown visit or
      allocation, and ValidationError (or ConsumptionExceedsAllocationError)
      when ``validate_consumption`` rejects otherwise.
    - ConcurrencyError from ``update_allocation`` when its conditional
      write keeps losing.
    - TransitionError / ValidationError from ``validate_allocation_update``.

Residual gap:
    Two consumptions validated concurrently against the same allocation can
    both pass.  The store offers no multi-record transaction to close this.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from logistics_kernel.config import LogisticsConfig
from logistics_kernel.domain.allocation_rules import (
    ALLOCATION_TRANSITIONS,
    TERMINAL_ALLOCATION_STATUSES,
    allocation_update_violation,
    is_allocation_transition_allowed,
)
from logistics_kernel.domain.clock import Clock, SystemClock
from logistics_kernel.domain.statuses import AllocationStatus, LocationType
from logistics_kernel.exceptions import (
    ConcurrencyError,
    ConsumptionExceedsAllocationError,
    NotFoundError,
    TransitionError,
    ValidationError,
)
from logistics_kernel.logging_config import LogContext, get_logger
from logistics_kernel.services.stock_ledger_service import LedgerWriteResult, StockLedgerService
from logistics_kernel.store.base import Entity, EntityStore, Record
from logistics_kernel.utils.idempotency import consumption_idempotency_key
from logistics_kernel.utils.quantity import format_quantity, to_decimal

logger = get_logger("services.allocation")


@dataclass(frozen=True)
class ConsumptionCheck:
    """
    Result of validating a consumption request.

    ``remaining`` is set when the failure is an over-consumption;
    ``missing`` names the (entity type, id) that did not resolve.
    """

    valid: bool
    error: str | None = None
    remaining: Decimal | None = None
    missing: tuple[str, str] | None = None


@dataclass(frozen=True)
class ConsumptionResult:
    consumption: Record
    allocation: Record | None = None
    movement: LedgerWriteResult | None = None


class AllocationService:

    def __init__(
        self,
        store: EntityStore,
        clock: Clock | None = None,
        config: LogisticsConfig | None = None,
        ledger: StockLedgerService | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._config = config or LogisticsConfig()
        self._ledger = ledger

    def _get_allocation(self, allocation_id: str) -> Record:
        allocation = self._store.get(Entity.STOCK_ALLOCATION, allocation_id)
        if allocation is None:
            raise NotFoundError("StockAllocation", allocation_id)
        return allocation

    def total_consumed(self, allocation_id: str) -> Decimal:
        consumptions = self._store.filter(
            Entity.STOCK_CONSUMPTION, {"source_allocation_id": allocation_id}
        )
        return sum((to_decimal(c.get("qty_consumed")) for c in consumptions), Decimal("0"))

    def remaining(self, allocation_id: str, allocation: Mapping[str, Any] | None = None) -> Decimal:
        """qty_allocated minus everything already consumed against it."""
        if allocation is None:
            allocation = self._get_allocation(allocation_id)
        return to_decimal(allocation.get("qty_allocated")) - self.total_consumed(allocation_id)

    def validate_consumption(
        self,
        consumption: Mapping[str, Any],
        allocation: Mapping[str, Any] | None = None,
        actor_role: str | None = None,
    ) -> ConsumptionCheck:
        """
        Check a consumption request.  Nothing is written.

        Checks, in order: project_id present; positive quantity; visit in an
        in-progress status unless ``actor_role`` may override; allocation
        belongs to the same project, matches the visit when it has one, is
        not released, and has enough remaining.
        """
        project_id = consumption.get("project_id")
        if not project_id:
            return ConsumptionCheck(False, "project_id is required")

        try:
            qty = to_decimal(consumption.get("qty_consumed"))
        except ValueError:
            return ConsumptionCheck(False, f"qty_consumed is not numeric: {consumption.get('qty_consumed')!r}")
        if qty <= 0:
            return ConsumptionCheck(False, "qty_consumed must be positive")

        visit_id = consumption.get("visit_id")
        if visit_id:
            visit = self._store.get(Entity.VISIT, visit_id)
            if visit is None:
                return ConsumptionCheck(False, f"Visit not found: {visit_id}", missing=("Visit", visit_id))
            can_override = actor_role in self._config.consumption_override_roles
            if visit.get("status") not in self._config.consumption_visit_statuses and not can_override:
                return ConsumptionCheck(
                    False,
                    f"Visit {visit_id} is not in progress (status: {visit.get('status')})",
                )

        allocation_id = consumption.get("source_allocation_id")
        if allocation_id:
            if allocation is None:
                allocation = self._store.get(Entity.STOCK_ALLOCATION, allocation_id)
            if allocation is None:
                return ConsumptionCheck(
                    False,
                    f"Allocation not found: {allocation_id}",
                    missing=("StockAllocation", allocation_id),
                )
            if allocation.get("project_id") != project_id:
                return ConsumptionCheck(False, "Allocation belongs to a different project")
            if allocation.get("visit_id") and allocation.get("visit_id") != visit_id:
                return ConsumptionCheck(False, "Allocation is for a different visit")
            if allocation.get("status") == AllocationStatus.RELEASED.value:
                return ConsumptionCheck(False, "Allocation has been released")
            remaining = self.remaining(allocation_id, allocation)
            if qty > remaining:
                return ConsumptionCheck(
                    False,
                    f"Insufficient qty on allocation (available: {format_quantity(remaining)}, "
                    f"requested: {format_quantity(qty)})",
                    remaining=remaining,
                )

        return ConsumptionCheck(True)

    def reconcile(self, allocation_id: str, actor_id: str | None = None) -> Record:
        """
        Flip the allocation to consumed when nothing remains.

        Repeated calls after that are no-ops.  Returns the allocation as
        stored after the call.
        """
        with LogContext.bind(actor_id=actor_id):
            return self._reconcile(allocation_id, actor_id)

    def _reconcile(self, allocation_id: str, actor_id: str | None) -> Record:
        allocation = self._get_allocation(allocation_id)
        status = allocation.get("status")
        if status in TERMINAL_ALLOCATION_STATUSES:
            return allocation

        remaining = self.remaining(allocation_id, allocation)
        if remaining > 0:
            return allocation

        patch = {
            "status": AllocationStatus.CONSUMED.value,
            "consumed_at": self._clock.now(),
            "consumed_by": actor_id,
        }
        flipped = self._store.update_if(
            Entity.STOCK_ALLOCATION, allocation_id, {"status": status}, patch
        )
        if flipped:
            logger.info(
                "allocation_consumed",
                extra={
                    "allocation_id": allocation_id,
                    "previous_status": status,
                    "qty_allocated": allocation.get("qty_allocated"),
                },
            )
        return self._get_allocation(allocation_id)

    def record_consumption(
        self,
        consumption: Mapping[str, Any],
        actor_role: str | None = None,
        actor_id: str | None = None,
    ) -> ConsumptionResult:
        """
        Validate, persist, post to the ledger, reconcile.

        Raises:
            NotFoundError: The visit or allocation id does not resolve.
            ConsumptionExceedsAllocationError: Requested more than remains.
            ValidationError: Any other failed check.  Nothing is written.
        """
        with LogContext.bind(actor_id=actor_id):
            return self._record_consumption(consumption, actor_role, actor_id)

    def _record_consumption(
        self,
        consumption: Mapping[str, Any],
        actor_role: str | None,
        actor_id: str | None,
    ) -> ConsumptionResult:
        allocation_id = consumption.get("source_allocation_id")
        allocation = self._store.get(Entity.STOCK_ALLOCATION, allocation_id) if allocation_id else None

        check = self.validate_consumption(consumption, allocation, actor_role)
        if not check.valid:
            logger.warning(
                "consumption_rejected",
                extra={"allocation_id": allocation_id, "reason": check.error},
            )
            if check.missing is not None:
                raise NotFoundError(*check.missing)
            if check.remaining is not None:
                raise ConsumptionExceedsAllocationError(
                    allocation_id,
                    format_quantity(check.remaining),
                    format_quantity(consumption.get("qty_consumed")),
                )
            raise ValidationError(check.error or "invalid consumption")

        record = dict(consumption)
        record["qty_consumed"] = to_decimal(consumption.get("qty_consumed"))
        if allocation is not None and not record.get("price_list_item_id"):
            record["price_list_item_id"] = allocation.get("price_list_item_id")
        record["consumed_at"] = record.get("consumed_at") or self._clock.now()
        record["consumed_by"] = record.get("consumed_by") or actor_id
        stored = self._store.create(Entity.STOCK_CONSUMPTION, record)
        logger.info(
            "consumption_recorded",
            extra={
                "consumption_id": stored["id"],
                "allocation_id": allocation_id,
                "qty_consumed": stored["qty_consumed"],
            },
        )

        movement = self._post_consumption_movement(stored, allocation, actor_id)

        if allocation_id:
            allocation = self.reconcile(allocation_id, actor_id)
        return ConsumptionResult(stored, allocation, movement)

    def consumed_location(self) -> Record:
        """The virtual location consumed stock moves to, created on first use."""
        code = self._config.consumed_location_code
        rows = self._store.filter(Entity.INVENTORY_LOCATION, {"location_code": code})
        if rows:
            return sorted(rows, key=lambda r: (r.get("created_at"), r.get("id")))[0]
        logger.info("consumed_location_created", extra={"location_code": code})
        return self._store.create(
            Entity.INVENTORY_LOCATION,
            {
                "name": "Consumed",
                "location_code": code,
                "type": LocationType.WAREHOUSE.value,
                "is_active": True,
            },
        )

    def _post_consumption_movement(
        self,
        consumption: Record,
        allocation: Record | None,
        actor_id: str | None,
    ) -> LedgerWriteResult | None:
        if self._ledger is None:
            return None
        if not (consumption.get("price_list_item_id") or consumption.get("item_sku") or consumption.get("item_name")):
            logger.warning(
                "consumption_movement_skipped",
                extra={"consumption_id": consumption["id"], "reason": "no item identity"},
            )
            return None

        from_location_id = consumption.get("consumed_from_location_id")
        if not from_location_id and allocation is not None:
            from_location_id = allocation.get("from_location_id")

        return self._ledger.create_idempotent({
            "source": "allocation_consumption",
            "source_id": consumption["id"],
            "movement_type": "consumption",
            "idempotency_key": consumption_idempotency_key(
                consumption["id"], allocation["id"] if allocation else None
            ),
            "from_location_id": from_location_id,
            "to_location_id": self.consumed_location()["id"],
            "price_list_item_id": consumption.get("price_list_item_id"),
            "item_sku": consumption.get("item_sku"),
            "item_name": consumption.get("item_name"),
            "quantity": consumption["qty_consumed"],
            "occurred_at": consumption.get("consumed_at"),
            "project_id": consumption.get("project_id"),
            "visit_id": consumption.get("visit_id"),
            "moved_by": actor_id,
        })

    def validate_allocation_update(
        self,
        allocation: Mapping[str, Any],
        updates: Mapping[str, Any],
    ) -> None:
        """
        Apply the lifecycle rules to a caller's allocation update.

        Raises:
            TransitionError: The status edge is not allowed.
            ValidationError: The allocation is locked and the update touches
                more than bookkeeping fields.
        """
        current = allocation.get("status")
        new = updates.get("status")
        if new and new != current and not is_allocation_transition_allowed(current, new):
            raise TransitionError(
                "allocation",
                current or "",
                new,
                tuple(sorted(ALLOCATION_TRANSITIONS.get(current, ()))),
            )
        violation = allocation_update_violation(allocation, updates)
        if violation:
            raise ValidationError(violation)

    def update_allocation(
        self,
        allocation_id: str,
        updates: Mapping[str, Any],
    ) -> Record:
        """
        Validate and apply an allocation update; returns the stored record.

        The write is conditional on the status it was validated against.  A
        lost race re-validates against the fresh record, up to
        ``version_max_attempts`` times.

        Raises:
            NotFoundError: Unknown allocation.
            TransitionError / ValidationError: Lifecycle rules reject it.
            ConcurrencyError: Every attempt lost the conditional write.
        """
        attempts = self._config.version_max_attempts
        for attempt in range(1, attempts + 1):
            allocation = self._get_allocation(allocation_id)
            self.validate_allocation_update(allocation, updates)
            if self._store.update_if(
                Entity.STOCK_ALLOCATION, allocation_id, {"status": allocation.get("status")}, updates
            ):
                return self._get_allocation(allocation_id)
            logger.info(
                "allocation_update_race_retry",
                extra={"allocation_id": allocation_id, "attempt": attempt},
            )
        raise ConcurrencyError(
            f"Could not update StockAllocation {allocation_id} after {attempts} attempts"
        )
