"""
PartSyncService -- purchase order -> part projection.

Responsibility:
    Links parts to purchase orders and projects purchase order status onto
    the parts whose *primary* purchase order it is.

Architecture position:
    Kernel > Services.  Called by purchase order write handlers after a PO
    is created, gains lines, or changes status.

Invariants enforced:
    - First writer wins: ``primary_purchase_order_id`` is set only while
      empty and never overwritten.  Later orders only append to
      ``purchase_order_ids``.
    - One direction: PO status drives part status/location, never the other
      way round.  Only parts whose primary PO is the changing order are
      touched, so a part linked to several orders is not flip-flopped.
    - Every projected status change passes the part state machine.  An
      invalid transition skips that part (logged) and the rest proceed.
    - Part writes are conditional on the part's ``write_version`` and bump
      it, so a concurrent user edit is never silently overwritten.

Failure modes:
    - NotFoundError for an unknown purchase order.
    - StaleWriteError from ``update_purchase_order_status`` when the caller's
      version is out of date.
    - Parts that keep losing the version race are reported as skipped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from logistics_kernel.config import LogisticsConfig
from logistics_kernel.domain.clock import Clock, SystemClock
from logistics_kernel.domain.part_state_machine import validate_transition
from logistics_kernel.domain.status_mapping import (
    map_po_status_to_part_location,
    map_po_status_to_part_status,
)
from logistics_kernel.domain.statuses import (
    PartLocation,
    PartStatus,
    PurchaseOrderStatus,
    normalise_legacy_po_status,
)
from logistics_kernel.logging_config import LogContext, get_logger
from logistics_kernel.services.optimistic_lock import OptimisticLockGate
from logistics_kernel.store.base import Entity, EntityStore, Record

logger = get_logger("services.part_sync")

LINK_SOURCE = "system:link_parts_to_po"
SYNC_SOURCE = "system:sync_parts_with_po_status"


@dataclass
class PartSyncReport:
    """Per-part outcome of a link or sync run."""

    updated: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)


class PartSyncService:

    def __init__(
        self,
        store: EntityStore,
        clock: Clock | None = None,
        config: LogisticsConfig | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._config = config or LogisticsConfig()
        self._gate = OptimisticLockGate(store, self._config)

    def link_parts_to_po(
        self,
        purchase_order_id: str,
        part_ids: Iterable[str],
    ) -> PartSyncReport:
        """
        Attach parts to a purchase order.

        Per part: append the order to ``purchase_order_ids``, claim
        ``primary_purchase_order_id`` if free, copy ``po_line_id``,
        ``item_name`` and ``quantity_required`` from the matching line, move
        ``pending`` parts to ``on_order`` and default ``order_date`` and
        ``location``.
        """
        with LogContext.bind(write_source=LINK_SOURCE):
            return self._link_parts(purchase_order_id, part_ids)

    def _link_parts(self, purchase_order_id: str, part_ids: Iterable[str]) -> PartSyncReport:
        report = PartSyncReport()
        lines = self._store.filter(Entity.PURCHASE_ORDER_LINE, {"purchase_order_id": purchase_order_id})
        line_by_part = {line["part_id"]: line for line in lines if line.get("part_id")}
        line_by_source = {line["source_id"]: line for line in lines if line.get("source_id")}

        for part_id in dict.fromkeys(p for p in part_ids if p):
            line = line_by_part.get(part_id) or line_by_source.get(part_id)
            outcome = self._write_part(
                part_id,
                lambda part, line=line: self._link_patch(part, purchase_order_id, line),
                LINK_SOURCE,
            )
            self._record(report, part_id, outcome)
            if outcome is None:
                logger.info(
                    "part_linked_to_po",
                    extra={"part_id": part_id, "purchase_order_id": purchase_order_id},
                )
        return report

    def sync_parts_with_po_status(
        self,
        purchase_order: Mapping[str, Any],
        vehicle_id: str | None = None,
    ) -> PartSyncReport:
        """Project the order's status onto parts whose primary order it is."""
        with LogContext.bind(write_source=SYNC_SOURCE):
            return self._sync_parts(purchase_order, vehicle_id)

    def _sync_parts(
        self,
        purchase_order: Mapping[str, Any],
        vehicle_id: str | None,
    ) -> PartSyncReport:
        report = PartSyncReport()
        po_status = normalise_legacy_po_status(purchase_order.get("status"))
        target_status = map_po_status_to_part_status(po_status)
        parts = self._store.filter(Entity.PART, {"primary_purchase_order_id": purchase_order["id"]})
        if not parts:
            logger.debug("part_sync_no_parts", extra={"purchase_order_id": purchase_order["id"]})
            return report

        for part in parts:
            outcome = self._write_part(
                part["id"],
                lambda current: self._status_patch(current, po_status, target_status, vehicle_id),
                SYNC_SOURCE,
            )
            self._record(report, part["id"], outcome)
            if outcome is None:
                logger.info(
                    "part_synced_from_po",
                    extra={
                        "part_id": part["id"],
                        "purchase_order_id": purchase_order["id"],
                        "status": target_status,
                    },
                )
        return report

    def update_purchase_order_status(
        self,
        purchase_order_id: str,
        status: str,
        expected_version: int | None = None,
        source: str = "user",
        vehicle_id: str | None = None,
        actor_id: str | None = None,
    ) -> tuple[Record, PartSyncReport]:
        """
        Version-checked purchase order status change followed by the part
        projection.

        Raises:
            NotFoundError: Unknown purchase order.
            StaleWriteError: ``expected_version`` is out of date.
        """
        canonical = normalise_legacy_po_status(status)
        with LogContext.bind(write_source=source, actor_id=actor_id):
            purchase_order = self._gate.guarded_update(
                Entity.PURCHASE_ORDER,
                purchase_order_id,
                {"status": canonical},
                expected_version,
                source,
            )
            logger.info(
                "purchase_order_status_changed",
                extra={"purchase_order_id": purchase_order_id, "status": canonical},
            )
            return purchase_order, self.sync_parts_with_po_status(purchase_order, vehicle_id)

    # ------------------------------------------------------------------

    def _link_patch(
        self,
        part: Record,
        purchase_order_id: str,
        line: Record | None,
    ) -> dict[str, Any]:
        patch: dict[str, Any] = {}
        if line is not None:
            patch["po_line_id"] = line["id"]
            if line.get("item_name"):
                patch["item_name"] = line["item_name"]
            if line.get("qty_ordered"):
                patch["quantity_required"] = line["qty_ordered"]

        po_ids = list(part.get("purchase_order_ids") or [])
        if purchase_order_id not in po_ids:
            po_ids.append(purchase_order_id)
        patch["purchase_order_ids"] = po_ids

        primary = part.get("primary_purchase_order_id")
        if not primary:
            patch["primary_purchase_order_id"] = purchase_order_id
        elif primary != purchase_order_id:
            logger.info(
                "part_primary_po_kept",
                extra={
                    "part_id": part["id"],
                    "primary_purchase_order_id": primary,
                    "purchase_order_id": purchase_order_id,
                },
            )

        if part.get("status") in (PartStatus.PENDING.value, "Pending"):
            patch["status"] = PartStatus.ON_ORDER.value
        if not part.get("order_date"):
            patch["order_date"] = self._clock.now()
        if not part.get("location"):
            patch["location"] = PartLocation.SUPPLIER.value
        return patch

    def _status_patch(
        self,
        part: Record,
        po_status: str,
        target_status: str,
        vehicle_id: str | None,
    ) -> dict[str, Any] | str:
        result = validate_transition(part.get("status"), target_status)
        if not result.valid:
            return result.error or "invalid transition"

        patch: dict[str, Any] = {"status": target_status}
        if target_status == PartStatus.PENDING.value:
            patch["order_date"] = None
            patch["eta"] = None
        location = map_po_status_to_part_location(po_status)
        if location is not None:
            patch["location"] = location
        if po_status == PurchaseOrderStatus.IN_VEHICLE.value and vehicle_id:
            patch["assigned_vehicle_id"] = vehicle_id
        return patch

    def _write_part(self, part_id: str, build_patch, source: str) -> str | None:
        """
        Apply ``build_patch(part)`` as a version-conditional write.

        ``build_patch`` returns the patch, or a string reason to skip.
        Returns None on success, otherwise the skip reason.
        """
        for _ in range(self._config.version_max_attempts):
            part = self._store.get(Entity.PART, part_id)
            if part is None:
                return f"Part not found: {part_id}"
            patch = build_patch(part)
            if isinstance(patch, str):
                return patch
            patch.update(self._gate.next_version_payload(part, source))
            patch["last_synced_from_po_at"] = self._clock.now()
            patch["synced_by"] = source
            if self._store.update_if(
                Entity.PART, part_id, {"write_version": part.get("write_version")}, patch
            ):
                return None
        return "concurrent part edits"

    def _record(self, report: PartSyncReport, part_id: str, outcome: str | None) -> None:
        if outcome is None:
            report.updated.append(part_id)
            return
        report.skipped[part_id] = outcome
        logger.warning("part_sync_skipped", extra={"part_id": part_id, "reason": outcome})
