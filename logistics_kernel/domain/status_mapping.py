"""
Purchase order status -> part status / part location projection.

One-directional: the purchase order is authoritative and parts are derived.
Part writes never flow back into the purchase order.
"""

from logistics_kernel.domain.statuses import (
    PartLocation,
    PartStatus,
    PurchaseOrderStatus,
)

_PO_TO_PART_STATUS: dict[str, PartStatus] = {
    PurchaseOrderStatus.DRAFT.value: PartStatus.PENDING,
    PurchaseOrderStatus.SENT.value: PartStatus.ON_ORDER,
    PurchaseOrderStatus.ON_ORDER.value: PartStatus.ON_ORDER,
    PurchaseOrderStatus.IN_TRANSIT.value: PartStatus.IN_TRANSIT,
    PurchaseOrderStatus.IN_LOADING_BAY.value: PartStatus.IN_LOADING_BAY,
    PurchaseOrderStatus.AT_SUPPLIER.value: PartStatus.AT_SUPPLIER,
    PurchaseOrderStatus.IN_STORAGE.value: PartStatus.IN_STORAGE,
    PurchaseOrderStatus.IN_VEHICLE.value: PartStatus.IN_VEHICLE,
    PurchaseOrderStatus.INSTALLED.value: PartStatus.INSTALLED,
    # A cancelled order leaves the part needing to be re-sourced.
    PurchaseOrderStatus.CANCELLED.value: PartStatus.PENDING,
}

# Parts stay at the supplier until physically received.
_PO_TO_PART_LOCATION: dict[str, PartLocation] = {
    PurchaseOrderStatus.DRAFT.value: PartLocation.SUPPLIER,
    PurchaseOrderStatus.SENT.value: PartLocation.SUPPLIER,
    PurchaseOrderStatus.ON_ORDER.value: PartLocation.SUPPLIER,
    PurchaseOrderStatus.IN_TRANSIT.value: PartLocation.SUPPLIER,
    PurchaseOrderStatus.AT_SUPPLIER.value: PartLocation.SUPPLIER,
    PurchaseOrderStatus.IN_LOADING_BAY.value: PartLocation.LOADING_BAY,
    PurchaseOrderStatus.IN_STORAGE.value: PartLocation.WAREHOUSE_STORAGE,
    PurchaseOrderStatus.IN_VEHICLE.value: PartLocation.VEHICLE,
    PurchaseOrderStatus.INSTALLED.value: PartLocation.CLIENT_SITE,
}


def map_po_status_to_part_status(po_status: str | None) -> str:
    """
    Part status implied by a purchase order status.

    Total: unknown or missing statuses map to ``pending``.
    """
    if po_status is None:
        return PartStatus.PENDING.value
    return _PO_TO_PART_STATUS.get(str(po_status), PartStatus.PENDING).value


def map_po_status_to_part_location(po_status: str | None) -> str | None:
    """
    Part location implied by a purchase order status.

    Returns ``None`` when the status says nothing about location
    (cancelled, unknown); the caller leaves the part's location untouched.
    """
    if po_status is None:
        return None
    location = _PO_TO_PART_LOCATION.get(str(po_status))
    return location.value if location is not None else None
