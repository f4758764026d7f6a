"""
Status vocabularies for purchase orders, parts, allocations and jobs.

Pure definitions plus the legacy purchase-order status normaliser.  Every
status in the system is a ``str`` Enum so values compare equal to the raw
strings the store returns.
"""

import re
from enum import Enum


class PurchaseOrderStatus(str, Enum):
    """Purchase order lifecycle.  Authoritative for linked part status."""

    DRAFT = "draft"
    SENT = "sent"
    ON_ORDER = "on_order"
    IN_TRANSIT = "in_transit"
    IN_LOADING_BAY = "in_loading_bay"
    AT_SUPPLIER = "at_supplier"
    IN_STORAGE = "in_storage"
    IN_VEHICLE = "in_vehicle"
    INSTALLED = "installed"
    CANCELLED = "cancelled"


class PartStatus(str, Enum):
    """Part status, projected from the part's primary purchase order."""

    PENDING = "pending"
    ON_ORDER = "on_order"
    IN_TRANSIT = "in_transit"
    IN_LOADING_BAY = "in_loading_bay"
    AT_SUPPLIER = "at_supplier"
    IN_STORAGE = "in_storage"
    IN_VEHICLE = "in_vehicle"
    INSTALLED = "installed"
    CANCELLED = "cancelled"


class PartLocation(str, Enum):
    SUPPLIER = "supplier"
    LOADING_BAY = "loading_bay"
    WAREHOUSE_STORAGE = "warehouse_storage"
    VEHICLE = "vehicle"
    CLIENT_SITE = "client_site"


class DeliveryMethod(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


class LocationType(str, Enum):
    LOADING_BAY = "loading_bay"
    WAREHOUSE = "warehouse"
    VEHICLE = "vehicle"
    SUPPLIER = "supplier"


class AllocationStatus(str, Enum):
    """
    Stock allocation lifecycle.

    reserved -> loaded -> consumed; reserved/loaded -> released.
    consumed and released are terminal.
    """

    RESERVED = "reserved"
    LOADED = "loaded"
    CONSUMED = "consumed"
    RELEASED = "released"


class StockTransferStatus(str, Enum):
    DRAFT = "draft"
    NOT_STARTED = "not_started"
    PENDING = "pending"
    SKIPPED = "skipped"
    COMPLETED = "completed"


# Ordinal ranks; a job that reached COMPLETED may not drop below it.
STOCK_TRANSFER_STATUS_RANK: dict[str, int] = {
    StockTransferStatus.DRAFT.value: 0,
    StockTransferStatus.NOT_STARTED.value: 0,
    StockTransferStatus.PENDING.value: 1,
    StockTransferStatus.SKIPPED.value: 1,
    StockTransferStatus.COMPLETED.value: 2,
}

COMPLETED_RANK = STOCK_TRANSFER_STATUS_RANK[StockTransferStatus.COMPLETED.value]


class ReadinessStatus(str, Enum):
    NOT_READY = "not_ready"
    READY_TO_PACK = "ready_to_pack"
    READY_TO_INSTALL = "ready_to_install"


_LEGACY_PO_STATUS: dict[str, PurchaseOrderStatus] = {
    "draft": PurchaseOrderStatus.DRAFT,
    "sent": PurchaseOrderStatus.SENT,
    "onorder": PurchaseOrderStatus.ON_ORDER,
    "partiallyreceived": PurchaseOrderStatus.IN_TRANSIT,
    "intransit": PurchaseOrderStatus.IN_TRANSIT,
    "received": PurchaseOrderStatus.IN_LOADING_BAY,
    "delivered": PurchaseOrderStatus.IN_LOADING_BAY,
    "deliveredloadingbay": PurchaseOrderStatus.IN_LOADING_BAY,
    "deliveredtodeliverybay": PurchaseOrderStatus.IN_LOADING_BAY,
    "deliveredtoloadingbay": PurchaseOrderStatus.IN_LOADING_BAY,
    "readyforpickup": PurchaseOrderStatus.IN_LOADING_BAY,
    "readytopickup": PurchaseOrderStatus.IN_LOADING_BAY,
    "arrived": PurchaseOrderStatus.IN_LOADING_BAY,
    "atdeliverybay": PurchaseOrderStatus.IN_LOADING_BAY,
    "indeliverybay": PurchaseOrderStatus.IN_LOADING_BAY,
    "loadingbay": PurchaseOrderStatus.IN_LOADING_BAY,
    "inloadingbay": PurchaseOrderStatus.IN_LOADING_BAY,
    "atsupplier": PurchaseOrderStatus.AT_SUPPLIER,
    "instorage": PurchaseOrderStatus.IN_STORAGE,
    "completedinstorage": PurchaseOrderStatus.IN_STORAGE,
    "invehicle": PurchaseOrderStatus.IN_VEHICLE,
    "completedinvehicle": PurchaseOrderStatus.IN_VEHICLE,
    "installed": PurchaseOrderStatus.INSTALLED,
    "cancelled": PurchaseOrderStatus.CANCELLED,
    "canceled": PurchaseOrderStatus.CANCELLED,
}

_SEPARATORS = re.compile(r"[\s_\-]+")


def normalise_legacy_po_status(status: str | None) -> str:
    """
    Map a legacy or free-text purchase order status to its canonical value.

    Missing status means draft.  Unrecognised values are returned unchanged
    so the status mapper can apply its own default.
    """
    if not status:
        return PurchaseOrderStatus.DRAFT.value
    key = _SEPARATORS.sub("", str(status).strip().lower())
    canonical = _LEGACY_PO_STATUS.get(key)
    return canonical.value if canonical is not None else str(status)
