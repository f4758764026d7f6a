"""ORM models backing the SQL entity store."""

from logistics_kernel.models.allocation import (
    ProjectRequirementLine,
    StockAllocation,
    StockConsumption,
    Visit,
)
from logistics_kernel.models.inventory import (
    InventoryLocation,
    InventoryQuantity,
    PriceListItem,
    StockMovement,
    VehicleStock,
)
from logistics_kernel.models.job import Job, LogisticsJobCounter
from logistics_kernel.models.purchasing import Part, PurchaseOrder, PurchaseOrderLine

__all__ = [
    "InventoryLocation",
    "InventoryQuantity",
    "Job",
    "LogisticsJobCounter",
    "Part",
    "PriceListItem",
    "ProjectRequirementLine",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "StockAllocation",
    "StockConsumption",
    "StockMovement",
    "VehicleStock",
    "Visit",
]
