"""Services for the logistics kernel (store-backed write side)."""

from logistics_kernel.services.allocation_service import (
    AllocationService,
    ConsumptionCheck,
    ConsumptionResult,
)
from logistics_kernel.services.inventory_sync_service import (
    InventorySyncService,
    MovementOutcome,
    StockDivergence,
)
from logistics_kernel.services.logistics_job_service import JobWriteResult, LogisticsJobService
from logistics_kernel.services.optimistic_lock import OptimisticLockGate
from logistics_kernel.services.part_sync_service import PartSyncReport, PartSyncService
from logistics_kernel.services.readiness_service import VisitReadinessService
from logistics_kernel.services.sequence_service import SequenceService
from logistics_kernel.services.stock_ledger_service import LedgerWriteResult, StockLedgerService

__all__ = [
    "AllocationService",
    "ConsumptionCheck",
    "ConsumptionResult",
    "InventorySyncService",
    "JobWriteResult",
    "LedgerWriteResult",
    "LogisticsJobService",
    "MovementOutcome",
    "OptimisticLockGate",
    "PartSyncReport",
    "PartSyncService",
    "SequenceService",
    "StockDivergence",
    "StockLedgerService",
    "VisitReadinessService",
]
