"""
Logistics Kernel - Inventory & Logistics Consistency Layer

Keeps purchase orders, parts, stock quantities and the movement ledger
consistent on top of a store that offers only per-record reads and writes:
- Monotonic logistics job numbering
- Idempotent stock movement ledger
- Allocation/consumption reconciliation
- No-regression guardrails for logistics job fields
- Optimistic write-version checks
"""

__version__ = "0.1.0"
