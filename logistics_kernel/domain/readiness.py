"""
Visit readiness evaluation.

Pure aggregation over a visit's blocking requirement lines and the stock
allocations made against them.  No I/O, safe to recompute on every read.

Rules:
    - Only lines with ``is_blocking`` true and status other than cancelled
      count.
    - "allocated" sums allocations for the line and visit in reserved,
      loaded or consumed status; "loaded" sums those in loaded or consumed.
    - No blocking lines, or every line loaded -> ready_to_install.
    - Every line covered by allocations, not all loaded -> ready_to_pack.
    - Otherwise -> not_ready.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping

from logistics_kernel.domain.statuses import AllocationStatus, ReadinessStatus
from logistics_kernel.utils.quantity import to_decimal

ALLOCATED_STATUSES: frozenset[str] = frozenset({
    AllocationStatus.RESERVED.value,
    AllocationStatus.LOADED.value,
    AllocationStatus.CONSUMED.value,
})

LOADED_STATUSES: frozenset[str] = frozenset({
    AllocationStatus.LOADED.value,
    AllocationStatus.CONSUMED.value,
})

_CANCELLED = "cancelled"


@dataclass(frozen=True)
class LineCoverage:
    """Allocation coverage of one blocking requirement line."""

    requirement_line_id: str
    required: Decimal
    allocated: Decimal
    loaded: Decimal

    @property
    def covered(self) -> bool:
        return self.allocated >= self.required

    @property
    def is_loaded(self) -> bool:
        return self.loaded >= self.required


@dataclass(frozen=True)
class ReadinessResult:
    visit_id: str
    status: str
    blocking_lines: tuple[LineCoverage, ...] = ()

    @property
    def uncovered_line_ids(self) -> tuple[str, ...]:
        return tuple(c.requirement_line_id for c in self.blocking_lines if not c.covered)


def is_blocking_line(line: Mapping[str, Any]) -> bool:
    return line.get("is_blocking") is True and line.get("status") != _CANCELLED


def evaluate_visit_readiness(
    visit_id: str,
    requirement_lines: Iterable[Mapping[str, Any]],
    allocations: Iterable[Mapping[str, Any]],
) -> ReadinessResult:
    """Derive the three-state readiness of ``visit_id``."""
    blocking = [line for line in requirement_lines if is_blocking_line(line)]
    if not blocking:
        return ReadinessResult(visit_id, ReadinessStatus.READY_TO_INSTALL.value)

    allocated: dict[str, Decimal] = {}
    loaded: dict[str, Decimal] = {}
    for allocation in allocations:
        if allocation.get("visit_id") != visit_id:
            continue
        line_id = allocation.get("requirement_line_id")
        status = allocation.get("status")
        qty = to_decimal(allocation.get("qty_allocated"))
        if status in ALLOCATED_STATUSES:
            allocated[line_id] = allocated.get(line_id, Decimal("0")) + qty
        if status in LOADED_STATUSES:
            loaded[line_id] = loaded.get(line_id, Decimal("0")) + qty

    coverage = tuple(
        LineCoverage(
            requirement_line_id=line["id"],
            required=to_decimal(line.get("qty_required")),
            allocated=allocated.get(line["id"], Decimal("0")),
            loaded=loaded.get(line["id"], Decimal("0")),
        )
        for line in blocking
    )

    if all(c.is_loaded for c in coverage):
        status = ReadinessStatus.READY_TO_INSTALL
    elif all(c.covered for c in coverage):
        status = ReadinessStatus.READY_TO_PACK
    else:
        status = ReadinessStatus.NOT_READY
    return ReadinessResult(visit_id, status.value, coverage)
