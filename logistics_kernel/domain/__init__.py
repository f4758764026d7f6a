"""
Pure domain layer.

Vocabularies, state machines and policy functions with no store access.
Everything here is deterministic and safe to call on every read.
"""

from logistics_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from logistics_kernel.domain.part_state_machine import (
    BatchTransitionReport,
    TransitionResult,
    assert_transition,
    validate_batch,
    validate_transition,
)
from logistics_kernel.domain.purpose import LogisticsPurpose, normalize_purpose
from logistics_kernel.domain.readiness import ReadinessResult, evaluate_visit_readiness
from logistics_kernel.domain.regression import (
    UNSET,
    BlockedWrite,
    GuardOutcome,
    JobLogisticsPatch,
    ensure_logistics_canon,
    guard_job_write,
    strip_rollback_writes,
)
from logistics_kernel.domain.status_mapping import (
    map_po_status_to_part_location,
    map_po_status_to_part_status,
)

__all__ = [
    "BatchTransitionReport",
    "BlockedWrite",
    "Clock",
    "DeterministicClock",
    "GuardOutcome",
    "JobLogisticsPatch",
    "LogisticsPurpose",
    "ReadinessResult",
    "SystemClock",
    "TransitionResult",
    "UNSET",
    "assert_transition",
    "ensure_logistics_canon",
    "evaluate_visit_readiness",
    "guard_job_write",
    "map_po_status_to_part_location",
    "map_po_status_to_part_status",
    "normalize_purpose",
    "strip_rollback_writes",
    "validate_batch",
    "validate_transition",
]
