"""
Part status state machine.

Responsibility:
    Declares the allowed part status edges and validates single and batch
    transitions against them.  Validation only: nothing here writes.

Invariants enforced:
    - ``installed`` is terminal (no outgoing edges).
    - ``cancelled -> pending`` is the only way out of ``cancelled``.
    - Unset current status (new record) accepts any known status.
    - Identity transitions are always valid no-ops.

Failure modes:
    - ``assert_transition`` raises TransitionError naming the disallowed edge
      and the allowed set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from logistics_kernel.domain.statuses import PartStatus
from logistics_kernel.exceptions import TransitionError

_S = PartStatus

PART_STATUS_TRANSITIONS: Mapping[str, frozenset[str]] = {
    _S.PENDING.value: frozenset({
        _S.ON_ORDER.value,
        _S.IN_TRANSIT.value,
        _S.IN_LOADING_BAY.value,
        _S.AT_SUPPLIER.value,
        _S.IN_STORAGE.value,
        _S.CANCELLED.value,
    }),
    _S.ON_ORDER.value: frozenset({
        _S.PENDING.value,
        _S.IN_TRANSIT.value,
        _S.IN_LOADING_BAY.value,
        _S.AT_SUPPLIER.value,
        _S.IN_STORAGE.value,
        _S.CANCELLED.value,
    }),
    _S.IN_TRANSIT.value: frozenset({
        _S.PENDING.value,
        _S.IN_LOADING_BAY.value,
        _S.AT_SUPPLIER.value,
        _S.IN_STORAGE.value,
        _S.CANCELLED.value,
    }),
    _S.AT_SUPPLIER.value: frozenset({
        _S.PENDING.value,
        _S.IN_TRANSIT.value,
        _S.IN_LOADING_BAY.value,
        _S.IN_STORAGE.value,
        _S.IN_VEHICLE.value,
        _S.CANCELLED.value,
    }),
    _S.IN_LOADING_BAY.value: frozenset({
        _S.IN_STORAGE.value,
        _S.IN_VEHICLE.value,
        _S.INSTALLED.value,
        _S.CANCELLED.value,
    }),
    _S.IN_STORAGE.value: frozenset({
        _S.IN_LOADING_BAY.value,
        _S.IN_VEHICLE.value,
        _S.INSTALLED.value,
        _S.CANCELLED.value,
    }),
    _S.IN_VEHICLE.value: frozenset({
        _S.IN_STORAGE.value,
        _S.INSTALLED.value,
    }),
    _S.INSTALLED.value: frozenset(),
    _S.CANCELLED.value: frozenset({_S.PENDING.value}),
}

KNOWN_PART_STATUSES: frozenset[str] = frozenset(PART_STATUS_TRANSITIONS)


def allowed_next_statuses(current: str) -> tuple[str, ...]:
    """Sorted allowed targets from ``current`` (empty for terminal/unknown)."""
    return tuple(sorted(PART_STATUS_TRANSITIONS.get(current, frozenset())))


@dataclass(frozen=True)
class TransitionResult:
    valid: bool
    error: str | None = None


def validate_transition(current: str | None, next_status: str) -> TransitionResult:
    """
    Check a single part status change.

    Example:
        >>> validate_transition("installed", "in_storage").valid
        False
    """
    if not current:
        return TransitionResult(True)
    if current == next_status:
        return TransitionResult(True)
    if next_status not in KNOWN_PART_STATUSES:
        return TransitionResult(False, f"Unknown part status: {next_status}")
    if current not in KNOWN_PART_STATUSES:
        return TransitionResult(False, f"Unknown current part status: {current}")
    if next_status in PART_STATUS_TRANSITIONS[current]:
        return TransitionResult(True)
    allowed = ", ".join(allowed_next_statuses(current)) or "none (terminal)"
    return TransitionResult(
        False,
        f"Invalid part status transition: {current} -> {next_status}. Allowed: {allowed}",
    )


def assert_transition(current: str | None, next_status: str) -> None:
    """Raise TransitionError unless ``current -> next_status`` is allowed."""
    result = validate_transition(current, next_status)
    if not result.valid:
        raise TransitionError(
            "part",
            current or "",
            next_status,
            allowed_next_statuses(current or ""),
        )


@dataclass(frozen=True)
class BatchTransitionReport:
    """
    Outcome of validating many part transitions together.

    ``errors`` maps part id to the reason its transition was rejected
    (including parts that could not be found).  ``accepted`` maps part id to
    ``(current, desired)`` for the transitions that passed.
    """

    accepted: Mapping[str, tuple[str | None, str]] = field(default_factory=dict)
    errors: Mapping[str, str] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors


def validate_batch(
    desired: Mapping[str, str],
    parts: Iterable[Mapping[str, Any]],
) -> BatchTransitionReport:
    """
    Validate ``{part_id: desired_status}`` against matching part records.

    Every requested part is checked; the report lists all failures rather
    than stopping at the first.  Nothing is applied.
    """
    by_id = {str(p["id"]): p for p in parts if p.get("id") is not None}
    accepted: dict[str, tuple[str | None, str]] = {}
    errors: dict[str, str] = {}
    for part_id, target in desired.items():
        part = by_id.get(part_id)
        if part is None:
            errors[part_id] = f"Part not found: {part_id}"
            continue
        current = part.get("status")
        result = validate_transition(current, target)
        if result.valid:
            accepted[part_id] = (current, target)
        else:
            errors[part_id] = result.error or "invalid transition"
    return BatchTransitionReport(accepted=accepted, errors=errors)
