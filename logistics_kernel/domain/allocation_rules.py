"""
Stock allocation lifecycle rules.

Allowed edges: reserved -> loaded | released, loaded -> consumed | released.
consumed and released are terminal.  A terminal allocation is locked: only
bookkeeping fields may still be written.
"""

from typing import Any, Mapping

from logistics_kernel.domain.statuses import AllocationStatus

ALLOCATION_TRANSITIONS: Mapping[str, frozenset[str]] = {
    AllocationStatus.RESERVED.value: frozenset({
        AllocationStatus.LOADED.value,
        AllocationStatus.RELEASED.value,
    }),
    AllocationStatus.LOADED.value: frozenset({
        AllocationStatus.CONSUMED.value,
        AllocationStatus.RELEASED.value,
    }),
    AllocationStatus.CONSUMED.value: frozenset(),
    AllocationStatus.RELEASED.value: frozenset(),
}

TERMINAL_ALLOCATION_STATUSES: frozenset[str] = frozenset({
    AllocationStatus.CONSUMED.value,
    AllocationStatus.RELEASED.value,
})

LOCKED_ALLOCATION_WRITABLE_FIELDS: frozenset[str] = frozenset({
    "notes",
    "updated_by",
    "updated_at",
})


def is_allocation_transition_allowed(current: str, new: str) -> bool:
    return new in ALLOCATION_TRANSITIONS.get(current, frozenset())


def is_allocation_locked(allocation: Mapping[str, Any] | None) -> bool:
    if not allocation:
        return False
    return allocation.get("status") in TERMINAL_ALLOCATION_STATUSES


def allocation_update_violation(
    allocation: Mapping[str, Any],
    updates: Mapping[str, Any],
) -> str | None:
    """
    Check an allocation update against the lifecycle rules.

    Returns:
        None if the update is allowed, otherwise the reason it is not.
    """
    current = allocation.get("status")
    new = updates.get("status")
    if new and new != current:
        if not is_allocation_transition_allowed(current, new):
            allowed = ", ".join(sorted(ALLOCATION_TRANSITIONS.get(current, ()))) or "none (terminal)"
            return f"Invalid status transition: {current} -> {new}. Allowed: {allowed}"

    if is_allocation_locked(allocation):
        disallowed = sorted(k for k in updates if k not in LOCKED_ALLOCATION_WRITABLE_FIELDS)
        if disallowed:
            return f"Allocation is locked ({current}). Cannot update: {', '.join(disallowed)}"

    return None
