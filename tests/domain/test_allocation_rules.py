"""Tests for the stock allocation lifecycle rules."""

import pytest

from logistics_kernel.domain.allocation_rules import (
    allocation_update_violation,
    is_allocation_locked,
    is_allocation_transition_allowed,
)


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        ("reserved", "loaded", True),
        ("reserved", "released", True),
        ("reserved", "consumed", False),
        ("loaded", "consumed", True),
        ("loaded", "released", True),
        ("loaded", "reserved", False),
        ("consumed", "released", False),
        ("released", "reserved", False),
    ],
)
def test_transition_table(current, new, allowed):
    assert is_allocation_transition_allowed(current, new) is allowed


def test_terminal_allocations_are_locked():
    assert is_allocation_locked({"status": "consumed"}) is True
    assert is_allocation_locked({"status": "released"}) is True
    assert is_allocation_locked({"status": "loaded"}) is False
    assert is_allocation_locked(None) is False


class TestAllocationUpdateViolation:

    def test_allowed_update(self):
        assert allocation_update_violation({"status": "reserved"}, {"status": "loaded"}) is None

    def test_same_status_is_not_a_transition(self):
        assert allocation_update_violation({"status": "loaded"}, {"status": "loaded", "notes": "x"}) is None

    def test_bad_transition(self):
        reason = allocation_update_violation({"status": "reserved"}, {"status": "consumed"})
        assert reason == "Invalid status transition: reserved -> consumed. Allowed: loaded, released"

    def test_locked_allows_bookkeeping_only(self):
        allocation = {"status": "consumed"}
        assert allocation_update_violation(allocation, {"notes": "checked", "updated_by": "u1"}) is None
        reason = allocation_update_violation(allocation, {"qty_allocated": 3, "notes": "x"})
        assert reason == "Allocation is locked (consumed). Cannot update: qty_allocated"
