"""Tests for the part status state machine."""

import pytest

from logistics_kernel.domain.part_state_machine import (
    KNOWN_PART_STATUSES,
    PART_STATUS_TRANSITIONS,
    allowed_next_statuses,
    assert_transition,
    validate_batch,
    validate_transition,
)
from logistics_kernel.domain.statuses import PartStatus
from logistics_kernel.exceptions import TransitionError

ALL_PAIRS = [(a, b) for a in sorted(KNOWN_PART_STATUSES) for b in sorted(KNOWN_PART_STATUSES)]


class TestValidateTransition:

    @pytest.mark.parametrize("current,target", ALL_PAIRS)
    def test_every_pair_matches_the_table(self, current, target):
        expected = current == target or target in PART_STATUS_TRANSITIONS[current]
        assert validate_transition(current, target).valid is expected

    def test_installed_is_terminal(self):
        assert allowed_next_statuses("installed") == ()
        result = validate_transition("installed", "in_storage")
        assert result.valid is False
        assert "none (terminal)" in result.error

    def test_cancelled_only_reopens_to_pending(self):
        assert allowed_next_statuses("cancelled") == ("pending",)
        assert validate_transition("cancelled", "on_order").valid is False

    def test_in_vehicle_cannot_be_cancelled(self):
        assert validate_transition("in_vehicle", "cancelled").valid is False

    @pytest.mark.parametrize("current", [None, ""])
    def test_new_record_accepts_any_known_status(self, current):
        assert validate_transition(current, "installed").valid is True

    def test_unknown_target_rejected(self):
        result = validate_transition("pending", "lost_in_post")
        assert result.valid is False
        assert "Unknown part status" in result.error

    @pytest.mark.parametrize("current", [None, "", "lost_in_post"])
    def test_unset_or_identical_current_accepts_unknown_target(self, current):
        assert validate_transition(current, "lost_in_post").valid is True

    def test_unknown_current_rejected(self):
        assert validate_transition("Ordered", "on_order").valid is False

    def test_error_lists_allowed_targets(self):
        result = validate_transition("in_vehicle", "pending")
        assert result.error.endswith("Allowed: in_storage, installed")


class TestAssertTransition:

    def test_raises_typed_error(self):
        with pytest.raises(TransitionError) as exc_info:
            assert_transition("installed", "pending")
        assert exc_info.value.code == "INVALID_TRANSITION"
        assert exc_info.value.current == "installed"
        assert exc_info.value.allowed == ()

    def test_allowed_edge_is_silent(self):
        assert_transition("on_order", "in_transit")


class TestValidateBatch:

    def test_reports_every_failure(self):
        parts = [
            {"id": "p1", "status": PartStatus.ON_ORDER.value},
            {"id": "p2", "status": PartStatus.INSTALLED.value},
        ]
        report = validate_batch(
            {"p1": "in_transit", "p2": "pending", "p3": "on_order"},
            parts,
        )
        assert report.valid is False
        assert report.accepted == {"p1": ("on_order", "in_transit")}
        assert set(report.errors) == {"p2", "p3"}
        assert report.errors["p3"] == "Part not found: p3"

    def test_all_valid(self):
        report = validate_batch({"p1": "pending"}, [{"id": "p1", "status": "cancelled"}])
        assert report.valid is True
