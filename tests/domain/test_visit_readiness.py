"""Tests for pure visit readiness evaluation."""

from decimal import Decimal

from logistics_kernel.domain.readiness import evaluate_visit_readiness, is_blocking_line

VISIT = "visit-1"


def _line(line_id, qty, blocking=True, status="open"):
    return {"id": line_id, "visit_id": VISIT, "qty_required": Decimal(qty), "is_blocking": blocking, "status": status}


def _alloc(line_id, qty, status, visit_id=VISIT):
    return {"requirement_line_id": line_id, "visit_id": visit_id, "qty_allocated": Decimal(qty), "status": status}


class TestEvaluateVisitReadiness:

    def test_no_blocking_lines_is_ready_to_install(self):
        result = evaluate_visit_readiness(VISIT, [], [])
        assert result.status == "ready_to_install"
        assert result.blocking_lines == ()

    def test_non_blocking_and_cancelled_lines_ignored(self):
        lines = [_line("l1", "5", blocking=False), _line("l2", "5", status="cancelled")]
        assert evaluate_visit_readiness(VISIT, lines, []).status == "ready_to_install"

    def test_uncovered_line_is_not_ready(self):
        lines = [_line("l1", "5"), _line("l2", "2")]
        allocations = [_alloc("l1", "5", "reserved"), _alloc("l2", "1", "reserved")]
        result = evaluate_visit_readiness(VISIT, lines, allocations)
        assert result.status == "not_ready"
        assert result.uncovered_line_ids == ("l2",)

    def test_covered_but_not_loaded_is_ready_to_pack(self):
        lines = [_line("l1", "5")]
        allocations = [_alloc("l1", "3", "reserved"), _alloc("l1", "2", "loaded")]
        assert evaluate_visit_readiness(VISIT, lines, allocations).status == "ready_to_pack"

    def test_everything_loaded_is_ready_to_install(self):
        lines = [_line("l1", "5"), _line("l2", "1")]
        allocations = [_alloc("l1", "5", "loaded"), _alloc("l2", "1", "consumed")]
        assert evaluate_visit_readiness(VISIT, lines, allocations).status == "ready_to_install"

    def test_released_allocations_do_not_count(self):
        lines = [_line("l1", "5")]
        allocations = [_alloc("l1", "5", "released")]
        assert evaluate_visit_readiness(VISIT, lines, allocations).status == "not_ready"

    def test_allocations_for_other_visits_ignored(self):
        lines = [_line("l1", "5")]
        allocations = [_alloc("l1", "5", "loaded", visit_id="visit-2")]
        assert evaluate_visit_readiness(VISIT, lines, allocations).status == "not_ready"

    def test_coverage_detail(self):
        lines = [_line("l1", "4")]
        allocations = [_alloc("l1", "3", "reserved"), _alloc("l1", "1", "loaded")]
        coverage = evaluate_visit_readiness(VISIT, lines, allocations).blocking_lines[0]
        assert coverage.allocated == Decimal("4")
        assert coverage.loaded == Decimal("1")
        assert coverage.covered is True
        assert coverage.is_loaded is False


def test_blocking_flag_must_be_true():
    assert is_blocking_line({"is_blocking": "yes"}) is False
    assert is_blocking_line({"is_blocking": True}) is True
