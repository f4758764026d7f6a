"""Tests for store-backed visit readiness."""

from decimal import Decimal

import pytest

from logistics_kernel.exceptions import NotFoundError
from logistics_kernel.store import Entity


@pytest.fixture
def blocking_line(store, project_id, visit):
    return store.create(Entity.PROJECT_REQUIREMENT_LINE, {
        "project_id": project_id,
        "visit_id": visit["id"],
        "qty_required": Decimal("4"),
        "is_blocking": True,
        "status": "open",
    })


def test_visit_without_requirements_is_ready(readiness, visit, store):
    result = readiness.recompute(visit["id"])
    assert result.status == "ready_to_install"
    assert store.get(Entity.VISIT, visit["id"])["readiness_status"] == "ready_to_install"


def test_status_follows_allocations(readiness, visit, blocking_line, make_allocation, allocations, store):
    assert readiness.recompute(visit["id"]).status == "not_ready"

    allocation = make_allocation(qty=4, status="reserved", requirement_line_id=blocking_line["id"])
    assert readiness.recompute(visit["id"]).status == "ready_to_pack"

    allocations.update_allocation(allocation["id"], {"status": "loaded"})
    assert readiness.recompute(visit["id"]).status == "ready_to_install"
    assert store.get(Entity.VISIT, visit["id"])["readiness_status"] == "ready_to_install"


def test_unchanged_status_not_rewritten(readiness, visit, blocking_line, captured_logs):
    readiness.recompute(visit["id"])
    readiness.recompute(visit["id"])
    changes = [r for r in captured_logs() if r["message"] == "visit_readiness_changed"]
    assert len(changes) == 1
    assert changes[0]["uncovered_lines"] == [blocking_line["id"]]


def test_unknown_visit(readiness):
    with pytest.raises(NotFoundError):
        readiness.recompute("missing")
