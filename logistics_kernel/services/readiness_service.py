"""
Store-backed visit readiness.

Loads a visit's requirement lines and allocations, runs the pure evaluator
and persists ``readiness_status`` only when it changed.
"""

from __future__ import annotations

from logistics_kernel.domain.readiness import ReadinessResult, evaluate_visit_readiness
from logistics_kernel.exceptions import NotFoundError
from logistics_kernel.logging_config import get_logger
from logistics_kernel.store.base import Entity, EntityStore

logger = get_logger("services.readiness")


class VisitReadinessService:

    def __init__(self, store: EntityStore):
        self._store = store

    def evaluate(self, visit_id: str) -> ReadinessResult:
        lines = self._store.filter(Entity.PROJECT_REQUIREMENT_LINE, {"visit_id": visit_id})
        allocations = self._store.filter(Entity.STOCK_ALLOCATION, {"visit_id": visit_id})
        return evaluate_visit_readiness(visit_id, lines, allocations)

    def recompute(self, visit_id: str) -> ReadinessResult:
        """
        Re-derive and store the visit's readiness.

        Raises:
            NotFoundError: Unknown visit.
        """
        visit = self._store.get(Entity.VISIT, visit_id)
        if visit is None:
            raise NotFoundError("Visit", visit_id)

        result = self.evaluate(visit_id)
        if visit.get("readiness_status") != result.status:
            self._store.update(Entity.VISIT, visit_id, {"readiness_status": result.status})
            logger.info(
                "visit_readiness_changed",
                extra={
                    "visit_id": visit_id,
                    "previous_status": visit.get("readiness_status"),
                    "status": result.status,
                    "uncovered_lines": list(result.uncovered_line_ids),
                },
            )
        return result
