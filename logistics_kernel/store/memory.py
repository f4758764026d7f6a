"""
In-process EntityStore.

Used by the test suite and by callers embedding the layer without a
database.  A single lock makes each operation atomic for its record, which
is exactly the guarantee the external store gives and no more: sequences of
calls still interleave freely between threads.
"""

from __future__ import annotations

import copy
import threading
from typing import Any, Mapping

from logistics_kernel.db.base import new_id
from logistics_kernel.domain.clock import Clock, SystemClock
from logistics_kernel.exceptions import NotFoundError
from logistics_kernel.store.base import Entity, EntityStore, Record, entity_name, matches


class InMemoryEntityStore(EntityStore):

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._tables: dict[str, dict[str, Record]] = {}
        self._lock = threading.Lock()

    def _table(self, entity: Entity | str) -> dict[str, Record]:
        return self._tables.setdefault(entity_name(entity), {})

    def get(self, entity: Entity | str, record_id: str) -> Record | None:
        with self._lock:
            record = self._table(entity).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def filter(self, entity: Entity | str, criteria: Mapping[str, Any] | None = None) -> list[Record]:
        criteria = criteria or {}
        with self._lock:
            return [
                copy.deepcopy(r)
                for r in self._table(entity).values()
                if matches(r, criteria)
            ]

    def create(self, entity: Entity | str, record: Mapping[str, Any]) -> Record:
        stored = copy.deepcopy(dict(record))
        stored.setdefault("id", new_id())
        now = self._clock.now()
        stored.setdefault("created_at", now)
        stored.setdefault("updated_at", now)
        with self._lock:
            table = self._table(entity)
            if stored["id"] in table:
                raise ValueError(f"Duplicate id for {entity_name(entity)}: {stored['id']}")
            table[stored["id"]] = stored
            return copy.deepcopy(stored)

    def update(self, entity: Entity | str, record_id: str, patch: Mapping[str, Any]) -> None:
        with self._lock:
            record = self._table(entity).get(record_id)
            if record is None:
                raise NotFoundError(entity_name(entity), record_id)
            self._apply(record, patch)

    def update_if(
        self,
        entity: Entity | str,
        record_id: str,
        expected: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> bool:
        with self._lock:
            record = self._table(entity).get(record_id)
            if record is None:
                raise NotFoundError(entity_name(entity), record_id)
            if not matches(record, expected):
                return False
            self._apply(record, patch)
            return True

    def _apply(self, record: Record, patch: Mapping[str, Any]) -> None:
        record_id = record["id"]
        record.update(copy.deepcopy(dict(patch)))
        record["id"] = record_id
        record["updated_at"] = self._clock.now()

    def count(self, entity: Entity | str) -> int:
        """Number of stored records, including superseded duplicates."""
        with self._lock:
            return len(self._table(entity))
