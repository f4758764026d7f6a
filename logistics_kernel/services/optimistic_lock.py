"""
OptimisticLockGate -- write_version checks for records edited by people.

Responsibility:
    Detects stale writes on versioned records (jobs, purchase orders,
    parts).  Callers send back the ``write_version`` they read; a mismatch
    means someone else saved in between.

Invariants enforced:
    - A missing expected version skips the check, for callers that predate
      versioning.
    - A stored record without ``write_version`` is at the default version.
    - The gate never bumps versions on its own.  ``next_version_payload``
      is merged by the caller, or ``guarded_update`` does check and bump as
      one conditional update.

Failure modes:
    - NotFoundError: record does not exist.
    - StaleWriteError (code STALE_WRITE): versions differ.  Intended for the
      end user as "someone else changed this, please refresh".
"""

from __future__ import annotations

from typing import Any, Mapping

from logistics_kernel.config import LogisticsConfig
from logistics_kernel.exceptions import NotFoundError, StaleWriteError
from logistics_kernel.logging_config import get_logger
from logistics_kernel.store.base import EntityStore, Record, entity_name

logger = get_logger("services.optimistic_lock")


class OptimisticLockGate:

    def __init__(self, store: EntityStore, config: LogisticsConfig | None = None):
        self._store = store
        self._config = config or LogisticsConfig()

    def current_version(self, record: Mapping[str, Any]) -> int:
        version = record.get("write_version")
        return int(version) if version is not None else self._config.default_write_version

    def assert_version(
        self,
        entity: str,
        entity_id: str,
        expected_version: int | None,
    ) -> Record | None:
        """
        Fail unless the stored version equals ``expected_version``.

        Returns the record that was checked (None when the check was
        skipped).

        Raises:
            NotFoundError: No such record.
            StaleWriteError: The record moved on.
        """
        if expected_version is None:
            return None
        record = self._store.get(entity, entity_id)
        if record is None:
            raise NotFoundError(entity_name(entity), entity_id)
        current = self.current_version(record)
        if current != int(expected_version):
            self._reject(entity, entity_id, int(expected_version), current)
        return record

    def next_version_payload(self, record: Mapping[str, Any], source: str) -> dict[str, Any]:
        return {
            "write_version": self.current_version(record) + 1,
            "write_source": source,
        }

    def guarded_update(
        self,
        entity: str,
        entity_id: str,
        patch: Mapping[str, Any],
        expected_version: int | None,
        source: str,
    ) -> Record:
        """
        Version-checked update with the bump folded in.

        The write is conditional on the version read, so a writer that
        slips in between the check and the write is caught too.

        Raises:
            NotFoundError: No such record.
            StaleWriteError: The record moved on.
        """
        record = self._store.get(entity, entity_id)
        if record is None:
            raise NotFoundError(entity_name(entity), entity_id)
        current = self.current_version(record)
        if expected_version is not None and current != int(expected_version):
            self._reject(entity, entity_id, int(expected_version), current)

        full_patch = {**patch, **self.next_version_payload(record, source)}
        expected = {"write_version": record.get("write_version")}
        if not self._store.update_if(entity, entity_id, expected, full_patch):
            latest = self._store.get(entity, entity_id) or {}
            self._reject(entity, entity_id, current, self.current_version(latest))

        updated = self._store.get(entity, entity_id)
        logger.debug(
            "versioned_write_applied",
            extra={
                "entity": entity_name(entity),
                "entity_id": entity_id,
                "write_version": full_patch["write_version"],
                "write_source": source,
            },
        )
        return updated

    def _reject(self, entity: str, entity_id: str, expected: int, current: int) -> None:
        logger.warning(
            "stale_write_rejected",
            extra={
                "entity": entity_name(entity),
                "entity_id": entity_id,
                "expected_version": expected,
                "current_version": current,
            },
        )
        raise StaleWriteError(entity_name(entity), entity_id, expected, current)
