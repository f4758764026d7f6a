"""
LogisticsJobService -- the write path for logistics jobs.

Responsibility:
    Creates and updates Job records so that every write passes the
    regression guard and the version gate, and every logistics job carries
    a logistics job number.

Architecture position:
    Kernel > Services.  Composes RegressionGuard (domain.regression),
    OptimisticLockGate and SequenceService.

Invariants enforced:
    - Create: canonicalised (purpose normalised, defaults filled) and
      numbered ``#<project>-<CODE>[-n]`` or ``#LOG-<CODE>-<short id>``.
    - Update: version check, then rollback writes stripped, then
      canonicalised, then one version-conditional write that bumps
      ``write_version``.  Blocked fields are reported, never raised.
    - A job that becomes logistics on update is numbered if it has no
      logistics job number yet.
    - Backfills only fill missing or placeholder values.

Failure modes:
    - NotFoundError / StaleWriteError from the version gate.
    - SequenceContentionError from numbering.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from logistics_kernel.config import LogisticsConfig
from logistics_kernel.db.base import new_id
from logistics_kernel.domain.regression import (
    BlockedWrite,
    JobLogisticsPatch,
    ensure_logistics_canon,
    guard_job_write,
    should_backfill_field,
)
from logistics_kernel.exceptions import NotFoundError
from logistics_kernel.logging_config import LogContext, get_logger
from logistics_kernel.services.optimistic_lock import OptimisticLockGate
from logistics_kernel.services.sequence_service import SequenceService, is_logistics_job_number
from logistics_kernel.store.base import Entity, EntityStore, Record

logger = get_logger("services.logistics_job")

# Read-only hint consumed by the guard, never persisted.
_TRANSIENT_KEYS = frozenset({"logistics_purpose_raw"})

SHORT_ID_LENGTH = 6


@dataclass(frozen=True)
class JobWriteResult:
    job: Record
    blocked: tuple[BlockedWrite, ...] = ()


def _persistable(patch: JobLogisticsPatch) -> dict[str, Any]:
    return {k: v for k, v in patch.to_mapping().items() if k not in _TRANSIENT_KEYS}


class LogisticsJobService:

    def __init__(
        self,
        store: EntityStore,
        sequences: SequenceService,
        config: LogisticsConfig | None = None,
    ):
        self._store = store
        self._sequences = sequences
        self._config = config or LogisticsConfig()
        self._gate = OptimisticLockGate(store, self._config)

    def create_logistics_job(self, data: Mapping[str, Any], source: str = "user") -> JobWriteResult:
        """Create a logistics job, canonicalised and numbered."""
        patch = JobLogisticsPatch.from_mapping(data).with_value("is_logistics_job", True)
        outcome = ensure_logistics_canon(patch, None)
        record = _persistable(outcome.patch)

        job_id = record.get("id") or new_id()
        record["id"] = job_id
        if not is_logistics_job_number(record.get("job_number")):
            record["job_number"] = self._sequences.next_job_number(
                record.get("project_number"),
                record.get("logistics_purpose"),
                fallback_short_id=job_id.replace("-", "")[:SHORT_ID_LENGTH],
            )
        record["write_version"] = self._config.default_write_version
        record["write_source"] = source

        with LogContext.bind(job_id=job_id, write_source=source):
            job = self._store.create(Entity.JOB, record)
            logger.info(
                "logistics_job_created",
                extra={
                    "job_number": job.get("job_number"),
                    "logistics_purpose": job.get("logistics_purpose"),
                },
            )
        return JobWriteResult(job, outcome.blocked)

    def update_job(
        self,
        job_id: str,
        data: Mapping[str, Any],
        expected_version: int | None = None,
        source: str = "user",
    ) -> JobWriteResult:
        """
        Apply a patch to a job through the regression guard.

        Raises:
            NotFoundError: Unknown job.
            StaleWriteError: ``expected_version`` is out of date.
        """
        with LogContext.bind(job_id=job_id, write_source=source):
            previous = self._gate.assert_version(Entity.JOB, job_id, expected_version)
            if previous is None:
                previous = self._store.get(Entity.JOB, job_id)
                if previous is None:
                    raise NotFoundError("Job", job_id)

            outcome = guard_job_write(previous, JobLogisticsPatch.from_mapping(data))
            record = _persistable(outcome.patch)

            becomes_logistics = record.get("is_logistics_job") is True or previous.get("is_logistics_job") is True
            job_number = record.get("job_number", previous.get("job_number"))
            if becomes_logistics and not is_logistics_job_number(job_number):
                record["job_number"] = self._sequences.next_job_number(
                    record.get("project_number", previous.get("project_number")),
                    record.get("logistics_purpose", previous.get("logistics_purpose")),
                    fallback_short_id=job_id.replace("-", "")[:SHORT_ID_LENGTH],
                )

            job = self._gate.guarded_update(
                Entity.JOB,
                job_id,
                record,
                self._gate.current_version(previous),
                source,
            )
            logger.info(
                "job_updated",
                extra={
                    "fields": sorted(record),
                    "blocked_fields": [b.field for b in outcome.blocked],
                    "write_version": job.get("write_version"),
                },
            )
        return JobWriteResult(job, outcome.blocked)

    def backfill_job(self, job_id: str, values: Mapping[str, Any], source: str = "system:backfill") -> JobWriteResult:
        """
        Fill missing or placeholder fields only.

        Values that would overwrite real data are dropped; the remainder
        still passes the regression guard.
        """
        job = self._store.get(Entity.JOB, job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        fillable = {k: v for k, v in values.items() if should_backfill_field(job, k, v)}
        if not fillable:
            logger.debug("job_backfill_noop", extra={"job_id_ref": job_id})
            return JobWriteResult(job)
        return self.update_job(job_id, fillable, source=source)
