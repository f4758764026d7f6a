"""
SequenceService -- per-key monotonic counters for logistics job numbers.

Responsibility:
    Hands out 1, 2, 3, ... per counter key (``"{project}:{purpose_code}"``
    or ``"global:{purpose_code}"``) and formats logistics job numbers from
    them.

Architecture position:
    Kernel > Services.  Called by LogisticsJobService when a logistics job
    is created without a job number.

Invariants enforced:
    - Monotonicity per key: the increment is a conditional update on the
      observed ``next_seq`` (compare-and-swap), retried a bounded number of
      times.  Two callers can never both write back the same value.
    - One live counter row per key: the store cannot enforce uniqueness, so
      creation is create-then-verify.  When a concurrent creator left two
      rows, the earliest (``created_at``, then ``id``) is canonical and the
      other is marked ``duplicate_of_id`` and ignored from then on.

Failure modes:
    - SequenceContentionError after ``counter_max_attempts`` lost races.
    - Store errors propagate; nothing is retried except a lost
      compare-and-swap.

Residual gap:
    Increments on an existing row are safe.  The first allocation for a
    brand-new key is not fully closed: if one creator verifies before a
    second creator's row becomes visible, and the second row sorts earlier,
    both creators can hand out 1.  Closing this needs a store-level unique
    constraint on ``key``, which the store does not offer.

Audit relevance:
    Every allocation is logged at DEBUG with key and value; lost races and
    collapsed duplicate rows at INFO.
"""

from __future__ import annotations

import re
from typing import Any

from logistics_kernel.config import LogisticsConfig
from logistics_kernel.domain.purpose import purpose_short_code
from logistics_kernel.exceptions import SequenceContentionError
from logistics_kernel.logging_config import get_logger
from logistics_kernel.store.base import Entity, EntityStore, Record

logger = get_logger("services.sequence")

GLOBAL_COUNTER_SCOPE = "global"

# #5001-PO-PU, #5001-PO-PU-2, #5001-DROP, #LOG-PO-PU-ab12cd
LOGISTICS_JOB_NUMBER_PATTERN = re.compile(
    r"^#(\d+|LOG)-[A-Z]+(-[A-Z]+)?(-[A-Za-z0-9]+)?$"
)


def build_counter_key(project_number_or_id: Any, purpose_code: str) -> str:
    """
    Counter key for a project and purpose code.

    Example:
        >>> build_counter_key("5001", "PO-PU")
        '5001:PO-PU'
        >>> build_counter_key(None, "DROP")
        'global:DROP'
    """
    scope = str(project_number_or_id).strip() if project_number_or_id else ""
    return f"{scope or GLOBAL_COUNTER_SCOPE}:{purpose_code}"


def build_logistics_job_number(
    project_number: Any,
    purpose_code: str,
    sequence: int = 1,
    fallback_short_id: str | None = None,
) -> str:
    """
    Format a logistics job number.

    The first job for a project and purpose gets the bare form; later ones
    get a ``-n`` suffix.  Jobs without a project use ``#LOG-`` and a short
    id instead of a sequence.
    """
    if not project_number:
        return f"#LOG-{purpose_code}-{fallback_short_id or 'X'}"
    if sequence == 1:
        return f"#{project_number}-{purpose_code}"
    return f"#{project_number}-{purpose_code}-{sequence}"


def is_logistics_job_number(value: Any) -> bool:
    if not value:
        return False
    return LOGISTICS_JOB_NUMBER_PATTERN.match(str(value)) is not None


def _canonical_order(record: Record) -> tuple:
    return (record.get("created_at"), record.get("id"))


class SequenceService:
    """
    Counter allocation over an EntityStore.

    Usage:
        seq = SequenceService(store, config)
        seq.next("5001:PO-PU")   # 1
        seq.next("5001:PO-PU")   # 2
    """

    def __init__(self, store: EntityStore, config: LogisticsConfig | None = None):
        self._store = store
        self._config = config or LogisticsConfig()

    def next(self, counter_key: str) -> int:
        """
        Allocate the next value for ``counter_key``.

        Postconditions:
            Returns an integer >= 1.  Once the counter row exists, no other
            call for the same key returns the same value.

        Raises:
            SequenceContentionError: Every conditional update lost.
        """
        attempts = self._config.counter_max_attempts
        for attempt in range(1, attempts + 1):
            counter = self._canonical_counter(counter_key)
            if counter is None:
                value = self._create_counter(counter_key)
                if value is not None:
                    return value
                continue

            observed = int(counter["next_seq"])
            won = self._store.update_if(
                Entity.LOGISTICS_JOB_COUNTER,
                counter["id"],
                {"next_seq": observed, "duplicate_of_id": None},
                {"next_seq": observed + 1},
            )
            if won:
                logger.debug(
                    "sequence_allocated",
                    extra={"counter_key": counter_key, "value": observed},
                )
                return observed

            logger.info(
                "sequence_race_retry",
                extra={"counter_key": counter_key, "attempt": attempt},
            )

        logger.error(
            "sequence_contention_exhausted",
            extra={"counter_key": counter_key, "attempts": attempts},
        )
        raise SequenceContentionError(counter_key, attempts)

    def current(self, counter_key: str) -> int | None:
        """Next value that would be handed out, without allocating it."""
        counter = self._canonical_counter(counter_key)
        return int(counter["next_seq"]) if counter is not None else None

    def next_job_number(
        self,
        project_number: Any,
        purpose: Any,
        fallback_short_id: str | None = None,
    ) -> str:
        """
        Allocate and format the next logistics job number.

        Jobs without a project do not consume a counter value.
        """
        code = purpose_short_code(purpose)
        if not project_number:
            return build_logistics_job_number(None, code, fallback_short_id=fallback_short_id)
        sequence = self.next(build_counter_key(project_number, code))
        return build_logistics_job_number(project_number, code, sequence)

    def _live_counters(self, counter_key: str) -> list[Record]:
        rows = self._store.filter(Entity.LOGISTICS_JOB_COUNTER, {"key": counter_key})
        return sorted(
            (r for r in rows if not r.get("duplicate_of_id")),
            key=_canonical_order,
        )

    def _canonical_counter(self, counter_key: str) -> Record | None:
        rows = self._live_counters(counter_key)
        return rows[0] if rows else None

    def _create_counter(self, counter_key: str) -> int | None:
        """
        Create the counter row, handing out 1.

        Returns None when a concurrent creator won; the caller then
        allocates from the canonical row instead.
        """
        mine = self._store.create(
            Entity.LOGISTICS_JOB_COUNTER,
            {"key": counter_key, "next_seq": 2, "duplicate_of_id": None},
        )
        canonical = self._canonical_counter(counter_key)
        if canonical is None or canonical["id"] == mine["id"]:
            logger.debug(
                "sequence_allocated",
                extra={"counter_key": counter_key, "value": 1},
            )
            return 1

        self._store.update(
            Entity.LOGISTICS_JOB_COUNTER,
            mine["id"],
            {"duplicate_of_id": canonical["id"]},
        )
        logger.info(
            "sequence_counter_duplicate_collapsed",
            extra={
                "counter_key": counter_key,
                "duplicate_id": mine["id"],
                "canonical_id": canonical["id"],
            },
        )
        return None

