"""
No-regression guard for logistics job fields.

Responsibility:
    Applies the ratchet rules to every write of a Job's logistics fields and
    strips writes that would roll them back.

Invariants enforced:
    - Once logistics, always logistics: ``is_logistics_job`` moves
      false -> true only.  It is recomputed from every available signal
      (explicit flag, purchase order link, vehicle link, third-party trade
      link, origin/destination address, non-``other`` purpose) so any
      surviving signal keeps the job classified.
    - Purpose never null: ``logistics_purpose`` is normalised and, when
      missing, defaulted from the previous value or the notes.
    - Stock transfer status cannot drop below ``completed`` once reached.
    - A previously set ``project_number`` is never cleared; cached project
      fields are fill-only while the project link is unchanged.

Failure modes:
    None raised.  Offending fields are removed (or reverted) and reported as
    ``BlockedWrite`` entries, and logged at WARNING for audit.  The rest of
    the write proceeds.

Patches are ``JobLogisticsPatch`` values: an explicit field per logistics
attribute with the ``UNSET`` sentinel meaning "not part of this write",
which is distinct from an explicit ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping

from logistics_kernel.domain.purpose import (
    VALID_LOGISTICS_PURPOSES,
    LogisticsPurpose,
    is_meaningful_purpose,
    normalize_purpose,
)
from logistics_kernel.domain.statuses import (
    COMPLETED_RANK,
    STOCK_TRANSFER_STATUS_RANK,
    StockTransferStatus,
)
from logistics_kernel.logging_config import get_logger

logger = get_logger("domain.regression")


class _Unset:
    """Sentinel type for "field not present in this patch"."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class JobLogisticsPatch:
    """
    A write to a Job, with the logistics fields made explicit.

    Fields left as ``UNSET`` are not written.  Non-logistics job fields ride
    along untouched in ``extra``.
    """

    is_logistics_job: Any = UNSET
    logistics_purpose: Any = UNSET
    stock_transfer_status: Any = UNSET
    logistics_outcome: Any = UNSET
    project_id: Any = UNSET
    project_number: Any = UNSET
    project_name: Any = UNSET
    purchase_order_id: Any = UNSET
    vehicle_id: Any = UNSET
    third_party_trade_id: Any = UNSET
    origin_address: Any = UNSET
    destination_address: Any = UNSET
    notes: Any = UNSET
    job_number: Any = UNSET
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.name != "extra")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> JobLogisticsPatch:
        """Split a raw patch dict into explicit fields and ``extra``."""
        names = set(cls.field_names())
        known = {k: v for k, v in data.items() if k in names}
        extra = {k: v for k, v in data.items() if k not in names}
        return cls(**known, extra=extra)

    def is_set(self, name: str) -> bool:
        return getattr(self, name) is not UNSET

    def without(self, name: str) -> JobLogisticsPatch:
        return replace(self, **{name: UNSET})

    def with_value(self, name: str, value: Any) -> JobLogisticsPatch:
        return replace(self, **{name: value})

    def to_mapping(self) -> dict[str, Any]:
        """Only the fields present in the patch, plus ``extra``."""
        data = dict(self.extra)
        for name in self.field_names():
            value = getattr(self, name)
            if value is not UNSET:
                data[name] = value
        return data


@dataclass(frozen=True)
class BlockedWrite:
    """One field write that the guard refused or reverted."""

    field: str
    previous: Any
    attempted: Any
    reason: str

    def describe(self) -> str:
        return f"{self.field}: {self.previous} -> {self.attempted}"


@dataclass(frozen=True)
class GuardOutcome:
    """Cleaned patch plus the writes that were blocked on the way."""

    patch: JobLogisticsPatch
    blocked: tuple[BlockedWrite, ...] = ()

    @property
    def was_blocked(self) -> bool:
        return bool(self.blocked)


def indicates_logistics(job: Mapping[str, Any] | None) -> bool:
    """True when any signal marks ``job`` as a logistics job."""
    if not job:
        return False
    if job.get("is_logistics_job") is True:
        return True
    for signal in ("purchase_order_id", "vehicle_id", "third_party_trade_id"):
        if job.get(signal):
            return True
    if job.get("origin_address") or job.get("destination_address"):
        return True
    purpose = job.get("logistics_purpose")
    if is_meaningful_purpose(purpose) and normalize_purpose(purpose) != LogisticsPurpose.OTHER.value:
        return True
    return False


def _transfer_rank(status: Any) -> int:
    return STOCK_TRANSFER_STATUS_RANK.get(status, -1) if isinstance(status, str) else -1


def _log_blocked(job_id: Any, blocked: list[BlockedWrite], stage: str) -> None:
    if not blocked:
        return
    logger.warning(
        "regression_write_blocked",
        extra={
            "job_id_ref": job_id or "unknown",
            "stage": stage,
            "blocked": [b.describe() for b in blocked],
        },
    )


def ensure_logistics_canon(
    patch: JobLogisticsPatch,
    previous: Mapping[str, Any] | None = None,
) -> GuardOutcome:
    """
    Apply normalisation, defaults and ratchets to a job write.

    ``previous`` is the stored job (``None`` when creating).
    """
    previous = previous or {}
    merged = {**previous, **patch.to_mapping()}
    blocked: list[BlockedWrite] = []
    result = patch

    was_logistics = previous.get("is_logistics_job") is True
    if was_logistics or indicates_logistics(merged):
        if patch.is_logistics_job is False:
            blocked.append(BlockedWrite(
                "is_logistics_job", previous.get("is_logistics_job"), False,
                "logistics signals present",
            ))
        if merged.get("is_logistics_job") is not True:
            result = result.with_value("is_logistics_job", True)

        result = _canonical_purpose(result, previous)

        if not merged.get("logistics_outcome"):
            result = result.with_value("logistics_outcome", "none")
        if not merged.get("stock_transfer_status"):
            result = result.with_value("stock_transfer_status", StockTransferStatus.DRAFT.value)

    # Cached project fields are fill-only while the project is unchanged
    same_project = previous.get("project_id") and (
        not patch.is_set("project_id") or patch.project_id == previous.get("project_id")
    )
    if same_project:
        for cached in ("project_number", "project_name"):
            if patch.is_set(cached) and not getattr(patch, cached) and previous.get(cached):
                blocked.append(BlockedWrite(
                    cached, previous.get(cached), getattr(patch, cached),
                    "cached project field is fill-only",
                ))
                result = result.with_value(cached, previous.get(cached))

    # Stock transfer status cannot leave completed
    if result.is_set("stock_transfer_status") and previous.get("stock_transfer_status"):
        prev_status = previous["stock_transfer_status"]
        new_status = result.stock_transfer_status
        if _transfer_rank(prev_status) >= COMPLETED_RANK and _transfer_rank(new_status) < COMPLETED_RANK:
            blocked.append(BlockedWrite(
                "stock_transfer_status", prev_status, new_status,
                "cannot downgrade from completed",
            ))
            result = result.with_value("stock_transfer_status", prev_status)

    _log_blocked(previous.get("id"), blocked, "canon")
    return GuardOutcome(result, tuple(blocked))


def _canonical_purpose(patch: JobLogisticsPatch, previous: Mapping[str, Any]) -> JobLogisticsPatch:
    incoming = patch.logistics_purpose
    if patch.is_set("logistics_purpose") and is_meaningful_purpose(incoming):
        return patch.with_value("logistics_purpose", normalize_purpose(incoming))

    stored = previous.get("logistics_purpose")
    if not patch.is_set("logistics_purpose") and stored in VALID_LOGISTICS_PURPOSES:
        return patch

    candidates = (
        stored,
        patch.extra.get("logistics_purpose_raw"),
        patch.notes if patch.is_set("notes") else None,
        previous.get("notes"),
    )
    source = next((c for c in candidates if is_meaningful_purpose(c)), None)
    return patch.with_value("logistics_purpose", normalize_purpose(source))


def strip_rollback_writes(
    previous: Mapping[str, Any] | None,
    patch: JobLogisticsPatch,
) -> GuardOutcome:
    """
    Remove writes that would roll back a ratcheted field.

    Blocks: is_logistics_job true -> false; a valid logistics_purpose ->
    null/placeholder; a set project_number -> empty; stock_transfer_status
    completed -> anything else.
    """
    if not previous:
        return GuardOutcome(patch)

    cleaned = patch
    blocked: list[BlockedWrite] = []

    if previous.get("is_logistics_job") is True and patch.is_logistics_job is False:
        cleaned = cleaned.without("is_logistics_job")
        blocked.append(BlockedWrite("is_logistics_job", True, False, "once logistics, always logistics"))

    prev_purpose = previous.get("logistics_purpose")
    if (
        prev_purpose in VALID_LOGISTICS_PURPOSES
        and patch.is_set("logistics_purpose")
        and not is_meaningful_purpose(patch.logistics_purpose)
    ):
        cleaned = cleaned.without("logistics_purpose")
        blocked.append(BlockedWrite(
            "logistics_purpose", prev_purpose, patch.logistics_purpose, "purpose never null",
        ))

    if previous.get("project_number") and patch.is_set("project_number") and not patch.project_number:
        cleaned = cleaned.without("project_number")
        blocked.append(BlockedWrite(
            "project_number", previous["project_number"], patch.project_number,
            "project number cannot be cleared",
        ))

    if previous.get("stock_transfer_status") == StockTransferStatus.COMPLETED.value:
        new_status = patch.stock_transfer_status
        if patch.is_set("stock_transfer_status") and new_status and new_status != StockTransferStatus.COMPLETED.value:
            cleaned = cleaned.without("stock_transfer_status")
            blocked.append(BlockedWrite(
                "stock_transfer_status", StockTransferStatus.COMPLETED.value, new_status,
                "cannot downgrade from completed",
            ))

    _log_blocked(previous.get("id"), blocked, "strip")
    return GuardOutcome(cleaned, tuple(blocked))


def guard_job_write(
    previous: Mapping[str, Any] | None,
    patch: JobLogisticsPatch,
) -> GuardOutcome:
    """Strip rollback writes, then canonicalise what is left."""
    stripped = strip_rollback_writes(previous, patch)
    canon = ensure_logistics_canon(stripped.patch, previous)
    return GuardOutcome(canon.patch, stripped.blocked + canon.blocked)


LEGACY_PLACEHOLDERS: frozenset[str] = frozenset({"unknown", "null", "", "N/A"})


def should_backfill_field(current: Mapping[str, Any], field_name: str, new_value: Any) -> bool:
    """
    Backfills repair only: fill a field when it is missing or a legacy
    placeholder, never overwrite a real value.
    """
    if not new_value:
        return False
    existing = current.get(field_name)
    if existing is None:
        return True
    if isinstance(existing, str) and existing in LEGACY_PLACEHOLDERS:
        return True
    return False
