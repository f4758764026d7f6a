"""
StockLedgerService -- append-only stock movement ledger with idempotency.

Responsibility:
    Validates, fingerprints, enriches and records StockMovement rows so that
    a retried or duplicated movement collapses onto the row its first
    attempt created.

Architecture position:
    Kernel > Services.  Called by InventorySyncService (transfers, receipts,
    adjustments) and AllocationService (consumption movements).

Invariants enforced:
    - At most one live row per idempotency_key.  Lookup happens before
      insert; after insert the key is re-read and, if a concurrent writer
      also inserted, the earliest row (``created_at``, then ``id``) stays
      canonical and the later one is marked ``duplicate_of_id``.
    - Voided rows (quantity legs rolled back) are not live: they never
      answer a key lookup and never block a retry.
    - Deterministic keys: ``{prefix}-{sha256(source|source_id|movement_type|
      from|to|price_list_item_id|item_sku|quantity|occurred_at-minute)}``.
    - Durable identity: every row carries an item_sku.  Catalog-linked
      items snapshot the catalog SKU and label at write time; free-text
      items get a stable ``CUSTOM_<hash>`` SKU from their normalised name.

Failure modes:
    - ValidationError (with the full violation list) for zero or
      non-finite quantity, unparseable occurred_at, missing item identity
      or unknown source.  Nothing is written.
    - Store errors propagate.

Residual gap:
    Post-insert verification relies on ``created_at`` ordering.  Two
    concurrent inserts stamped with the identical timestamp fall back to
    ``id`` ordering and can both report ``created``.

Audit relevance:
    ``movement_recorded`` at INFO for every new row,
    ``movement_duplicate_ignored`` at INFO for every collapsed retry.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Any, Mapping

from logistics_kernel.config import LogisticsConfig
from logistics_kernel.domain.clock import Clock, SystemClock
from logistics_kernel.exceptions import ConcurrencyError, NotFoundError, ValidationError
from logistics_kernel.logging_config import LogContext, get_logger
from logistics_kernel.store.base import Entity, EntityStore, Record
from logistics_kernel.utils.idempotency import build_movement_idempotency_key, parse_occurred_at
from logistics_kernel.utils.quantity import to_decimal

logger = get_logger("services.stock_ledger")

CANONICAL_SOURCES: frozenset[str] = frozenset({
    "purchase_order_receipt",
    "transfer",
    "adjustment",
    "job_consumption",
    "allocation_consumption",
    "logistics_job_completion",
    "baseline_seed",
    "return",
})

LEGACY_SOURCE_ALIASES: dict[str, str] = {
    "po_receive": "purchase_order_receipt",
    "po_receipt": "purchase_order_receipt",
    "manual_adjustment": "adjustment",
    "manual": "adjustment",
    "job_usage": "job_consumption",
    "job_completion_usage": "job_consumption",
    "receipt_clear": "allocation_consumption",
    "seed": "baseline_seed",
}

_WHITESPACE = re.compile(r"\s+")


def normalize_source(source: Any) -> str | None:
    """
    Canonical movement source, or None if ``source`` is not recognised.

    Example:
        >>> normalize_source("po_receive")
        'purchase_order_receipt'
    """
    if not source:
        return None
    key = str(source).strip().lower()
    if key in CANONICAL_SOURCES:
        return key
    return LEGACY_SOURCE_ALIASES.get(key)


def normalize_item_name(name: Any) -> str:
    """Lowercase, trimmed, inner whitespace collapsed."""
    return _WHITESPACE.sub(" ", str(name or "").strip().lower())


@dataclass(frozen=True)
class LedgerWriteResult:
    """The canonical ledger row, and whether this call inserted it."""

    movement: Record
    created: bool


class StockLedgerService:
    """
    Idempotent writer for the stock movement ledger.

    Usage:
        result = ledger.create_idempotent({
            "source": "transfer",
            "from_location_id": bay_id,
            "to_location_id": van_id,
            "price_list_item_id": item_id,
            "quantity": 4,
        })
        if result.created:
            apply_quantities(...)
    """

    def __init__(
        self,
        store: EntityStore,
        clock: Clock | None = None,
        config: LogisticsConfig | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._config = config or LogisticsConfig()

    def custom_sku(self, item_name: Any) -> str:
        """Stable SKU for an item with no catalog link."""
        digest = hashlib.sha256(normalize_item_name(item_name).encode("utf-8")).hexdigest()
        return f"{self._config.custom_sku_prefix}{digest[: self._config.custom_sku_digest_length].upper()}"

    def build_idempotency_key(self, payload: Mapping[str, Any]) -> str:
        fields = dict(payload)
        fields["source"] = normalize_source(payload.get("source")) or payload.get("source")
        return build_movement_idempotency_key(
            fields,
            prefix=self._config.idempotency_key_prefix,
            digest_length=self._config.idempotency_digest_length,
        )

    def validate(self, payload: Mapping[str, Any]) -> None:
        """
        Check a movement payload.  All violations are reported together.

        Raises:
            ValidationError: listing every violation.
        """
        violations: list[str] = []
        try:
            if to_decimal(payload.get("quantity")) == 0:
                violations.append("quantity must be non-zero")
        except ValueError:
            violations.append(f"quantity is not a finite number: {payload.get('quantity')!r}")
        try:
            parse_occurred_at(payload.get("occurred_at"))
        except ValueError:
            violations.append(f"occurred_at is not an ISO-8601 timestamp: {payload.get('occurred_at')!r}")
        if not payload.get("price_list_item_id") and not payload.get("item_sku"):
            violations.append("one of price_list_item_id or item_sku is required")
        if normalize_source(payload.get("source")) is None:
            violations.append(f"unknown movement source: {payload.get('source')!r}")
        if violations:
            raise ValidationError("; ".join(violations), violations)

    def find_by_key(self, idempotency_key: str) -> Record | None:
        """Canonical live row for ``idempotency_key``."""
        rows = self._live_rows(idempotency_key)
        return rows[0] if rows else None

    def enrich(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """
        Snapshot the item identity onto the movement.

        Catalog values fill missing sku/label; a missing catalog row leaves
        the caller's values in place.
        """
        enriched = dict(payload)
        item_id = enriched.get("price_list_item_id")
        if item_id:
            catalog = self._store.get(Entity.PRICE_LIST_ITEM, item_id)
            if catalog is None:
                logger.warning(
                    "catalog_item_missing",
                    extra={"price_list_item_id": item_id},
                )
            else:
                enriched["item_sku"] = enriched.get("item_sku") or catalog.get("sku")
                enriched["item_label"] = enriched.get("item_label") or catalog.get("item")
        if not enriched.get("item_label") and enriched.get("item_name"):
            enriched["item_label"] = enriched["item_name"]
        return enriched

    def create_idempotent(self, payload: Mapping[str, Any]) -> LedgerWriteResult:
        """
        Record a movement exactly once.

        Steps: resolve a custom SKU for free-text items, validate, compute the
        key (unless supplied), return the existing row for that key if any,
        otherwise enrich, insert and verify.

        Postconditions:
            - ``created`` is True for exactly one call per key, barring the
              equal-timestamp tie described on the module.
            - The returned movement is the canonical row for its key.
        """
        movement = dict(payload)
        if not movement.get("price_list_item_id") and not movement.get("item_sku") and movement.get("item_name"):
            movement["item_sku"] = self.custom_sku(movement["item_name"])

        self.validate(movement)
        movement["source"] = normalize_source(movement["source"])
        movement["quantity"] = to_decimal(movement["quantity"])
        movement["occurred_at"] = parse_occurred_at(movement.get("occurred_at")) or self._clock.now()

        key = movement.get("idempotency_key") or self.build_idempotency_key(movement)
        movement["idempotency_key"] = key
        with LogContext.bind(correlation_id=key):
            return self._record_once(movement, key)

    def _record_once(self, movement: dict[str, Any], key: str) -> LedgerWriteResult:
        existing = self.find_by_key(key)
        if existing is not None:
            logger.info(
                "movement_duplicate_ignored",
                extra={"idempotency_key": key, "movement_id": existing["id"]},
            )
            return LedgerWriteResult(existing, created=False)

        movement = self.enrich(movement)
        movement["duplicate_of_id"] = None
        movement["applied_at"] = None
        movement["voided_at"] = None
        mine = self._store.create(Entity.STOCK_MOVEMENT, movement)

        canonical = self.find_by_key(key)
        if canonical is not None and canonical["id"] != mine["id"]:
            self._store.update(Entity.STOCK_MOVEMENT, mine["id"], {"duplicate_of_id": canonical["id"]})
            logger.warning(
                "movement_race_collapsed",
                extra={
                    "idempotency_key": key,
                    "duplicate_id": mine["id"],
                    "canonical_id": canonical["id"],
                },
            )
            return LedgerWriteResult(canonical, created=False)

        logger.info(
            "movement_recorded",
            extra={
                "movement_id": mine["id"],
                "idempotency_key": key,
                "source": mine.get("source"),
                "quantity": mine.get("quantity"),
                "from_location_id": mine.get("from_location_id"),
                "to_location_id": mine.get("to_location_id"),
            },
        )
        return LedgerWriteResult(mine, created=True)

    def mark_applied(self, movement_id: str) -> None:
        """Stamp ``applied_at`` once every quantity leg of the movement has landed."""
        self._store.update(Entity.STOCK_MOVEMENT, movement_id, {"applied_at": self._clock.now()})

    def void(self, movement_id: str, reason: str) -> Record:
        """
        Retire a movement whose quantity legs were rolled back.

        A voided row no longer answers ``find_by_key``, so a retry of the
        same payload records and applies a fresh row.

        Raises:
            NotFoundError: unknown movement.
            ConcurrencyError: the movement was already voided.
        """
        if self._store.get(Entity.STOCK_MOVEMENT, movement_id) is None:
            raise NotFoundError("StockMovement", movement_id)
        voided = self._store.update_if(
            Entity.STOCK_MOVEMENT,
            movement_id,
            {"voided_at": None},
            {"voided_at": self._clock.now(), "void_reason": reason[:255]},
        )
        if not voided:
            raise ConcurrencyError(f"StockMovement {movement_id} is already voided")
        logger.warning(
            "movement_voided",
            extra={"movement_id": movement_id, "reason": reason},
        )
        return self._store.get(Entity.STOCK_MOVEMENT, movement_id)

    def _live_rows(self, idempotency_key: str) -> list[Record]:
        rows = self._store.filter(Entity.STOCK_MOVEMENT, {"idempotency_key": idempotency_key})
        return sorted(
            (r for r in rows if not r.get("duplicate_of_id") and not r.get("voided_at")),
            key=lambda r: (r.get("created_at"), r.get("id")),
        )
