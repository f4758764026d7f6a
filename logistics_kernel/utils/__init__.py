"""Utility modules for the logistics kernel."""

from logistics_kernel.utils.hashing import (
    canonicalize_json,
    hash_fields,
    hash_payload,
)
from logistics_kernel.utils.idempotency import (
    build_movement_idempotency_key,
    consumption_idempotency_key,
    parse_occurred_at,
    round_to_minute,
)
from logistics_kernel.utils.quantity import format_quantity, to_decimal

__all__ = [
    "canonicalize_json",
    "hash_fields",
    "hash_payload",
    "build_movement_idempotency_key",
    "consumption_idempotency_key",
    "parse_occurred_at",
    "round_to_minute",
    "format_quantity",
    "to_decimal",
]
