"""
Deterministic hashing utilities.

All fingerprints in the logistics kernel (idempotency keys, custom SKUs,
config checksums) must be reproducible across processes and restarts.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Normalize so 5, 5.0 and 5.000 hash identically
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, no whitespace, and Decimal/datetime/UUID are rendered
    consistently.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_fields(components: Iterable[Any]) -> str:
    """
    Hex-encoded SHA-256 of pipe-joined components.

    ``None`` becomes the empty string so an absent field and an empty field
    produce the same fingerprint.
    """
    data = "|".join("" if c is None else str(c) for c in components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
