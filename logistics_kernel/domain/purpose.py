"""
Logistics purpose vocabulary and normaliser.

Responsibility:
    Maps any representation of a logistics job's purpose (canonical code,
    short job-number code, human label, legacy free text) to one canonical
    ``LogisticsPurpose`` value.

Guarantees:
    ``normalize_purpose`` is total: for any input it returns a canonical
    purpose value, falling back to ``"other"``.  It never raises and never
    returns ``None``.
"""

import re
from enum import Enum
from typing import Any

from logistics_kernel.logging_config import get_logger

logger = get_logger("domain.purpose")


class LogisticsPurpose(str, Enum):
    PO_DELIVERY_TO_WAREHOUSE = "po_delivery_to_warehouse"
    PO_PICKUP_FROM_SUPPLIER = "po_pickup_from_supplier"
    PART_PICKUP_FOR_INSTALL = "part_pickup_for_install"
    MANUAL_CLIENT_DROPOFF = "manual_client_dropoff"
    SAMPLE_DROPOFF = "sample_dropoff"
    SAMPLE_PICKUP = "sample_pickup"
    OTHER = "other"


VALID_LOGISTICS_PURPOSES: frozenset[str] = frozenset(p.value for p in LogisticsPurpose)

# Short codes used inside logistics job numbers (#5001-PO-PU-2).
PURPOSE_SHORT_CODES: dict[str, str] = {
    LogisticsPurpose.PO_DELIVERY_TO_WAREHOUSE.value: "PO-DEL",
    LogisticsPurpose.PO_PICKUP_FROM_SUPPLIER.value: "PO-PU",
    LogisticsPurpose.PART_PICKUP_FOR_INSTALL.value: "PART-PU",
    LogisticsPurpose.MANUAL_CLIENT_DROPOFF.value: "DROP",
    LogisticsPurpose.SAMPLE_DROPOFF.value: "SAMP-DO",
    LogisticsPurpose.SAMPLE_PICKUP.value: "SAMP-PU",
}

DEFAULT_SHORT_CODE = "LOG"

PURPOSE_LABELS: dict[str, str] = {
    LogisticsPurpose.PO_DELIVERY_TO_WAREHOUSE.value: "PO Delivery to Warehouse",
    LogisticsPurpose.PO_PICKUP_FROM_SUPPLIER.value: "PO Pickup from Supplier",
    LogisticsPurpose.PART_PICKUP_FOR_INSTALL.value: "Part Pickup for Install",
    LogisticsPurpose.MANUAL_CLIENT_DROPOFF.value: "Manual Client Drop-off",
    LogisticsPurpose.SAMPLE_DROPOFF.value: "Sample Drop-off",
    LogisticsPurpose.SAMPLE_PICKUP.value: "Sample Pickup",
    LogisticsPurpose.OTHER.value: "Other",
}

# Placeholder values that mean "no purpose recorded".
PLACEHOLDER_PURPOSES: frozenset[str] = frozenset({"", "unknown", "null", "none", "n/a"})

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _squash(value: str) -> str:
    return _NON_ALNUM.sub("", value.lower())


def _build_lookup() -> dict[str, str]:
    lookup: dict[str, str] = {}
    for purpose, label in PURPOSE_LABELS.items():
        lookup[_squash(purpose)] = purpose
        lookup[_squash(label)] = purpose
    # Common label variants seen in legacy records
    lookup["sampledrop"] = LogisticsPurpose.SAMPLE_DROPOFF.value
    lookup["clientdropoff"] = LogisticsPurpose.MANUAL_CLIENT_DROPOFF.value
    lookup["podelivery"] = LogisticsPurpose.PO_DELIVERY_TO_WAREHOUSE.value
    lookup["popickup"] = LogisticsPurpose.PO_PICKUP_FROM_SUPPLIER.value
    return lookup


_LABEL_LOOKUP = _build_lookup()
_SHORT_CODE_LOOKUP = {code.lower(): purpose for purpose, code in PURPOSE_SHORT_CODES.items()}


def _fuzzy(raw: str) -> str | None:
    if "delivery" in raw or ("po" in raw and "warehouse" in raw):
        return LogisticsPurpose.PO_DELIVERY_TO_WAREHOUSE.value
    if "pickup" in raw and "supplier" in raw:
        return LogisticsPurpose.PO_PICKUP_FROM_SUPPLIER.value
    if "pickup" in raw and "material" in raw:
        return LogisticsPurpose.PART_PICKUP_FOR_INSTALL.value
    if "sample" in raw and "pickup" in raw:
        return LogisticsPurpose.SAMPLE_PICKUP.value
    if "sample" in raw and "drop" in raw:
        return LogisticsPurpose.SAMPLE_DROPOFF.value
    if "dropoff" in raw or "client" in raw:
        return LogisticsPurpose.MANUAL_CLIENT_DROPOFF.value
    return None


def normalize_purpose(value: Any) -> str:
    """
    Normalize any purpose representation to a canonical purpose value.

    Resolution order: exact canonical value, short code (``PO-PU``),
    case/separator-insensitive label, substring match, ``"other"``.

    Example:
        >>> normalize_purpose("PO-PU")
        'po_pickup_from_supplier'
        >>> normalize_purpose("Sample Drop-off")
        'sample_dropoff'
        >>> normalize_purpose(None)
        'other'
    """
    if value is None or value is False:
        return LogisticsPurpose.OTHER.value
    if isinstance(value, LogisticsPurpose):
        return value.value
    try:
        text = value if isinstance(value, str) else str(value)
    except Exception:
        logger.debug("purpose_unrenderable", extra={"value_type": type(value).__name__})
        return LogisticsPurpose.OTHER.value

    raw = text.strip().lower()
    if raw in PLACEHOLDER_PURPOSES:
        return LogisticsPurpose.OTHER.value

    if raw in VALID_LOGISTICS_PURPOSES:
        return raw

    if raw in _SHORT_CODE_LOOKUP:
        return _SHORT_CODE_LOOKUP[raw]

    squashed = _squash(raw)
    if squashed in _LABEL_LOOKUP:
        return _LABEL_LOOKUP[squashed]

    # Substring matching runs on the hyphen-free form so "drop-off" counts as "dropoff"
    return _fuzzy(raw.replace("-", "")) or LogisticsPurpose.OTHER.value


def is_meaningful_purpose(value: Any) -> bool:
    """True when ``value`` is a real purpose rather than empty/placeholder text."""
    if value is None:
        return False
    return str(value).strip().lower() not in PLACEHOLDER_PURPOSES


def purpose_short_code(purpose: Any) -> str:
    """Short code for job numbers; ``LOG`` for ``other`` and anything unknown."""
    return PURPOSE_SHORT_CODES.get(normalize_purpose(purpose), DEFAULT_SHORT_CODE)
