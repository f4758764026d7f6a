"""
Idempotency key generation utilities.

Idempotency keys make retried or duplicated writes collapse into a single
stored row.  The store has no unique constraints, so the key is the only
thing that ties a retry back to the row its first attempt created.
"""

from datetime import datetime, timezone
from typing import Any

from logistics_kernel.utils.hashing import hash_fields
from logistics_kernel.utils.quantity import format_quantity

# Order matters: changing it changes every key ever issued.
MOVEMENT_KEY_FIELDS: tuple[str, ...] = (
    "source",
    "source_id",
    "movement_type",
    "from_location_id",
    "to_location_id",
    "price_list_item_id",
    "item_sku",
    "quantity",
    "occurred_at",
)


def parse_occurred_at(value: Any) -> datetime | None:
    """
    Coerce a movement timestamp to a datetime.

    Accepts a datetime or ISO-8601 text (the shape JSON payloads carry);
    ``None`` and ``""`` mean "not given".

    Raises:
        ValueError: Anything else, or text that is not ISO-8601.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    raise ValueError(f"Not a timestamp: {value!r}")


def round_to_minute(moment: datetime) -> str:
    """
    Render ``moment`` in UTC truncated to the minute.

    Naive datetimes are taken to be UTC already.

    Example:
        >>> round_to_minute(datetime(2024, 3, 1, 9, 30, 59, tzinfo=timezone.utc))
        '2024-03-01T09:30'
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M")


def build_movement_idempotency_key(
    fields: dict[str, Any],
    prefix: str,
    digest_length: int,
) -> str:
    """
    Build the deterministic idempotency key for a stock movement.

    Format: ``{prefix}-{sha256(source|source_id|...|occurred_at)[:digest_length]}``

    ``fields["occurred_at"]`` may be a datetime or ISO-8601 text; it is
    parsed and rounded to the minute so a retry a few seconds later lands
    on the same key while a genuinely separate movement a minute later
    does not.

    Args:
        fields: Movement payload (only MOVEMENT_KEY_FIELDS are read).
        prefix: Tag identifying the key family.
        digest_length: Number of hex characters kept from the digest.

    Returns:
        Idempotency key string.
    """
    components = []
    for name in MOVEMENT_KEY_FIELDS:
        value = fields.get(name)
        if name == "quantity":
            value = format_quantity(value)
        elif name == "occurred_at":
            moment = parse_occurred_at(value)
            value = round_to_minute(moment) if moment is not None else None
        components.append(value)
    return f"{prefix}-{hash_fields(components)[:digest_length]}"


def consumption_idempotency_key(consumption_id: str, allocation_id: str | None) -> str:
    """
    Key for the ledger movement that records a stock consumption.

    Format: ``CONSUME:{consumption_id}:{allocation_id or 'adhoc'}``
    """
    return f"CONSUME:{consumption_id}:{allocation_id or 'adhoc'}"
