"""
Logistics Kernel Configuration (``logistics_kernel.config``).

Responsibility
--------------
Defines the tunable settings of the consistency layer as a frozen
dataclass and loads them from a YAML file.  One ``LogisticsConfig`` is
built at process start and passed into every service constructor; there
is no module-level active configuration.

Invariants enforced
-------------------
* Unknown keys in the YAML file raise ``ValueError`` (typos must not
  silently fall back to defaults).
* Retry limits and digest lengths must be positive.
* ``config_checksum`` is deterministic for identical settings.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values  -> ``ValueError`` from ``LogisticsConfig.__post_init__``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from logistics_kernel.logging_config import get_logger
from logistics_kernel.utils.hashing import hash_payload

logger = get_logger("config")


@dataclass(frozen=True)
class LogisticsConfig:
    """
    Settings for the logistics consistency layer.

    Field defaults match production behaviour.  Override at instantiation
    or through ``load_config``:

        config = LogisticsConfig(counter_max_attempts=10)
    """

    # Stock movement ledger
    idempotency_key_prefix: str = "SMV"
    idempotency_digest_length: int = 32
    custom_sku_prefix: str = "CUSTOM_"
    custom_sku_digest_length: int = 10

    # Conditional-update retry bounds
    counter_max_attempts: int = 5
    quantity_max_attempts: int = 5
    version_max_attempts: int = 5

    # Consumption rules
    consumption_visit_statuses: tuple[str, ...] = ("in_progress", "checked_in")
    consumption_override_roles: tuple[str, ...] = ("admin", "manager")
    consumed_location_code: str = "CONSUMED"

    # Optimistic locking
    default_write_version: int = 1

    def __post_init__(self):
        for name in (
            "idempotency_digest_length",
            "custom_sku_digest_length",
            "counter_max_attempts",
            "quantity_max_attempts",
            "version_max_attempts",
            "default_write_version",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if self.idempotency_digest_length > 64 or self.custom_sku_digest_length > 64:
            raise ValueError("digest lengths cannot exceed 64 hex characters")
        # YAML lists arrive as lists; keep the dataclass hashable.
        object.__setattr__(
            self, "consumption_visit_statuses", tuple(self.consumption_visit_statuses)
        )
        object.__setattr__(
            self, "consumption_override_roles", tuple(self.consumption_override_roles)
        )


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def parse_config(data: dict[str, Any]) -> LogisticsConfig:
    """Build a ``LogisticsConfig`` from a plain mapping."""
    known = {f.name for f in fields(LogisticsConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown logistics config keys: {', '.join(unknown)}")
    return LogisticsConfig(**data)


def load_config(path: Path | str) -> LogisticsConfig:
    """Load and validate a ``LogisticsConfig`` from a YAML file."""
    path = Path(path)
    config = parse_config(load_yaml_file(path))
    logger.info(
        "logistics_config_loaded",
        extra={"path": str(path), "checksum": config_checksum(config)},
    )
    return config


def config_checksum(config: LogisticsConfig) -> str:
    """SHA-256 of the canonical JSON form of ``config``."""
    return hash_payload(asdict(config))
