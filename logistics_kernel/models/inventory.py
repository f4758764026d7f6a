"""
Module: logistics_kernel.models.inventory
Responsibility: ORM persistence for inventory locations, per-location stock
    quantities, the legacy per-vehicle stock mirror, the catalog and the
    append-only stock movement ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (by services, not by the ORM):
    - InventoryQuantity.quantity >= 0.  Checked before every decrement.
    - StockMovement rows are never updated except to mark a row that lost an
      insert race (duplicate_of_id).  At most one live row per
      idempotency_key.
    - VehicleStock mirrors InventoryQuantity for vehicle locations.  The
      divergence audit reports any pair that disagrees.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from logistics_kernel.db.base import TrackedBase


class InventoryLocation(TrackedBase):
    __tablename__ = "inventory_locations"

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vehicle_id: Mapped[str | None] = mapped_column(String(36), nullable=True)


class InventoryQuantity(TrackedBase):
    """Canonical on-hand quantity of one item at one location."""

    __tablename__ = "inventory_quantities"

    __table_args__ = (
        Index("idx_invqty_location_item", "location_id", "price_list_item_id"),
    )

    price_list_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    item_sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    item_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_id: Mapped[str] = mapped_column(String(36), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))


class VehicleStock(TrackedBase):
    """Legacy per-vehicle quantity, kept in step with InventoryQuantity."""

    __tablename__ = "vehicle_stock"

    __table_args__ = (
        Index("idx_vehicle_stock_vehicle_item", "vehicle_id", "price_list_item_id"),
    )

    vehicle_id: Mapped[str] = mapped_column(String(36), nullable=False)
    price_list_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    item_sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quantity_on_hand: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))


class PriceListItem(TrackedBase):
    """Catalog item.  Read-only to this layer."""

    __tablename__ = "price_list_items"

    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    item: Mapped[str | None] = mapped_column(String(255), nullable=True)


class StockMovement(TrackedBase):
    """One ledger entry.  After insert only the race, applied and void markers change."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_movement_idempotency_key", "idempotency_key"),
    )

    source: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    movement_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    from_location_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    to_location_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    from_location_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    to_location_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    price_list_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    item_sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    item_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    item_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)
    moved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    occurred_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    project_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    visit_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    job_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    duplicate_of_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    void_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
