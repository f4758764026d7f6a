"""
Module: logistics_kernel.models.purchasing
Responsibility: ORM persistence for purchase orders, their lines, and the
    parts whose status is projected from them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (by services, not by the ORM):
    - PurchaseOrder.status is authoritative; Part.status and Part.location
      are derived projections of the part's *primary* purchase order.
    - Part.primary_purchase_order_id is first-writer-wins and never
      overwritten; later purchase orders only append to purchase_order_ids.

No unique constraints are declared.  The consistency layer is written
against stores that cannot enforce them.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from logistics_kernel.db.base import TrackedBase


class PurchaseOrder(TrackedBase):
    """Supplier order.  Lifecycle draft -> ... -> installed, or cancelled."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        Index("idx_po_project", "project_id"),
    )

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")
    delivery_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    project_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    po_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    write_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    write_source: Mapped[str | None] = mapped_column(String(100), nullable=True)


class PurchaseOrderLine(TrackedBase):
    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        Index("idx_po_line_po", "purchase_order_id"),
    )

    purchase_order_id: Mapped[str] = mapped_column(String(36), nullable=False)
    part_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    source_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    item_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    qty_ordered: Mapped[Decimal | None] = mapped_column(nullable=True)


class Part(TrackedBase):
    """
    A physical part required by a project.

    purchase_order_ids is a JSON list accumulating every purchase order the
    part has been linked to; primary_purchase_order_id is the first of them.
    """

    __tablename__ = "parts"

    __table_args__ = (
        Index("idx_part_primary_po", "primary_purchase_order_id"),
    )

    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    location: Mapped[str | None] = mapped_column(String(30), nullable=True)
    purchase_order_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    primary_purchase_order_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    po_line_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    quantity_required: Mapped[Decimal | None] = mapped_column(nullable=True)
    order_date: Mapped[datetime | None] = mapped_column(nullable=True)
    eta: Mapped[datetime | None] = mapped_column(nullable=True)
    assigned_vehicle_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    item_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_synced_from_po_at: Mapped[datetime | None] = mapped_column(nullable=True)
    synced_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    write_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    write_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
