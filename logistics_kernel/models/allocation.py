"""
Module: logistics_kernel.models.allocation
Responsibility: ORM persistence for visits, project requirement lines, stock
    allocations against them and the consumptions drawn from allocations.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (by services, not by the ORM):
    - Sum of StockConsumption.qty_consumed for an allocation never exceeds
      StockAllocation.qty_allocated.
    - StockAllocation.status becomes consumed exactly when nothing remains,
      and never leaves consumed or released.
    - StockConsumption rows are immutable.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from logistics_kernel.db.base import TrackedBase


class Visit(TrackedBase):
    __tablename__ = "visits"

    project_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    readiness_status: Mapped[str | None] = mapped_column(String(30), nullable=True)


class ProjectRequirementLine(TrackedBase):
    __tablename__ = "project_requirement_lines"

    __table_args__ = (
        Index("idx_req_line_visit", "visit_id"),
    )

    project_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    visit_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    qty_required: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_blocking: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)


class StockAllocation(TrackedBase):
    __tablename__ = "stock_allocations"

    __table_args__ = (
        Index("idx_allocation_visit", "visit_id"),
    )

    project_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    visit_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    requirement_line_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    from_location_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    price_list_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    qty_allocated: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="reserved")
    consumed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    consumed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)


class StockConsumption(TrackedBase):
    __tablename__ = "stock_consumptions"

    __table_args__ = (
        Index("idx_consumption_allocation", "source_allocation_id"),
    )

    project_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    visit_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    source_allocation_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    price_list_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    item_sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    item_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    consumed_from_location_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    qty_consumed: Mapped[Decimal] = mapped_column(nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    consumed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
