"""
Module: logistics_kernel.models.job
Responsibility: ORM persistence for jobs (logistics subset of fields) and
    the per-key counters that number logistics jobs.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (by services, not by the ORM):
    - Job.is_logistics_job only moves false -> true.
    - Job.logistics_purpose is never null on a logistics job.
    - Job.stock_transfer_status never drops below completed once reached.
    - LogisticsJobCounter.next_seq only increases.  Rows marked with
      duplicate_of_id lost a creation race and are ignored.
"""

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from logistics_kernel.db.base import TrackedBase


class LogisticsJobCounter(TrackedBase):
    __tablename__ = "logistics_job_counters"

    __table_args__ = (
        Index("idx_job_counter_key", "key"),
    )

    key: Mapped[str] = mapped_column(String(100), nullable=False)
    next_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    duplicate_of_id: Mapped[str | None] = mapped_column(String(36), nullable=True)


class Job(TrackedBase):
    __tablename__ = "jobs"

    job_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_logistics_job: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    logistics_purpose: Mapped[str | None] = mapped_column(String(50), nullable=True)
    stock_transfer_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    logistics_outcome: Mapped[str | None] = mapped_column(String(30), nullable=True)
    project_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    project_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    project_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    purchase_order_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    vehicle_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    third_party_trade_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    origin_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    destination_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    write_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    write_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
