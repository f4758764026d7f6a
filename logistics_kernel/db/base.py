"""
Module: logistics_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the opaque string primary key convention, the type annotation
    map for consistent column types, and the TrackedBase mixin with
    creation/update timestamps.
Architecture position: Kernel > DB.  Lowest-level import target; ALL model
    files import from here.  MUST NOT import from models/, services/,
    store/ or domain/.

Invariants enforced:
    - Opaque identifiers: every model gets a uuid4 text primary key.  Callers
      never parse or order by ids except as a deterministic tie-breaker.
    - Quantity precision: Decimal maps to Numeric(18, 6).  Stock quantities
      are never floats.
    - created_at is written once by the store adapter and is the primary
      ordering used to pick the canonical row when a create race leaves two
      rows for the same logical key.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import uuid4

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def new_id() -> str:
    """Generate an opaque record identifier."""
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4 string.
        - Decimal maps to Numeric(18, 6).
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 6),
        datetime: DateTime(timezone=True),
        str: String(255),
    }

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=new_id,
    )


class TrackedBase(Base):
    """
    Abstract base with creation and update timestamps.

    Guarantees:
        - created_at defaults to the current UTC time on INSERT and is
          never changed by the store adapter afterwards.
        - updated_at is refreshed on every UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )
