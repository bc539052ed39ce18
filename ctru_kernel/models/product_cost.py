"""
Module: ctru_kernel.models.product_cost
Responsibility: ORM persistence for the per-product cost aggregate cache.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Entirely derived from Unit rows; written only by ProductAggregateUpdater.
    - Never read by a cost-critical calculation (proration, margin); those
      read live Unit rows.
    - A product whose active set becomes empty keeps its previous row
      (stale-but-valid).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from ctru_kernel.db.base import Base, UUIDString


class ProductCostAggregate(Base):
    """Average/min/max dynamic cost across one product's active units."""

    __tablename__ = "ctru_product_costs"

    product_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    average_cost: Mapped[Decimal] = mapped_column(nullable=False)
    min_cost: Mapped[Decimal] = mapped_column(nullable=False)
    max_cost: Mapped[Decimal] = mapped_column(nullable=False)
    active_unit_count: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # "last refreshed" marker
    refreshed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    refreshed_by_run_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<ProductCostAggregate {self.product_id}: avg={self.average_cost} "
            f"n={self.active_unit_count}>"
        )
