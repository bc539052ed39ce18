"""
Module: ctru_kernel.models.unit
Responsibility: ORM persistence for physical inventory units.  Each row is one
    individually trackable item with its cost inputs (USD purchase cost,
    optional USD freight, purchase/payment exchange rates) and the two
    denormalized cost outputs the engine maintains.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/classification.py only.

Invariants enforced:
    - dynamic_cost >= base_landed_cost whenever both are set: prorated_cost is
      an accumulated, non-negative share of consumed shared expenses and
      dynamic_cost = base_landed_cost + prorated_cost.
    - Write ownership: the recalculation path writes ONLY base_landed_cost,
      prorated_cost, dynamic_cost, and cost_updated_at.  state is written
      only by external workflows (receipt, sale, expiry, damage).
    - Units are never deleted, only transitioned.

Failure modes:
    - IntegrityError on missing product_id or purchase_cost_usd.

Audit relevance:
    Once a unit leaves the active set its dynamic_cost is frozen; that frozen
    value is what margin calculations read for sold units.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ctru_kernel.db.base import TrackedBase
from ctru_kernel.domain.classification import UnitState


class Unit(TrackedBase):
    """
    One physical unit of inventory.

    Guarantees:
        - state is one of UnitState values (stored as String(30)).
        - Monetary columns are Numeric(38, 9); never float.
        - Exchange rates are Numeric(38, 9); nine places cover every rate
          the expense and purchase workflows record.

    Non-goals:
        - Does NOT store the product's aggregate cost; see ProductCostAggregate.
        - Does NOT enforce state transitions; external workflows own them.
    """

    __tablename__ = "ctru_units"

    __table_args__ = (
        Index("idx_ctru_unit_state", "state"),
        Index("idx_ctru_unit_product_state", "product_id", "state"),
        Index("idx_ctru_unit_purchase_order", "purchase_order_id"),
    )

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Absent for manually adjusted units
    purchase_order_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    state: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=UnitState.RECEIVED_ORIGIN.value,
    )

    # Cost inputs (USD)
    purchase_cost_usd: Mapped[Decimal] = mapped_column(nullable=False)
    freight_cost_usd: Mapped[Decimal | None] = mapped_column(nullable=True)

    # local = usd * rate
    purchase_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )
    payment_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    # Derived cost outputs (local currency)
    base_landed_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    prorated_cost: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )
    dynamic_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    cost_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    received_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Informational only; not used by any cost calculation
    sale_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Unit {self.id}: product={self.product_id} state={self.state} "
            f"dynamic_cost={self.dynamic_cost}>"
        )
