"""
Module: ctru_kernel.models.expense
Responsibility: ORM persistence for booked expenses (outflows of money) and
    their proration bookkeeping.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - expense_class is derived from category at registration; it is never
      hand-set (see ExpenseService.register).
    - consumed is flipped False -> True exactly once, by the recalculation
      orchestrator, in the same transaction that updates unit costs.  It is
      never unset.  A consumed expense is never summed again.
    - Consumed expenses are never deleted (audit trail).

Failure modes:
    - IntegrityError on duplicate expense_number.

Audit relevance:
    consumed_at and consumed_by_run_id tie every prorated expense to the
    RecalculationRun that applied it.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ctru_kernel.db.base import TrackedBase, UUIDString


class Expense(TrackedBase):
    """
    A booked expense.

    Guarantees:
        - amount_local is the amount in the local currency
          (original_amount * exchange_rate for foreign currency).
        - expense_number is unique (GVD-0001 for direct, GAO-0001 for shared).

    Non-goals:
        - Does NOT validate category/class consistency at the ORM level;
          ExpenseService derives the class and is the only writer.
    """

    __tablename__ = "ctru_expenses"

    __table_args__ = (
        Index("idx_ctru_expense_pending", "expense_class", "is_prorateable", "consumed"),
        Index("idx_ctru_expense_purchase_order", "purchase_order_id", "expense_type"),
        Index("idx_ctru_expense_sale", "sale_id"),
    )

    expense_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
    )

    category: Mapped[str] = mapped_column(String(20), nullable=False)
    expense_class: Mapped[str] = mapped_column(String(10), nullable=False)
    expense_type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Amount
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    original_amount: Mapped[Decimal] = mapped_column(nullable=False)
    exchange_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )
    amount_local: Mapped[Decimal] = mapped_column(nullable=False)

    # Proration flags
    is_prorateable: Mapped[bool] = mapped_column(Boolean, nullable=False)
    consumed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consumed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    consumed_by_run_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    # Direct associations
    purchase_order_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sale_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    incurred_on: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Expense {self.expense_number}: {self.category} "
            f"{self.amount_local} consumed={self.consumed}>"
        )
