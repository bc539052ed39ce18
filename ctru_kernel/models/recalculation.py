"""
Module: ctru_kernel.models.recalculation
Responsibility: ORM persistence for the recalculation audit trail and the
    serialization guard row.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A RecalculationRun row is written in the SAME transaction as the unit
      and expense updates it describes; a rolled-back batch leaves no run.
    - RecalculationGuard holds one row per guard name.  Every recalculation
      locks it (SELECT ... FOR UPDATE) before reading unconsumed expenses,
      so two runs never share a read set.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from ctru_kernel.db.base import Base


class RecalculationRun(Base):
    """One committed recalculation."""

    __tablename__ = "ctru_recalculation_runs"

    trigger: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    units_updated: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expenses_applied: Mapped[int] = mapped_column(BigInteger, nullable=False)
    impact_per_unit: Mapped[Decimal] = mapped_column(nullable=False)
    total_prorated: Mapped[Decimal] = mapped_column(nullable=False)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    committed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<RecalculationRun {self.id}: units={self.units_updated} "
            f"expenses={self.expenses_applied} impact={self.impact_per_unit}>"
        )


class RecalculationGuard(Base):
    """
    Serialization point for recalculations.

    Row-level locking on this table serializes concurrent runs across
    processes (PostgreSQL).
    """

    __tablename__ = "ctru_recalculation_guard"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    run_count: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    last_run_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
