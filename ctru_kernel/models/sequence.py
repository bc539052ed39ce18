"""
Module: ctru_kernel.models.sequence
Responsibility: Named counter rows backing sequential expense numbers.
Architecture position: Kernel > Models.

Invariants enforced:
    - The locked counter row is the sole source of the next number; the
      max-plus-one query over expense numbers is never used.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from ctru_kernel.db.base import Base


class SequenceCounter(Base):
    """One named sequence (e.g. "GVD", "GAO") and its current value."""

    __tablename__ = "ctru_sequence_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
