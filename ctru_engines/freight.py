"""
Module: ctru_engines.freight
Responsibility:
    Split a purchase order's freight expenses evenly across every unit
    sourced from that order.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller supplies the
    order's freight expenses and its unit count.

Invariants enforced:
    - The divisor is every unit ever linked to the order, in any state.
      Proration uses active units only; the two divisors differ on purpose
      and both are reported in the allocation for review.
    - Zero units or zero freight yields a zero allocation; never divides
      by zero.
    - Only expenses of the configured freight type booked against the
      same order are summed.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from ctru_engines.tracer import traced_engine
from ctru_kernel.domain.dtos import ExpenseSnapshot
from ctru_kernel.logging_config import get_logger

logger = get_logger("engines.freight")

ZERO = Decimal("0")


@dataclass(frozen=True)
class FreightAllocation:
    """Freight of one purchase order and its per-unit share (local currency)."""

    purchase_order_id: str | None
    freight_total: Decimal
    unit_count: int
    expense_count: int

    @property
    def per_unit(self) -> Decimal:
        if self.unit_count <= 0 or self.freight_total <= 0:
            return ZERO
        return self.freight_total / self.unit_count

    @classmethod
    def none(cls, purchase_order_id: str | None = None) -> FreightAllocation:
        return cls(
            purchase_order_id=purchase_order_id,
            freight_total=ZERO,
            unit_count=0,
            expense_count=0,
        )


class FreightAllocator:
    """Pure freight-per-unit calculator."""

    def __init__(self, freight_expense_type: str = "freight"):
        self._freight_expense_type = freight_expense_type

    @property
    def freight_expense_type(self) -> str:
        return self._freight_expense_type

    def is_freight(self, expense: ExpenseSnapshot) -> bool:
        return expense.expense_type == self._freight_expense_type

    @traced_engine(
        "freight", "1.0", fingerprint_fields=("purchase_order_id", "unit_count")
    )
    def allocate(
        self,
        purchase_order_id: str | None,
        freight_expenses: Sequence[ExpenseSnapshot],
        unit_count: int,
    ) -> FreightAllocation:
        """
        Per-unit freight for one purchase order.

        Args:
            purchase_order_id: The order; None means "no order" (zero).
            freight_expenses: Candidate expenses; non-freight or other-order
                rows are ignored.
            unit_count: Units linked to the order, any lifecycle state.
        """
        if purchase_order_id is None:
            return FreightAllocation.none()

        matching = [
            e for e in freight_expenses
            if self.is_freight(e) and e.purchase_order_id == purchase_order_id
        ]
        total = sum((e.amount_local for e in matching), ZERO)

        allocation = FreightAllocation(
            purchase_order_id=purchase_order_id,
            freight_total=total,
            unit_count=max(unit_count, 0),
            expense_count=len(matching),
        )
        logger.debug(
            "freight_allocated",
            extra={
                "purchase_order_id": purchase_order_id,
                "freight_total": str(total),
                "unit_count": allocation.unit_count,
                "per_unit": str(allocation.per_unit),
            },
        )
        return allocation
