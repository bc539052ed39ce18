"""
Module: ctru_engines.proration
Responsibility:
    Select the qualifying shared expenses, pool them, and divide the pool
    evenly across the active units (impact per unit).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller supplies the
    candidate expenses and the active-unit count.

Invariants enforced:
    - Only class "shared", is_prorateable, unconsumed expenses qualify.
      A direct (sale/distribution) expense is excluded even when its flag
      was set by mistake.
    - Freight-type expenses are excluded; they belong to the freight
      allocator of their purchase order.
    - Empty expense set or zero active units -> impact 0 and an empty
      consumed set.  Nothing is to be written.
    - No rounding inside the accumulation; rounding is presentation only.

Audit relevance:
    consumed_expense_ids is the exact candidate set the orchestrator must
    flip to consumed in the same atomic batch as the unit updates.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ctru_engines.tracer import traced_engine
from ctru_kernel.domain.classification import ExpenseClass
from ctru_kernel.domain.dtos import ExpenseSnapshot
from ctru_kernel.logging_config import get_logger

logger = get_logger("engines.proration")

ZERO = Decimal("0")


class ExclusionReason(str, Enum):
    """Why a candidate expense was left out of the pool."""

    DIRECT = "direct"
    NOT_PRORATEABLE = "not_prorateable"
    CONSUMED = "consumed"
    FREIGHT = "freight"


@dataclass(frozen=True)
class ProrationImpact:
    """
    Outcome of one proration computation.

    Guarantees:
        - impact_per_unit * active_unit_count == total_amount (exact in
          Decimal up to context precision) when not a no-op.
        - is_noop iff consumed_expense_ids is empty.
    """

    impact_per_unit: Decimal
    total_amount: Decimal
    active_unit_count: int
    consumed_expense_ids: tuple[UUID, ...] = ()
    excluded: tuple[tuple[UUID, ExclusionReason], ...] = field(default=())

    @property
    def is_noop(self) -> bool:
        return not self.consumed_expense_ids

    @property
    def expense_count(self) -> int:
        return len(self.consumed_expense_ids)

    @classmethod
    def noop(
        cls,
        active_unit_count: int = 0,
        excluded: tuple[tuple[UUID, ExclusionReason], ...] = (),
    ) -> ProrationImpact:
        return cls(
            impact_per_unit=ZERO,
            total_amount=ZERO,
            active_unit_count=active_unit_count,
            excluded=excluded,
        )


class ExpenseProrationEngine:
    """Pure impact-per-unit calculator."""

    def __init__(self, freight_expense_type: str = "freight"):
        self._freight_expense_type = freight_expense_type

    def exclusion_reason(self, expense: ExpenseSnapshot) -> ExclusionReason | None:
        """None if the expense qualifies for the shared pool."""
        if expense.consumed:
            return ExclusionReason.CONSUMED
        if expense.expense_class is not ExpenseClass.SHARED:
            return ExclusionReason.DIRECT
        if not expense.is_prorateable:
            return ExclusionReason.NOT_PRORATEABLE
        if expense.expense_type == self._freight_expense_type:
            return ExclusionReason.FREIGHT
        return None

    def qualifies(self, expense: ExpenseSnapshot) -> bool:
        return self.exclusion_reason(expense) is None

    @traced_engine("proration", "1.0", fingerprint_fields=("active_unit_count",))
    def compute_impact(
        self,
        expenses: Sequence[ExpenseSnapshot],
        active_unit_count: int,
    ) -> ProrationImpact:
        """
        Pool the qualifying expenses and divide by the active-unit count.

        Args:
            expenses: Candidate expenses (any class; filtered here).
            active_unit_count: Units currently in an active state.
        """
        qualifying: list[ExpenseSnapshot] = []
        excluded: list[tuple[UUID, ExclusionReason]] = []
        for expense in expenses:
            reason = self.exclusion_reason(expense)
            if reason is None:
                qualifying.append(expense)
            else:
                excluded.append((expense.expense_id, reason))

        if excluded:
            logger.debug(
                "proration_expenses_excluded",
                extra={
                    "excluded": [
                        {"expense_id": str(eid), "reason": r.value}
                        for eid, r in excluded
                    ],
                },
            )

        if not qualifying or active_unit_count <= 0:
            return ProrationImpact.noop(
                active_unit_count=max(active_unit_count, 0),
                excluded=tuple(excluded),
            )

        total = sum((e.amount_local for e in qualifying), ZERO)
        impact = total / active_unit_count

        return ProrationImpact(
            impact_per_unit=impact,
            total_amount=total,
            active_unit_count=active_unit_count,
            consumed_expense_ids=tuple(e.expense_id for e in qualifying),
            excluded=tuple(excluded),
        )
