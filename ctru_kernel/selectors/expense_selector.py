"""
Module: ctru_kernel.selectors.expense_selector
Responsibility: Read-only queries over booked expenses: proration candidates,
    freight expenses for a purchase order, direct expenses for a sale, and
    category totals.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - pending_prorateable() never returns a consumed expense.
    - Classification (shared vs direct, freight vs pool) is NOT decided here;
      the proration engine re-checks every snapshot it receives.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ctru_kernel.domain.classification import ExpenseCategory
from ctru_kernel.domain.dtos import ExpenseSnapshot
from ctru_kernel.models.expense import Expense
from ctru_kernel.selectors.base import BaseSelector


class ExpenseSelector(BaseSelector[Expense]):
    """Selector for expense queries."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get(self, expense_id: UUID) -> ExpenseSnapshot | None:
        expense = self.session.get(Expense, expense_id)
        return ExpenseSnapshot.from_model(expense) if expense is not None else None

    def pending_prorateable(self) -> list[ExpenseSnapshot]:
        """
        Every unconsumed expense flagged prorateable, ordered by number.

        Includes direct expenses whose flag was set by mistake; callers
        filter by class.
        """
        rows = self.session.scalars(
            select(Expense)
            .where(
                Expense.is_prorateable.is_(True),
                Expense.consumed.is_(False),
            )
            .order_by(Expense.expense_number)
        )
        return [ExpenseSnapshot.from_model(e) for e in rows]

    def freight_for_purchase_order(
        self,
        purchase_order_id: str,
        freight_expense_type: str,
    ) -> list[ExpenseSnapshot]:
        rows = self.session.scalars(
            select(Expense).where(
                Expense.purchase_order_id == purchase_order_id,
                Expense.expense_type == freight_expense_type,
            )
        )
        return [ExpenseSnapshot.from_model(e) for e in rows]

    def direct_for_sale(self, sale_id: str) -> list[ExpenseSnapshot]:
        rows = self.session.scalars(
            select(Expense).where(Expense.sale_id == sale_id)
        )
        return [ExpenseSnapshot.from_model(e) for e in rows]

    def totals_by_category(self) -> dict[str, Decimal]:
        """Local-currency total of every booked expense, per category."""
        totals: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for category in ExpenseCategory:
            totals[category.value] = Decimal("0")
        rows = self.session.execute(select(Expense.category, Expense.amount_local))
        for row in rows:
            totals[row.category] += row.amount_local
        return dict(totals)
