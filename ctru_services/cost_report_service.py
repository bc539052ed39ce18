"""
CostReportService -- read-side cost reports over the unit population.

Responsibility:
    Cost history per product and the composition of the active inventory's
    cost (purchase, freight, prorated share, pending shared pool).

Architecture position:
    Services -- read-only shell over selectors and pure engines.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from ctru_config.schema import EngineConfig
from ctru_engines.aggregate import CostStatistics
from ctru_engines.proration import ExpenseProrationEngine
from ctru_kernel.domain.dtos import CostBreakdown, CostHistoryPoint
from ctru_kernel.selectors.expense_selector import ExpenseSelector
from ctru_kernel.selectors.unit_selector import UnitSelector
from ctru_services.landed_cost_service import LandedCostService

ZERO = Decimal("0")


class CostReportService:
    def __init__(self, session: Session, config: EngineConfig):
        self.session = session
        self._config = config
        self._units = UnitSelector(session)
        self._expenses = ExpenseSelector(session)

    def product_cost_history(
        self,
        product_id: str,
        as_of: datetime,
        months: int = 6,
    ) -> list[CostHistoryPoint]:
        receipts = self._units.active_receipts_for_product(
            product_id, self._config.active_states
        )
        return CostStatistics().monthly_history(receipts, as_of, months)

    def cost_breakdown(self) -> CostBreakdown:
        landed = LandedCostService(self.session, self._config)
        rows = self._units.active_cost_rows(self._config.active_states)

        purchase_usd = purchase_local = freight_local = ZERO
        prorated_total = dynamic_total = ZERO
        for row in rows:
            inputs, _base, prorated, _dynamic = row
            cost = landed.base_cost(inputs)
            purchase_usd += inputs.purchase_cost_usd
            purchase_local += cost.purchase_cost_local
            freight_local += cost.freight_cost_local
            prorated_total += prorated
            dynamic_total += landed.current_cost(*row)

        proration = ExpenseProrationEngine(self._config.freight_expense_type)
        pending = sum(
            (
                e.amount_local
                for e in self._expenses.pending_prorateable()
                if proration.qualifies(e)
            ),
            ZERO,
        )

        return CostBreakdown(
            active_unit_count=len(rows),
            purchase_total_usd=purchase_usd,
            purchase_total_local=purchase_local,
            freight_total_local=freight_local,
            prorated_total_local=prorated_total,
            dynamic_total_local=dynamic_total,
            pending_shared_total=pending,
            expenses_by_category=self._expenses.totals_by_category(),
        )
