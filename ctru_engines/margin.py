"""
Module: ctru_engines.margin
Responsibility:
    Gross margin of a sale from the live dynamic costs of the units sold,
    optionally net of the direct expenses booked against that sale.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Read-side consumer of
    the engine's output.

Invariants enforced:
    - Unit ids that do not resolve contribute zero cost and are reported,
      not raised.
    - Every occurrence of a unit id is costed; a repeated id adds its cost
      again and counts toward unit_count.
    - No rounding; presentation rounds.

Failure modes:
    - InvalidSalePriceError when sale_price <= 0 (margin percentage would
      divide by a non-positive price).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from ctru_engines.tracer import traced_engine
from ctru_kernel.domain.classification import ExpenseClass
from ctru_kernel.domain.dtos import ExpenseSnapshot
from ctru_kernel.exceptions import InvalidSalePriceError
from ctru_kernel.logging_config import get_logger

logger = get_logger("engines.margin")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _round(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class MarginResult:
    """Gross margin of one sale."""

    sale_price: Decimal
    total_cost: Decimal
    unit_count: int
    unresolved_unit_ids: tuple[UUID, ...] = ()

    @property
    def gross_profit(self) -> Decimal:
        return self.sale_price - self.total_cost

    @property
    def margin_percent(self) -> Decimal:
        return self.gross_profit / self.sale_price * HUNDRED

    def as_dict(self, places: int = 2) -> dict:
        return {
            "totalCost": str(_round(self.total_cost, places)),
            "grossProfit": str(_round(self.gross_profit, places)),
            "marginPercent": str(_round(self.margin_percent, places)),
            "unitCount": self.unit_count,
            "unresolvedUnitIds": [str(u) for u in self.unresolved_unit_ids],
        }


@dataclass(frozen=True)
class SaleMarginResult:
    """Gross margin plus the direct expenses of the same sale."""

    sale_id: str
    margin: MarginResult
    direct_expenses: Decimal

    @property
    def net_profit(self) -> Decimal:
        return self.margin.gross_profit - self.direct_expenses

    @property
    def net_margin_percent(self) -> Decimal:
        return self.net_profit / self.margin.sale_price * HUNDRED

    def as_dict(self, places: int = 2) -> dict:
        data = self.margin.as_dict(places)
        data.update(
            {
                "saleId": self.sale_id,
                "directExpenses": str(_round(self.direct_expenses, places)),
                "netProfit": str(_round(self.net_profit, places)),
                "netMarginPercent": str(_round(self.net_margin_percent, places)),
            }
        )
        return data


class MarginCalculator:
    """Pure margin calculator."""

    @traced_engine("margin", "1.0", fingerprint_fields=("sale_price", "unit_ids"))
    def compute(
        self,
        sale_price: Decimal,
        unit_ids: Sequence[UUID],
        unit_costs: Mapping[UUID, Decimal | None],
    ) -> MarginResult:
        """
        Args:
            sale_price: Price of the sale in local currency.
            unit_ids: Units assigned to the sale, one entry per unit sold.
            unit_costs: Live dynamic cost per resolvable unit id.
        """
        if sale_price is None or sale_price <= 0:
            raise InvalidSalePriceError(str(sale_price))

        total = ZERO
        unresolved: dict[UUID, None] = {}
        for unit_id in unit_ids:
            cost = unit_costs.get(unit_id)
            if cost is None:
                unresolved[unit_id] = None
                continue
            total += cost

        if unresolved:
            logger.warning(
                "margin_units_unresolved",
                extra={"unit_ids": [str(u) for u in unresolved]},
            )

        return MarginResult(
            sale_price=sale_price,
            total_cost=total,
            unit_count=len(unit_ids),
            unresolved_unit_ids=tuple(unresolved),
        )

    def compute_for_sale(
        self,
        sale_id: str,
        sale_price: Decimal,
        unit_ids: Sequence[UUID],
        unit_costs: Mapping[UUID, Decimal | None],
        direct_expenses: Sequence[ExpenseSnapshot],
    ) -> SaleMarginResult:
        """Margin net of the sale's direct (sale/distribution) expenses."""
        margin = self.compute(sale_price=sale_price, unit_ids=unit_ids, unit_costs=unit_costs)
        direct = sum(
            (
                e.amount_local
                for e in direct_expenses
                if e.sale_id == sale_id and e.expense_class is ExpenseClass.DIRECT
            ),
            ZERO,
        )
        return SaleMarginResult(sale_id=sale_id, margin=margin, direct_expenses=direct)
