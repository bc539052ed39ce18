"""
MarginService -- gross margin of a sale from live unit costs.

Responsibility:
    Loads the current dynamic cost of the units assigned to a sale (and,
    for compute_sale_margin, the sale's direct expenses) and hands them to
    the pure MarginCalculator.  A unit never stamped is costed at its
    computed base landed cost plus any prorated share.

Architecture position:
    Services -- read-only shell.  Never reads ProductCostAggregate.

Failure modes:
    - InvalidSalePriceError for a non-numeric or non-positive price.
    - Unknown or malformed unit ids contribute zero cost (reported in the
      result, not raised).
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy.orm import Session

from ctru_config.schema import EngineConfig
from ctru_engines.currency import CurrencyResolver
from ctru_engines.margin import MarginCalculator, MarginResult, SaleMarginResult
from ctru_kernel.exceptions import InvalidSalePriceError
from ctru_kernel.selectors.expense_selector import ExpenseSelector
from ctru_kernel.selectors.unit_selector import UnitSelector
from ctru_services.landed_cost_service import LandedCostService


def _parse_price(sale_price: Decimal | str | int) -> Decimal:
    try:
        price = sale_price if isinstance(sale_price, Decimal) else Decimal(str(sale_price))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidSalePriceError(str(sale_price)) from exc
    if not price.is_finite() or price <= 0:
        raise InvalidSalePriceError(str(sale_price))
    return price


def _parse_unit_ids(unit_ids: Iterable[UUID | str]) -> list[UUID | str]:
    parsed: list[UUID | str] = []
    for raw in unit_ids:
        if isinstance(raw, UUID):
            parsed.append(raw)
            continue
        try:
            parsed.append(UUID(str(raw)))
        except ValueError:
            # Never resolves; contributes zero cost
            parsed.append(str(raw))
    return parsed


class MarginService:
    def __init__(
        self,
        session: Session,
        config: EngineConfig,
        resolver: CurrencyResolver | None = None,
    ):
        self.session = session
        self._landed = LandedCostService(session, config, resolver)
        self._units = UnitSelector(session)
        self._expenses = ExpenseSelector(session)
        self._calculator = MarginCalculator()

    def _unit_costs(self, unit_ids: list[UUID | str]) -> dict[UUID, Decimal]:
        rows = self._units.cost_rows_for(u for u in unit_ids if isinstance(u, UUID))
        return {
            unit_id: self._landed.current_cost(*row) for unit_id, row in rows.items()
        }

    def compute_margin(
        self,
        sale_price: Decimal | str | int,
        unit_ids: Iterable[UUID | str],
    ) -> MarginResult:
        price = _parse_price(sale_price)
        ids = _parse_unit_ids(unit_ids)
        return self._calculator.compute(
            sale_price=price, unit_ids=ids, unit_costs=self._unit_costs(ids)
        )

    def compute_sale_margin(
        self,
        sale_id: str,
        sale_price: Decimal | str | int,
        unit_ids: Iterable[UUID | str],
    ) -> SaleMarginResult:
        price = _parse_price(sale_price)
        ids = _parse_unit_ids(unit_ids)
        return self._calculator.compute_for_sale(
            sale_id,
            price,
            ids,
            self._unit_costs(ids),
            self._expenses.direct_for_sale(sale_id),
        )
