"""
Tests for the Base Cost Calculator.

Covers:
- Purchase conversion plus order freight share
- Unit-level freight overrides the order share
- Determinism
"""

from decimal import Decimal
from uuid import uuid4

from ctru_engines.base_cost import BaseCostCalculator, FreightSource
from ctru_engines.currency import CurrencyResolver
from ctru_kernel.domain.classification import UnitState
from ctru_kernel.domain.dtos import UnitCostInputs


def _unit(cost="100", purchase_rate="3.50", payment_rate=None, freight_usd=None):
    return UnitCostInputs(
        unit_id=uuid4(),
        product_id="P",
        state=UnitState.AVAILABLE_DESTINATION,
        purchase_cost_usd=Decimal(cost),
        purchase_rate=Decimal(purchase_rate) if purchase_rate else None,
        payment_rate=Decimal(payment_rate) if payment_rate else None,
        freight_cost_usd=Decimal(freight_usd) if freight_usd else None,
        purchase_order_id="PO-1",
    )


class TestBaseCost:
    def setup_method(self):
        self.calculator = BaseCostCalculator(CurrencyResolver("3.70"))

    def test_purchase_only(self):
        cost = self.calculator.calculate(_unit())
        assert cost.purchase_cost_local == Decimal("350.00")
        assert cost.freight_cost_local == Decimal("0")
        assert cost.freight_source is FreightSource.NONE
        assert cost.base_landed_cost == Decimal("350.00")

    def test_order_freight_share_added(self):
        cost = self.calculator.calculate(_unit(), Decimal("25"))
        assert cost.freight_source is FreightSource.PURCHASE_ORDER
        assert cost.base_landed_cost == Decimal("375.00")

    def test_unit_freight_overrides_order_share(self):
        cost = self.calculator.calculate(_unit(freight_usd="10"), Decimal("25"))
        assert cost.freight_source is FreightSource.UNIT
        assert cost.freight_cost_local == Decimal("35.00")
        assert cost.base_landed_cost == Decimal("385.00")

    def test_payment_rate_used_for_both_components(self):
        cost = self.calculator.calculate(_unit(payment_rate="4", freight_usd="10"))
        assert cost.rate == Decimal("4")
        assert cost.base_landed_cost == Decimal("440")

    def test_deterministic(self):
        unit = _unit(freight_usd="3.33")
        first = self.calculator.calculate(unit, Decimal("1"))
        second = self.calculator.calculate(unit, Decimal("1"))
        assert first == second
