"""
Tests for landed cost: freight allocation per purchase order, base cost
stamping of unstamped units during recalculation, stored bases that never
drop, and initial cost stamping.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ctru_engines.base_cost import FreightSource
from ctru_kernel.domain.classification import ExpenseCategory, UnitState
from ctru_kernel.domain.dtos import UnitCostInputs
from ctru_kernel.exceptions import UnitNotFoundError
from ctru_kernel.models.unit import Unit
from ctru_services.landed_cost_service import LandedCostService


def _freight(make_expense, amount, purchase_order_id="PO-1"):
    return make_expense(
        amount,
        ExpenseCategory.OPERATIONAL,
        expense_type="freight",
        purchase_order_id=purchase_order_id,
    )


class TestFreightAllocation:
    def test_freight_divided_by_all_order_units(
        self, session, engine_config, make_unit, make_expense
    ):
        make_unit(purchase_order_id="PO-1")
        make_unit(purchase_order_id="PO-1")
        make_unit(purchase_order_id="PO-1", state=UnitState.SOLD)
        make_unit(purchase_order_id="PO-1", state=UnitState.DAMAGED)
        _freight(make_expense, "400")

        allocation = LandedCostService(session, engine_config).freight_allocation("PO-1")

        assert allocation.unit_count == 4
        assert allocation.per_unit == Decimal("100")

    def test_dangling_purchase_order_allocates_zero(
        self, session, engine_config, make_expense, captured_logs
    ):
        _freight(make_expense, "400", purchase_order_id="PO-GHOST")

        allocation = LandedCostService(session, engine_config).freight_allocation("PO-GHOST")

        assert allocation.per_unit == Decimal("0")
        assert any(r["message"] == "freight_without_units" for r in captured_logs())

    def test_no_purchase_order(self, session, engine_config):
        allocation = LandedCostService(session, engine_config).freight_allocation(None)
        assert allocation.per_unit == Decimal("0")


class TestBaseCost:
    def test_unit_freight_overrides_order_share(
        self, session, engine_config, make_unit, make_expense
    ):
        unit = make_unit(purchase_order_id="PO-1", freight_cost_usd="2")
        make_unit(purchase_order_id="PO-1")
        _freight(make_expense, "100")

        cost = LandedCostService(session, engine_config).base_cost(
            UnitCostInputs.from_model(unit)
        )

        assert cost.freight_source is FreightSource.UNIT
        assert cost.base_landed_cost == Decimal("42")

    def test_recalculation_stamps_base_of_unstamped_units(
        self, ctru_engine, session, make_unit, make_expense
    ):
        a = make_unit(purchase_order_id="PO-1", purchase_cost_usd="10",
                      purchase_rate="3.5", base_landed_cost=None)
        make_unit(purchase_order_id="PO-1", purchase_cost_usd="10",
                  purchase_rate="3.5", base_landed_cost=None)
        _freight(make_expense, "70")
        make_expense("20")

        ctru_engine.recalculate()

        session.expire_all()
        unit = session.get(Unit, a.id)
        assert unit.base_landed_cost == Decimal("70")
        assert unit.prorated_cost == Decimal("10")
        assert unit.dynamic_cost == Decimal("80")


class TestStampedBaseKept:
    def test_unit_joining_order_never_lowers_existing_cost(
        self, ctru_engine, session, make_unit, make_expense
    ):
        _freight(make_expense, "100")
        a = make_unit(purchase_order_id="PO-1", base_landed_cost=None)
        ctru_engine.stamp_initial_costs([a.id])
        make_expense("10")
        ctru_engine.recalculate()
        session.expire_all()
        before = session.get(Unit, a.id).dynamic_cost
        assert before == Decimal("145")

        b = make_unit(purchase_order_id="PO-1", base_landed_cost=None)
        ctru_engine.stamp_initial_costs([b.id])
        make_expense("10")
        ctru_engine.recalculate()

        session.expire_all()
        first = session.get(Unit, a.id)
        assert first.base_landed_cost == Decimal("135")
        assert first.dynamic_cost == Decimal("150")
        assert first.dynamic_cost >= before
        second = session.get(Unit, b.id)
        assert second.base_landed_cost == Decimal("85")
        assert second.dynamic_cost == Decimal("90")

    def test_restamp_never_lowers_base(self, ctru_engine, session, make_unit, make_expense):
        _freight(make_expense, "100")
        a = make_unit(purchase_order_id="PO-1", base_landed_cost=None)
        ctru_engine.stamp_initial_costs([a.id])
        make_unit(purchase_order_id="PO-1", base_landed_cost=None)

        ctru_engine.stamp_initial_costs([a.id])

        session.expire_all()
        assert session.get(Unit, a.id).base_landed_cost == Decimal("135")
        assert session.get(Unit, a.id).dynamic_cost == Decimal("135")


class TestStampInitialCosts:
    def test_stamps_received_units(self, ctru_engine, session, make_unit, make_expense):
        fresh = make_unit(purchase_order_id="PO-7", purchase_cost_usd="20",
                          purchase_rate="3.6", base_landed_cost=None)
        make_unit(purchase_order_id="PO-7", base_landed_cost=None, state=UnitState.SOLD)
        _freight(make_expense, "50", purchase_order_id="PO-7")

        stamped = ctru_engine.stamp_initial_costs([fresh.id])

        assert stamped == 1
        session.expire_all()
        unit = session.get(Unit, fresh.id)
        assert unit.base_landed_cost == Decimal("97")
        assert unit.dynamic_cost == Decimal("97")
        assert unit.cost_updated_at is not None
        summary = ctru_engine.get_product_cost("PROD-1")
        assert summary.average_cost == Decimal("97")

    def test_payment_rate_preferred(self, ctru_engine, session, make_unit):
        unit = make_unit(purchase_cost_usd="10", purchase_rate="3.5",
                         payment_rate="3.9", base_landed_cost=None)

        ctru_engine.stamp_initial_costs([unit.id])

        session.expire_all()
        assert session.get(Unit, unit.id).dynamic_cost == Decimal("39")

    def test_fallback_rate_when_no_rates(self, ctru_engine, session, make_unit):
        unit = make_unit(purchase_cost_usd="10", purchase_rate=None, base_landed_cost=None)

        ctru_engine.stamp_initial_costs([unit.id])

        session.expire_all()
        assert session.get(Unit, unit.id).dynamic_cost == Decimal("37")

    def test_terminal_unit_skipped(self, ctru_engine, session, make_unit):
        sold = make_unit(state=UnitState.SOLD, base_landed_cost="5")

        assert ctru_engine.stamp_initial_costs([sold.id]) == 0
        session.expire_all()
        assert session.get(Unit, sold.id).dynamic_cost == Decimal("5")

    def test_unknown_unit_rejected(self, ctru_engine):
        with pytest.raises(UnitNotFoundError):
            ctru_engine.stamp_initial_costs([uuid4()])

    def test_empty_is_noop(self, ctru_engine):
        assert ctru_engine.stamp_initial_costs([]) == 0
