"""
LandedCostService -- base landed cost of units from live store data.

Responsibility:
    Imperative shell around the pure FreightAllocator and
    BaseCostCalculator: loads each purchase order's freight expenses and
    unit count, then computes (and, on receipt or a freight change, stamps)
    base landed cost.  Also supplies the cost of units never stamped.

Architecture position:
    Services -- imperative shell.  Flush-only; the caller commits.

Invariants enforced:
    - One freight lookup per purchase order per service instance; the same
      allocation is used for every unit of the order within a run.
    - A dangling purchase-order reference allocates zero freight.
    - stamp_initial_costs never touches a unit outside the active set;
      terminal units keep their frozen cost.
    - A stamp never lowers a unit's base_landed_cost: a smaller freight
      share (another unit joined the order) leaves the stored base alone.

Failure modes:
    - UnitNotFoundError from stamp_initial_costs for an unknown unit id.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ctru_config.schema import EngineConfig
from ctru_engines.base_cost import BaseCost, BaseCostCalculator
from ctru_engines.currency import CurrencyResolver
from ctru_engines.freight import FreightAllocation, FreightAllocator
from ctru_kernel.domain.dtos import UnitCostInputs
from ctru_kernel.exceptions import UnitNotFoundError
from ctru_kernel.logging_config import get_logger
from ctru_kernel.models.unit import Unit
from ctru_kernel.selectors.expense_selector import ExpenseSelector
from ctru_kernel.selectors.unit_selector import UnitSelector

logger = get_logger("services.landed_cost")


class LandedCostService:
    """Computes base landed cost with per-order freight caching."""

    def __init__(
        self,
        session: Session,
        config: EngineConfig,
        resolver: CurrencyResolver | None = None,
    ):
        self.session = session
        self._config = config
        self._resolver = resolver or CurrencyResolver(config.fallback_exchange_rate)
        self._freight = FreightAllocator(config.freight_expense_type)
        self._calculator = BaseCostCalculator(self._resolver)
        self._units = UnitSelector(session)
        self._expenses = ExpenseSelector(session)
        self._freight_cache: dict[str, FreightAllocation] = {}

    @property
    def resolver(self) -> CurrencyResolver:
        return self._resolver

    def freight_allocation(self, purchase_order_id: str | None) -> FreightAllocation:
        if purchase_order_id is None:
            return FreightAllocation.none()
        cached = self._freight_cache.get(purchase_order_id)
        if cached is not None:
            return cached

        allocation = self._freight.allocate(
            purchase_order_id=purchase_order_id,
            freight_expenses=self._expenses.freight_for_purchase_order(
                purchase_order_id, self._config.freight_expense_type
            ),
            unit_count=self._units.count_for_purchase_order(purchase_order_id),
        )
        if allocation.expense_count and not allocation.unit_count:
            logger.warning(
                "freight_without_units",
                extra={
                    "purchase_order_id": purchase_order_id,
                    "freight_total": str(allocation.freight_total),
                },
            )
        self._freight_cache[purchase_order_id] = allocation
        return allocation

    def base_cost(self, unit: UnitCostInputs) -> BaseCost:
        allocation = self.freight_allocation(unit.purchase_order_id)
        return self._calculator.calculate(unit, allocation.per_unit)

    def current_cost(
        self,
        inputs: UnitCostInputs,
        base_landed_cost: Decimal | None,
        prorated_cost: Decimal,
        dynamic_cost: Decimal | None,
    ) -> Decimal:
        """Stored dynamic cost, or base plus prorated share for an unstamped unit."""
        if dynamic_cost is not None:
            return dynamic_cost
        if base_landed_cost is None:
            base_landed_cost = self.base_cost(inputs).base_landed_cost
        return base_landed_cost + prorated_cost

    def stamp_initial_costs(
        self,
        unit_ids: Iterable[UUID],
        actor_id: UUID,
        now: datetime,
    ) -> list[BaseCost]:
        """
        Stamp base_landed_cost and dynamic_cost on received units.

        dynamic_cost = base_landed_cost + prorated_cost (zero for a new unit).
        Units outside the active set are skipped.  Re-stamping an already
        stamped unit keeps the larger of its stored and computed base.
        """
        ids = list(dict.fromkeys(unit_ids))
        if not ids:
            return []
        units = {
            u.id: u
            for u in self.session.scalars(
                select(Unit).where(Unit.id.in_(ids)).order_by(Unit.id).with_for_update()
            )
        }
        missing = [uid for uid in ids if uid not in units]
        if missing:
            raise UnitNotFoundError(str(missing[0]))

        stamped: list[BaseCost] = []
        for unit_id in ids:
            unit = units[unit_id]
            inputs = UnitCostInputs.from_model(unit)
            if inputs.state not in self._config.active_states:
                logger.info(
                    "stamp_skipped_inactive_unit",
                    extra={"unit_id": str(unit_id), "state": inputs.state.value},
                )
                continue
            cost = self.base_cost(inputs)
            base = cost.base_landed_cost
            if unit.base_landed_cost is not None and unit.base_landed_cost > base:
                base = unit.base_landed_cost
            unit.base_landed_cost = base
            unit.dynamic_cost = base + (unit.prorated_cost or 0)
            unit.cost_updated_at = now
            unit.updated_by_id = actor_id
            stamped.append(cost)

        self.session.flush()
        logger.info(
            "initial_costs_stamped",
            extra={"requested": len(ids), "stamped": len(stamped)},
        )
        return stamped

    def restamp_purchase_order(
        self,
        purchase_order_id: str,
        actor_id: UUID,
        now: datetime,
    ) -> list[BaseCost]:
        """Re-stamp an order's active units after its freight changed."""
        ids = self._units.active_ids_for_purchase_order(
            purchase_order_id, self._config.active_states
        )
        stamped = self.stamp_initial_costs(ids, actor_id, now)
        logger.info(
            "purchase_order_restamped",
            extra={"purchase_order_id": purchase_order_id, "stamped": len(stamped)},
        )
        return stamped
