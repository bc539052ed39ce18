"""
Module: ctru_kernel.selectors.unit_selector
Responsibility: Read-only queries over inventory units: the active set, the
    purchase-order linkage used by freight allocation, and live dynamic costs
    for margin and aggregate calculation.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Cost-critical reads (margin, proration) always come from live Unit
      rows, never from ProductCostAggregate.
    - Purchase-order unit counts include units in ANY state; freight was
      paid once regardless of what happened to the units later.

Failure modes:
    - Unknown unit ids are simply absent from the returned mappings.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ctru_kernel.domain.classification import ACTIVE_STATES, UnitState
from ctru_kernel.domain.dtos import UnitCostInputs
from ctru_kernel.models.unit import Unit
from ctru_kernel.selectors.base import BaseSelector


# (inputs, base_landed_cost, prorated_cost, dynamic_cost)
CostRow = tuple[UnitCostInputs, Decimal | None, Decimal, Decimal | None]


def _state_values(states: Iterable[UnitState] | None) -> list[str]:
    return sorted(s.value for s in (states if states is not None else ACTIVE_STATES))


def _cost_row(unit: Unit) -> CostRow:
    return (
        UnitCostInputs.from_model(unit),
        unit.base_landed_cost,
        unit.prorated_cost or Decimal("0"),
        unit.dynamic_cost,
    )


class UnitSelector(BaseSelector[Unit]):
    """Selector for unit queries."""

    def __init__(self, session: Session):
        super().__init__(session)

    def count_for_purchase_order(self, purchase_order_id: str) -> int:
        """Number of units ever linked to a purchase order, any state."""
        return self.session.scalar(
            select(func.count(Unit.id)).where(
                Unit.purchase_order_id == purchase_order_id
            )
        ) or 0

    def active_ids_for_purchase_order(
        self,
        purchase_order_id: str,
        active_states: Iterable[UnitState] | None = None,
    ) -> list[UUID]:
        return list(
            self.session.scalars(
                select(Unit.id)
                .where(
                    Unit.purchase_order_id == purchase_order_id,
                    Unit.state.in_(_state_values(active_states)),
                )
                .order_by(Unit.id)
            )
        )

    def cost_rows_for(self, unit_ids: Iterable[UUID]) -> dict[UUID, CostRow]:
        """
        Cost row for each resolvable unit id, in any state.

        Sold units carry the dynamic cost frozen when they left the active set.
        """
        ids = list(unit_ids)
        if not ids:
            return {}
        rows = self.session.scalars(select(Unit).where(Unit.id.in_(ids)))
        return {u.id: _cost_row(u) for u in rows}

    def active_receipts_for_product(
        self,
        product_id: str,
        active_states: Iterable[UnitState] | None = None,
    ) -> list[tuple[datetime, Decimal]]:
        """(received_at, dynamic_cost) for a product's costed active units."""
        rows = self.session.execute(
            select(Unit.received_at, Unit.dynamic_cost).where(
                Unit.product_id == product_id,
                Unit.state.in_(_state_values(active_states)),
                Unit.received_at.is_not(None),
                Unit.dynamic_cost.is_not(None),
            )
        )
        return [(row.received_at, row.dynamic_cost) for row in rows]

    def active_cost_rows(
        self,
        active_states: Iterable[UnitState] | None = None,
        product_id: str | None = None,
    ) -> list[CostRow]:
        """Cost row per active unit, optionally for one product only."""
        query = select(Unit).where(Unit.state.in_(_state_values(active_states)))
        if product_id is not None:
            query = query.where(Unit.product_id == product_id)
        return [_cost_row(u) for u in self.session.scalars(query.order_by(Unit.id))]
