"""
Module: ctru_engines.base_cost
Responsibility:
    Combine a unit's converted purchase cost with its freight share into
    the base landed cost (before shared-expense proration).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - base_landed_cost = purchase_cost_usd * effective_rate + freight.
    - Freight comes from exactly one source: the unit's own freight_cost_usd
      (when positive, converted with the same rate), otherwise the order's
      per-unit allocation.  Never both.
    - Deterministic: identical inputs always produce identical output.  The
      value stored on the unit is a cache of this function and is always
      recomputed, never patched.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ctru_engines.currency import CurrencyResolver
from ctru_kernel.domain.dtos import UnitCostInputs


class FreightSource(str, Enum):
    """Where a unit's freight component came from."""

    UNIT = "unit"
    PURCHASE_ORDER = "purchase_order"
    NONE = "none"


@dataclass(frozen=True)
class BaseCost:
    """Base landed cost of one unit with its components."""

    unit_id: UUID
    product_id: str
    rate: Decimal
    purchase_cost_local: Decimal
    freight_cost_local: Decimal
    freight_source: FreightSource

    @property
    def base_landed_cost(self) -> Decimal:
        return self.purchase_cost_local + self.freight_cost_local


class BaseCostCalculator:
    """
    Pure base landed cost calculator.

    Non-goals:
        - Does NOT look up freight; the caller passes the order's per-unit
          allocation (see FreightAllocator).
    """

    def __init__(self, resolver: CurrencyResolver):
        self._resolver = resolver

    def calculate(
        self,
        unit: UnitCostInputs,
        freight_per_unit: Decimal = Decimal("0"),
    ) -> BaseCost:
        rate = self._resolver.effective_rate(unit)
        purchase_local = self._resolver.convert(unit.purchase_cost_usd, rate)

        if unit.freight_cost_usd is not None and unit.freight_cost_usd > 0:
            freight_local = self._resolver.convert(unit.freight_cost_usd, rate)
            source = FreightSource.UNIT
        elif freight_per_unit > 0:
            freight_local = freight_per_unit
            source = FreightSource.PURCHASE_ORDER
        else:
            freight_local = Decimal("0")
            source = FreightSource.NONE

        return BaseCost(
            unit_id=unit.unit_id,
            product_id=unit.product_id,
            rate=rate,
            purchase_cost_local=purchase_local,
            freight_cost_local=freight_local,
            freight_source=source,
        )
