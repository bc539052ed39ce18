"""
Pure calculators for the CTRU engine.

No I/O lives here: selectors and services in ctru_kernel / ctru_services
feed these classes DTOs and persist what they return.
"""

from ctru_engines.aggregate import CostStatistics, CostStats
from ctru_engines.base_cost import BaseCost, BaseCostCalculator, FreightSource
from ctru_engines.currency import CurrencyResolver
from ctru_engines.freight import FreightAllocation, FreightAllocator
from ctru_engines.margin import MarginCalculator, MarginResult, SaleMarginResult
from ctru_engines.proration import (
    ExclusionReason,
    ExpenseProrationEngine,
    ProrationImpact,
)

__all__ = [
    "BaseCost",
    "BaseCostCalculator",
    "CostStatistics",
    "CostStats",
    "CurrencyResolver",
    "ExclusionReason",
    "ExpenseProrationEngine",
    "FreightAllocation",
    "FreightAllocator",
    "FreightSource",
    "MarginCalculator",
    "MarginResult",
    "SaleMarginResult",
    "ProrationImpact",
]
