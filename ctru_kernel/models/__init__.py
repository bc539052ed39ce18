"""Domain models for the CTRU kernel."""

from ctru_kernel.models.expense import Expense
from ctru_kernel.models.product_cost import ProductCostAggregate
from ctru_kernel.models.recalculation import RecalculationGuard, RecalculationRun
from ctru_kernel.models.sequence import SequenceCounter
from ctru_kernel.models.unit import Unit

__all__ = [
    "Expense",
    "ProductCostAggregate",
    "RecalculationGuard",
    "RecalculationRun",
    "SequenceCounter",
    "Unit",
]
