"""Read-only query selectors for the CTRU kernel."""

from ctru_kernel.selectors.expense_selector import ExpenseSelector
from ctru_kernel.selectors.product_cost_selector import (
    ProductCostSelector,
    RecalculationRunInfo,
)
from ctru_kernel.selectors.unit_selector import UnitSelector

__all__ = [
    "ExpenseSelector",
    "ProductCostSelector",
    "RecalculationRunInfo",
    "UnitSelector",
]
