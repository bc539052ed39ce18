"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable data structures that flow between the persistence layer and
    the pure calculators: UnitCostInputs and ExpenseSnapshot (engine inputs),
    NewExpense (registration input), and the read-side report shapes
    (ProductCostSummary, CostHistoryPoint, CostBreakdown).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods are boundary converters, invoked only from
    selectors and services (never from engine logic).

Invariants enforced:
    - Engines accept DTOs, never ORM entities.
    - All monetary fields are Decimal, never float.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from ctru_kernel.domain.classification import (
    ExpenseCategory,
    ExpenseClass,
    UnitState,
)

if TYPE_CHECKING:
    from ctru_kernel.models.expense import Expense as ExpenseModel
    from ctru_kernel.models.product_cost import ProductCostAggregate as AggregateModel
    from ctru_kernel.models.unit import Unit as UnitModel


@dataclass(frozen=True)
class UnitCostInputs:
    """
    Everything the Base Cost Calculator needs to know about one unit.

    Guarantees:
        - Rates are either positive Decimals or None (never zero).
    """

    unit_id: UUID
    product_id: str
    state: UnitState
    purchase_cost_usd: Decimal
    freight_cost_usd: Decimal | None = None
    purchase_rate: Decimal | None = None
    payment_rate: Decimal | None = None
    purchase_order_id: str | None = None

    @classmethod
    def from_model(cls, model: UnitModel) -> UnitCostInputs:
        """Create cost inputs from a Unit ORM model."""
        return cls(
            unit_id=model.id,
            product_id=model.product_id,
            state=UnitState(model.state),
            purchase_cost_usd=model.purchase_cost_usd,
            freight_cost_usd=model.freight_cost_usd,
            purchase_rate=model.purchase_rate or None,
            payment_rate=model.payment_rate or None,
            purchase_order_id=model.purchase_order_id,
        )


@dataclass(frozen=True)
class ExpenseSnapshot:
    """An expense as seen by the proration and freight calculators."""

    expense_id: UUID
    category: ExpenseCategory
    expense_class: ExpenseClass
    expense_type: str
    amount_local: Decimal
    is_prorateable: bool
    consumed: bool
    purchase_order_id: str | None = None
    sale_id: str | None = None

    @classmethod
    def from_model(cls, model: ExpenseModel) -> ExpenseSnapshot:
        """Create a snapshot from an Expense ORM model."""
        return cls(
            expense_id=model.id,
            category=ExpenseCategory(model.category),
            expense_class=ExpenseClass(model.expense_class),
            expense_type=model.expense_type,
            amount_local=model.amount_local,
            is_prorateable=model.is_prorateable,
            consumed=model.consumed,
            purchase_order_id=model.purchase_order_id,
            sale_id=model.sale_id,
        )


@dataclass(frozen=True)
class NewExpense:
    """
    Registration input for an expense.

    ``is_prorateable`` None means "default from category".  ``amount`` is in
    ``currency``; ``exchange_rate`` converts it to the local currency and is
    required when ``currency`` is not the local currency.
    """

    category: ExpenseCategory
    expense_type: str
    amount: Decimal
    currency: str
    incurred_on: date
    description: str = ""
    exchange_rate: Decimal | None = None
    is_prorateable: bool | None = None
    purchase_order_id: str | None = None
    sale_id: str | None = None


@dataclass(frozen=True)
class ProductCostSummary:
    """Cached per-product cost aggregate as exposed to readers."""

    product_id: str
    average_cost: Decimal
    min_cost: Decimal
    max_cost: Decimal
    active_unit_count: int
    refreshed_at: datetime | None = None

    @classmethod
    def empty(cls, product_id: str) -> ProductCostSummary:
        """Summary for a product that has never been aggregated."""
        return cls(
            product_id=product_id,
            average_cost=Decimal("0"),
            min_cost=Decimal("0"),
            max_cost=Decimal("0"),
            active_unit_count=0,
        )

    @classmethod
    def from_model(cls, model: AggregateModel) -> ProductCostSummary:
        return cls(
            product_id=model.product_id,
            average_cost=model.average_cost,
            min_cost=model.min_cost,
            max_cost=model.max_cost,
            active_unit_count=model.active_unit_count,
            refreshed_at=model.refreshed_at,
        )


@dataclass(frozen=True)
class CostHistoryPoint:
    """Average dynamic cost of a product's units received in one month."""

    year: int
    month: int
    average_cost: Decimal
    unit_count: int


@dataclass(frozen=True)
class CostBreakdown:
    """
    Composition of the active inventory's cost.

    ``expenses_by_category`` covers every expense ever booked, keyed by
    category value; ``pending_shared_total`` is what the next recalculation
    would prorate.
    """

    active_unit_count: int
    purchase_total_usd: Decimal
    purchase_total_local: Decimal
    freight_total_local: Decimal
    prorated_total_local: Decimal
    dynamic_total_local: Decimal
    pending_shared_total: Decimal
    expenses_by_category: dict[str, Decimal] = field(default_factory=dict)

    @property
    def shared_expense_total(self) -> Decimal:
        return self.expenses_by_category.get(
            ExpenseCategory.ADMINISTRATIVE.value, Decimal("0")
        ) + self.expenses_by_category.get(
            ExpenseCategory.OPERATIONAL.value, Decimal("0")
        )

    @property
    def direct_expense_total(self) -> Decimal:
        return self.expenses_by_category.get(
            ExpenseCategory.SALE.value, Decimal("0")
        ) + self.expenses_by_category.get(
            ExpenseCategory.DISTRIBUTION.value, Decimal("0")
        )
