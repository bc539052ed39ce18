"""
Classification -- unit lifecycle states and expense categories.

Responsibility:
    The single source of truth for which units are *active* and which
    expenses are *shared* (prorated into unit cost) versus *direct*
    (attributed to one sale).

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by models, selectors,
    engines, and services alike.

Invariants enforced:
    - Category determines class: {sale, distribution} -> direct,
      {administrative, operational} -> shared.  There is no way to mark a
      direct expense as shared.
    - Only received_origin, available_destination, and reserved are active.
      sold, expired, and damaged are terminal and never recalculated.
"""

from enum import Enum


class UnitState(str, Enum):
    """Lifecycle state of a physical unit."""

    RECEIVED_ORIGIN = "received_origin"  # Received at the origin warehouse
    AVAILABLE_DESTINATION = "available_destination"  # Sellable at destination
    RESERVED = "reserved"  # Committed to a quote or order
    SOLD = "sold"
    EXPIRED = "expired"
    DAMAGED = "damaged"


ACTIVE_STATES: frozenset[UnitState] = frozenset({
    UnitState.RECEIVED_ORIGIN,
    UnitState.AVAILABLE_DESTINATION,
    UnitState.RESERVED,
})

TERMINAL_STATES: frozenset[UnitState] = frozenset({
    UnitState.SOLD,
    UnitState.EXPIRED,
    UnitState.DAMAGED,
})


def is_active(state: UnitState | str) -> bool:
    """True if a unit in this state participates in proration."""
    return UnitState(state) in ACTIVE_STATES


class ExpenseCategory(str, Enum):
    """The four fixed expense categories."""

    SALE = "sale"  # Payment gateway fees, marketplace commissions
    DISTRIBUTION = "distribution"  # Couriers, delivery
    ADMINISTRATIVE = "administrative"  # Utilities, payroll, software
    OPERATIONAL = "operational"  # Office supplies, storage, maintenance


class ExpenseClass(str, Enum):
    """Derived from category; never set directly."""

    DIRECT = "direct"
    SHARED = "shared"

    @property
    def number_prefix(self) -> str:
        """Prefix for sequential expense numbers (GVD-0001 / GAO-0001)."""
        return "GVD" if self is ExpenseClass.DIRECT else "GAO"


_CATEGORY_CLASS: dict[ExpenseCategory, ExpenseClass] = {
    ExpenseCategory.SALE: ExpenseClass.DIRECT,
    ExpenseCategory.DISTRIBUTION: ExpenseClass.DIRECT,
    ExpenseCategory.ADMINISTRATIVE: ExpenseClass.SHARED,
    ExpenseCategory.OPERATIONAL: ExpenseClass.SHARED,
}


def class_for_category(category: ExpenseCategory | str) -> ExpenseClass:
    """Map an expense category to its class."""
    return _CATEGORY_CLASS[ExpenseCategory(category)]


def default_prorateable(category: ExpenseCategory | str) -> bool:
    """Shared expenses prorate by default; direct expenses never do."""
    return class_for_category(category) is ExpenseClass.SHARED
