"""
Typed Exception Hierarchy for the CTRU Kernel.

Every error the engine raises has a TYPED class (catch by type, not by
message), a class-level ``code`` (machine-readable, API-safe), and
structured attributes (not just a message string).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CtruKernelError (base)
    |
    +-- ConfigurationError
    |   +-- MissingFallbackRateError
    |
    +-- ExpenseError
    |   +-- InvalidExpenseError
    |   +-- MissingExchangeRateError
    |
    +-- UnitError
    |   +-- UnitNotFoundError
    |
    +-- ConcurrencyError
    |   +-- RecalculationInProgressError
    |   +-- ConsumedExpenseConflictError
    |
    +-- MarginError
        +-- InvalidSalePriceError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Invalid engine configuration (startup)
                | MISSING_FALLBACK_RATE       | No positive fallback exchange rate
----------------|-----------------------------|-----------------------------------------
Expense         | INVALID_EXPENSE             | Non-positive amount, unknown category
                | MISSING_EXCHANGE_RATE       | Foreign-currency expense without rate
                | EXPENSE_NOT_FOUND           | Expense ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Unit            | UNIT_NOT_FOUND              | Unit ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Concurrency     | RECALCULATION_IN_PROGRESS   | Another recalculation holds the guard
                | CONSUMED_EXPENSE_CONFLICT   | Candidate expense consumed concurrently
----------------|-----------------------------|-----------------------------------------
Margin          | INVALID_SALE_PRICE          | Sale price <= 0

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CONCURRENCY ERRORS ARE RETRYABLE. Nothing was marked consumed and no
   unit was updated when a ConcurrencyError surfaces:

    try:
        result = engine.recalculate()
    except ConcurrencyError:
        schedule_retry()

2. CONFIGURATION ERRORS ARE FATAL. They are raised while building the
   engine, never per call.

3. STORE ERRORS ARE NOT WRAPPED. SQLAlchemy errors from the underlying
   store propagate unchanged from ``recalculate()``.
"""


class CtruKernelError(Exception):
    """
    Base exception for all CTRU kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CTRU_KERNEL_ERROR"


# Configuration exceptions


class ConfigurationError(CtruKernelError):
    """Engine configuration is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid configuration for '{setting}': {reason}")


class MissingFallbackRateError(ConfigurationError):
    """No usable fallback exchange rate is configured."""

    code: str = "MISSING_FALLBACK_RATE"

    def __init__(self, value: object = None):
        self.value = value
        super().__init__(
            "fallback_exchange_rate",
            f"a positive rate is required, got {value!r}",
        )


# Expense exceptions


class ExpenseError(CtruKernelError):
    """Base exception for expense-related errors."""

    code: str = "EXPENSE_ERROR"


class InvalidExpenseError(ExpenseError):
    """Expense data is invalid."""

    code: str = "INVALID_EXPENSE"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid expense field '{field}': {reason}")


class MissingExchangeRateError(ExpenseError):
    """Foreign-currency expense registered without an exchange rate."""

    code: str = "MISSING_EXCHANGE_RATE"

    def __init__(self, currency: str, local_currency: str):
        self.currency = currency
        self.local_currency = local_currency
        super().__init__(
            f"Expense in {currency} requires an exchange rate to {local_currency}"
        )


# Unit exceptions


class UnitError(CtruKernelError):
    """Base exception for unit-related errors."""

    code: str = "UNIT_ERROR"


class UnitNotFoundError(UnitError):
    """Unit with given ID was not found."""

    code: str = "UNIT_NOT_FOUND"

    def __init__(self, unit_id: str):
        self.unit_id = unit_id
        super().__init__(f"Unit not found: {unit_id}")


# Concurrency exceptions


class ConcurrencyError(CtruKernelError):
    """Base exception for concurrency-related errors. Always safe to retry."""

    code: str = "CONCURRENCY_ERROR"


class RecalculationInProgressError(ConcurrencyError):
    """Another recalculation currently holds the serialization guard."""

    code: str = "RECALCULATION_IN_PROGRESS"

    def __init__(self, guard_name: str):
        self.guard_name = guard_name
        super().__init__(
            f"Recalculation already in progress (guard '{guard_name}')"
        )


class ConsumedExpenseConflictError(ConcurrencyError):
    """
    Some candidate expenses were consumed by another run.

    Raised before commit, so the batch rolls back and nothing changes.
    """

    code: str = "CONSUMED_EXPENSE_CONFLICT"

    def __init__(self, expected: int, flipped: int):
        self.expected = expected
        self.flipped = flipped
        super().__init__(
            f"Expected to consume {expected} expense(s) but only {flipped} "
            f"were still unconsumed"
        )


# Margin exceptions


class MarginError(CtruKernelError):
    """Base exception for margin calculation errors."""

    code: str = "MARGIN_ERROR"


class InvalidSalePriceError(MarginError):
    """Sale price must be positive for a margin percentage."""

    code: str = "INVALID_SALE_PRICE"

    def __init__(self, sale_price: str):
        self.sale_price = sale_price
        super().__init__(f"Sale price must be positive, got {sale_price}")
