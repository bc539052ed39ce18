"""
ExpenseService -- registration of booked expenses.

Responsibility:
    Turns a ``NewExpense`` into a persisted ``Expense`` row: derives the
    class from the category, defaults the proration flag, converts the
    amount to the local currency, and assigns the sequential number.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only; the caller commits.

Invariants enforced:
    - expense_class is always derived from category, never taken from input.
    - A foreign-currency expense without a positive exchange rate is
      rejected; nothing silently converts at 1:1.
    - New expenses are always unconsumed.

Failure modes:
    - InvalidExpenseError: unknown category or currency, non-positive
      amount or rate, empty expense type.
    - MissingExchangeRateError: foreign currency without a rate.

Audit relevance:
    Every registration logs ``expense_registered`` with its number, class,
    and local amount.  created_by_id records the actor.
"""

from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy.orm import Session

from ctru_kernel.domain.classification import (
    ExpenseCategory,
    class_for_category,
    default_prorateable,
)
from ctru_kernel.domain.currency import CurrencyRegistry
from ctru_kernel.domain.dtos import NewExpense
from ctru_kernel.exceptions import InvalidExpenseError, MissingExchangeRateError
from ctru_kernel.logging_config import get_logger
from ctru_kernel.models.expense import Expense
from ctru_kernel.services.base import BaseService
from ctru_kernel.services.sequence_service import SequenceService

logger = get_logger("services.expense")


def _as_decimal(value: object, field_name: str) -> Decimal:
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidExpenseError(field_name, f"not a number: {value!r}") from exc


class ExpenseService(BaseService[Expense]):
    """Creates expenses inside the caller's transaction."""

    def __init__(self, session: Session, local_currency: str = "PEN"):
        super().__init__(session)
        self._local_currency = local_currency
        self._sequences = SequenceService(session)

    def local_amount(self, new_expense: NewExpense) -> tuple[Decimal, Decimal | None]:
        """
        Validate the amount and convert it to the local currency.

        Returns:
            (amount_local, exchange_rate) where exchange_rate is None for
            local-currency expenses.
        """
        amount = _as_decimal(new_expense.amount, "amount")
        if amount <= 0:
            raise InvalidExpenseError("amount", f"must be positive, got {amount}")

        currency = (new_expense.currency or "").upper()
        if not CurrencyRegistry.is_valid(currency):
            raise InvalidExpenseError("currency", f"unknown currency {new_expense.currency!r}")

        if currency == self._local_currency:
            return amount, None

        if new_expense.exchange_rate is None:
            raise MissingExchangeRateError(currency, self._local_currency)
        rate = _as_decimal(new_expense.exchange_rate, "exchange_rate")
        if rate <= 0:
            raise InvalidExpenseError("exchange_rate", f"must be positive, got {rate}")
        return amount * rate, rate

    def register(self, new_expense: NewExpense, actor_id: UUID) -> Expense:
        """
        Persist a new expense and flush.

        Postconditions:
            - Returned Expense has an id, an expense_number, consumed=False.
        """
        try:
            category = ExpenseCategory(new_expense.category)
        except ValueError as exc:
            raise InvalidExpenseError(
                "category", f"unknown category {new_expense.category!r}"
            ) from exc

        expense_type = (new_expense.expense_type or "").strip()
        if not expense_type:
            raise InvalidExpenseError("expense_type", "must not be empty")

        amount_local, rate = self.local_amount(new_expense)
        expense_class = class_for_category(category)

        is_prorateable = new_expense.is_prorateable
        if is_prorateable is None:
            is_prorateable = default_prorateable(category)
        elif is_prorateable and not default_prorateable(category):
            # Stored as given; proration ignores direct expenses regardless
            logger.warning(
                "direct_expense_marked_prorateable",
                extra={"category": category.value, "expense_type": expense_type},
            )

        prefix = expense_class.number_prefix
        number = SequenceService.format_number(
            prefix, self._sequences.next_value(prefix)
        )

        expense = Expense(
            expense_number=number,
            category=category.value,
            expense_class=expense_class.value,
            expense_type=expense_type,
            description=new_expense.description or "",
            currency=new_expense.currency.upper(),
            original_amount=_as_decimal(new_expense.amount, "amount"),
            exchange_rate=rate,
            amount_local=amount_local,
            is_prorateable=bool(is_prorateable),
            consumed=False,
            purchase_order_id=new_expense.purchase_order_id,
            sale_id=new_expense.sale_id,
            incurred_on=new_expense.incurred_on,
            created_by_id=actor_id,
        )
        self.session.add(expense)
        self.session.flush()

        logger.info(
            "expense_registered",
            extra={
                "expense_id": str(expense.id),
                "expense_number": number,
                "category": category.value,
                "expense_class": expense_class.value,
                "amount_local": str(amount_local),
                "is_prorateable": expense.is_prorateable,
            },
        )
        return expense
